from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Callable

from catalog_mirror.application.ports.db_lock_error_classifier import DbLockErrorClassifier
from catalog_mirror.core.errors import TransientStoreError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_DELAY_SECONDS = 0.5
DEFAULT_JITTER_SECONDS = 1.0
DEFAULT_CAP_SECONDS = 10.0


@dataclass(frozen=True)
class RetryDecision:
    retryable: bool


@dataclass
class RetryContext:
    operation_name: str
    max_attempts: int
    attempt: int = 0
    last_error: BaseException | None = None
    retryable: bool = False

    @property
    def attempts_left(self) -> bool:
        return self.attempt < self.max_attempts


class RetryPolicy:
    """Decides whether a local-store error is transient contention and how long to back off."""

    def __init__(
        self,
        lock_classifier: DbLockErrorClassifier | None = None,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay_seconds: float = DEFAULT_BASE_DELAY_SECONDS,
        jitter_seconds: float = DEFAULT_JITTER_SECONDS,
        cap_seconds: float = DEFAULT_CAP_SECONDS,
        jitter_source: Callable[[float, float], float] = random.uniform,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._lock_classifier = lock_classifier
        self.max_attempts = max_attempts
        self.base_delay_seconds = base_delay_seconds
        self.jitter_seconds = jitter_seconds
        self.cap_seconds = cap_seconds
        self._jitter_source = jitter_source

    def classify(self, error: BaseException) -> RetryDecision:
        if isinstance(error, TransientStoreError):
            return RetryDecision(retryable=True)
        if self._lock_classifier is not None and self._lock_classifier.is_locked_error(error):
            return RetryDecision(retryable=True)
        return RetryDecision(retryable=False)

    def backoff_delay(self, attempt: int) -> float:
        exponential = self.base_delay_seconds * (2 ** (max(1, attempt) - 1))
        jitter = self._jitter_source(0.0, self.jitter_seconds) if self.jitter_seconds > 0 else 0.0
        return min(exponential + jitter, self.cap_seconds)

    def log_retry(self, context: RetryContext, delay_seconds: float) -> None:
        logger.warning(
            "Local store operation failed (attempt=%s/%s); retrying in %.0fms",
            context.attempt,
            context.max_attempts,
            delay_seconds * 1000,
            extra={
                "extra": {
                    "operation": context.operation_name,
                    "attempt": context.attempt,
                    "max_attempts": context.max_attempts,
                    "delay_ms": round(delay_seconds * 1000),
                    "error": str(context.last_error),
                }
            },
        )
