from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable

from catalog_mirror.core.errors import NetworkError, PersistenceError
from catalog_mirror.domain.sync_models import LocalPage, ReconcileOutcome

logger = logging.getLogger(__name__)

NETWORK_ERROR_KEYWORDS = (
    "network",
    "fetch",
    "getaddrinfo",
    "enotfound",
    "econnrefused",
    "econnreset",
    "timeout",
    "timed out",
    "offline",
    "internet",
    "connection",
    "unreachable",
    "dns",
    "name resolution",
)
OFFLINE_MESSAGE = "Offline mode: showing local data, the remote catalog could not be reached."


@dataclass(frozen=True)
class NetworkClassification:
    is_network_error: bool


@dataclass(frozen=True)
class FallbackOutcome:
    page: LocalPage
    message: str
    degraded: bool = False
    outcome: ReconcileOutcome | None = None
    error: BaseException | None = None


def _error_chain(error: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = error
    while current is not None and all(current is not seen for seen in chain):
        chain.append(current)
        current = current.__cause__
    return chain


class NetworkFallbackPolicy:
    """Serves the local mirror when the remote catalog is unreachable."""

    def __init__(self, keywords: tuple[str, ...] = NETWORK_ERROR_KEYWORDS) -> None:
        self._keywords = tuple(keyword.lower() for keyword in keywords)

    def classify(self, error: BaseException) -> NetworkClassification:
        if isinstance(error, PersistenceError):
            return NetworkClassification(is_network_error=False)
        for link in _error_chain(error):
            if isinstance(link, PersistenceError):
                continue
            if isinstance(link, NetworkError):
                return NetworkClassification(is_network_error=True)
            text = f"{type(link).__name__} {link}".lower()
            if any(keyword in text for keyword in self._keywords):
                return NetworkClassification(is_network_error=True)
        return NetworkClassification(is_network_error=False)

    def run(
        self,
        reconcile: Callable[[], ReconcileOutcome],
        read_local: Callable[[], LocalPage],
    ) -> FallbackOutcome:
        try:
            outcome = reconcile()
        except Exception as exc:
            if not self.classify(exc).is_network_error:
                raise
            logger.warning(
                "Remote catalog unreachable; serving local mirror",
                extra={"extra": {"error": str(exc), "error_type": type(exc).__name__}},
            )
            return FallbackOutcome(page=read_local(), message=OFFLINE_MESSAGE, degraded=True, error=exc)
        return FallbackOutcome(page=outcome.snapshot, message=outcome.message, outcome=outcome)
