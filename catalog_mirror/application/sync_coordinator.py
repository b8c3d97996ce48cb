from __future__ import annotations

from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
import logging
import threading
import time
from typing import Any, Callable, TypeVar

from catalog_mirror.core.observability import OperationContext, get_correlation_id

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_QUIESCENCE_SECONDS = 0.25
DEFAULT_MAX_WORKERS = 4


@dataclass
class SyncJob:
    key: str
    operation: Callable[[], Any]
    future: Future = field(default_factory=Future)
    correlation_id: str | None = None


class SyncCoordinator:
    """Serializes synchronizations per resource key.

    Callers block on a Future while a single worker thread drains one FIFO
    queue. The worker starts the oldest job whose key is neither running nor
    cooling down, so different keys run side by side on the pool while jobs
    for one key run strictly one after another, spaced by the quiescence
    interval.
    """

    def __init__(
        self,
        *,
        quiescence_seconds: float = DEFAULT_QUIESCENCE_SECONDS,
        max_workers: int = DEFAULT_MAX_WORKERS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._quiescence_seconds = max(0.0, quiescence_seconds)
        self._clock = clock
        self._condition = threading.Condition()
        self._queue: deque[SyncJob] = deque()
        self._active: set[str] = set()
        self._cooldown_until: dict[str, float] = {}
        self._closed = False
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="sync-job")
        self._worker = threading.Thread(target=self._drain, name="sync-coordinator", daemon=True)
        self._worker.start()

    def execute(self, key: str, operation: Callable[[], T]) -> T:
        with self._condition:
            self._ensure_open()
            while key in self._active:
                logger.debug("Sync already running for %s; waiting for it to settle", key)
                self._condition.wait()
                self._ensure_open()
            job = SyncJob(key=key, operation=operation, correlation_id=get_correlation_id())
            self._queue.append(job)
            self._condition.notify_all()
        return job.future.result()

    def is_active(self, key: str) -> bool:
        with self._condition:
            return key in self._active

    def active_keys(self) -> frozenset[str]:
        with self._condition:
            return frozenset(self._active)

    def queued_count(self) -> int:
        with self._condition:
            return len(self._queue)

    def shutdown(self, wait: bool = True) -> None:
        with self._condition:
            if self._closed:
                return
            self._closed = True
            pending = list(self._queue)
            self._queue.clear()
            self._condition.notify_all()
        for job in pending:
            job.future.cancel()
        if pending:
            logger.info("Coordinator shut down with %s queued jobs cancelled", len(pending))
        self._worker.join()
        self._executor.shutdown(wait=wait)

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("SyncCoordinator is shut down")

    def _drain(self) -> None:
        while True:
            with self._condition:
                while True:
                    if self._closed:
                        return
                    job, wait_seconds = self._take_ready_job()
                    if job is not None:
                        break
                    self._condition.wait(timeout=wait_seconds)
                self._active.add(job.key)

            if not job.future.set_running_or_notify_cancel():
                self._settle(job.key)
                continue
            self._executor.submit(self._run, job)

    def _take_ready_job(self) -> tuple[SyncJob | None, float | None]:
        now = self._clock()
        blocked_keys: set[str] = set()
        wait_seconds: float | None = None
        for job in self._queue:
            if job.key in blocked_keys:
                continue
            blocked_keys.add(job.key)
            if job.key in self._active:
                continue
            cooldown_left = self._cooldown_until.get(job.key, 0.0) - now
            if cooldown_left > 0:
                wait_seconds = cooldown_left if wait_seconds is None else min(wait_seconds, cooldown_left)
                continue
            self._queue.remove(job)
            return job, None
        return None, wait_seconds

    def _run(self, job: SyncJob) -> None:
        with OperationContext(job.key, correlation_id=job.correlation_id):
            logger.info("Sync job started", extra={"extra": {"key": job.key}})
            started = time.perf_counter()
            try:
                result = job.operation()
            except BaseException as exc:
                logger.warning(
                    "Sync job failed: %s",
                    exc,
                    extra={"extra": {"key": job.key, "error_type": type(exc).__name__}},
                )
                self._settle(job.key)
                job.future.set_exception(exc)
                return
            logger.info(
                "Sync job completed",
                extra={"extra": {"key": job.key, "duration_ms": round((time.perf_counter() - started) * 1000)}},
            )
            self._settle(job.key)
            job.future.set_result(result)

    def _settle(self, key: str) -> None:
        with self._condition:
            self._active.discard(key)
            self._cooldown_until[key] = self._clock() + self._quiescence_seconds
            self._condition.notify_all()
