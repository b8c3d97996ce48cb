from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
import time
import uuid
from collections.abc import Iterator
from typing import Callable, TypeVar

from catalog_mirror.application.retry_policy import RetryContext, RetryPolicy
from catalog_mirror.core.metrics import resource_metric
from catalog_mirror.infrastructure.sqlite_lock_error_classifier import SQLiteLockErrorClassifier

logger = logging.getLogger(__name__)

T = TypeVar("T")
ConnectionFactory = Callable[[], sqlite3.Connection]
Work = Callable[[sqlite3.Connection], T]


@contextlib.contextmanager
def transaction(connection: sqlite3.Connection, *, immediate: bool = False) -> Iterator[None]:
    """Runs a SQLite transaction, nesting through SAVEPOINT when one is already open.

    ``immediate`` takes the write lock up front (``BEGIN IMMEDIATE``) so the
    read snapshot is never older than the lock; it has no effect on a nested
    savepoint.
    """
    if connection.in_transaction:
        savepoint_name = f"sp_{uuid.uuid4().hex}"
        connection.execute(f"SAVEPOINT {savepoint_name}")
        try:
            yield
            connection.execute(f"RELEASE SAVEPOINT {savepoint_name}")
        except Exception:
            connection.execute(f"ROLLBACK TO SAVEPOINT {savepoint_name}")
            connection.execute(f"RELEASE SAVEPOINT {savepoint_name}")
            raise
        return

    connection.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
    try:
        yield
        connection.commit()
    except Exception:
        connection.rollback()
        raise


class TransactionalStore:
    """Sole owner of transaction boundaries on the local mirror.

    Every thread gets its own connection from ``connection_factory`` so that
    concurrent passes for different resources never share a transaction.
    Nested ``run_in_transaction`` calls on one thread reuse the open
    connection through savepoints.
    """

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        retry_policy: RetryPolicy | None = None,
        *,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        self._connection_factory = connection_factory
        self._retry_policy = retry_policy or RetryPolicy(SQLiteLockErrorClassifier())
        self._sleeper = sleeper
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._lock = threading.Lock()

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def connection(self) -> sqlite3.Connection:
        connection = getattr(self._local, "connection", None)
        if connection is None:
            connection = self._connection_factory()
            self._local.connection = connection
            with self._lock:
                self._connections.append(connection)
        return connection

    def run_in_transaction(self, work: Work[T], *, immediate: bool = False) -> T:
        connection = self.connection()
        with transaction(connection, immediate=immediate):
            return work(connection)

    def with_retry(
        self,
        operation: Callable[[], T],
        max_attempts: int | None = None,
        *,
        operation_name: str | None = None,
    ) -> T:
        if max_attempts is None:
            max_attempts = self._retry_policy.max_attempts
        elif max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        context = RetryContext(
            operation_name=operation_name or getattr(operation, "__name__", "operation"),
            max_attempts=max_attempts,
        )
        while True:
            context.attempt += 1
            try:
                return operation()
            except Exception as error:
                context.last_error = error
                context.retryable = self._retry_policy.classify(error).retryable
                if not context.retryable or not context.attempts_left:
                    if context.retryable:
                        logger.error(
                            "Local store operation %s still failing after %s attempts",
                            context.operation_name,
                            context.attempt,
                        )
                    raise
                delay_seconds = self._retry_policy.backoff_delay(context.attempt)
                self._retry_policy.log_retry(context, delay_seconds)
                resource_metric("store.retries")
                self._sleeper(delay_seconds)

    def atomic(self, work: Work[T], *, operation_name: str | None = None) -> T:
        return self.with_retry(
            lambda: self.run_in_transaction(work, immediate=True),
            operation_name=operation_name or getattr(work, "__name__", "atomic"),
        )

    def close(self) -> None:
        with self._lock:
            connections, self._connections = self._connections, []
        for connection in connections:
            connection.close()
        self._local = threading.local()
