from __future__ import annotations

from typing import Any, Callable, Protocol, TypeVar

T = TypeVar("T")


class TransactionalStorePort(Protocol):
    def run_in_transaction(self, work: Callable[[Any], T], *, immediate: bool = False) -> T:
        ...

    def with_retry(
        self,
        operation: Callable[[], T],
        max_attempts: int | None = None,
        *,
        operation_name: str | None = None,
    ) -> T:
        ...

    def atomic(self, work: Callable[[Any], T], *, operation_name: str | None = None) -> T:
        ...


class SyncRunLogPort(Protocol):
    def record(
        self,
        connection: Any,
        *,
        resource: str,
        correlation_id: str | None,
        started_at: str,
        status: str,
        processed_count: int = 0,
        upserted_count: int = 0,
        deleted_count: int = 0,
        message: str = "",
    ) -> int:
        ...

    def last_successful_sync(self, connection: Any, resource: str) -> str | None:
        ...

    def recent(self, connection: Any, resource: str, limit: int = 10) -> list[dict[str, Any]]:
        ...
