from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol

from catalog_mirror.domain.models import RemoteCatalogConfig
from catalog_mirror.domain.sync_models import LocalPage, MirrorRecord, QueryParams, RemoteItem, UpsertResult


class RemoteCatalogPort(Protocol):
    def fetch_page(self, resource: str, page: int, page_size: int) -> list[dict[str, Any]]:
        ...

    def fetch_all(self, resource: str, **scope: Any) -> list[dict[str, Any]]:
        ...


class PayloadMapperPort(Protocol):
    def to_remote_item(self, resource: str, payload: dict[str, Any]) -> RemoteItem:
        ...

    def to_record(self, resource: str, item: RemoteItem, scope: Mapping[str, Any]) -> MirrorRecord:
        ...


class MirrorRepositoryPort(Protocol):
    def find_ids(self, connection: Any, filters: dict[str, Any] | None = None, *, include_deleted: bool = True) -> list[int]:
        ...

    def upsert(self, connection: Any, record: MirrorRecord) -> UpsertResult:
        ...

    def delete_many(self, connection: Any, ids: Iterable[int]) -> int:
        ...

    def list_page(self, connection: Any, params: QueryParams) -> LocalPage:
        ...

    def get_by_id(self, connection: Any, record_id: int) -> MirrorRecord | None:
        ...


class RemoteCatalogConfigStorePort(Protocol):
    def load(self) -> RemoteCatalogConfig | None:
        ...


class SqlConnectionPort(Protocol):
    def cursor(self) -> Any:
        ...

    def execute(self, sql: str, params: Any = ...) -> Any:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def close(self) -> None:
        ...
