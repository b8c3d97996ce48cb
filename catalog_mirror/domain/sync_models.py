from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

SortDirection = Literal["asc", "desc"]


@dataclass(frozen=True)
class RemoteItem:
    id: int
    parent_id: int | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None or self.parent_id == 0


@dataclass(frozen=True)
class MirrorRecord:
    id: int
    name: str = ""
    slug: str = ""
    parent_id: int | None = None
    owner_id: int | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    deleted_at: str | None = None

    def as_row(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class UpsertResult:
    record: MirrorRecord
    written: bool


@dataclass(frozen=True)
class QueryParams:
    page: int = 1
    limit: int = 10
    search: str | None = None
    search_key: str | None = None
    sort: SortDirection = "desc"
    sort_key: str = "id"
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def offset(self) -> int:
        return (max(1, self.page) - 1) * self.limit

    @classmethod
    def from_mapping(cls, raw: dict[str, Any] | None) -> "QueryParams":
        if not raw:
            return cls()
        sort = str(raw.get("sort") or "desc").lower()
        return cls(
            page=int(raw.get("page") or 1),
            limit=int(raw.get("limit") or 10),
            search=raw.get("search") or None,
            search_key=raw.get("search_key") or raw.get("searchKey") or None,
            sort="asc" if sort == "asc" else "desc",
            sort_key=str(raw.get("sort_key") or raw.get("sortKey") or "id"),
            fields=dict(raw.get("fields") or {}),
        )


@dataclass(frozen=True)
class LocalPage:
    count: int = 0
    rows: tuple[MirrorRecord, ...] = ()


@dataclass(frozen=True)
class ReconcileOutcome:
    processed_count: int
    upserted_count: int
    deleted_count: int
    snapshot: LocalPage
    unresolved_ids: tuple[int, ...] = ()

    @property
    def message(self) -> str:
        return f"Sync completed successfully. Processed: {self.processed_count}, Deleted: {self.deleted_count}"


@dataclass(frozen=True)
class SyncResult:
    success: bool
    resource: str
    count: int = 0
    rows: tuple[MirrorRecord, ...] = ()
    message: str = ""
    degraded: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "resource": self.resource,
            "count": self.count,
            "rows": [record.as_row() for record in self.rows],
            "message": self.message,
            "degraded": self.degraded,
            "error": self.error,
        }
