from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Iterable

from catalog_mirror.core.errors import DataError, NotFoundError
from catalog_mirror.domain.sync_models import LocalPage, MirrorRecord, QueryParams, UpsertResult

logger = logging.getLogger(__name__)

MIRROR_TABLES = frozenset({"categories", "products", "tags", "attributes", "attribute_terms"})
_QUERYABLE_COLUMNS = frozenset({"id", "parent_id", "owner_id", "name", "slug", "synced_at"})
_SEARCHABLE_COLUMNS = frozenset({"name", "slug"})
_SQLITE_MAX_VARIABLES = 900


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _content_hash(record: MirrorRecord) -> str:
    material = json.dumps(
        {
            "name": record.name,
            "slug": record.slug,
            "parent_id": record.parent_id,
            "owner_id": record.owner_id,
            "payload": record.payload,
        },
        sort_keys=True,
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def _chunks(values: list[int], size: int) -> Iterable[list[int]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


def _row_to_record(row: sqlite3.Row) -> MirrorRecord:
    return MirrorRecord(
        id=int(row["id"]),
        name=row["name"] or "",
        slug=row["slug"] or "",
        parent_id=row["parent_id"],
        owner_id=row["owner_id"],
        payload=json.loads(row["payload"] or "{}"),
        deleted_at=row["deleted_at"],
    )


class SQLiteMirrorRepository:
    """Mirror table access; every method runs on the caller's connection and transaction."""

    def __init__(self, table: str) -> None:
        if table not in MIRROR_TABLES:
            raise ValueError(f"Unknown mirror table: {table}")
        self.table = table

    def find_ids(
        self,
        connection: sqlite3.Connection,
        filters: dict[str, Any] | None = None,
        *,
        include_deleted: bool = True,
    ) -> list[int]:
        clauses, params = self._filter_clauses(filters or {})
        if not include_deleted:
            clauses.append("deleted_at IS NULL")
        sql = f"SELECT id FROM {self.table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        cursor = connection.execute(sql + " ORDER BY id", tuple(params))
        return [int(row["id"]) for row in cursor.fetchall()]

    def get_by_id(self, connection: sqlite3.Connection, record_id: int) -> MirrorRecord | None:
        cursor = connection.execute(
            f"""
            SELECT id, parent_id, owner_id, name, slug, payload, deleted_at
            FROM {self.table}
            WHERE id = ?
            """,
            (int(record_id),),
        )
        row = cursor.fetchone()
        return _row_to_record(row) if row is not None else None

    def upsert(self, connection: sqlite3.Connection, record: MirrorRecord) -> UpsertResult:
        content_hash = _content_hash(record)
        existing = connection.execute(
            f"SELECT content_hash, deleted_at FROM {self.table} WHERE id = ?",
            (record.id,),
        ).fetchone()
        if existing is not None and existing["content_hash"] == content_hash and existing["deleted_at"] is None:
            return UpsertResult(record=record, written=False)

        connection.execute(
            f"""
            INSERT INTO {self.table} (id, parent_id, owner_id, name, slug, payload, content_hash, synced_at, deleted_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL)
            ON CONFLICT(id) DO UPDATE SET
                parent_id = excluded.parent_id,
                owner_id = excluded.owner_id,
                name = excluded.name,
                slug = excluded.slug,
                payload = excluded.payload,
                content_hash = excluded.content_hash,
                synced_at = excluded.synced_at,
                deleted_at = NULL
            """,
            (
                record.id,
                record.parent_id,
                record.owner_id,
                record.name,
                record.slug,
                json.dumps(record.payload, ensure_ascii=False, sort_keys=True, default=str),
                content_hash,
                _now_iso(),
            ),
        )
        return UpsertResult(record=record, written=True)

    def delete_many(self, connection: sqlite3.Connection, ids: Iterable[int]) -> int:
        requested = sorted({int(value) for value in ids})
        if not requested:
            return 0
        found: set[int] = set()
        for chunk in _chunks(requested, _SQLITE_MAX_VARIABLES):
            placeholders = ", ".join("?" for _ in chunk)
            cursor = connection.execute(f"SELECT id FROM {self.table} WHERE id IN ({placeholders})", tuple(chunk))
            found.update(int(row["id"]) for row in cursor.fetchall())
        missing = [value for value in requested if value not in found]
        if missing:
            raise NotFoundError(f"Records not found in {self.table}", missing)

        deleted = 0
        for chunk in _chunks(requested, _SQLITE_MAX_VARIABLES):
            placeholders = ", ".join("?" for _ in chunk)
            cursor = connection.execute(f"DELETE FROM {self.table} WHERE id IN ({placeholders})", tuple(chunk))
            deleted += cursor.rowcount
        return deleted

    def soft_delete(self, connection: sqlite3.Connection, record_id: int) -> None:
        cursor = connection.execute(
            f"UPDATE {self.table} SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
            (_now_iso(), int(record_id)),
        )
        if cursor.rowcount == 0 and self.get_by_id(connection, record_id) is None:
            raise NotFoundError(f"Records not found in {self.table}", [record_id])

    def list_page(self, connection: sqlite3.Connection, params: QueryParams) -> LocalPage:
        clauses, values = self._filter_clauses(params.fields)
        clauses.insert(0, "deleted_at IS NULL")
        if params.search:
            search_key = params.search_key or "name"
            if search_key not in _SEARCHABLE_COLUMNS:
                raise DataError(f"Cannot search {self.table} by '{search_key}'")
            clauses.append(f"{search_key} LIKE ?")
            values.append(f"%{params.search}%")
        if params.sort_key not in _QUERYABLE_COLUMNS:
            raise DataError(f"Cannot sort {self.table} by '{params.sort_key}'")
        where = " WHERE " + " AND ".join(clauses)
        direction = "ASC" if params.sort == "asc" else "DESC"

        total = connection.execute(f"SELECT COUNT(*) AS total FROM {self.table}{where}", tuple(values)).fetchone()
        cursor = connection.execute(
            f"""
            SELECT id, parent_id, owner_id, name, slug, payload, deleted_at
            FROM {self.table}{where}
            ORDER BY {params.sort_key} {direction}, id {direction}
            LIMIT ? OFFSET ?
            """,
            (*values, max(0, params.limit), params.offset),
        )
        rows = tuple(_row_to_record(row) for row in cursor.fetchall())
        return LocalPage(count=int(total["total"]), rows=rows)

    def _filter_clauses(self, filters: dict[str, Any]) -> tuple[list[str], list[Any]]:
        clauses: list[str] = []
        values: list[Any] = []
        for column, value in sorted(filters.items()):
            if column not in _QUERYABLE_COLUMNS:
                raise DataError(f"Cannot filter {self.table} by '{column}'")
            if value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                values.append(value)
        return clauses, values


class SQLiteSyncRunRepository:
    def record(
        self,
        connection: sqlite3.Connection,
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
        cursor = connection.execute(
            """
            INSERT INTO sync_runs (
                resource, correlation_id, started_at, finished_at, status,
                processed_count, upserted_count, deleted_count, message
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                resource,
                correlation_id,
                started_at,
                _now_iso(),
                status,
                processed_count,
                upserted_count,
                deleted_count,
                message,
            ),
        )
        return int(cursor.lastrowid)

    def last_successful_sync(self, connection: sqlite3.Connection, resource: str) -> str | None:
        row = connection.execute(
            """
            SELECT finished_at FROM sync_runs
            WHERE resource = ? AND status = 'success'
            ORDER BY finished_at DESC, id DESC
            LIMIT 1
            """,
            (resource,),
        ).fetchone()
        return row["finished_at"] if row is not None else None

    def recent(self, connection: sqlite3.Connection, resource: str, limit: int = 10) -> list[dict[str, Any]]:
        cursor = connection.execute(
            """
            SELECT resource, correlation_id, started_at, finished_at, status,
                   processed_count, upserted_count, deleted_count, message
            FROM sync_runs
            WHERE resource = ?
            ORDER BY id DESC
            LIMIT ?
            """,
            (resource, limit),
        )
        return [dict(row) for row in cursor.fetchall()]


