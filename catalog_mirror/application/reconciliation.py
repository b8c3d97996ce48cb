from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
from typing import Any, Callable, Iterable, Sequence

from catalog_mirror.application.ports.transactional_store import TransactionalStorePort
from catalog_mirror.domain.ports import MirrorRepositoryPort
from catalog_mirror.domain.sync_models import LocalPage, MirrorRecord, QueryParams, ReconcileOutcome, RemoteItem

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
DEFAULT_UPSERT_CHUNK_SIZE = 50
DEFAULT_DELETE_CHUNK_SIZE = 100
_EXTRA_HIERARCHY_PASSES = 10


@dataclass(frozen=True)
class ResourceBinding:
    """Everything one reconcile pass needs to know about a resource.

    Exactly one of ``fetch_page`` (paginated) or ``fetch_all`` (single shot)
    is set. ``scope`` narrows local reads and orphan detection, e.g. the
    owning attribute of attribute terms.
    """

    key: str
    repository: MirrorRepositoryPort
    to_remote_item: Callable[[dict[str, Any]], RemoteItem]
    to_record: Callable[[RemoteItem], MirrorRecord]
    fetch_page: Callable[[int, int], list[dict[str, Any]]] | None = None
    fetch_all: Callable[[], list[dict[str, Any]]] | None = None
    hierarchical: bool = False
    lock_key: str | None = None
    page_size: int = DEFAULT_PAGE_SIZE
    upsert_chunk_size: int = DEFAULT_UPSERT_CHUNK_SIZE
    delete_chunk_size: int = DEFAULT_DELETE_CHUNK_SIZE
    scope: dict[str, Any] = field(default_factory=dict)

    @property
    def coordinator_key(self) -> str:
        return self.lock_key or self.key

    def local_query(self, params: QueryParams) -> QueryParams:
        if not self.scope:
            return params
        return replace(params, fields={**params.fields, **self.scope})


def _chunks(values: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    step = max(1, size)
    for start in range(0, len(values), step):
        yield values[start : start + step]


class ReconciliationEngine:
    def __init__(self, store: TransactionalStorePort) -> None:
        self._store = store

    def reconcile(self, binding: ResourceBinding, query_params: QueryParams) -> ReconcileOutcome:
        """Fetches the remote collection, then applies it in one write transaction.

        The fetch runs before any transaction is open, so a slow or failing
        remote never holds the write lock. The write phase is retried as a
        whole when the store reports lock contention.
        """
        items = self._fetch_remote(binding)
        return self._store.atomic(
            lambda connection: self._apply(connection, binding, items, query_params),
            operation_name=f"reconcile_{binding.key}",
        )

    def read_local(self, binding: ResourceBinding, query_params: QueryParams) -> LocalPage:
        return self._store.run_in_transaction(
            lambda connection: binding.repository.list_page(connection, binding.local_query(query_params))
        )

    def _apply(
        self,
        connection: Any,
        binding: ResourceBinding,
        items: list[RemoteItem],
        query_params: QueryParams,
    ) -> ReconcileOutcome:
        remote_ids = {item.id for item in items}

        if binding.hierarchical:
            processed_count, upserted_count, unresolved_ids = self._upsert_hierarchical(connection, binding, items)
        else:
            processed_count, upserted_count = self._upsert_flat(connection, binding, items)
            unresolved_ids = ()

        deleted_count = self._delete_orphans(connection, binding, remote_ids)
        snapshot = binding.repository.list_page(connection, binding.local_query(query_params))

        logger.info(
            "Reconciled %s",
            binding.key,
            extra={
                "extra": {
                    "resource": binding.key,
                    "remote_items": len(items),
                    "processed": processed_count,
                    "upserted": upserted_count,
                    "deleted": deleted_count,
                    "unresolved": len(unresolved_ids),
                }
            },
        )
        return ReconcileOutcome(
            processed_count=processed_count,
            upserted_count=upserted_count,
            deleted_count=deleted_count,
            snapshot=snapshot,
            unresolved_ids=unresolved_ids,
        )

    def _fetch_remote(self, binding: ResourceBinding) -> list[RemoteItem]:
        if binding.fetch_page is not None:
            payloads: list[dict[str, Any]] = []
            page = 1
            while True:
                batch = binding.fetch_page(page, binding.page_size)
                payloads.extend(batch)
                if len(batch) < binding.page_size:
                    break
                page += 1
        elif binding.fetch_all is not None:
            payloads = list(binding.fetch_all())
        else:
            raise ValueError(f"Resource {binding.key} has no remote fetcher")
        return self._unique_items(binding, [binding.to_remote_item(payload) for payload in payloads])

    @staticmethod
    def _unique_items(binding: ResourceBinding, items: list[RemoteItem]) -> list[RemoteItem]:
        seen: set[int] = set()
        unique: list[RemoteItem] = []
        duplicates: list[int] = []
        for item in items:
            if item.id in seen:
                duplicates.append(item.id)
                continue
            seen.add(item.id)
            unique.append(item)
        if duplicates:
            logger.warning(
                "Remote %s returned duplicate ids; keeping first occurrence",
                binding.key,
                extra={"extra": {"duplicate_ids": sorted(set(duplicates))}},
            )
        return unique

    def _upsert_hierarchical(
        self, connection: Any, binding: ResourceBinding, items: list[RemoteItem]
    ) -> tuple[int, int, tuple[int, ...]]:
        processed: set[int] = set()
        upserted = 0
        pending = list(items)
        max_passes = len(items) + _EXTRA_HIERARCHY_PASSES
        passes = 0
        while pending:
            if passes >= max_passes:
                logger.warning("Hierarchy pass limit reached for %s", binding.key)
                break
            passes += 1
            ready = [item for item in pending if item.is_root or item.parent_id in processed]
            if not ready:
                logger.warning(
                    "Could not resolve parents for %s %s items; skipping them",
                    len(pending),
                    binding.key,
                    extra={"extra": {"unresolved_ids": sorted(item.id for item in pending)}},
                )
                break
            for item in ready:
                result = self._store.with_retry(
                    lambda item=item: binding.repository.upsert(connection, binding.to_record(item)),
                    operation_name=f"upsert_{binding.key}",
                )
                upserted += int(result.written)
                processed.add(item.id)
            pending = [item for item in pending if item.id not in processed]
        return len(processed), upserted, tuple(sorted(item.id for item in pending))

    def _upsert_flat(self, connection: Any, binding: ResourceBinding, items: list[RemoteItem]) -> tuple[int, int]:
        upserted = 0
        for chunk in _chunks(items, binding.upsert_chunk_size):
            upserted += self._store.with_retry(
                lambda chunk=chunk: sum(
                    int(binding.repository.upsert(connection, binding.to_record(item)).written) for item in chunk
                ),
                operation_name=f"upsert_{binding.key}",
            )
        return len(items), upserted

    def _delete_orphans(self, connection: Any, binding: ResourceBinding, remote_ids: set[int]) -> int:
        local_ids = binding.repository.find_ids(connection, dict(binding.scope), include_deleted=True)
        orphan_ids = sorted(set(local_ids) - remote_ids)
        deleted = 0
        for chunk in _chunks(orphan_ids, binding.delete_chunk_size):
            deleted += self._store.with_retry(
                lambda chunk=chunk: binding.repository.delete_many(connection, list(chunk)),
                operation_name=f"delete_{binding.key}",
            )
        if orphan_ids:
            logger.info("Removed %s orphaned %s rows", deleted, binding.key)
        return deleted
