from __future__ import annotations

import logging
from typing import Iterable

from catalog_mirror.application.ports.transactional_store import TransactionalStorePort
from catalog_mirror.application.resources import ResourceRegistry
from catalog_mirror.core.errors import DataError, NotFoundError
from catalog_mirror.domain.sync_models import LocalPage, MirrorRecord, QueryParams, UpsertResult

logger = logging.getLogger(__name__)


class MirrorRecordService:
    """Single-record writes on the local mirror, each one atomic and retried on contention."""

    def __init__(self, store: TransactionalStorePort, registry: ResourceRegistry) -> None:
        self._store = store
        self._registry = registry

    def create(self, resource_key: str, record: MirrorRecord) -> MirrorRecord:
        repository = self._registry.repository(resource_key)

        def _create(connection) -> MirrorRecord:
            existing = repository.get_by_id(connection, record.id)
            if existing is not None and existing.deleted_at is None:
                raise DataError(f"{resource_key} {record.id} already exists")
            return repository.upsert(connection, record).record

        created = self._store.atomic(_create, operation_name=f"create_{resource_key}")
        logger.info("Mirror record created", extra={"extra": {"resource": resource_key, "id": record.id}})
        return created

    def update(self, resource_key: str, record: MirrorRecord) -> UpsertResult:
        repository = self._registry.repository(resource_key)

        def _update(connection) -> UpsertResult:
            if repository.get_by_id(connection, record.id) is None:
                raise NotFoundError(f"Records not found in {resource_key}", [record.id])
            return repository.upsert(connection, record)

        return self._store.atomic(_update, operation_name=f"update_{resource_key}")

    def upsert(self, resource_key: str, record: MirrorRecord) -> UpsertResult:
        repository = self._registry.repository(resource_key)
        return self._store.atomic(
            lambda connection: repository.upsert(connection, record),
            operation_name=f"upsert_{resource_key}",
        )

    def delete_many(self, resource_key: str, ids: Iterable[int]) -> int:
        repository = self._registry.repository(resource_key)
        requested = list(ids)
        deleted = self._store.atomic(
            lambda connection: repository.delete_many(connection, requested),
            operation_name=f"delete_{resource_key}",
        )
        logger.info("Mirror records deleted", extra={"extra": {"resource": resource_key, "count": deleted}})
        return deleted

    def get(self, resource_key: str, record_id: int) -> MirrorRecord | None:
        repository = self._registry.repository(resource_key)
        return self._store.run_in_transaction(lambda connection: repository.get_by_id(connection, record_id))

    def list_page(self, resource_key: str, params: QueryParams) -> LocalPage:
        binding, local_query = self._registry.resolve(resource_key, params)
        return self._store.run_in_transaction(
            lambda connection: binding.repository.list_page(connection, binding.local_query(local_query))
        )
