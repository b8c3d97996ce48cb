from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from pathlib import Path
import sqlite3
from typing import Callable

from catalog_mirror.application.mirror_records import MirrorRecordService
from catalog_mirror.application.network_fallback import NetworkFallbackPolicy
from catalog_mirror.application.reconciliation import ReconciliationEngine
from catalog_mirror.application.resources import ResourceRegistry
from catalog_mirror.application.retry_policy import RetryPolicy
from catalog_mirror.application.sync_coordinator import SyncCoordinator
from catalog_mirror.application.synchronizer import CatalogSynchronizer
from catalog_mirror.domain.models import RemoteCatalogConfig
from catalog_mirror.domain.ports import RemoteCatalogPort
from catalog_mirror.infrastructure.db import default_db_path, get_connection
from catalog_mirror.infrastructure.health_checks import RemoteHostCheck, SQLiteLocalDbCheck
from catalog_mirror.infrastructure.local_config import LocalConfigStore
from catalog_mirror.infrastructure.migrations import MigrationRunner
from catalog_mirror.infrastructure.repos_sqlite import MIRROR_TABLES, SQLiteMirrorRepository, SQLiteSyncRunRepository
from catalog_mirror.infrastructure.sqlite_lock_error_classifier import SQLiteLockErrorClassifier
from catalog_mirror.infrastructure.sqlite_uow import TransactionalStore
from catalog_mirror.infrastructure.woocommerce_client import WooCommerceClient
from catalog_mirror.infrastructure.woocommerce_payloads import WooCommercePayloadMapper

ConnectionFactory = Callable[[], sqlite3.Connection]


@dataclass
class CatalogContainer:
    store: TransactionalStore
    coordinator: SyncCoordinator
    registry: ResourceRegistry
    synchronizer: CatalogSynchronizer
    records: MirrorRecordService
    config_store: LocalConfigStore
    local_db_check: SQLiteLocalDbCheck
    remote_check: RemoteHostCheck

    def close(self) -> None:
        self.coordinator.shutdown(wait=True)
        self.store.close()


def build_container(
    db_path: Path | None = None,
    *,
    config_store: LocalConfigStore | None = None,
    remote: RemoteCatalogPort | None = None,
) -> CatalogContainer:
    config_store = config_store or LocalConfigStore()
    settings = config_store.load_sync_settings()
    connection_factory: ConnectionFactory = partial(get_connection, db_path or default_db_path())

    bootstrap_connection = connection_factory()
    try:
        migration_runner = MigrationRunner(bootstrap_connection)
        migration_runner.apply_all()
        migrations_total = len(migration_runner.migrations)
    finally:
        bootstrap_connection.close()

    retry_policy = RetryPolicy(
        SQLiteLockErrorClassifier(),
        max_attempts=settings.retry_max_attempts,
        base_delay_seconds=settings.retry_base_delay_seconds,
        jitter_seconds=settings.retry_jitter_seconds,
        cap_seconds=settings.retry_cap_seconds,
    )
    store = TransactionalStore(connection_factory, retry_policy)
    coordinator = SyncCoordinator(quiescence_seconds=settings.quiescence_seconds)

    if remote is None:
        remote = WooCommerceClient(
            config_store.load() or RemoteCatalogConfig(base_url="", consumer_key="", consumer_secret="")
        )
    repositories = {table: SQLiteMirrorRepository(table) for table in MIRROR_TABLES}
    registry = ResourceRegistry(remote, WooCommercePayloadMapper(), repositories, settings)

    synchronizer = CatalogSynchronizer(
        coordinator,
        ReconciliationEngine(store),
        registry,
        store,
        NetworkFallbackPolicy(),
        SQLiteSyncRunRepository(),
    )
    return CatalogContainer(
        store=store,
        coordinator=coordinator,
        registry=registry,
        synchronizer=synchronizer,
        records=MirrorRecordService(store, registry),
        config_store=config_store,
        local_db_check=SQLiteLocalDbCheck(connection_factory, migrations_total),
        remote_check=RemoteHostCheck(config_store),
    )
