from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Mapping

from catalog_mirror.application.network_fallback import FallbackOutcome, NetworkFallbackPolicy
from catalog_mirror.application.ports.transactional_store import SyncRunLogPort, TransactionalStorePort
from catalog_mirror.application.reconciliation import ReconciliationEngine
from catalog_mirror.application.resources import ResourceRegistry
from catalog_mirror.application.sync_coordinator import SyncCoordinator
from catalog_mirror.bootstrap.logging import log_operational_error
from catalog_mirror.core.errors import AppError
from catalog_mirror.core.metrics import resource_metric, timed
from catalog_mirror.core.observability import OperationContext
from catalog_mirror.core.secret_redaction import redact_text
from catalog_mirror.domain.sync_models import QueryParams, SyncResult

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_DEGRADED = "degraded"
STATUS_FAILED = "failed"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _failure_message(resource_key: str, exc: BaseException) -> str:
    if isinstance(exc, AppError):
        return f"Sync of {resource_key} failed: {exc}"
    return f"Sync of {resource_key} failed unexpectedly ({type(exc).__name__}): {exc}"


class CatalogSynchronizer:
    """Entry point used by the catalog services to refresh one resource."""

    def __init__(
        self,
        coordinator: SyncCoordinator,
        engine: ReconciliationEngine,
        registry: ResourceRegistry,
        store: TransactionalStorePort,
        fallback: NetworkFallbackPolicy | None = None,
        run_log: SyncRunLogPort | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._engine = engine
        self._registry = registry
        self._store = store
        self._fallback = fallback or NetworkFallbackPolicy()
        self._run_log = run_log

    @timed("sync.synchronize")
    def synchronize(
        self,
        resource_key: str,
        params: QueryParams | Mapping[str, Any] | None = None,
    ) -> SyncResult:
        with OperationContext(resource_key) as context:
            resource_metric("sync.runs")
            started_at = _now_iso()
            try:
                query = params if isinstance(params, QueryParams) else QueryParams.from_mapping(dict(params or {}))
                binding, local_query = self._registry.resolve(resource_key, query)
                result = self._fallback.run(
                    lambda: self._coordinator.execute(
                        binding.coordinator_key,
                        lambda: self._engine.reconcile(binding, local_query),
                    ),
                    lambda: self._engine.read_local(binding, local_query),
                )
            except Exception as exc:
                return self._failed(resource_key, exc, context.correlation_id, started_at)

            self._record_run(resource_key, result, context.correlation_id, started_at)
            if result.degraded:
                resource_metric("sync.degraded")
            return SyncResult(
                success=True,
                resource=resource_key,
                count=result.page.count,
                rows=result.page.rows,
                message=result.message,
                degraded=result.degraded,
                error=redact_text(str(result.error)) if result.error is not None else None,
            )

    def last_successful_sync(self, resource_key: str) -> str | None:
        if self._run_log is None:
            return None
        run_log = self._run_log
        return self._store.run_in_transaction(
            lambda connection: run_log.last_successful_sync(connection, resource_key)
        )

    def _failed(self, resource_key: str, exc: Exception, correlation_id: str, started_at: str) -> SyncResult:
        resource_metric("sync.failures")
        message = redact_text(_failure_message(resource_key, exc))
        log_operational_error(
            logger,
            "Catalog sync failed",
            exc=exc,
            extra={"resource": resource_key, "error_type": type(exc).__name__},
        )
        self._write_run(
            resource_key,
            correlation_id=correlation_id,
            started_at=started_at,
            status=STATUS_FAILED,
            message=message,
        )
        return SyncResult(success=False, resource=resource_key, message=message, error=redact_text(str(exc)))

    def _record_run(
        self,
        resource_key: str,
        result: FallbackOutcome,
        correlation_id: str,
        started_at: str,
    ) -> None:
        outcome = result.outcome
        self._write_run(
            resource_key,
            correlation_id=correlation_id,
            started_at=started_at,
            status=STATUS_DEGRADED if result.degraded else STATUS_SUCCESS,
            processed_count=outcome.processed_count if outcome else 0,
            upserted_count=outcome.upserted_count if outcome else 0,
            deleted_count=outcome.deleted_count if outcome else 0,
            message=result.message,
        )

    def _write_run(self, resource_key: str, **fields: Any) -> None:
        if self._run_log is None:
            return
        run_log = self._run_log
        try:
            self._store.atomic(
                lambda connection: run_log.record(connection, resource=resource_key, **fields),
                operation_name="record_sync_run",
            )
        except Exception as exc:  # noqa: BLE001
            log_operational_error(
                logger,
                "Could not record sync run",
                exc=exc,
                extra={"resource": resource_key, "status": fields.get("status")},
            )
