from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Mapping

from catalog_mirror.application.reconciliation import ResourceBinding
from catalog_mirror.core.errors import DataError
from catalog_mirror.domain.models import SyncSettings
from catalog_mirror.domain.ports import MirrorRepositoryPort, PayloadMapperPort, RemoteCatalogPort
from catalog_mirror.domain.sync_models import QueryParams


@dataclass(frozen=True)
class ResourceDefinition:
    key: str
    table: str
    hierarchical: bool = False
    paginated: bool = False
    lock_key: str | None = None
    scope_field: str | None = None
    large_deletes: bool = False


RESOURCE_DEFINITIONS: tuple[ResourceDefinition, ...] = (
    ResourceDefinition("categories", "categories", hierarchical=True, paginated=True),
    ResourceDefinition("products", "products", hierarchical=True, paginated=True, large_deletes=True),
    ResourceDefinition("tags", "tags"),
    ResourceDefinition("attributes", "attributes"),
    # shares the attributes key so terms never sync while their attribute list is rewritten
    ResourceDefinition(
        "attribute_terms",
        "attribute_terms",
        lock_key="attributes",
        scope_field="attribute_id",
    ),
)
RESOURCE_KEYS = tuple(definition.key for definition in RESOURCE_DEFINITIONS)


class ResourceRegistry:
    def __init__(
        self,
        remote: RemoteCatalogPort,
        mapper: PayloadMapperPort,
        repositories: Mapping[str, MirrorRepositoryPort],
        settings: SyncSettings | None = None,
        definitions: tuple[ResourceDefinition, ...] = RESOURCE_DEFINITIONS,
    ) -> None:
        self._remote = remote
        self._mapper = mapper
        self._repositories = dict(repositories)
        self._settings = settings or SyncSettings()
        self._definitions = {definition.key: definition for definition in definitions}

    def keys(self) -> tuple[str, ...]:
        return tuple(self._definitions)

    def definition(self, resource_key: str) -> ResourceDefinition:
        try:
            return self._definitions[resource_key]
        except KeyError as exc:
            raise DataError(f"Unknown resource: {resource_key}") from exc

    def repository(self, resource_key: str) -> MirrorRepositoryPort:
        return self._repositories[self.definition(resource_key).table]

    def resolve(self, resource_key: str, params: QueryParams) -> tuple[ResourceBinding, QueryParams]:
        """Builds the binding for one pass and strips scope fields out of the local query."""
        definition = self.definition(resource_key)
        fields = dict(params.fields)
        scope: dict[str, Any] = {}
        remote_scope: dict[str, Any] = {}
        if definition.scope_field:
            owner_id = self._scope_value(definition, fields.pop(definition.scope_field, None))
            scope = {"owner_id": owner_id}
            remote_scope = {definition.scope_field: owner_id}

        settings = self._settings
        key = definition.key
        fetch_page = None
        fetch_all = None
        if definition.paginated:
            fetch_page = lambda page, page_size: self._remote.fetch_page(key, page, page_size)  # noqa: E731
        else:
            fetch_all = lambda: self._remote.fetch_all(key, **remote_scope)  # noqa: E731

        binding = ResourceBinding(
            key=key,
            repository=self._repositories[definition.table],
            to_remote_item=lambda payload: self._mapper.to_remote_item(key, payload),
            to_record=lambda item: self._mapper.to_record(key, item, scope),
            fetch_page=fetch_page,
            fetch_all=fetch_all,
            hierarchical=definition.hierarchical,
            lock_key=definition.lock_key,
            page_size=settings.page_size,
            upsert_chunk_size=settings.upsert_chunk_size,
            delete_chunk_size=(
                settings.product_delete_chunk_size if definition.large_deletes else settings.delete_chunk_size
            ),
            scope=scope,
        )
        return binding, replace(params, fields=fields)

    @staticmethod
    def _scope_value(definition: ResourceDefinition, raw: Any) -> int:
        if raw in (None, ""):
            raise DataError(f"{definition.key} requires '{definition.scope_field}'")
        try:
            return int(raw)
        except (TypeError, ValueError) as exc:
            raise DataError(f"Invalid {definition.scope_field}: {raw!r}") from exc
