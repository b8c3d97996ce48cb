from __future__ import annotations

import pytest

from catalog_mirror.application.resources import RESOURCE_KEYS, ResourceRegistry
from catalog_mirror.core.errors import DataError
from catalog_mirror.domain.models import SyncSettings
from catalog_mirror.domain.sync_models import QueryParams
from catalog_mirror.infrastructure.repos_sqlite import MIRROR_TABLES, SQLiteMirrorRepository
from catalog_mirror.infrastructure.woocommerce_payloads import WooCommercePayloadMapper


class _FakeRemote:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def fetch_page(self, resource, page, page_size):
        self.calls.append(("page", resource, page, page_size))
        return []

    def fetch_all(self, resource, **scope):
        self.calls.append(("all", resource, scope))
        return []


@pytest.fixture
def remote() -> _FakeRemote:
    return _FakeRemote()


@pytest.fixture
def registry(remote: _FakeRemote) -> ResourceRegistry:
    repositories = {table: SQLiteMirrorRepository(table) for table in MIRROR_TABLES}
    settings = SyncSettings(page_size=25, upsert_chunk_size=10, delete_chunk_size=100, product_delete_chunk_size=500)
    return ResourceRegistry(remote, WooCommercePayloadMapper(), repositories, settings)


def test_registry_knows_every_catalog_resource(registry: ResourceRegistry) -> None:
    assert registry.keys() == RESOURCE_KEYS
    assert set(RESOURCE_KEYS) == {"categories", "products", "tags", "attributes", "attribute_terms"}


def test_hierarchical_resources_are_paginated(registry: ResourceRegistry, remote: _FakeRemote) -> None:
    binding, _ = registry.resolve("categories", QueryParams())

    binding.fetch_page(3, binding.page_size)

    assert binding.hierarchical is True
    assert binding.fetch_all is None
    assert binding.page_size == 25
    assert binding.delete_chunk_size == 100
    assert remote.calls == [("page", "categories", 3, 25)]


def test_products_use_large_delete_chunks(registry: ResourceRegistry) -> None:
    binding, _ = registry.resolve("products", QueryParams())

    assert binding.hierarchical is True
    assert binding.delete_chunk_size == 500


def test_flat_resources_are_single_shot(registry: ResourceRegistry, remote: _FakeRemote) -> None:
    binding, _ = registry.resolve("tags", QueryParams())

    binding.fetch_all()

    assert binding.fetch_page is None
    assert binding.hierarchical is False
    assert binding.upsert_chunk_size == 10
    assert remote.calls == [("all", "tags", {})]


def test_attribute_terms_are_scoped_and_share_attributes_key(registry: ResourceRegistry, remote: _FakeRemote) -> None:
    binding, local_query = registry.resolve("attribute_terms", QueryParams(fields={"attribute_id": "4", "slug": "red"}))

    binding.fetch_all()

    assert binding.coordinator_key == "attributes"
    assert binding.scope == {"owner_id": 4}
    assert local_query.fields == {"slug": "red"}
    assert binding.local_query(local_query).fields == {"slug": "red", "owner_id": 4}
    assert remote.calls == [("all", "attribute_terms", {"attribute_id": 4})]


@pytest.mark.parametrize("fields", [{}, {"attribute_id": ""}, {"attribute_id": "abc"}])
def test_attribute_terms_need_a_valid_attribute(registry: ResourceRegistry, fields: dict) -> None:
    with pytest.raises(DataError):
        registry.resolve("attribute_terms", QueryParams(fields=fields))


def test_unknown_resource_is_rejected(registry: ResourceRegistry) -> None:
    with pytest.raises(DataError, match="Unknown resource"):
        registry.resolve("invoices", QueryParams())
