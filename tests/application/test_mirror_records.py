from __future__ import annotations

import pytest

from catalog_mirror.application.mirror_records import MirrorRecordService
from catalog_mirror.application.resources import ResourceRegistry
from catalog_mirror.core.errors import DataError, NotFoundError
from catalog_mirror.domain.sync_models import MirrorRecord, QueryParams
from catalog_mirror.infrastructure.repos_sqlite import MIRROR_TABLES, SQLiteMirrorRepository
from catalog_mirror.infrastructure.woocommerce_payloads import WooCommercePayloadMapper


class _UnusedRemote:
    def fetch_page(self, resource, page, page_size):
        raise AssertionError("remote must not be called")

    def fetch_all(self, resource, **scope):
        raise AssertionError("remote must not be called")


@pytest.fixture
def service(store) -> MirrorRecordService:
    repositories = {table: SQLiteMirrorRepository(table) for table in MIRROR_TABLES}
    registry = ResourceRegistry(_UnusedRemote(), WooCommercePayloadMapper(), repositories)
    return MirrorRecordService(store, registry)


def test_create_then_get(service: MirrorRecordService) -> None:
    created = service.create("tags", MirrorRecord(id=3, name="sale", slug="sale"))

    assert created.id == 3
    assert service.get("tags", 3).name == "sale"
    assert service.get("tags", 4) is None


def test_create_rejects_existing_record(service: MirrorRecordService) -> None:
    service.create("tags", MirrorRecord(id=3, name="sale"))

    with pytest.raises(DataError, match="already exists"):
        service.create("tags", MirrorRecord(id=3, name="again"))


def test_update_of_missing_record_fails(service: MirrorRecordService) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        service.update("categories", MirrorRecord(id=9, name="ghost"))

    assert exc_info.value.missing_ids == (9,)


def test_update_reports_whether_it_wrote(service: MirrorRecordService) -> None:
    service.upsert("categories", MirrorRecord(id=1, name="Shoes"))

    unchanged = service.update("categories", MirrorRecord(id=1, name="Shoes"))
    changed = service.update("categories", MirrorRecord(id=1, name="Boots"))

    assert unchanged.written is False
    assert changed.written is True
    assert service.get("categories", 1).name == "Boots"


def test_delete_many_is_all_or_nothing(service: MirrorRecordService) -> None:
    service.upsert("products", MirrorRecord(id=1))
    service.upsert("products", MirrorRecord(id=2))

    with pytest.raises(NotFoundError):
        service.delete_many("products", [1, 99])
    assert service.get("products", 1) is not None

    assert service.delete_many("products", [1, 2]) == 2
    assert service.get("products", 2) is None


def test_list_page_is_scoped_for_attribute_terms(service: MirrorRecordService) -> None:
    service.upsert("attribute_terms", MirrorRecord(id=10, name="Red", owner_id=4))
    service.upsert("attribute_terms", MirrorRecord(id=11, name="Blue", owner_id=4))
    service.upsert("attribute_terms", MirrorRecord(id=20, name="Small", owner_id=5))

    page = service.list_page("attribute_terms", QueryParams(sort="asc", fields={"attribute_id": 4}))

    assert page.count == 2
    assert [record.id for record in page.rows] == [10, 11]
