from __future__ import annotations

from typing import Any, Callable, Mapping

from catalog_mirror.core.errors import DataError
from catalog_mirror.domain.sync_models import MirrorRecord, RemoteItem

_PARENT_FIELDS = {
    "categories": "parent",
    "products": "parent_id",
}


def _coerce_id(value: Any, *, resource: str, field_name: str) -> int:
    if isinstance(value, bool):
        raise DataError(f"{resource}: '{field_name}' is not an integer id: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise DataError(f"{resource}: '{field_name}' is not an integer id: {value!r}")


def _optional_parent(value: Any, *, resource: str, field_name: str) -> int | None:
    if value in (None, "", 0, "0"):
        return None
    return _coerce_id(value, resource=resource, field_name=field_name)


def to_remote_item(resource: str, payload: dict[str, Any]) -> RemoteItem:
    if not isinstance(payload, dict):
        raise DataError(f"{resource}: expected an object, got {type(payload).__name__}")
    if "id" not in payload:
        raise DataError(f"{resource}: item without id")
    item_id = _coerce_id(payload["id"], resource=resource, field_name="id")
    parent_field = _PARENT_FIELDS.get(resource)
    parent_id = None
    if parent_field is not None:
        parent_id = _optional_parent(payload.get(parent_field), resource=resource, field_name=parent_field)
    return RemoteItem(id=item_id, parent_id=parent_id, payload=dict(payload))


def _text(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    return "" if value is None else str(value)


def category_record(item: RemoteItem) -> MirrorRecord:
    return MirrorRecord(
        id=item.id,
        name=_text(item.payload, "name"),
        slug=_text(item.payload, "slug"),
        parent_id=item.parent_id,
        payload=item.payload,
    )


def product_record(item: RemoteItem) -> MirrorRecord:
    return MirrorRecord(
        id=item.id,
        name=_text(item.payload, "name"),
        slug=_text(item.payload, "slug") or _text(item.payload, "sku"),
        parent_id=item.parent_id,
        payload=item.payload,
    )


def flat_record(item: RemoteItem) -> MirrorRecord:
    return MirrorRecord(
        id=item.id,
        name=_text(item.payload, "name"),
        slug=_text(item.payload, "slug"),
        payload=item.payload,
    )


def attribute_term_record(item: RemoteItem, attribute_id: int) -> MirrorRecord:
    payload = dict(item.payload)
    payload.setdefault("attribute_id", attribute_id)
    return MirrorRecord(
        id=item.id,
        name=_text(payload, "name"),
        slug=_text(payload, "slug"),
        owner_id=attribute_id,
        payload=payload,
    )


_RECORD_BUILDERS: dict[str, Callable[[RemoteItem], MirrorRecord]] = {
    "categories": category_record,
    "products": product_record,
    "tags": flat_record,
    "attributes": flat_record,
}


class WooCommercePayloadMapper:
    """Turns WooCommerce JSON objects into remote items and mirror rows."""

    def to_remote_item(self, resource: str, payload: dict[str, Any]) -> RemoteItem:
        return to_remote_item(resource, payload)

    def to_record(self, resource: str, item: RemoteItem, scope: Mapping[str, Any]) -> MirrorRecord:
        if resource == "attribute_terms":
            # terms come back without their attribute, the owner is stamped from the request scope
            return attribute_term_record(item, int(scope["owner_id"]))
        try:
            builder = _RECORD_BUILDERS[resource]
        except KeyError as exc:
            raise DataError(f"No record mapping for resource {resource}") from exc
        return builder(item)
