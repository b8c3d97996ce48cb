from __future__ import annotations

import json
import logging
import time
from typing import Any

import requests

from catalog_mirror.core.errors import DataError, NetworkError
from catalog_mirror.core.observability import get_correlation_id
from catalog_mirror.core.secret_redaction import redact_text
from catalog_mirror.domain.models import RemoteCatalogConfig

logger = logging.getLogger(__name__)

_API_PREFIX = "/wp-json/wc/v3"
_ENDPOINTS = {
    "categories": "/products/categories",
    "products": "/products",
    "tags": "/products/tags",
    "attributes": "/products/attributes",
    "attribute_terms": "/products/attributes/{attribute_id}/terms",
}
_FETCH_ALL_PAGE_SIZE = 100
_MAX_FETCH_ALL_PAGES = 1000
_USER_AGENT = "CatalogMirror/1.0"


def _describe(exc: requests.exceptions.RequestException) -> str:
    # requests embeds the full URL, query credentials included
    return redact_text(str(exc))


def map_requests_exception(resource: str, exc: requests.exceptions.RequestException) -> Exception:
    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return NetworkError(f"Network error while fetching {resource}: {_describe(exc)}")
    if isinstance(exc, requests.exceptions.HTTPError):
        status_code = getattr(exc.response, "status_code", None)
        return DataError(f"Remote catalog rejected {resource} request (HTTP {status_code}): {_describe(exc)}")
    return DataError(f"Invalid request for {resource}: {_describe(exc)}")


class WooCommerceClient:
    """Read-only WooCommerce REST client for the catalog collections."""

    def __init__(self, config: RemoteCatalogConfig, session: requests.Session | None = None) -> None:
        self._config = config
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", _USER_AGENT)

    def fetch_page(self, resource: str, page: int, page_size: int) -> list[dict[str, Any]]:
        return self._get_list(resource, {"page": page, "per_page": page_size})

    def fetch_all(self, resource: str, **scope: Any) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        for page in range(1, _MAX_FETCH_ALL_PAGES + 1):
            batch = self._get_list(resource, {"page": page, "per_page": _FETCH_ALL_PAGE_SIZE}, **scope)
            items.extend(batch)
            if len(batch) < _FETCH_ALL_PAGE_SIZE:
                break
        return items

    def close(self) -> None:
        self._session.close()

    def _url(self, resource: str, **scope: Any) -> str:
        try:
            template = _ENDPOINTS[resource]
        except KeyError as exc:
            raise DataError(f"Unknown remote resource: {resource}") from exc
        try:
            path = template.format(**scope)
        except KeyError as exc:
            raise DataError(f"Missing scope {exc} for remote resource {resource}") from exc
        return f"{self._config.base_url.rstrip('/')}{_API_PREFIX}{path}"

    def _get_list(self, resource: str, params: dict[str, Any], **scope: Any) -> list[dict[str, Any]]:
        if not self._config.is_complete:
            raise DataError("Remote catalog is not configured")
        url = self._url(resource, **scope)
        query = {
            **params,
            "consumer_key": self._config.consumer_key,
            "consumer_secret": self._config.consumer_secret,
        }
        started = time.perf_counter()
        try:
            response = self._session.get(url, params=query, timeout=self._config.timeout_seconds)
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            raise map_requests_exception(resource, exc) from exc

        duration_ms = int((time.perf_counter() - started) * 1000)
        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise DataError(f"Remote catalog returned a non-JSON body for {resource}") from exc
        if not isinstance(payload, list):
            raise DataError(f"Remote catalog returned {type(payload).__name__} instead of a list for {resource}")

        logger.debug(
            "Fetched %s page",
            resource,
            extra={
                "extra": {
                    "resource": resource,
                    "page": params.get("page"),
                    "items": len(payload),
                    "duration_ms": duration_ms,
                    "correlation_id": get_correlation_id(),
                }
            },
        )
        return payload
