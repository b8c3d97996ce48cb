from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Mapping

from catalog_mirror.bootstrap.settings import resolve_data_dir
from catalog_mirror.domain.models import RemoteCatalogConfig, SyncSettings

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"
_ENV_PREFIX = "CATALOG_MIRROR_WC_"
_REMOTE_ENV_KEYS = {
    "base_url": f"{_ENV_PREFIX}BASE_URL",
    "consumer_key": f"{_ENV_PREFIX}CONSUMER_KEY",
    "consumer_secret": f"{_ENV_PREFIX}CONSUMER_SECRET",
    "timeout_seconds": f"{_ENV_PREFIX}TIMEOUT_SECONDS",
}


class LocalConfigStore:
    """Reads ``config.json`` from the data dir; ``CATALOG_MIRROR_WC_*`` variables win over the file."""

    def __init__(self, base_dir: Path | None = None, environ: Mapping[str, str] | None = None) -> None:
        self._base_dir = base_dir or resolve_data_dir()
        self._config_path = self._base_dir / CONFIG_FILENAME
        self._environ = os.environ if environ is None else environ

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(self) -> RemoteCatalogConfig | None:
        remote = dict(self._read_payload().get("remote") or {})
        for field_name, env_name in _REMOTE_ENV_KEYS.items():
            env_value = self._environ.get(env_name)
            if env_value:
                remote[field_name] = env_value
        base_url = str(remote.get("base_url", "")).strip()
        consumer_key = str(remote.get("consumer_key", "")).strip()
        consumer_secret = str(remote.get("consumer_secret", "")).strip()
        if not base_url and not consumer_key and not consumer_secret:
            return None
        try:
            timeout_seconds = float(remote.get("timeout_seconds") or 20.0)
        except (TypeError, ValueError):
            logger.warning("Invalid timeout_seconds in remote config; using default")
            timeout_seconds = 20.0
        return RemoteCatalogConfig(
            base_url=base_url,
            consumer_key=consumer_key,
            consumer_secret=consumer_secret,
            timeout_seconds=timeout_seconds,
        )

    def load_sync_settings(self) -> SyncSettings:
        raw = self._read_payload().get("sync") or {}
        defaults = SyncSettings()
        values: dict[str, Any] = {}
        for item in fields(SyncSettings):
            if item.name not in raw:
                continue
            default_value = getattr(defaults, item.name)
            try:
                values[item.name] = type(default_value)(raw[item.name])
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid sync setting %s=%r", item.name, raw[item.name])
        return SyncSettings(**values)

    def save(self, config: RemoteCatalogConfig, settings: SyncSettings | None = None) -> None:
        payload = self._read_payload()
        payload["remote"] = asdict(config)
        if settings is not None:
            payload["sync"] = asdict(settings)
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    def _read_payload(self) -> dict[str, Any]:
        if not self._config_path.exists():
            return {}
        try:
            payload = json.loads(self._config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.exception("Could not read %s: %s", self._config_path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}
