from __future__ import annotations

import socket
import time
from typing import Callable
from urllib.parse import urlparse

from catalog_mirror.domain.ports import RemoteCatalogConfigStorePort, SqlConnectionPort

CheckResult = tuple[bool, str]


class SQLiteLocalDbCheck:
    def __init__(self, connection_factory: Callable[[], SqlConnectionPort], migrations_total: int) -> None:
        self._connection_factory = connection_factory
        self._migrations_total = migrations_total

    def check(self) -> dict[str, CheckResult]:
        connection = self._connection_factory()
        try:
            cursor = connection.cursor()
            cursor.execute("SELECT 1")
            db_ok = cursor.fetchone() is not None

            cursor.execute("SELECT COUNT(*) AS total FROM schema_migrations")
            migrations_applied = int(cursor.fetchone()["total"])
            migrations_ok = migrations_applied >= self._migrations_total
        except Exception as exc:  # noqa: BLE001
            return {
                "local_db": (False, f"Local database not accessible: {exc}"),
                "migrations": (False, "Could not read migration state."),
            }
        finally:
            connection.close()

        return {
            "local_db": (db_ok, "Local database accessible."),
            "migrations": (
                migrations_ok,
                "Migrations up to date." if migrations_ok else "There are pending migrations.",
            ),
        }


class RemoteHostCheck:
    def __init__(
        self,
        config_store: RemoteCatalogConfigStorePort,
        connector: Callable[..., socket.socket] = socket.create_connection,
    ) -> None:
        self._config_store = config_store
        self._connector = connector

    def check(self, *, timeout_seconds: float = 3.0) -> dict[str, CheckResult]:
        config = self._config_store.load()
        if config is None or not config.is_complete:
            return {
                "remote_config": (False, "Remote catalog is not configured."),
                "remote_host": (False, "Cannot check the remote host without configuration."),
            }

        parsed = urlparse(config.base_url)
        host = parsed.hostname
        if not host:
            return {
                "remote_config": (False, f"Invalid base_url: {config.base_url}"),
                "remote_host": (False, "Cannot check the remote host without a valid base_url."),
            }
        port = parsed.port or (443 if parsed.scheme == "https" else 80)

        started = time.perf_counter()
        try:
            self._connector((host, port), timeout=timeout_seconds).close()
        except OSError as exc:
            return {
                "remote_config": (True, "Remote catalog configured."),
                "remote_host": (False, f"{host}:{port} unreachable: {exc}"),
            }
        latency_ms = (time.perf_counter() - started) * 1000
        return {
            "remote_config": (True, "Remote catalog configured."),
            "remote_host": (True, f"{host}:{port} reachable ({latency_ms:.0f} ms)."),
        }
