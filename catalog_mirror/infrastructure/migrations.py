from __future__ import annotations

import argparse
import hashlib
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from catalog_mirror.bootstrap.logging import configure_logging
from catalog_mirror.bootstrap.settings import project_root, resolve_log_dir
from catalog_mirror.core.errors import PersistenceError
from catalog_mirror.infrastructure.db import default_db_path, get_connection

logger = logging.getLogger(__name__)

_HISTORY_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    checksum TEXT NOT NULL,
    applied_at TEXT NOT NULL
)
"""


class MigrationDriftError(PersistenceError):
    """An applied migration script no longer matches the checksum recorded for it."""


@dataclass(frozen=True)
class MigrationDefinition:
    version: int
    name: str
    up_sql: Path
    down_sql: Path

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.up_sql.read_bytes()).hexdigest()


class MigrationRunner:
    """Applies the mirror schema from ``migrations/NNN_name.{up,down}.sql`` pairs.

    Each script runs together with its bookkeeping row in one transaction, so
    a failing migration leaves neither half-created tables nor a history entry.
    """

    def __init__(self, connection: sqlite3.Connection, migrations_dir: Path | None = None) -> None:
        self.connection = connection
        self.connection.row_factory = sqlite3.Row
        self.migrations_dir = migrations_dir or project_root() / "migrations"
        self.migrations = self._discover_migrations()

    def apply_all(self) -> list[int]:
        recorded = self._recorded_checksums()
        drifted = [migration for migration in self.migrations if self._drifted(migration, recorded)]
        if drifted:
            names = ", ".join(f"{migration.version:04d}_{migration.name}" for migration in drifted)
            raise MigrationDriftError(f"Applied migrations changed on disk: {names}")

        applied_now: list[int] = []
        for migration in self.migrations:
            if migration.version not in recorded:
                self._apply_migration(migration)
                applied_now.append(migration.version)
        return applied_now

    def rollback(self, steps: int = 1) -> list[int]:
        if steps < 1:
            raise ValueError("steps must be >= 1")
        self._ensure_history_table()
        rows = self.connection.execute(
            "SELECT version FROM schema_migrations ORDER BY version DESC LIMIT ?", (steps,)
        ).fetchall()
        version_map = {migration.version: migration for migration in self.migrations}
        rolled_back: list[int] = []
        for row in rows:
            migration = version_map.get(row["version"])
            if migration is None:
                raise PersistenceError(f"No down migration on disk for applied version {row['version']}")
            self._rollback_migration(migration)
            rolled_back.append(migration.version)
        return rolled_back

    def status(self) -> list[dict[str, object]]:
        recorded = self._recorded_checksums()
        return [
            {
                "version": migration.version,
                "name": migration.name,
                "applied": migration.version in recorded,
                "drifted": self._drifted(migration, recorded),
            }
            for migration in self.migrations
        ]

    def _ensure_history_table(self) -> None:
        self.connection.execute(_HISTORY_DDL)

    def _recorded_checksums(self) -> dict[int, str]:
        self._ensure_history_table()
        rows = self.connection.execute("SELECT version, checksum FROM schema_migrations").fetchall()
        return {row["version"]: row["checksum"] for row in rows}

    @staticmethod
    def _drifted(migration: MigrationDefinition, recorded: dict[int, str]) -> bool:
        checksum = recorded.get(migration.version)
        return checksum is not None and checksum != migration.checksum

    def _run_script(self, sql_path: Path, bookkeeping: Callable[[], None]) -> None:
        script = sql_path.read_text(encoding="utf-8")
        try:
            self.connection.executescript(f"BEGIN IMMEDIATE;\n{script}\n")
            bookkeeping()
            self.connection.commit()
        except Exception:
            if self.connection.in_transaction:
                self.connection.rollback()
            raise

    def _apply_migration(self, migration: MigrationDefinition) -> None:
        def _record() -> None:
            self.connection.execute(
                "INSERT INTO schema_migrations (version, name, checksum, applied_at) VALUES (?, ?, ?, ?)",
                (
                    migration.version,
                    migration.name,
                    migration.checksum,
                    datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                ),
            )
            self.connection.execute(f"PRAGMA user_version = {migration.version}")

        self._run_script(migration.up_sql, _record)
        logger.info(
            "Migration applied",
            extra={"extra": {"version": migration.version, "migration": migration.name}},
        )

    def _rollback_migration(self, migration: MigrationDefinition) -> None:
        def _forget() -> None:
            self.connection.execute("DELETE FROM schema_migrations WHERE version = ?", (migration.version,))
            previous = self.connection.execute(
                "SELECT COALESCE(MAX(version), 0) AS version FROM schema_migrations"
            ).fetchone()["version"]
            self.connection.execute(f"PRAGMA user_version = {previous}")

        self._run_script(migration.down_sql, _forget)
        logger.info(
            "Migration rolled back",
            extra={"extra": {"version": migration.version, "migration": migration.name}},
        )

    def _discover_migrations(self) -> list[MigrationDefinition]:
        definitions: list[MigrationDefinition] = []
        for up_file in sorted(self.migrations_dir.glob("*.up.sql")):
            stem = up_file.name[: -len(".up.sql")]
            version_text, name = stem.split("_", maxsplit=1)
            down_file = self.migrations_dir / f"{stem}.down.sql"
            if not down_file.exists():
                raise FileNotFoundError(f"Missing down migration for {up_file.name}: {down_file}")
            definitions.append(MigrationDefinition(int(version_text), name, up_file, down_file))
        return definitions


def build_cli() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage the catalog mirror SQLite schema")
    parser.add_argument("command", choices=["up", "down", "status"], help="Operation to run")
    parser.add_argument("--db", default=None, help="Path to the SQLite file")
    parser.add_argument("--steps", type=int, default=1, help="Number of migrations to roll back")
    return parser


def main(argv: list[str] | None = None) -> int:
    configure_logging(resolve_log_dir())
    args = build_cli().parse_args(argv)

    connection = get_connection(Path(args.db) if args.db else default_db_path())
    try:
        runner = MigrationRunner(connection)
        if args.command == "up":
            applied = runner.apply_all()
            logger.info("Migrations applied", extra={"extra": {"command": "up", "versions": applied}})
        elif args.command == "down":
            rolled_back = runner.rollback(args.steps)
            logger.info("Migrations rolled back", extra={"extra": {"command": "down", "versions": rolled_back}})
        else:
            for item in runner.status():
                logger.info("Migration status", extra={"extra": item})
    except MigrationDriftError as exc:
        logger.error("Refusing to migrate: %s", exc)
        return 1
    finally:
        connection.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
