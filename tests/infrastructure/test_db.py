from __future__ import annotations

import sqlite3
from pathlib import Path

from catalog_mirror.infrastructure import db


def test_get_connection_applies_runtime_pragmas(tmp_path: Path) -> None:
    connection = db.get_connection(tmp_path / "nested" / "mirror.db", busy_timeout_ms=1234)
    try:
        journal_mode = connection.execute("PRAGMA journal_mode").fetchone()[0]
        synchronous = connection.execute("PRAGMA synchronous").fetchone()[0]
        busy_timeout = connection.execute("PRAGMA busy_timeout").fetchone()[0]
    finally:
        connection.close()

    assert journal_mode.lower() == "wal"
    assert synchronous == 1
    assert busy_timeout == 1234
    assert (tmp_path / "nested" / "mirror.db").exists()


def test_connection_is_autocommit_with_row_factory(tmp_path: Path) -> None:
    connection = db.get_connection(tmp_path / "mirror.db")
    try:
        assert connection.isolation_level is None
        assert connection.row_factory is sqlite3.Row
    finally:
        connection.close()


def test_default_db_path_uses_data_dir(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("CATALOG_MIRROR_DATA_DIR", str(tmp_path / "data"))

    assert db.default_db_path() == tmp_path / "data" / db.DB_FILENAME
