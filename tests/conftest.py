from __future__ import annotations

import sqlite3
import sys
from pathlib import Path
from typing import Callable, Iterator

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from catalog_mirror.application.retry_policy import RetryPolicy  # noqa: E402
from catalog_mirror.infrastructure.db import get_connection  # noqa: E402
from catalog_mirror.infrastructure.migrations import MigrationRunner  # noqa: E402
from catalog_mirror.infrastructure.sqlite_lock_error_classifier import SQLiteLockErrorClassifier  # noqa: E402
from catalog_mirror.infrastructure.sqlite_uow import TransactionalStore  # noqa: E402


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "mirror.db"


@pytest.fixture
def connection_factory(db_path: Path) -> Callable[[], sqlite3.Connection]:
    bootstrap = get_connection(db_path, busy_timeout_ms=200)
    try:
        MigrationRunner(bootstrap).apply_all()
    finally:
        bootstrap.close()
    return lambda: get_connection(db_path, busy_timeout_ms=200)


@pytest.fixture
def sleep_calls() -> list[float]:
    return []


@pytest.fixture
def store(connection_factory, sleep_calls: list[float]) -> Iterator[TransactionalStore]:
    policy = RetryPolicy(SQLiteLockErrorClassifier(), jitter_source=lambda low, high: 0.0)
    store = TransactionalStore(connection_factory, policy, sleeper=sleep_calls.append)
    yield store
    store.close()
