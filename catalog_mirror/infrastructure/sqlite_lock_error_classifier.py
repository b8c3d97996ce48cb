from __future__ import annotations

import sqlite3

from catalog_mirror.application.ports.db_lock_error_classifier import DbLockErrorClassifier

_LOCK_MARKERS = ("locked", "busy", "lock timeout")


class SQLiteLockErrorClassifier(DbLockErrorClassifier):
    def is_locked_error(self, error: BaseException) -> bool:
        if not isinstance(error, sqlite3.OperationalError):
            return False
        text = str(error).lower()
        return any(marker in text for marker in _LOCK_MARKERS)
