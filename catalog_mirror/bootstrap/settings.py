from __future__ import annotations

import os
import tempfile
from pathlib import Path

LOG_DIR_ENV = "CATALOG_MIRROR_LOG_DIR"
DATA_DIR_ENV = "CATALOG_MIRROR_DATA_DIR"


def project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _first_writable(candidates: list[Path]) -> Path | None:
    for candidate in candidates:
        try:
            candidate.mkdir(parents=True, exist_ok=True)
            test_file = candidate / "_write_test.tmp"
            test_file.write_text("ok", encoding="utf-8")
            test_file.unlink(missing_ok=True)
            return candidate
        except OSError:
            continue
    return None


def resolve_log_dir() -> Path:
    candidates: list[Path] = []
    env_dir = os.environ.get(LOG_DIR_ENV)
    if env_dir:
        candidates.append(Path(env_dir))
    candidates.append(project_root() / "logs")
    candidates.append(Path(tempfile.gettempdir()) / "CatalogMirror" / "logs")

    resolved = _first_writable(candidates)
    if resolved is not None:
        return resolved
    fallback = project_root()
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


def resolve_data_dir() -> Path:
    candidates: list[Path] = []
    env_dir = os.environ.get(DATA_DIR_ENV)
    if env_dir:
        candidates.append(Path(env_dir))
    local_appdata = os.environ.get("LOCALAPPDATA")
    base_dir = Path(local_appdata) if local_appdata else Path.home() / ".local" / "share"
    candidates.append(base_dir / "CatalogMirror")
    candidates.append(Path(tempfile.gettempdir()) / "CatalogMirror" / "data")

    resolved = _first_writable(candidates)
    if resolved is not None:
        return resolved
    raise OSError("No writable data directory for the catalog mirror")
