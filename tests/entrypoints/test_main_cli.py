from __future__ import annotations

import faulthandler
import json
import sys

import pytest

from catalog_mirror.bootstrap.settings import DATA_DIR_ENV, LOG_DIR_ENV
from catalog_mirror.entrypoints.main import build_parser, main


@pytest.fixture(autouse=True)
def _isolated_runtime(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path / "logs"))
    monkeypatch.setenv(DATA_DIR_ENV, str(tmp_path / "data"))
    for name in ("BASE_URL", "CONSUMER_KEY", "CONSUMER_SECRET", "TIMEOUT_SECONDS"):
        monkeypatch.delenv(f"CATALOG_MIRROR_WC_{name}", raising=False)
    monkeypatch.setattr(faulthandler, "enable", lambda *args, **kwargs: None)
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)


def test_parser_maps_query_options() -> None:
    args = build_parser().parse_args(
        ["--db", "x.db", "list", "attribute_terms", "--attribute-id", "4", "--sort", "asc", "--search", "red"]
    )

    assert args.command == "list"
    assert args.resource == "attribute_terms"
    assert args.attribute_id == 4
    assert args.sort == "asc"
    assert args.search == "red"
    assert args.db == "x.db"


def test_parser_rejects_unknown_resource() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["sync", "invoices"])


def test_migrate_creates_schema(tmp_path) -> None:
    db_path = tmp_path / "mirror.db"

    assert main(["--db", str(db_path), "migrate", "up"]) == 0
    assert db_path.exists()
    assert main(["--db", str(db_path), "migrate", "status"]) == 0


def test_list_on_empty_mirror(tmp_path, capsys) -> None:
    exit_code = main(["--db", str(tmp_path / "mirror.db"), "list", "tags"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert payload["count"] == 0
    assert payload["rows"] == []
    assert payload["last_successful_sync"] is None


def test_list_attribute_terms_without_attribute_fails(tmp_path, capsys) -> None:
    exit_code = main(["--db", str(tmp_path / "mirror.db"), "list", "attribute_terms"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 1
    assert "attribute_id" in payload["error"]


def test_sync_without_remote_config_reports_failure(tmp_path, capsys) -> None:
    exit_code = main(["--db", str(tmp_path / "mirror.db"), "sync", "tags"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 1
    assert payload["success"] is False
    assert payload["degraded"] is False
    assert "not configured" in payload["error"]
    assert payload["metrics"]["sync.failures"] >= 1


def test_selfcheck_flags_missing_remote_config(tmp_path, capsys) -> None:
    exit_code = main(["--db", str(tmp_path / "mirror.db"), "selfcheck"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 1
    assert payload["local_db"]["ok"] is True
    assert payload["remote_config"]["ok"] is False
