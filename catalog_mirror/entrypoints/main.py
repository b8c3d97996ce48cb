from __future__ import annotations

import argparse
import faulthandler
import json
import logging
import sys
from pathlib import Path
from typing import Any

from catalog_mirror.application.resources import RESOURCE_KEYS
from catalog_mirror.bootstrap.container import CatalogContainer, build_container
from catalog_mirror.bootstrap.logging import configure_logging, install_exception_hook, log_operational_error
from catalog_mirror.bootstrap.settings import resolve_log_dir
from catalog_mirror.core.errors import AppError
from catalog_mirror.core.metrics import metrics_registry
from catalog_mirror.domain.sync_models import QueryParams
from catalog_mirror.infrastructure import migrations

logger = logging.getLogger(__name__)


def _add_query_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("resource", choices=RESOURCE_KEYS, help="Catalog collection")
    parser.add_argument("--page", type=int, default=1)
    parser.add_argument("--limit", type=int, default=10)
    parser.add_argument("--search", default=None)
    parser.add_argument("--search-key", default=None)
    parser.add_argument("--sort", choices=["asc", "desc"], default="desc")
    parser.add_argument("--sort-key", default="id")
    parser.add_argument("--attribute-id", type=int, default=None, help="Owning attribute for attribute_terms")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="catalog_mirror", description="Local mirror of a WooCommerce catalog")
    parser.add_argument("--db", default=None, help="Path to the SQLite mirror")
    commands = parser.add_subparsers(dest="command", required=True)

    sync_parser = commands.add_parser("sync", help="Reconcile one collection against the remote catalog")
    _add_query_arguments(sync_parser)

    list_parser = commands.add_parser("list", help="Read one page of the local mirror")
    _add_query_arguments(list_parser)

    migrate_parser = commands.add_parser("migrate", help="Manage the schema (up/down/status)")
    migrate_parser.add_argument("action", nargs="?", choices=["up", "down", "status"], default="up")
    migrate_parser.add_argument("--steps", type=int, default=1)

    commands.add_parser("selfcheck", help="Check the local database and the remote host")
    return parser


def _query_params(args: argparse.Namespace) -> QueryParams:
    fields: dict[str, Any] = {}
    if args.attribute_id is not None:
        fields["attribute_id"] = args.attribute_id
    return QueryParams(
        page=args.page,
        limit=args.limit,
        search=args.search,
        search_key=args.search_key,
        sort=args.sort,
        sort_key=args.sort_key,
        fields=fields,
    )


def _print_json(payload: dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, indent=2, default=str) + "\n")


def _run_sync(container: CatalogContainer, args: argparse.Namespace) -> int:
    result = container.synchronizer.synchronize(args.resource, _query_params(args))
    payload = result.to_dict()
    payload["metrics"] = metrics_registry.snapshot()["counters"]
    _print_json(payload)
    return 0 if result.success else 1


def _run_list(container: CatalogContainer, args: argparse.Namespace) -> int:
    try:
        page = container.records.list_page(args.resource, _query_params(args))
    except AppError as exc:
        log_operational_error(logger, "Could not read local mirror", exc=exc, extra={"resource": args.resource})
        _print_json({"resource": args.resource, "error": str(exc)})
        return 1
    _print_json(
        {
            "resource": args.resource,
            "count": page.count,
            "rows": [record.as_row() for record in page.rows],
            "last_successful_sync": container.synchronizer.last_successful_sync(args.resource),
        }
    )
    return 0


def _run_selfcheck(container: CatalogContainer) -> int:
    checks = {**container.local_db_check.check(), **container.remote_check.check()}
    failures = 0
    for name, (ok, message) in checks.items():
        if ok:
            logger.info("Selfcheck %s OK: %s", name, message)
        else:
            logger.error("Selfcheck %s failed: %s", name, message)
            failures += 1
    _print_json({name: {"ok": ok, "message": message} for name, (ok, message) in checks.items()})
    return 1 if failures else 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    log_dir = resolve_log_dir()
    configure_logging(log_dir)
    install_exception_hook(log_dir)
    faulthandler.enable()
    logger.info("Log dir: %s", log_dir)
    logger.info("Python: %s", sys.version)

    if args.command == "migrate":
        migrate_argv = [args.action, "--steps", str(args.steps)]
        if args.db:
            migrate_argv += ["--db", args.db]
        return migrations.main(migrate_argv)

    container = build_container(Path(args.db) if args.db else None)
    try:
        if args.command == "sync":
            return _run_sync(container, args)
        if args.command == "list":
            return _run_list(container, args)
        return _run_selfcheck(container)
    finally:
        container.close()
