from __future__ import annotations

import argparse
import json
import os
import sqlite3
import sys
from typing import Optional, Sequence

from ..config import YnabConfig, load_db_path, load_ynab
from ..domain.models import Order
from ..logging import get_logger
from ..paths import expand_abs
from ..store import OrderStore, RecordNotFound, StoreError

LOG = get_logger("cli-main")


def _db_path(ns: argparse.Namespace) -> str:
    if ns.dbfile:
        return expand_abs(ns.dbfile)
    return load_db_path(os.getcwd())


def _ynab_config(ns: argparse.Namespace) -> Optional[YnabConfig]:
    cfg = load_ynab(os.getcwd())
    token = ns.ynab_token or (cfg.token if cfg else None)
    if not token:
        return None
    server = ns.ynab_server or (cfg.server if cfg else None)
    return YnabConfig(token=token, server=server) if server else YnabConfig(token=token)


def _init(ns: argparse.Namespace) -> int:
    with OrderStore(_db_path(ns)) as store:
        print(store.db_path)
    return 0


def _save(ns: argparse.Namespace) -> int:
    path = expand_abs(ns.file)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            order = Order.from_dict(json.load(fh))
    except (OSError, ValueError) as exc:
        LOG.error(f"Could not read order from {path}: {exc}")
        return 2
    try:
        with OrderStore(_db_path(ns)) as store:
            created = store.save(order)
    except StoreError as exc:
        LOG.error(f"Error saving order {order.id}: {exc}")
        return 1
    print("created" if created else "updated")
    return 0


def _load(ns: argparse.Namespace) -> int:
    try:
        with OrderStore(_db_path(ns)) as store:
            order = store.load(ns.order_id)
    except RecordNotFound:
        LOG.error(f"No order with id {ns.order_id!r}")
        return 1
    except (StoreError, sqlite3.Error) as exc:
        LOG.error(f"Error loading order {ns.order_id}: {exc}")
        return 1
    print(json.dumps(order.to_dict(), ensure_ascii=False))
    return 0


def _search(ns: argparse.Namespace) -> int:
    try:
        with OrderStore(_db_path(ns)) as store:
            orders = store.search(ns.query)
    except (StoreError, sqlite3.Error) as exc:
        LOG.error(f"Error searching for {ns.query!r}: {exc}")
        return 1
    print(json.dumps([o.to_dict() for o in orders], ensure_ascii=False, indent=2))
    return 0


def _serve(ns: argparse.Namespace) -> int:
    from ..api import create_app
    from ..ynab import YnabClient
    import uvicorn

    cfg = _ynab_config(ns)
    ynab = YnabClient(cfg.server, cfg.token) if cfg else None

    app = create_app(
        root_dir=os.getcwd(),
        db_path=_db_path(ns),
        ynab=ynab,
        allow_origins=ns.allow_origins,
    )
    LOG.info(f"Server is listening on {ns.host}:{ns.port}...")
    uvicorn.run(app, host=ns.host, port=ns.port, log_level=ns.log_level)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.debug(f"CLI invoked with arguments: {provided}")

    parser = argparse.ArgumentParser(
        prog="amazon-exporter",
        description="Store, search, and reconcile Amazon order receipts.",
    )
    parser.add_argument("--dbfile", help="SQLite database file (defaults to env/.env or var/amazon_exporter)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_cmd = subparsers.add_parser("init", help="Create/ensure the order DB schema exists")
    init_cmd.set_defaults(handler=_init)

    save_cmd = subparsers.add_parser("save", help="Insert or replace an order from a JSON file")
    save_cmd.add_argument("--file", required=True, help="Path to an order JSON document")
    save_cmd.set_defaults(handler=_save)

    load_cmd = subparsers.add_parser("load", help="Print one order as JSON")
    load_cmd.add_argument("order_id")
    load_cmd.set_defaults(handler=_load)

    search_cmd = subparsers.add_parser(
        "search",
        help="Search orders by price/amount (numeric query) or card/item/date text",
    )
    search_cmd.add_argument("query")
    search_cmd.set_defaults(handler=_search)

    serve_cmd = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_cmd.add_argument("--host", default="127.0.0.1")
    serve_cmd.add_argument("--port", type=int, default=8080)
    serve_cmd.add_argument("--log-level", default="info")
    serve_cmd.add_argument("--ynab-token", help="YNAB personal access token (overrides env/.env)")
    serve_cmd.add_argument("--ynab-server", help="YNAB API base URL (overrides env/.env)")
    serve_cmd.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origins",
        help="Allowed CORS origin (can be provided multiple times, default '*').",
    )
    serve_cmd.set_defaults(handler=_serve)

    args = parser.parse_args(provided)
    code = args.handler(args)
    LOG.debug(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
