"""Operator commands for the rate limit engine.

Usage:
  route-limits cleanup   # sweep expired counters (e.g. from cron)
  route-limits schema    # print CREATE TABLE DDL for the db driver

Commands run in the ``cli`` execution context, so no policy is ever
evaluated from here.
"""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from sqlalchemy.dialects import sqlite
from sqlalchemy.engine import make_url
from sqlalchemy.schema import CreateIndex, CreateTable

from route_limits.adapters.counter_store.table_store import build_counter_table
from route_limits.core.config import Settings, settings
from route_limits.core.context import build_execution_context
from route_limits.core.errors import AppError
from route_limits.core.logging import configure_logging
from route_limits.core.rate_limit import build_rate_limit_controller


def cmd_cleanup(cfg: Settings) -> int:
    context = build_execution_context(cfg).as_cli()
    controller = build_rate_limit_controller(cfg, context=context)
    if controller is None:
        print("Rate limiting is disabled (RATE_LIMIT_DRIVER unset); nothing to clean")
        return 0

    removed = controller.cleanup()
    print(f"Removed {removed} expired counter(s)")
    return 0


def cmd_schema(cfg: Settings) -> int:
    rate = cfg.rate_limits
    if rate.driver != "db":
        print("Schema output requires RATE_LIMIT_DRIVER=db", file=sys.stderr)
        return 1

    dialect = make_url(rate.db_url).get_dialect()() if rate.db_url else sqlite.dialect()
    table = build_counter_table(rate.table_name)

    statements = [CreateTable(table)] + [CreateIndex(index) for index in table.indexes]
    for statement in statements:
        print(f"{str(statement.compile(dialect=dialect)).strip()};")
    return 0


COMMANDS = {
    "cleanup": cmd_cleanup,
    "schema": cmd_schema,
}


def main(argv: Sequence[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="route-limits", description=__doc__.splitlines()[0])
    ap.add_argument("command", choices=sorted(COMMANDS))
    args = ap.parse_args(argv)

    configure_logging(settings.log)
    try:
        return COMMANDS[args.command](settings)
    except AppError as exc:
        print(f"{exc.code}: {exc.message}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
