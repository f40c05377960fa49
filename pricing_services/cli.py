"""
Command-line front end for the material pricing engine.

Every command goes through MaterialPricingAPI and prints its JSON envelope.
Exit status is 0 on success, 1 when the API reports an error.

Usage:
    python -m pricing_services.cli timeline --date 2024-06-15
    python -m pricing_services.cli calculate --formula 3_month_rolling 2800 2850 2900
    python -m pricing_services.cli import-indices indices.csv --actor-id <uuid>
    python -m pricing_services.cli create --name "Q3 Aluminum" --material aluminum \\
        --data-months 2024-03 2024-04 2024-05 --communication-month 2024-06 \\
        --effective-month 2024-07 --new-price 2850 --actor-id <uuid>
    python -m pricing_services.cli apply <adjustment-id> --actor-id <uuid>
    python -m pricing_services.cli cancel <adjustment-id> --reason "superseded" --actor-id <uuid>
    python -m pricing_services.cli list --status draft
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any
from uuid import UUID

from pricing_config import get_settings
from pricing_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from pricing_kernel.db.immutability import register_immutability_listeners
from pricing_kernel.logging_config import configure_logging
from pricing_services.pricing_api import MaterialPricingAPI


def _add_actor(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--actor-id",
        type=UUID,
        required=True,
        help="UUID of the user performing the change",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pricing-cli",
        description="FTZ material pricing adjustments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Settings YAML (default: bundled default.yaml)")
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create missing tables before running the command",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("timeline", help="Show the pricing timeline for a date")
    p.add_argument("--date", dest="reference_date", help="Reference date YYYY-MM-DD (default today)")

    p = sub.add_parser("calculate", help="Run a formula over three prices")
    p.add_argument("--formula", default=None)
    p.add_argument("prices", nargs="+")

    p = sub.add_parser("average", help="Run a formula over recorded index months")
    p.add_argument("--material", required=True)
    p.add_argument("--formula", default=None)
    p.add_argument("--index-source", default=None)
    p.add_argument("months", nargs="+")

    p = sub.add_parser("import-indices", help="Import a material index CSV file")
    p.add_argument("path")
    p.add_argument("--delimiter", default=",")
    p.add_argument("--skip-rows", type=int, default=0)
    _add_actor(p)

    p = sub.add_parser("create", help="Create a draft pricing adjustment")
    p.add_argument("--name", required=True)
    p.add_argument("--material", required=True)
    p.add_argument("--data-months", nargs=3, required=True, metavar="YYYY-MM")
    p.add_argument("--communication-month", required=True)
    p.add_argument("--effective-month", required=True)
    p.add_argument("--new-price", required=True, help="New average price, USD/MT")
    p.add_argument("--old-price", default=None, help="Old average price, USD/MT")
    p.add_argument("--formula", default=None)
    p.add_argument("--index-source", default=None)
    _add_actor(p)

    p = sub.add_parser("preview", help="Preview the impact of a draft adjustment")
    p.add_argument("adjustment_id")

    p = sub.add_parser("apply", help="Apply a draft adjustment to the parts catalog")
    p.add_argument("adjustment_id")
    _add_actor(p)

    p = sub.add_parser("cancel", help="Cancel a draft adjustment")
    p.add_argument("adjustment_id")
    p.add_argument("--reason", default=None)
    _add_actor(p)

    p = sub.add_parser("list", help="List pricing adjustments")
    p.add_argument("--status", choices=["draft", "applied", "cancelled"], default=None)
    p.add_argument("--material", default=None)

    p = sub.add_parser("report", help="Quarterly adjustment report")
    p.add_argument("quarter", choices=["Q1", "Q2", "Q3", "Q4"])
    p.add_argument("year", type=int)

    return parser


def _dispatch(api: MaterialPricingAPI, args: argparse.Namespace, default_formula: str) -> dict[str, Any]:
    command = args.command
    if command == "timeline":
        return api.get_timeline(args.reference_date)
    if command == "calculate":
        return api.calculate_price(args.formula or default_formula, args.prices)
    if command == "average":
        return api.calculate_average(args.material, args.months, args.formula, args.index_source)
    if command == "import-indices":
        return api.import_index_csv(
            args.path,
            args.actor_id,
            {"delimiter": args.delimiter, "skip_rows": args.skip_rows},
        )
    if command == "create":
        payload = {
            "name": args.name,
            "material": args.material,
            "data_months": args.data_months,
            "communication_month": args.communication_month,
            "effective_month": args.effective_month,
            "new_average_price": args.new_price,
            "old_average_price": args.old_price,
            "formula": args.formula or default_formula,
            "index_source": args.index_source,
        }
        return api.create_adjustment(payload, args.actor_id)
    if command == "preview":
        return api.preview_adjustment(args.adjustment_id)
    if command == "apply":
        return api.apply_adjustment(args.adjustment_id, args.actor_id)
    if command == "cancel":
        return api.cancel_adjustment(args.adjustment_id, args.actor_id, args.reason)
    if command == "list":
        return api.list_adjustments(status=args.status, material=args.material)
    if command == "report":
        return api.quarterly_report(args.quarter, args.year)
    raise ValueError(f"Unknown command: {command}")


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    settings = get_settings(args.config)
    configure_logging(level=settings.log_level)
    init_engine_from_url(
        settings.database_url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        lock_timeout_ms=settings.lock_timeout_ms,
    )
    register_immutability_listeners()
    if args.init_db:
        create_tables()

    api = MaterialPricingAPI(get_session_factory(), settings)
    response = _dispatch(api, args, settings.default_formula)
    print(json.dumps(response, indent=2, default=str))
    return 0 if response.get("success") else 1


if __name__ == "__main__":
    sys.exit(main())
