"""
main.py - CLI entry point for the treatment amounts service.

Subcommands:
    serve     run the HTTP API under uvicorn
    amounts   look up one customer and print their treatment totals
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional

import uvicorn

from amounts import aggregate_amounts
from api import create_app
from customer_store import InMemoryCustomerStore, StorageError, build_customer_store
from logging_config import get_logger, setup_logging
from lookup import lookup_customer
from models import AmountsResult, FailEnvelope, NotFoundDetail, SuccessEnvelope
from seed import load_seed_csv
from settings import Settings, load_settings

logger = get_logger("amounts-cli")


def _configure_output_symbols() -> str:
    """Configure stdout encoding and return a safe box-drawing character."""
    try:
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    except Exception:
        pass

    try:
        "═".encode(sys.stdout.encoding or "utf-8")
        return "═"
    except Exception:
        return "="


BOX_CHAR = _configure_output_symbols()


def _seeded_store(args: argparse.Namespace):
    """In-memory store from --seed or --seed-csv, or None to use the configured one."""
    if args.seed:
        return InMemoryCustomerStore.from_seed_file(args.seed)
    if args.seed_csv:
        return load_seed_csv(*args.seed_csv)
    return None


def format_amounts_table(customer_id: str, amounts: AmountsResult) -> str:
    """Render totals as a small fixed-width table."""
    totals = amounts.as_dict()
    width = 40
    lines = [
        BOX_CHAR * width,
        f"  Treatment totals for customer {customer_id}",
        BOX_CHAR * width,
    ]
    for status, total in totals.items():
        lines.append(f"  {status:<12}{total:>24,}")
    lines.append(BOX_CHAR * width)
    return "\n".join(lines)


def run_amounts(store, customer_id: str, as_json: bool = False) -> int:
    """Print totals for one customer. Returns the process exit code."""
    try:
        customer = lookup_customer(store, customer_id)
    except StorageError as exc:
        logger.error("cli_error | stage=lookup | id=%s | error=%s", customer_id, exc)
        if as_json:
            print(json.dumps(FailEnvelope(data=f"Error fetching customer: {exc}").model_dump()))
        else:
            print(f"\nError fetching customer: {exc}")
        return 1

    if customer is None:
        title = f'Customer "{customer_id}" not found'
        if as_json:
            envelope = FailEnvelope(data=NotFoundDetail(title=title))
            print(json.dumps(envelope.model_dump(mode="json")))
        else:
            print(f"\n{title}")
        return 1

    try:
        amounts = aggregate_amounts(store, customer)
    except StorageError as exc:
        logger.error("cli_error | stage=amounts | id=%s | error=%s", customer_id, exc)
        if as_json:
            print(json.dumps(FailEnvelope(data=f"Unable to fetch amounts: {exc}").model_dump()))
        else:
            print(f"\nUnable to fetch amounts: {exc}")
        return 1

    if as_json:
        print(json.dumps(SuccessEnvelope(data=amounts).model_dump(mode="json"), indent=2))
    else:
        print(format_amounts_table(customer_id, amounts))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="treatment-amounts",
        description=(
            "Treatment Amounts Service\n"
            "Totals a customer's treatment costs by status "
            "(proposed / approved / rejected)."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s serve --port 8080\n"
            "  %(prog)s --seed test_data/seed.json serve\n"
            "  %(prog)s --seed test_data/seed.json amounts --id abc --json\n"
        ),
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (DEBUG-level) logging",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs as JSON lines (for production/log aggregation)",
    )
    parser.add_argument(
        "--seed",
        type=str,
        help="Use an in-memory store seeded from this JSON file instead of Firestore",
    )
    parser.add_argument(
        "--seed-csv",
        nargs=2,
        metavar=("CUSTOMERS_CSV", "TREATMENTS_CSV"),
        help="Use an in-memory store seeded from two CSV exports instead of Firestore",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", type=str, default="0.0.0.0", help="Bind address")
    serve.add_argument("--port", "-p", type=int, help="Listening port (default: $PORT or 8080)")

    amounts = commands.add_parser("amounts", help="Print treatment totals for one customer")
    amounts.add_argument("--id", dest="customer_id", type=str, required=True, help="Customer id")
    amounts.add_argument(
        "--json",
        action="store_true",
        help="Print the API's JSON envelope instead of a table",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings()
    except ValueError as exc:
        parser.error(str(exc))

    setup_logging(
        level=logging.DEBUG if args.verbose else settings.log_level,
        json_format=args.log_json or settings.log_json,
    )

    try:
        if args.command == "serve":
            port = args.port or settings.port
            store = _seeded_store(args)
            logger.info("cli_mode | mode=serve | host=%s | port=%s", args.host, port)
            uvicorn.run(create_app(store=store, settings=settings), host=args.host, port=port)
            return

        logger.info("cli_mode | mode=amounts | id=%s", args.customer_id)
        store = _seeded_store(args) or build_customer_store(settings)
        try:
            code = run_amounts(store, args.customer_id, as_json=args.json)
        finally:
            store.close()
        if code:
            raise SystemExit(code)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("cli_error | type=%s | error=%s", type(exc).__name__, exc)
        print(f"\nError: {exc}")
        raise SystemExit(1) from exc
    except StorageError as exc:
        logger.error("cli_error | type=StorageError | error=%s", exc)
        print(f"\nError: {exc}")
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        print("\nInterrupted.")
        raise SystemExit(130)


if __name__ == "__main__":
    main()
