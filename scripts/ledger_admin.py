#!/usr/bin/env python3
# === MODULE PURPOSE ===
# Operator entry point for the portfolio ledger.
# Creates the schema and prints read-only reports for one user.

# === USAGE ===
# uv run python scripts/ledger_admin.py init-schema
# uv run python scripts/ledger_admin.py pnl-summary --user-id 42
# uv run python scripts/ledger_admin.py bond-gains --user-id 42 --config config/ledger-config.yaml

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.common.config import Config, load_config
from src.portfolio.database import LedgerDatabase, ledger_config_from_dict
from src.portfolio.ledger import PortfolioLedger

logger = logging.getLogger(__name__)


def setup_logging(config: Config) -> None:
    """Configure logging based on config."""
    level = config.get_str("logging.level", "INFO")
    format_str = config.get_str(
        "logging.format",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    log_file = config.get_str("logging.file")
    if log_file:
        log_path = project_root / log_file
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logging.basicConfig(
            level=getattr(logging, level.upper()),
            format=format_str,
            handlers=[
                logging.StreamHandler(),
                logging.FileHandler(log_path, encoding="utf-8"),
            ],
        )
    else:
        logging.basicConfig(
            level=getattr(logging, level.upper()),
            format=format_str,
        )


async def init_schema(ledger: PortfolioLedger) -> None:
    await ledger.db.init_schema()
    print(f"Schema '{ledger.db.schema}' is ready")


async def pnl_summary(ledger: PortfolioLedger, user_id: int) -> None:
    summary = await ledger.pnl.get_summary(user_id)
    print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))


async def bond_gains(ledger: PortfolioLedger, user_id: int) -> None:
    gains = await ledger.gains.list_with_potential_gain(user_id)
    summary = ledger.gains.summarize(gains)

    for item in gains:
        bond = item.bond
        print(
            f"{bond.id:>6}  {bond.bond_id:<16} qty={bond.quantity:<5} "
            f"price={bond.effective_market_price or 0:>12.2f} ({item.market_price_type.value})  "
            f"coupons={item.total_coupons_received:>12.2f}  gain={item.potential_gain:>12.2f}"
        )
    print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))


async def main(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    setup_logging(config)

    db_config = config.get_dict("database.ledger", {})
    if not db_config:
        logger.error(f"No database.ledger section in {args.config}")
        return 1

    ledger = PortfolioLedger(LedgerDatabase(ledger_config_from_dict(db_config)))

    try:
        async with ledger:
            if args.command == "init-schema":
                await init_schema(ledger)
            elif args.command == "pnl-summary":
                await pnl_summary(ledger, args.user_id)
            elif args.command == "bond-gains":
                await bond_gains(ledger, args.user_id)
    except Exception as e:
        logger.error(f"{args.command} failed: {e}", exc_info=True)
        return 1

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Portfolio ledger administration")
    parser.add_argument(
        "--config",
        "-c",
        default="config/ledger-config.yaml",
        help="Path to ledger configuration file",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-schema", help="Create the ledger schema and tables")

    pnl_parser = subparsers.add_parser("pnl-summary", help="Print a user's realized PnL summary")
    pnl_parser.add_argument("--user-id", type=int, required=True)

    gains_parser = subparsers.add_parser("bond-gains", help="Print a user's bond valuations")
    gains_parser.add_argument("--user-id", type=int, required=True)

    return parser


if __name__ == "__main__":
    sys.exit(asyncio.run(main(build_parser().parse_args())))
