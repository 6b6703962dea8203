# === MODULE PURPOSE ===
# Composition root: wires every store and coordinator onto one LedgerDatabase.

import logging

from src.portfolio.bond_store import BondPositionStore
from src.portfolio.cash_store import CashPositionStore
from src.portfolio.coupon_store import CouponStore
from src.portfolio.database import LedgerDatabase, create_ledger_database_from_config
from src.portfolio.gain_calculator import GainCalculator
from src.portfolio.pnl_ledger import PnLLedger
from src.portfolio.realization import RealizationCoordinator
from src.portfolio.realized_bond_store import RealizedBondStore
from src.portfolio.transfer import TransferCoordinator

logger = logging.getLogger(__name__)


class PortfolioLedger:
    """
    Facade over the cash and bond sub-ledgers.

    Usage:
        ledger = create_portfolio_ledger_from_config()
        await ledger.start()

        await ledger.transfers.move_asset(source_id, target_id, user_id)
        gains = await ledger.gains.list_with_potential_gain(user_id)

        await ledger.stop()
    """

    def __init__(self, db: LedgerDatabase):
        self.db = db

        # Cash
        self.cash = CashPositionStore(db)
        self.pnl = PnLLedger(db)
        self.transfers = TransferCoordinator(db)
        self.realizations = RealizationCoordinator(db)

        # Bonds
        self.bonds = BondPositionStore(db)
        self.coupons = CouponStore(db)
        self.realized_bonds = RealizedBondStore(db)
        self.gains = GainCalculator(db, coupons=self.coupons)

    async def __aenter__(self) -> "PortfolioLedger":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def start(self) -> None:
        await self.db.connect()
        logger.info("Portfolio ledger started")

    async def stop(self) -> None:
        await self.db.close()
        logger.info("Portfolio ledger stopped")


def create_portfolio_ledger_from_config(
    config_path: str = "config/ledger-config.yaml",
) -> PortfolioLedger:
    """Build a (not yet started) PortfolioLedger from the YAML config."""
    return PortfolioLedger(create_ledger_database_from_config(config_path))
