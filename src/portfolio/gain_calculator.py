# === MODULE PURPOSE ===
# Values a user's bond positions: received coupon income plus the gain
# that liquidating at the current market price would produce.

# === KEY CONCEPTS ===
# - potential_gain = market_price * quantity + coupons_received - purchase_price
# - market_price is the user override when set, otherwise the tracked price
# - A bond without any price counts as 0; quantity 0 counts as 1
# - Two queries per call (bond listing + coupon GROUP BY), never one per bond

import logging

from src.portfolio.bond_store import BOND_COLUMNS
from src.portfolio.coupon_store import CouponStore
from src.portfolio.database import LedgerDatabase
from src.portfolio.models import (
    BondPosition,
    BondWithPotentialGain,
    MarketPriceType,
    PortfolioGainSummary,
)

logger = logging.getLogger(__name__)


def compute_potential_gain(bond: BondPosition, total_coupons: float) -> float:
    """
    Gain from selling a bond now, counting the coupons already received.

    Args:
        bond: Bond position with market_price / market_price_override loaded.
        total_coupons: Sum of RECEIVED coupons for the bond.

    Returns:
        Potential gain (negative for a loss).
    """
    market_price = bond.effective_market_price or 0.0
    quantity = bond.quantity or 1
    return market_price * quantity + total_coupons - bond.purchase_price


class GainCalculator:
    """
    Computes potential gains for all of a user's bonds.

    Usage:
        calculator = GainCalculator(db)
        gains = await calculator.list_with_potential_gain(user_id)
        summary = calculator.summarize(gains)
    """

    def __init__(self, db: LedgerDatabase, coupons: CouponStore | None = None):
        self._db = db
        self._coupons = coupons or CouponStore(db)

    async def list_with_potential_gain(self, user_id: int) -> list[BondWithPotentialGain]:
        """
        Bond listing enriched with coupon totals and potential gain.

        Only bonds with a live tracker entry are listed, same as
        BondPositionStore.find_by_owner().
        """
        async with self._db.acquire(readonly=True) as conn:
            rows = await conn.fetch(
                f"""
                SELECT {BOND_COLUMNS}, t.market_price
                FROM {self._db.schema}.bond_positions b
                JOIN {self._db.schema}.bond_tracker t
                    ON t.bond_id = b.bond_id AND t.deleted_at IS NULL
                WHERE b.user_id = $1 AND b.deleted_at IS NULL
                ORDER BY b.created_at DESC
                """,
                user_id,
            )

        bonds = [BondPosition.from_record(row) for row in rows]
        if not bonds:
            return []

        totals = await self._coupons.get_received_totals(user_id, readonly=True)

        results = []
        for bond in bonds:
            total_coupons = totals.get(bond.id, 0.0)
            results.append(
                BondWithPotentialGain(
                    bond=bond,
                    total_coupons_received=total_coupons,
                    potential_gain=compute_potential_gain(bond, total_coupons),
                    market_price_type=bond.market_price_type,
                )
            )

        logger.debug(f"Valued {len(results)} bond positions for user {user_id}")
        return results

    def compute_potential_gain(self, bond: BondPosition, total_coupons: float) -> float:
        return compute_potential_gain(bond, total_coupons)

    def summarize(self, gains: list[BondWithPotentialGain]) -> PortfolioGainSummary:
        """Portfolio-level totals over a list of valuations."""
        summary = PortfolioGainSummary()
        for item in gains:
            bond = item.bond
            summary.bond_count += 1
            summary.total_purchase_price += bond.purchase_price
            summary.total_market_value += (bond.effective_market_price or 0.0) * (
                bond.quantity or 1
            )
            summary.total_coupons_received += item.total_coupons_received
            summary.total_potential_gain += item.potential_gain
            if item.market_price_type == MarketPriceType.USER_OVERRIDE:
                summary.override_count += 1
            summary.bond_ids.append(bond.id)
        return summary
