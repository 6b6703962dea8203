# === MODULE PURPOSE ===
# Atomic close-and-book of a cash position.
# Sets the final balance, moves the position to MATURITY and books its PnL
# in one transaction.

import logging
from datetime import datetime

import asyncpg

from src.portfolio.cash_store import CASH_COLUMNS, validate_amount
from src.portfolio.database import LedgerDatabase
from src.portfolio.errors import NotFoundError
from src.portfolio.models import CashPosition, CashStatus, RealizedPnL, RealizeResult
from src.portfolio.pnl_ledger import PNL_COLUMNS

logger = logging.getLogger(__name__)


class RealizationCoordinator:
    """Realizes cash positions: both writes commit together or neither does."""

    def __init__(self, db: LedgerDatabase):
        self._db = db

    async def realize(
        self,
        user_id: int,
        position_id: int,
        final_balance: float,
        pnl_amount: float,
        realized_at: datetime,
        timeout: float | None = None,
    ) -> RealizeResult:
        """
        Close a cash position and book its profit or loss.

        Args:
            user_id: Owner of the position.
            position_id: Cash position to realize.
            final_balance: Balance after realization (>= 0).
            pnl_amount: Signed profit/loss to book.
            realized_at: When the PnL was realized.
            timeout: Transaction deadline in seconds (config default if None).

        Raises:
            InvalidArgumentError: Negative final balance.
            NotFoundError: Position absent, not owned, or soft-deleted.
        """
        validate_amount(final_balance, "final_balance")

        async def apply(conn: asyncpg.Connection) -> RealizeResult:
            position_row = await conn.fetchrow(
                f"""
                UPDATE {self._db.schema}.cash_positions
                SET amount = $1, status = $2, updated_at = CURRENT_TIMESTAMP
                WHERE id = $3 AND user_id = $4 AND deleted_at IS NULL
                RETURNING {CASH_COLUMNS}
                """,
                final_balance,
                CashStatus.MATURITY.value,
                position_id,
                user_id,
            )
            if not position_row:
                raise NotFoundError(f"Cash position {position_id} not found")

            pnl_row = await conn.fetchrow(
                f"""
                INSERT INTO {self._db.schema}.cash_realized_pnl
                    (user_id, cash_position_id, amount, realized_at)
                VALUES ($1, $2, $3, $4)
                RETURNING {PNL_COLUMNS}
                """,
                user_id,
                position_id,
                pnl_amount,
                realized_at,
            )

            return RealizeResult(
                position=CashPosition.from_record(position_row),
                pnl=RealizedPnL.from_record(pnl_row),
            )

        result = await self._db.run_in_transaction(apply, timeout=timeout)
        logger.info(
            f"Realized cash position {position_id} for user {user_id}: "
            f"balance={final_balance} pnl={pnl_amount}"
        )
        return result
