# === MODULE PURPOSE ===
# Atomic merge of one matured cash position into an active one.

# === KEY CONCEPTS ===
# - One transaction: lock both rows, validate, credit target, soft-delete source
# - Preconditions: source is MATURITY, target is ACTIVE, source != target
# - Any failure rolls everything back; callers never see a half-applied move

import logging

import asyncpg

from src.portfolio.cash_store import CASH_COLUMNS, fetch_cash_positions_for_update
from src.portfolio.database import LedgerDatabase
from src.portfolio.errors import InvalidArgumentError, InvalidStateError, NotFoundError
from src.portfolio.models import CashPosition, CashStatus, MoveAssetResult

logger = logging.getLogger(__name__)


class TransferCoordinator:
    """
    Moves the full balance of a matured cash position into an active one.

    State Machine (source):
        MATURITY -> soft-deleted (after move_asset)
    """

    def __init__(self, db: LedgerDatabase):
        self._db = db

    async def move_asset(
        self,
        source_id: int,
        target_id: int,
        user_id: int,
        timeout: float | None = None,
    ) -> MoveAssetResult:
        """
        Move the source balance into the target and retire the source.

        Args:
            source_id: Cash position to drain; must be in MATURITY.
            target_id: Cash position to credit; must be ACTIVE.
            user_id: Owner of both positions.
            timeout: Transaction deadline in seconds (config default if None).

        Returns:
            MoveAssetResult with the source as it was before the move, the
            credited target and the moved amount.

        Raises:
            InvalidArgumentError: source_id == target_id.
            NotFoundError: Either position absent, not owned, or soft-deleted.
            InvalidStateError: Source not in MATURITY or target not ACTIVE.
            WriteConflictError: Concurrent transfer kept conflicting.
        """
        if source_id == target_id:
            raise InvalidArgumentError("Source and target positions must differ")

        async def apply(conn: asyncpg.Connection) -> MoveAssetResult:
            locked = await fetch_cash_positions_for_update(
                conn, self._db.schema, [source_id, target_id], user_id
            )

            source = locked.get(source_id)
            if source is None:
                raise NotFoundError(f"Source cash position {source_id} not found")
            if source.status != CashStatus.MATURITY:
                raise InvalidStateError(
                    f"Source cash position {source_id} must be in 'maturity' to be moved "
                    f"(is '{source.status.value}')"
                )

            target = locked.get(target_id)
            if target is None:
                raise NotFoundError(f"Target cash position {target_id} not found")
            if target.status != CashStatus.ACTIVE:
                raise InvalidStateError(
                    f"Target cash position {target_id} must be 'active' to receive funds "
                    f"(is '{target.status.value}')"
                )

            new_amount = target.amount + source.amount
            target_row = await conn.fetchrow(
                f"""
                UPDATE {self._db.schema}.cash_positions
                SET amount = $1, updated_at = CURRENT_TIMESTAMP
                WHERE id = $2 AND user_id = $3
                RETURNING {CASH_COLUMNS}
                """,
                new_amount,
                target_id,
                user_id,
            )

            await conn.execute(
                f"""
                UPDATE {self._db.schema}.cash_positions
                SET deleted_at = CURRENT_TIMESTAMP, updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND user_id = $2
                """,
                source_id,
                user_id,
            )

            return MoveAssetResult(
                source=source,
                target=CashPosition.from_record(target_row),
                moved_amount=source.amount,
            )

        try:
            result = await self._db.run_in_transaction(apply, timeout=timeout)
        except (NotFoundError, InvalidStateError) as e:
            logger.info(f"Transfer {source_id} -> {target_id} rejected for user {user_id}: {e}")
            raise

        logger.info(
            f"Moved {result.moved_amount} from cash position {source_id} "
            f"to {target_id} for user {user_id}"
        )
        return result
