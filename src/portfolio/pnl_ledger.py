# === MODULE PURPOSE ===
# Realized profit/loss entries of cash positions.
# Owner-scoped CRUD, paginated listings and summary statistics.

# === KEY CONCEPTS ===
# - cash_position_id is a weak reference: entries outlive their position
# - Listings fetch limit+1 rows and flag has_more (no COUNT query)
# - Summary is one aggregate pass over alive rows

import logging
from datetime import datetime, timezone

from src.portfolio.database import LedgerDatabase
from src.portfolio.errors import InvalidArgumentError, NotFoundError
from src.portfolio.models import PnLSummary, PnLUpdate, RealizedPnL
from src.portfolio.pagination import Page, normalize_page_args, paginate
from src.portfolio.patch import build_set_clause, changed_fields

logger = logging.getLogger(__name__)

PNL_COLUMNS = """
    id, user_id, cash_position_id, amount, realized_at,
    created_at, updated_at, deleted_at
"""

UPDATABLE_COLUMNS = frozenset({"amount", "realized_at"})


class PnLLedger:
    """Repository for cash realized PnL entries."""

    def __init__(self, db: LedgerDatabase):
        self._db = db

    @property
    def _schema(self) -> str:
        return self._db.schema

    async def create(
        self,
        user_id: int,
        cash_position_id: int,
        amount: float,
        realized_at: datetime | None = None,
    ) -> RealizedPnL:
        """Book a PnL entry; realized_at defaults to now (UTC)."""
        realized_at = realized_at or datetime.now(timezone.utc)

        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO {self._schema}.cash_realized_pnl
                    (user_id, cash_position_id, amount, realized_at)
                VALUES ($1, $2, $3, $4)
                RETURNING {PNL_COLUMNS}
                """,
                user_id,
                cash_position_id,
                amount,
                realized_at,
            )

        entry = RealizedPnL.from_record(row)
        logger.info(f"Created PnL entry {entry.id} for cash position {cash_position_id}: {amount}")
        return entry

    async def find_by_owner(
        self,
        user_id: int,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Page[RealizedPnL]:
        """Get a page of a user's PnL entries, most recent first."""
        limit, offset = normalize_page_args(limit, offset)

        async with self._db.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {PNL_COLUMNS}
                FROM {self._schema}.cash_realized_pnl
                WHERE user_id = $1 AND deleted_at IS NULL
                ORDER BY realized_at DESC, id DESC
                LIMIT $2 OFFSET $3
                """,
                user_id,
                limit + 1,
                offset,
            )

        return paginate([RealizedPnL.from_record(row) for row in rows], limit, offset)

    async def find_by_position(
        self,
        cash_position_id: int,
        user_id: int,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Page[RealizedPnL]:
        """Get a page of PnL entries booked against one cash position."""
        limit, offset = normalize_page_args(limit, offset)

        async with self._db.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {PNL_COLUMNS}
                FROM {self._schema}.cash_realized_pnl
                WHERE cash_position_id = $1 AND user_id = $2 AND deleted_at IS NULL
                ORDER BY realized_at DESC, id DESC
                LIMIT $3 OFFSET $4
                """,
                cash_position_id,
                user_id,
                limit + 1,
                offset,
            )

        return paginate([RealizedPnL.from_record(row) for row in rows], limit, offset)

    async def find_by_id(self, entry_id: int, user_id: int) -> RealizedPnL:
        """
        Get a single PnL entry.

        Raises:
            NotFoundError: Absent, not owned, or soft-deleted.
        """
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {PNL_COLUMNS}
                FROM {self._schema}.cash_realized_pnl
                WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                """,
                entry_id,
                user_id,
            )

        if not row:
            raise NotFoundError(f"PnL entry {entry_id} not found")

        return RealizedPnL.from_record(row)

    async def update(self, entry_id: int, user_id: int, patch: PnLUpdate) -> RealizedPnL:
        """
        Apply a partial update to a PnL entry.

        Raises:
            NotFoundError: Absent, not owned, or soft-deleted.
            InvalidArgumentError: amount or realized_at set to None.
        """
        changes = changed_fields(patch)
        for column, value in changes.items():
            if value is None:
                raise InvalidArgumentError(f"{column} cannot be cleared")

        set_sql, args = build_set_clause(changes, UPDATABLE_COLUMNS, start_index=3)

        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE {self._schema}.cash_realized_pnl
                SET {set_sql}
                WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                RETURNING {PNL_COLUMNS}
                """,
                entry_id,
                user_id,
                *args,
            )

        if not row:
            raise NotFoundError(f"PnL entry {entry_id} not found")

        return RealizedPnL.from_record(row)

    async def delete(self, entry_id: int, user_id: int) -> None:
        """Soft delete a PnL entry."""
        async with self._db.acquire() as conn:
            deleted_id = await conn.fetchval(
                f"""
                UPDATE {self._schema}.cash_realized_pnl
                SET deleted_at = CURRENT_TIMESTAMP, updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                RETURNING id
                """,
                entry_id,
                user_id,
            )

        if deleted_id is None:
            raise NotFoundError(f"PnL entry {entry_id} not found")

        logger.info(f"Deleted PnL entry {entry_id} for user {user_id}")

    async def get_summary(self, user_id: int) -> PnLSummary:
        """
        Summary statistics over all alive entries of a user.

        Returns zeros and last_realized_at=None when the user has no entries.
        """
        async with self._db.acquire(readonly=True) as conn:
            row = await conn.fetchrow(
                f"""
                SELECT
                    COALESCE(SUM(amount), 0) AS total_amount,
                    COUNT(*) AS count,
                    COALESCE(AVG(amount), 0) AS avg_amount,
                    COALESCE(MAX(amount), 0) AS max_amount,
                    COALESCE(MIN(amount), 0) AS min_amount,
                    MAX(realized_at) AS last_realized_at
                FROM {self._schema}.cash_realized_pnl
                WHERE user_id = $1 AND deleted_at IS NULL
                """,
                user_id,
            )

        if not row:
            return PnLSummary()

        return PnLSummary.from_record(row)
