# === MODULE PURPOSE ===
# Registry of closed (realized) bond positions.
# Append-mostly: rows are created when a bond is closed and rarely corrected.

import logging
from datetime import datetime, timezone

from src.portfolio.database import LedgerDatabase
from src.portfolio.errors import InvalidArgumentError, NotFoundError
from src.portfolio.models import RealizedBond, RealizedBondCreate, RealizedBondUpdate
from src.portfolio.pagination import Page, normalize_page_args, paginate
from src.portfolio.patch import build_set_clause, changed_fields

logger = logging.getLogger(__name__)

REALIZED_COLUMNS = """
    id, user_id, bond_position_id, realized_price, total_coupons_received,
    realized_date, note, created_at, updated_at, deleted_at
"""

UPDATABLE_COLUMNS = frozenset({"realized_price", "total_coupons_received", "realized_date", "note"})


class RealizedBondStore:
    """Realized bond repository with limit+1 paginated listings."""

    def __init__(self, db: LedgerDatabase):
        self._db = db

    @property
    def _schema(self) -> str:
        return self._db.schema

    async def create(self, user_id: int, payload: RealizedBondCreate) -> RealizedBond:
        """
        Record a closed bond position.

        realized_date defaults to now (UTC) and total_coupons_received to 0.

        Raises:
            InvalidArgumentError: Negative total_coupons_received.
            NotFoundError: Bond position absent, not owned, or soft-deleted.
        """
        realized_date = payload.realized_date or datetime.now(timezone.utc)
        total_coupons = payload.total_coupons_received
        if total_coupons is None:
            total_coupons = 0.0
        if total_coupons < 0:
            raise InvalidArgumentError(
                f"total_coupons_received must be >= 0, got {total_coupons!r}"
            )

        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO {self._schema}.bond_realized
                    (user_id, bond_position_id, realized_price, total_coupons_received,
                     realized_date, note)
                SELECT $1, $2, $3, $4, $5, $6
                WHERE EXISTS (
                    SELECT 1 FROM {self._schema}.bond_positions
                    WHERE id = $2 AND user_id = $1 AND deleted_at IS NULL
                )
                RETURNING {REALIZED_COLUMNS}
                """,
                user_id,
                payload.bond_position_id,
                payload.realized_price,
                total_coupons,
                realized_date,
                payload.note,
            )

        if not row:
            raise NotFoundError(f"Bond position {payload.bond_position_id} not found")

        realized = RealizedBond.from_record(row)
        logger.info(
            f"Recorded realized bond {realized.id} for bond position "
            f"{realized.bond_position_id} at {realized.realized_price}"
        )
        return realized

    async def find_by_owner(
        self,
        user_id: int,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Page[RealizedBond]:
        """Get a page of a user's realized bonds, most recent first."""
        limit, offset = normalize_page_args(limit, offset)

        async with self._db.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {REALIZED_COLUMNS}
                FROM {self._schema}.bond_realized
                WHERE user_id = $1 AND deleted_at IS NULL
                ORDER BY realized_date DESC, id DESC
                LIMIT $2 OFFSET $3
                """,
                user_id,
                limit + 1,
                offset,
            )

        return paginate([RealizedBond.from_record(row) for row in rows], limit, offset)

    async def find_by_bond_position(
        self,
        bond_position_id: int,
        user_id: int,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Page[RealizedBond]:
        """Get a page of realizations recorded for one bond position."""
        limit, offset = normalize_page_args(limit, offset)

        async with self._db.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {REALIZED_COLUMNS}
                FROM {self._schema}.bond_realized
                WHERE user_id = $1 AND bond_position_id = $2 AND deleted_at IS NULL
                ORDER BY realized_date DESC, id DESC
                LIMIT $3 OFFSET $4
                """,
                user_id,
                bond_position_id,
                limit + 1,
                offset,
            )

        return paginate([RealizedBond.from_record(row) for row in rows], limit, offset)

    async def find_by_id(self, realized_id: int, user_id: int) -> RealizedBond:
        """
        Get a single realized bond.

        Raises:
            NotFoundError: Absent, not owned, or soft-deleted.
        """
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {REALIZED_COLUMNS}
                FROM {self._schema}.bond_realized
                WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                """,
                realized_id,
                user_id,
            )

        if not row:
            raise NotFoundError(f"Realized bond {realized_id} not found")

        return RealizedBond.from_record(row)

    async def update(
        self,
        realized_id: int,
        user_id: int,
        patch: RealizedBondUpdate,
    ) -> RealizedBond:
        """Apply a partial update; note may be cleared with None."""
        changes = changed_fields(patch)
        for column, value in changes.items():
            if column != "note" and value is None:
                raise InvalidArgumentError(f"{column} cannot be cleared")
        if changes.get("total_coupons_received", 0) < 0:
            raise InvalidArgumentError("total_coupons_received must be >= 0")

        set_sql, args = build_set_clause(changes, UPDATABLE_COLUMNS, start_index=3)

        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE {self._schema}.bond_realized
                SET {set_sql}
                WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                RETURNING {REALIZED_COLUMNS}
                """,
                realized_id,
                user_id,
                *args,
            )

        if not row:
            raise NotFoundError(f"Realized bond {realized_id} not found")

        return RealizedBond.from_record(row)

    async def delete(self, realized_id: int, user_id: int) -> None:
        """Soft delete a realized bond record."""
        async with self._db.acquire() as conn:
            deleted_id = await conn.fetchval(
                f"""
                UPDATE {self._schema}.bond_realized
                SET deleted_at = CURRENT_TIMESTAMP, updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                RETURNING id
                """,
                realized_id,
                user_id,
            )

        if deleted_id is None:
            raise NotFoundError(f"Realized bond {realized_id} not found")

        logger.info(f"Deleted realized bond {realized_id} for user {user_id}")
