# === MODULE PURPOSE ===
# Scheduled coupon payments of bond positions.
# Supplies "received" totals per bond and, in one pass, for all of a user's bonds.

# === KEY CONCEPTS ===
# - Status: PENDING -> RECEIVED | MISSED, set directly (no transition enforcement)
# - Only RECEIVED coupons count towards totals
# - A coupon can only be attached to an alive bond position of the same owner

import logging
from typing import Any

from src.portfolio.database import LedgerDatabase
from src.portfolio.errors import InvalidArgumentError, NotFoundError
from src.portfolio.models import Coupon, CouponCreate, CouponStatus, CouponUpdate, coerce_enum
from src.portfolio.patch import build_set_clause, changed_fields

logger = logging.getLogger(__name__)

COUPON_COLUMNS = """
    id, user_id, bond_position_id, coupon_number, payment_date, amount,
    status, note, created_at, updated_at, deleted_at
"""

UPDATABLE_COLUMNS = frozenset({"coupon_number", "payment_date", "amount", "status", "note"})


def _validate_coupon_number(value: Any) -> None:
    if value is None or value < 1:
        raise InvalidArgumentError(f"coupon_number must be > 0, got {value!r}")


def _validate_amount(value: Any) -> None:
    if value is None or value < 0:
        raise InvalidArgumentError(f"amount must be >= 0, got {value!r}")


class CouponStore:
    """Coupon repository keyed by (id, user_id) or (bond_position_id, user_id)."""

    def __init__(self, db: LedgerDatabase):
        self._db = db

    @property
    def _schema(self) -> str:
        return self._db.schema

    async def create(self, user_id: int, payload: CouponCreate) -> Coupon:
        """
        Record a coupon for a bond position; status defaults to PENDING.

        Raises:
            InvalidArgumentError: Invalid coupon number, amount or status.
            NotFoundError: Bond position absent, not owned, or soft-deleted.
        """
        _validate_coupon_number(payload.coupon_number)
        _validate_amount(payload.amount)
        status = coerce_enum(CouponStatus, payload.status or CouponStatus.PENDING, "status")

        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO {self._schema}.bond_coupons
                    (bond_position_id, user_id, coupon_number, payment_date, amount, status, note)
                SELECT $1, $2, $3, $4, $5, $6, $7
                WHERE EXISTS (
                    SELECT 1 FROM {self._schema}.bond_positions
                    WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                )
                RETURNING {COUPON_COLUMNS}
                """,
                payload.bond_position_id,
                user_id,
                payload.coupon_number,
                payload.payment_date,
                payload.amount,
                status.value,
                payload.note,
            )

        if not row:
            raise NotFoundError(f"Bond position {payload.bond_position_id} not found")

        coupon = Coupon.from_record(row)
        logger.info(
            f"Created coupon {coupon.id} #{coupon.coupon_number} "
            f"for bond position {coupon.bond_position_id}"
        )
        return coupon

    async def find_by_bond_position(self, bond_position_id: int, user_id: int) -> list[Coupon]:
        """Get all alive coupons of a bond position, latest payment first."""
        async with self._db.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {COUPON_COLUMNS}
                FROM {self._schema}.bond_coupons
                WHERE bond_position_id = $1 AND user_id = $2 AND deleted_at IS NULL
                ORDER BY payment_date DESC
                """,
                bond_position_id,
                user_id,
            )

        return [Coupon.from_record(row) for row in rows]

    async def find_by_id(self, coupon_id: int, user_id: int) -> Coupon:
        """
        Get a single coupon.

        Raises:
            NotFoundError: Absent, not owned, or soft-deleted.
        """
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {COUPON_COLUMNS}
                FROM {self._schema}.bond_coupons
                WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                """,
                coupon_id,
                user_id,
            )

        if not row:
            raise NotFoundError(f"Coupon {coupon_id} not found")

        return Coupon.from_record(row)

    async def update(self, coupon_id: int, user_id: int, patch: CouponUpdate) -> Coupon:
        """
        Apply a partial update; note may be cleared with None.

        Raises:
            NotFoundError: Absent, not owned, or soft-deleted.
            InvalidArgumentError: Invalid field value.
        """
        changes = changed_fields(patch)
        for column, value in changes.items():
            if column != "note" and value is None:
                raise InvalidArgumentError(f"{column} cannot be cleared")
        if "coupon_number" in changes:
            _validate_coupon_number(changes["coupon_number"])
        if "amount" in changes:
            _validate_amount(changes["amount"])
        if "status" in changes:
            changes["status"] = coerce_enum(CouponStatus, changes["status"], "status").value

        set_sql, args = build_set_clause(changes, UPDATABLE_COLUMNS, start_index=3)

        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE {self._schema}.bond_coupons
                SET {set_sql}
                WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                RETURNING {COUPON_COLUMNS}
                """,
                coupon_id,
                user_id,
                *args,
            )

        if not row:
            raise NotFoundError(f"Coupon {coupon_id} not found")

        return Coupon.from_record(row)

    async def delete(self, coupon_id: int, user_id: int) -> None:
        """Soft delete a coupon."""
        async with self._db.acquire() as conn:
            deleted_id = await conn.fetchval(
                f"""
                UPDATE {self._schema}.bond_coupons
                SET deleted_at = CURRENT_TIMESTAMP, updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                RETURNING id
                """,
                coupon_id,
                user_id,
            )

        if deleted_id is None:
            raise NotFoundError(f"Coupon {coupon_id} not found")

        logger.info(f"Deleted coupon {coupon_id} for user {user_id}")

    async def get_total_received(self, bond_position_id: int, user_id: int) -> float:
        """Sum of RECEIVED coupon amounts for one bond position."""
        async with self._db.acquire() as conn:
            total = await conn.fetchval(
                f"""
                SELECT COALESCE(SUM(amount), 0)
                FROM {self._schema}.bond_coupons
                WHERE bond_position_id = $1 AND user_id = $2
                    AND status = $3 AND deleted_at IS NULL
                """,
                bond_position_id,
                user_id,
                CouponStatus.RECEIVED.value,
            )

        return float(total or 0)

    async def get_received_totals(self, user_id: int, readonly: bool = False) -> dict[int, float]:
        """
        RECEIVED coupon totals for every bond position of a user, in one query.

        Bond positions without received coupons are absent from the result.
        """
        async with self._db.acquire(readonly=readonly) as conn:
            rows = await conn.fetch(
                f"""
                SELECT bond_position_id, COALESCE(SUM(amount), 0) AS total_coupons
                FROM {self._schema}.bond_coupons
                WHERE user_id = $1 AND status = $2 AND deleted_at IS NULL
                GROUP BY bond_position_id
                """,
                user_id,
                CouponStatus.RECEIVED.value,
            )

        return {row["bond_position_id"]: float(row["total_coupons"]) for row in rows}
