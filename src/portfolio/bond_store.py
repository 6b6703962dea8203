# === MODULE PURPOSE ===
# Owner-scoped persistence for bond positions.
# Market prices come from the external bond_tracker table and are joined at read time.

# === KEY CONCEPTS ===
# - Listing inner-joins the tracker: a bond whose tracker row is absent or
#   soft-deleted does not appear in find_by_owner()
# - find_by_id() left-joins, so a single bond stays addressable without a price
# - market_price_override is owned by the user and wins over the tracked price
# - Status graph: ACTIVE -> INACTIVE | MATURED | SOLD, all three terminal
# - Delete is a soft delete, same as every other ledger table

import logging
from typing import Any

import asyncpg

from src.portfolio.database import LedgerDatabase
from src.portfolio.errors import InvalidArgumentError, InvalidStateError, NotFoundError
from src.portfolio.models import (
    BOND_STATUS_TRANSITIONS,
    BondPosition,
    BondPositionCreate,
    BondPositionUpdate,
    BondStatus,
    CouponFrequency,
    coerce_enum,
)
from src.portfolio.patch import build_set_clause, changed_fields

logger = logging.getLogger(__name__)

# Bond row columns, qualified by alias "b"
BOND_COLUMNS = """
    b.id, b.user_id, b.bond_id, b.name, b.purchase_price, b.coupon_rate,
    b.coupon_frequency, b.next_coupon_date, b.maturity_date, b.quantity,
    b.status, b.note, b.market_price_override, b.market_price_override_date,
    b.secondary_market, b.created_at, b.updated_at, b.deleted_at
"""

UPDATABLE_COLUMNS = frozenset(
    {
        "name",
        "purchase_price",
        "coupon_rate",
        "coupon_frequency",
        "next_coupon_date",
        "maturity_date",
        "quantity",
        "note",
        "status",
        "secondary_market",
    }
)

NOT_NULL_COLUMNS = frozenset(
    {"purchase_price", "coupon_rate", "coupon_frequency", "quantity", "status", "secondary_market"}
)


def _validate_non_negative(value: Any, field_name: str) -> None:
    if value is None or value < 0:
        raise InvalidArgumentError(f"{field_name} must be >= 0, got {value!r}")


def _validate_quantity(quantity: Any) -> None:
    if quantity is None or quantity < 1:
        raise InvalidArgumentError(f"quantity must be >= 1, got {quantity!r}")


def check_status_transition(current: BondStatus, new: BondStatus) -> None:
    """
    Enforce the bond status graph.

    Raises:
        InvalidStateError: new is not reachable from current.
    """
    if current == new:
        return
    if new not in BOND_STATUS_TRANSITIONS[current]:
        raise InvalidStateError(
            f"Bond status cannot change from '{current.value}' to '{new.value}'"
        )


class BondPositionStore:
    """
    Bond position repository.

    Usage:
        store = BondPositionStore(db)
        bond = await store.create(user_id, BondPositionCreate(...))
        await store.update_market_price_override(bond.id, user_id, 101.5)
        bonds = await store.find_by_owner(user_id)
    """

    def __init__(self, db: LedgerDatabase):
        self._db = db

    @property
    def _schema(self) -> str:
        return self._db.schema

    def _with_tracker_price(self, statement: str) -> str:
        """Wrap a data-modifying statement so its row comes back with the tracked price."""
        return f"""
            WITH b AS ({statement})
            SELECT {BOND_COLUMNS}, t.market_price
            FROM b
            LEFT JOIN {self._schema}.bond_tracker t
                ON t.bond_id = b.bond_id AND t.deleted_at IS NULL
        """

    async def create(self, user_id: int, payload: BondPositionCreate) -> BondPosition:
        """
        Add a bond position with status ACTIVE.

        Raises:
            InvalidArgumentError: Unknown coupon frequency, quantity < 1 or negative price/rate.
        """
        frequency = coerce_enum(CouponFrequency, payload.coupon_frequency, "coupon_frequency")
        _validate_quantity(payload.quantity)
        _validate_non_negative(payload.purchase_price, "purchase_price")
        _validate_non_negative(payload.coupon_rate, "coupon_rate")

        insert_sql = f"""
            INSERT INTO {self._schema}.bond_positions
                (user_id, bond_id, name, purchase_price, coupon_rate, coupon_frequency,
                 next_coupon_date, maturity_date, quantity, status, note, secondary_market)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            RETURNING *
        """

        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                self._with_tracker_price(insert_sql),
                user_id,
                payload.bond_id,
                payload.name,
                payload.purchase_price,
                payload.coupon_rate,
                frequency.value,
                payload.next_coupon_date,
                payload.maturity_date,
                payload.quantity,
                BondStatus.ACTIVE.value,
                payload.note,
                payload.secondary_market,
            )

        bond = BondPosition.from_record(row)
        logger.info(f"Created bond position {bond.id} ({bond.bond_id}) for user {user_id}")
        return bond

    async def find_by_owner(self, user_id: int) -> list[BondPosition]:
        """Get a user's bonds that have a live tracker entry, newest first."""
        async with self._db.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {BOND_COLUMNS}, t.market_price
                FROM {self._schema}.bond_positions b
                JOIN {self._schema}.bond_tracker t
                    ON t.bond_id = b.bond_id AND t.deleted_at IS NULL
                WHERE b.user_id = $1 AND b.deleted_at IS NULL
                ORDER BY b.created_at DESC
                """,
                user_id,
            )

        return [BondPosition.from_record(row) for row in rows]

    async def find_by_id(self, bond_position_id: int, user_id: int) -> BondPosition:
        """
        Get a single bond position.

        Raises:
            NotFoundError: Absent, not owned, or soft-deleted.
        """
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {BOND_COLUMNS}, t.market_price
                FROM {self._schema}.bond_positions b
                LEFT JOIN {self._schema}.bond_tracker t
                    ON t.bond_id = b.bond_id AND t.deleted_at IS NULL
                WHERE b.id = $1 AND b.user_id = $2 AND b.deleted_at IS NULL
                """,
                bond_position_id,
                user_id,
            )

        if not row:
            raise NotFoundError(f"Bond position {bond_position_id} not found")

        return BondPosition.from_record(row)

    async def update(
        self,
        bond_position_id: int,
        user_id: int,
        patch: BondPositionUpdate,
    ) -> BondPosition:
        """
        Apply a partial update.

        Raises:
            NotFoundError: Absent, not owned, or soft-deleted.
            InvalidArgumentError: Invalid field value.
            InvalidStateError: Status change not allowed by the bond status graph.
        """
        changes = self._validate_changes(changed_fields(patch))

        async def apply(conn: asyncpg.Connection) -> BondPosition:
            current_status = await conn.fetchval(
                f"""
                SELECT status FROM {self._schema}.bond_positions
                WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                FOR UPDATE
                """,
                bond_position_id,
                user_id,
            )
            if current_status is None:
                raise NotFoundError(f"Bond position {bond_position_id} not found")

            if "status" in changes:
                check_status_transition(BondStatus(current_status), BondStatus(changes["status"]))

            set_sql, args = build_set_clause(changes, UPDATABLE_COLUMNS, start_index=3)
            update_sql = f"""
                UPDATE {self._schema}.bond_positions
                SET {set_sql}
                WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                RETURNING *
            """
            row = await conn.fetchrow(
                self._with_tracker_price(update_sql), bond_position_id, user_id, *args
            )
            return BondPosition.from_record(row)

        return await self._db.run_in_transaction(apply)

    def _validate_changes(self, changes: dict[str, Any]) -> dict[str, Any]:
        for column, value in changes.items():
            if column in NOT_NULL_COLUMNS and value is None:
                raise InvalidArgumentError(f"{column} cannot be cleared")

        if "quantity" in changes:
            _validate_quantity(changes["quantity"])
        if "purchase_price" in changes:
            _validate_non_negative(changes["purchase_price"], "purchase_price")
        if "coupon_rate" in changes:
            _validate_non_negative(changes["coupon_rate"], "coupon_rate")
        if "coupon_frequency" in changes:
            changes["coupon_frequency"] = coerce_enum(
                CouponFrequency, changes["coupon_frequency"], "coupon_frequency"
            ).value
        if "status" in changes:
            changes["status"] = coerce_enum(BondStatus, changes["status"], "status").value

        return changes

    async def delete(self, bond_position_id: int, user_id: int) -> None:
        """
        Soft delete a bond position.

        Raises:
            NotFoundError: Absent, not owned, or already deleted.
        """
        async with self._db.acquire() as conn:
            deleted_id = await conn.fetchval(
                f"""
                UPDATE {self._schema}.bond_positions
                SET deleted_at = CURRENT_TIMESTAMP, updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                RETURNING id
                """,
                bond_position_id,
                user_id,
            )

        if deleted_id is None:
            raise NotFoundError(f"Bond position {bond_position_id} not found")

        logger.info(f"Deleted bond position {bond_position_id} for user {user_id}")

    async def update_market_price_override(
        self,
        bond_position_id: int,
        user_id: int,
        price: float,
    ) -> BondPosition:
        """
        Set the user's market price override and stamp when it was set.

        Raises:
            InvalidArgumentError: Negative price.
            NotFoundError: Absent, not owned, or soft-deleted.
        """
        _validate_non_negative(price, "market_price_override")

        update_sql = f"""
            UPDATE {self._schema}.bond_positions
            SET market_price_override = $1,
                market_price_override_date = CURRENT_TIMESTAMP,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = $2 AND user_id = $3 AND deleted_at IS NULL
            RETURNING *
        """

        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                self._with_tracker_price(update_sql), price, bond_position_id, user_id
            )

        if not row:
            raise NotFoundError(f"Bond position {bond_position_id} not found")

        logger.info(f"Set market price override {price} on bond position {bond_position_id}")
        return BondPosition.from_record(row)

    async def clear_market_price_override(self, bond_position_id: int, user_id: int) -> BondPosition:
        """Remove the override so the tracked price applies again."""
        update_sql = f"""
            UPDATE {self._schema}.bond_positions
            SET market_price_override = NULL,
                market_price_override_date = NULL,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
            RETURNING *
        """

        async with self._db.acquire() as conn:
            row = await conn.fetchrow(self._with_tracker_price(update_sql), bond_position_id, user_id)

        if not row:
            raise NotFoundError(f"Bond position {bond_position_id} not found")

        logger.info(f"Cleared market price override on bond position {bond_position_id}")
        return BondPosition.from_record(row)
