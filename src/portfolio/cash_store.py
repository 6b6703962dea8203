# === MODULE PURPOSE ===
# Owner-scoped persistence for cash positions.

# === DEPENDENCIES ===
# - LedgerDatabase: injected connection handle
# - models: CashPosition and its payloads

# === KEY CONCEPTS ===
# - Every query filters by user_id and deleted_at IS NULL
# - Delete is a soft delete (deleted_at timestamp)
# - Status: ACTIVE -> MATURITY only; MATURITY is terminal apart from being
#   consumed as a transfer source
# - amount is never negative (checked here and by a table CHECK constraint)

import logging
from typing import Any

import asyncpg

from src.portfolio.database import LedgerDatabase
from src.portfolio.errors import InvalidArgumentError, InvalidStateError, NotFoundError
from src.portfolio.models import (
    CashCategory,
    CashPosition,
    CashPositionCreate,
    CashPositionUpdate,
    CashStatus,
    YieldFrequencyType,
    coerce_enum,
)
from src.portfolio.patch import build_set_clause, changed_fields

logger = logging.getLogger(__name__)

CASH_COLUMNS = """
    id, user_id, account, bank, amount, yield_rate, yield_period,
    yield_frequency_type, yield_frequency_value, yield_payment_type,
    has_maturity, maturity_date, note, status, category,
    created_at, updated_at, deleted_at
"""

UPDATABLE_COLUMNS = frozenset(
    {
        "account",
        "bank",
        "amount",
        "yield_rate",
        "yield_period",
        "yield_frequency_type",
        "yield_frequency_value",
        "yield_payment_type",
        "has_maturity",
        "maturity_date",
        "note",
        "status",
        "category",
    }
)

# Columns that may be changed but never cleared
NOT_NULL_COLUMNS = frozenset(
    {
        "account",
        "bank",
        "amount",
        "yield_period",
        "yield_frequency_type",
        "yield_frequency_value",
        "yield_payment_type",
        "has_maturity",
        "status",
        "category",
    }
)


def validate_amount(amount: Any, field_name: str = "amount") -> None:
    """Reject missing or negative balances."""
    if amount is None or amount < 0:
        raise InvalidArgumentError(f"{field_name} must be >= 0, got {amount!r}")


def _validate_yield_rate(yield_rate: Any) -> None:
    if yield_rate is not None and not 0 <= yield_rate <= 100:
        raise InvalidArgumentError(f"yield_rate must be between 0 and 100, got {yield_rate!r}")


def _validate_frequency_value(value: Any) -> None:
    if value is None or value < 1:
        raise InvalidArgumentError(f"yield_frequency_value must be >= 1, got {value!r}")


async def fetch_cash_positions_for_update(
    conn: asyncpg.Connection,
    schema: str,
    position_ids: list[int],
    user_id: int,
) -> dict[int, CashPosition]:
    """
    Lock alive, owned cash positions for the rest of the transaction.

    Rows are locked in id order so concurrent transactions touching the
    same pair cannot deadlock.

    Returns:
        Mapping of id -> CashPosition for the rows that exist.
    """
    rows = await conn.fetch(
        f"""
        SELECT {CASH_COLUMNS}
        FROM {schema}.cash_positions
        WHERE id = ANY($1::int[]) AND user_id = $2 AND deleted_at IS NULL
        ORDER BY id
        FOR UPDATE
        """,
        position_ids,
        user_id,
    )
    return {row["id"]: CashPosition.from_record(row) for row in rows}


class CashPositionStore:
    """
    Cash position repository.

    Usage:
        store = CashPositionStore(db)
        position = await store.create(user_id, CashPositionCreate(...))
        positions = await store.find_by_owner(user_id)
        await store.update(position.id, user_id, CashPositionUpdate(note=None))
        await store.delete(position.id, user_id)
    """

    def __init__(self, db: LedgerDatabase):
        self._db = db

    @property
    def _schema(self) -> str:
        return self._db.schema

    async def create(self, user_id: int, payload: CashPositionCreate) -> CashPosition:
        """
        Create a new cash position with status ACTIVE.

        Raises:
            InvalidArgumentError: Negative amount, out-of-range yield or unknown enum value.
        """
        validate_amount(payload.amount)
        _validate_yield_rate(payload.yield_rate)
        _validate_frequency_value(payload.yield_frequency_value)
        frequency_type = coerce_enum(
            YieldFrequencyType, payload.yield_frequency_type, "yield_frequency_type"
        )
        category = coerce_enum(CashCategory, payload.category, "category")

        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO {self._schema}.cash_positions
                    (user_id, account, bank, amount, yield_rate, yield_period,
                     yield_frequency_type, yield_frequency_value, yield_payment_type,
                     has_maturity, maturity_date, note, status, category)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
                RETURNING {CASH_COLUMNS}
                """,
                user_id,
                payload.account,
                payload.bank,
                payload.amount,
                payload.yield_rate,
                payload.yield_period or "per_year",
                frequency_type.value,
                payload.yield_frequency_value,
                payload.yield_payment_type,
                payload.has_maturity,
                payload.maturity_date,
                payload.note,
                CashStatus.ACTIVE.value,
                category.value,
            )

        position = CashPosition.from_record(row)
        logger.info(f"Created cash position {position.id} for user {user_id}: {position.amount}")
        return position

    async def find_by_owner(self, user_id: int) -> list[CashPosition]:
        """Get all alive cash positions of a user, newest first."""
        async with self._db.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {CASH_COLUMNS}
                FROM {self._schema}.cash_positions
                WHERE user_id = $1 AND deleted_at IS NULL
                ORDER BY created_at DESC
                """,
                user_id,
            )

        return [CashPosition.from_record(row) for row in rows]

    async def find_by_status(self, user_id: int, status: CashStatus | str) -> list[CashPosition]:
        """Get alive cash positions of a user in the given status, newest first."""
        status = coerce_enum(CashStatus, status, "status")
        async with self._db.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {CASH_COLUMNS}
                FROM {self._schema}.cash_positions
                WHERE user_id = $1 AND status = $2 AND deleted_at IS NULL
                ORDER BY created_at DESC
                """,
                user_id,
                status.value,
            )

        return [CashPosition.from_record(row) for row in rows]

    async def find_by_id(self, position_id: int, user_id: int) -> CashPosition:
        """
        Get a single alive cash position.

        Raises:
            NotFoundError: Absent, owned by another user, or soft-deleted.
        """
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {CASH_COLUMNS}
                FROM {self._schema}.cash_positions
                WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                """,
                position_id,
                user_id,
            )

        if not row:
            raise NotFoundError(f"Cash position {position_id} not found")

        return CashPosition.from_record(row)

    async def update(
        self,
        position_id: int,
        user_id: int,
        patch: CashPositionUpdate,
    ) -> CashPosition:
        """
        Apply a partial update.

        Fields left UNSET keep their stored value; nullable fields set to None
        are cleared.

        Raises:
            NotFoundError: Position absent, not owned, or soft-deleted.
            InvalidArgumentError: Invalid value for a field.
            InvalidStateError: Status change out of MATURITY.
        """
        changes = self._validate_changes(changed_fields(patch))

        async def apply(conn: asyncpg.Connection) -> CashPosition:
            locked = await fetch_cash_positions_for_update(
                conn, self._schema, [position_id], user_id
            )
            current = locked.get(position_id)
            if current is None:
                raise NotFoundError(f"Cash position {position_id} not found")

            new_status = changes.get("status")
            if (
                new_status is not None
                and current.status == CashStatus.MATURITY
                and new_status != CashStatus.MATURITY.value
            ):
                raise InvalidStateError(
                    f"Cash position {position_id} is in maturity and cannot return to {new_status}"
                )

            if not changes:
                return current

            set_sql, args = build_set_clause(changes, UPDATABLE_COLUMNS, start_index=3)
            row = await conn.fetchrow(
                f"""
                UPDATE {self._schema}.cash_positions
                SET {set_sql}
                WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                RETURNING {CASH_COLUMNS}
                """,
                position_id,
                user_id,
                *args,
            )
            return CashPosition.from_record(row)

        return await self._db.run_in_transaction(apply)

    def _validate_changes(self, changes: dict[str, Any]) -> dict[str, Any]:
        """Check supplied values and normalize enums to their stored form."""
        for column, value in changes.items():
            if column in NOT_NULL_COLUMNS and value is None:
                raise InvalidArgumentError(f"{column} cannot be cleared")

        if "amount" in changes:
            validate_amount(changes["amount"])
        if "yield_rate" in changes:
            _validate_yield_rate(changes["yield_rate"])
        if "yield_frequency_value" in changes:
            _validate_frequency_value(changes["yield_frequency_value"])
        if "yield_frequency_type" in changes:
            changes["yield_frequency_type"] = coerce_enum(
                YieldFrequencyType, changes["yield_frequency_type"], "yield_frequency_type"
            ).value
        if "category" in changes:
            changes["category"] = coerce_enum(CashCategory, changes["category"], "category").value
        if "status" in changes:
            changes["status"] = coerce_enum(CashStatus, changes["status"], "status").value

        return changes

    async def delete(self, position_id: int, user_id: int) -> None:
        """
        Soft delete a cash position.

        Raises:
            NotFoundError: Absent, not owned, or already deleted.
        """
        async with self._db.acquire() as conn:
            deleted_id = await conn.fetchval(
                f"""
                UPDATE {self._schema}.cash_positions
                SET deleted_at = CURRENT_TIMESTAMP, updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND user_id = $2 AND deleted_at IS NULL
                RETURNING id
                """,
                position_id,
                user_id,
            )

        if deleted_id is None:
            raise NotFoundError(f"Cash position {position_id} not found")

        logger.info(f"Deleted cash position {position_id} for user {user_id}")
