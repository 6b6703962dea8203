# === MODULE PURPOSE ===
# Fixtures for portfolio ledger tests.
# Stands in for the asyncpg pool/connection so no database is needed:
# statements are recorded on AsyncMock methods and results are queued per test.

from datetime import datetime, timezone
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.portfolio.database import LedgerDatabase, LedgerDatabaseConfig

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


class FakeTransaction:
    """conn.transaction() stand-in that records how the block ended."""

    def __init__(self):
        self.committed = False
        self.rolled_back = False

    async def __aenter__(self) -> "FakeTransaction":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            self.committed = True
        else:
            self.rolled_back = True
        return False


class FakeAcquire:
    """pool.acquire() stand-in yielding the shared connection."""

    def __init__(self, conn: Any):
        self._conn = conn

    async def __aenter__(self) -> Any:
        return self._conn

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        return False


def make_connection() -> MagicMock:
    conn = MagicMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)
    conn.execute = AsyncMock(return_value="UPDATE 1")
    conn.transactions = []

    def transaction() -> FakeTransaction:
        tx = FakeTransaction()
        conn.transactions.append(tx)
        return tx

    conn.transaction = MagicMock(side_effect=transaction)
    return conn


def make_pool(conn: Any) -> MagicMock:
    pool = MagicMock()
    pool.acquire = MagicMock(side_effect=lambda: FakeAcquire(conn))
    pool.close = AsyncMock()
    return pool


@pytest.fixture
def conn() -> MagicMock:
    """Mock asyncpg connection shared by every acquire()."""
    return make_connection()


@pytest.fixture
def pool(conn: MagicMock) -> MagicMock:
    """Mock asyncpg pool handing out the shared connection."""
    return make_pool(conn)


@pytest.fixture
def replica_conn() -> MagicMock:
    """Separate mock connection for the read replica."""
    return make_connection()


@pytest.fixture
def connected_db() -> Callable[..., LedgerDatabase]:
    """Build a LedgerDatabase wired to mock pools, as if connect() had succeeded."""

    def build(
        config: LedgerDatabaseConfig, conn: Any, replica_conn: Any | None = None
    ) -> LedgerDatabase:
        database = LedgerDatabase(config)
        database._pool = make_pool(conn)
        if replica_conn is not None:
            database._replica_pool = make_pool(replica_conn)
        database._is_connected = True
        return database

    return build


@pytest.fixture
def db(connected_db, conn: MagicMock) -> LedgerDatabase:
    """Default LedgerDatabase over the shared mock connection."""
    return connected_db(LedgerDatabaseConfig(transaction_timeout=5.0), conn)


# === ROW FACTORIES ===


@pytest.fixture
def cash_row() -> Callable[..., dict[str, Any]]:
    """Build a cash_positions record; keyword arguments override columns."""

    def build(**overrides: Any) -> dict[str, Any]:
        row = {
            "id": 1,
            "user_id": 7,
            "account": "Main savings",
            "bank": "ACME Bank",
            "amount": 1000.0,
            "yield_rate": 2.5,
            "yield_period": "per_year",
            "yield_frequency_type": "monthly",
            "yield_frequency_value": 1,
            "yield_payment_type": "compound",
            "has_maturity": False,
            "maturity_date": None,
            "note": None,
            "status": "active",
            "category": "liquid",
            "created_at": NOW,
            "updated_at": NOW,
            "deleted_at": None,
        }
        row.update(overrides)
        return row

    return build


@pytest.fixture
def pnl_row() -> Callable[..., dict[str, Any]]:
    """Build a cash_realized_pnl record."""

    def build(**overrides: Any) -> dict[str, Any]:
        row = {
            "id": 1,
            "user_id": 7,
            "cash_position_id": 1,
            "amount": 250.0,
            "realized_at": NOW,
            "created_at": NOW,
            "updated_at": NOW,
            "deleted_at": None,
        }
        row.update(overrides)
        return row

    return build


@pytest.fixture
def bond_row() -> Callable[..., dict[str, Any]]:
    """Build a bond_positions record joined with the tracked market_price."""

    def build(**overrides: Any) -> dict[str, Any]:
        row = {
            "id": 1,
            "user_id": 7,
            "bond_id": "US912828XG55",
            "name": "Treasury 2030",
            "purchase_price": 1_000_000.0,
            "coupon_rate": 3.0,
            "coupon_frequency": "semi-annual",
            "next_coupon_date": None,
            "maturity_date": None,
            "quantity": 1,
            "status": "active",
            "note": None,
            "market_price_override": None,
            "market_price_override_date": None,
            "secondary_market": False,
            "created_at": NOW,
            "updated_at": NOW,
            "deleted_at": None,
            "market_price": 1_050_000.0,
        }
        row.update(overrides)
        return row

    return build


@pytest.fixture
def coupon_row() -> Callable[..., dict[str, Any]]:
    """Build a bond_coupons record."""

    def build(**overrides: Any) -> dict[str, Any]:
        row = {
            "id": 1,
            "user_id": 7,
            "bond_position_id": 1,
            "coupon_number": 1,
            "payment_date": NOW.date(),
            "amount": 15_000.0,
            "status": "pending",
            "note": None,
            "created_at": NOW,
            "updated_at": NOW,
            "deleted_at": None,
        }
        row.update(overrides)
        return row

    return build


@pytest.fixture
def realized_bond_row() -> Callable[..., dict[str, Any]]:
    """Build a bond_realized record."""

    def build(**overrides: Any) -> dict[str, Any]:
        row = {
            "id": 1,
            "user_id": 7,
            "bond_position_id": 1,
            "realized_price": 1_020_000.0,
            "total_coupons_received": 0.0,
            "realized_date": NOW,
            "note": None,
            "created_at": NOW,
            "updated_at": NOW,
            "deleted_at": None,
        }
        row.update(overrides)
        return row

    return build
