# === MODULE PURPOSE ===
# PostgreSQL connection handle for the portfolio ledger.
# Owns the asyncpg pools, schema creation and the transaction runner that
# every store and coordinator receives by injection.

# === DEPENDENCIES ===
# - asyncpg: Async PostgreSQL client
# - src.common.config: YAML configuration with ${VAR:default} substitution

# === KEY CONCEPTS ===
# - Schema isolation: all tables live in the configured schema ('portfolio')
# - Primary pool: every mutation and every multi-row ledger operation
# - Replica pool (optional): report-style reads under relaxed consistency
# - run_in_transaction(): retries serialization/deadlock conflicts, then raises
#   WriteConflictError; a timeout or cancellation rolls the transaction back
# - bond_tracker is owned by the external price feed; it is only created here
#   so that a fresh database has something to join against

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import asyncpg

from src.common.config import load_config, resolve_env
from src.portfolio.errors import StoreUnavailableError, WriteConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Conflicts that PostgreSQL reports for concurrent writers on the same rows
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.DeadlockDetectedError,
)


@dataclass
class LedgerDatabaseConfig:
    """Configuration for the ledger database."""

    host: str = "localhost"
    port: int = 5432
    # libpq-style URL; when set it replaces host/port/database/user/password
    dsn: str = ""
    database: str = "portfolio"
    user: str = "ledger"
    password: str = ""
    pool_min_size: int = 2
    pool_max_size: int = 10
    schema: str = "portfolio"
    auto_create_schema: bool = True
    command_timeout: float = 30.0
    transaction_timeout: float = 15.0
    max_conflict_retries: int = 3
    replica_host: str = ""
    replica_port: int = 0
    use_replica_for_reports: bool = False


# SQL for schema and table creation
SCHEMA_SQL = """
CREATE SCHEMA IF NOT EXISTS {schema};
"""

TABLES_SQL = """
-- Cash holdings
CREATE TABLE IF NOT EXISTS {schema}.cash_positions (
    id SERIAL PRIMARY KEY,
    user_id INTEGER NOT NULL,
    account VARCHAR(100) NOT NULL,
    bank VARCHAR(100) NOT NULL,
    amount DECIMAL(20, 2) NOT NULL CHECK (amount >= 0),
    yield_rate DECIMAL(7, 4),
    yield_period VARCHAR(20) NOT NULL DEFAULT 'per_year',
    yield_frequency_type VARCHAR(20) NOT NULL,  -- daily/monthly/yearly
    yield_frequency_value INTEGER NOT NULL DEFAULT 1,
    yield_payment_type VARCHAR(50) NOT NULL,
    has_maturity BOOLEAN NOT NULL DEFAULT FALSE,
    maturity_date TIMESTAMPTZ,
    note TEXT,
    status VARCHAR(20) NOT NULL DEFAULT 'active',  -- active/maturity
    category VARCHAR(20) NOT NULL,  -- liquid/time_deposit/money_market/other
    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    deleted_at TIMESTAMPTZ
);

-- Realized profit/loss of cash holdings (cash_position_id is a weak reference)
CREATE TABLE IF NOT EXISTS {schema}.cash_realized_pnl (
    id SERIAL PRIMARY KEY,
    user_id INTEGER NOT NULL,
    cash_position_id INTEGER NOT NULL,
    amount DECIMAL(20, 2) NOT NULL,
    realized_at TIMESTAMPTZ NOT NULL,
    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    deleted_at TIMESTAMPTZ
);

-- Market prices maintained by the external bond tracker
CREATE TABLE IF NOT EXISTS {schema}.bond_tracker (
    bond_id VARCHAR(50) PRIMARY KEY,
    market_price DECIMAL(20, 4) NOT NULL,
    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    deleted_at TIMESTAMPTZ
);

-- Bond holdings
CREATE TABLE IF NOT EXISTS {schema}.bond_positions (
    id SERIAL PRIMARY KEY,
    user_id INTEGER NOT NULL,
    bond_id VARCHAR(50) NOT NULL,
    name VARCHAR(200),
    purchase_price DECIMAL(20, 2) NOT NULL,
    coupon_rate DECIMAL(7, 4) NOT NULL,
    coupon_frequency VARCHAR(20) NOT NULL,  -- monthly/quarterly/semi-annual/annual
    next_coupon_date DATE,
    maturity_date DATE,
    quantity INTEGER NOT NULL CHECK (quantity >= 1),
    status VARCHAR(20) NOT NULL DEFAULT 'active',  -- active/inactive/matured/sold
    note TEXT,
    market_price_override DECIMAL(20, 4),
    market_price_override_date TIMESTAMPTZ,
    secondary_market BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    deleted_at TIMESTAMPTZ
);

-- Scheduled coupon payments
CREATE TABLE IF NOT EXISTS {schema}.bond_coupons (
    id SERIAL PRIMARY KEY,
    user_id INTEGER NOT NULL,
    bond_position_id INTEGER NOT NULL REFERENCES {schema}.bond_positions(id),
    coupon_number INTEGER NOT NULL,
    payment_date DATE NOT NULL,
    amount DECIMAL(20, 2) NOT NULL,
    status VARCHAR(20) NOT NULL DEFAULT 'pending',  -- pending/received/missed
    note TEXT,
    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    deleted_at TIMESTAMPTZ
);

-- Closed bond positions
CREATE TABLE IF NOT EXISTS {schema}.bond_realized (
    id SERIAL PRIMARY KEY,
    user_id INTEGER NOT NULL,
    bond_position_id INTEGER NOT NULL REFERENCES {schema}.bond_positions(id),
    realized_price DECIMAL(20, 2) NOT NULL,
    total_coupons_received DECIMAL(20, 2) NOT NULL DEFAULT 0,
    realized_date TIMESTAMPTZ NOT NULL,
    note TEXT,
    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    deleted_at TIMESTAMPTZ
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_cash_positions_user ON {schema}.cash_positions(user_id, created_at DESC)
    WHERE deleted_at IS NULL;
CREATE INDEX IF NOT EXISTS idx_cash_pnl_user ON {schema}.cash_realized_pnl(user_id, realized_at DESC)
    WHERE deleted_at IS NULL;
CREATE INDEX IF NOT EXISTS idx_cash_pnl_position ON {schema}.cash_realized_pnl(cash_position_id);
CREATE INDEX IF NOT EXISTS idx_bond_positions_user ON {schema}.bond_positions(user_id, created_at DESC)
    WHERE deleted_at IS NULL;
CREATE INDEX IF NOT EXISTS idx_bond_coupons_position ON {schema}.bond_coupons(bond_position_id);
CREATE INDEX IF NOT EXISTS idx_bond_coupons_user_status ON {schema}.bond_coupons(user_id, status);
CREATE INDEX IF NOT EXISTS idx_bond_realized_user ON {schema}.bond_realized(user_id, realized_date DESC);
"""


class LedgerDatabase:
    """
    Connection handle shared by all ledger stores.

    Constructed once at startup and passed to each store/coordinator;
    there is no module-level instance.

    Usage:
        db = LedgerDatabase(config)
        await db.connect()

        cash = CashPositionStore(db)
        positions = await cash.find_by_owner(user_id)

        await db.close()
    """

    def __init__(self, config: LedgerDatabaseConfig):
        self._config = config
        self._pool: asyncpg.Pool | None = None
        self._replica_pool: asyncpg.Pool | None = None
        self._is_connected = False
        self._schema = config.schema

    async def __aenter__(self) -> "LedgerDatabase":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        """Establish connection pools and initialize schema."""
        if self._is_connected:
            return

        try:
            target = (
                "configured DSN"
                if self._config.dsn
                else f"{self._config.host}:{self._config.port}/{self._config.database}"
            )
            logger.info(f"Connecting to PostgreSQL: {target} (schema: {self._schema})")

            self._pool = await self._create_pool(
                self._config.host, self._config.port, self._config.dsn
            )

            if self._config.replica_host:
                replica_port = self._config.replica_port or self._config.port
                logger.info(f"Connecting read replica: {self._config.replica_host}:{replica_port}")
                self._replica_pool = await self._create_pool(
                    self._config.replica_host, replica_port
                )

            if self._config.auto_create_schema:
                await self._init_schema(self._pool)

            self._is_connected = True
            logger.info("LedgerDatabase connected to PostgreSQL")

        except Exception as e:
            logger.error(f"Failed to connect to PostgreSQL: {e}")
            await self._close_pools()
            raise StoreUnavailableError(f"Cannot connect to ledger database: {e}") from e

    async def _create_pool(self, host: str, port: int, dsn: str = "") -> asyncpg.Pool:
        if dsn:
            return await asyncpg.create_pool(
                dsn=dsn,
                min_size=self._config.pool_min_size,
                max_size=self._config.pool_max_size,
                command_timeout=self._config.command_timeout,
            )
        return await asyncpg.create_pool(
            host=host,
            port=port,
            database=self._config.database,
            user=self._config.user,
            password=self._config.password,
            min_size=self._config.pool_min_size,
            max_size=self._config.pool_max_size,
            command_timeout=self._config.command_timeout,
        )

    async def close(self) -> None:
        """Close connection pools."""
        if self._pool or self._replica_pool:
            await self._close_pools()
            logger.info("LedgerDatabase disconnected")

    async def _close_pools(self) -> None:
        if self._replica_pool:
            await self._replica_pool.close()
            self._replica_pool = None
        if self._pool:
            await self._pool.close()
            self._pool = None
        self._is_connected = False

    async def init_schema(self) -> None:
        """
        Create the schema and tables if they do not exist.

        Idempotent; connect() already does this when auto_create_schema is on.

        Raises:
            StoreUnavailableError: Not connected.
        """
        await self._init_schema(self._db_pool)

    async def _init_schema(self, pool: asyncpg.Pool) -> None:
        # connect() calls this before _is_connected is set, so the pool is passed in
        async with pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL.format(schema=self._schema))
            await conn.execute(TABLES_SQL.format(schema=self._schema))
            logger.info(f"Initialized portfolio schema: {self._schema}")

    # ==================== Access ====================

    def acquire(self, readonly: bool = False) -> Any:
        """
        Acquire a pooled connection.

        Args:
            readonly: Route to the read replica when one is configured and
                use_replica_for_reports is enabled. Mutations must never pass True.

        Returns:
            Async context manager yielding an asyncpg connection.
        """
        if readonly and self._config.use_replica_for_reports and self._replica_pool is not None:
            return self._replica_pool.acquire()
        return self._db_pool.acquire()

    async def run_in_transaction(
        self,
        operation: Callable[[asyncpg.Connection], Awaitable[T]],
        timeout: float | None = None,
    ) -> T:
        """
        Run operation(conn) inside one transaction on the primary.

        Any exception rolls the transaction back before it propagates.
        Serialization failures and deadlocks are retried up to
        max_conflict_retries times.

        Args:
            operation: Coroutine function receiving the connection.
            timeout: Deadline in seconds for one attempt; defaults to
                transaction_timeout from config. None or 0 disables it.

        Returns:
            Whatever operation returns.

        Raises:
            WriteConflictError: Conflict persisted after all retries.
            asyncio.TimeoutError: Deadline exceeded (transaction rolled back).
        """
        if timeout is None:
            timeout = self._config.transaction_timeout
        attempts = self._config.max_conflict_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                if timeout:
                    return await asyncio.wait_for(self._run_once(operation), timeout)
                return await self._run_once(operation)
            except RETRYABLE_ERRORS as e:
                if attempt >= attempts:
                    logger.error(f"Write conflict not resolved after {attempts} attempts: {e}")
                    raise WriteConflictError(f"Concurrent update conflict: {e}") from e
                logger.warning(f"Write conflict (attempt {attempt}/{attempts}), retrying: {e}")

        # Unreachable: the loop either returns or raises
        raise WriteConflictError("Transaction retries exhausted")

    async def _run_once(self, operation: Callable[[asyncpg.Connection], Awaitable[T]]) -> T:
        async with self._db_pool.acquire() as conn:
            async with conn.transaction():
                return await operation(conn)

    # ==================== Utilities ====================

    def _ensure_connected(self) -> None:
        """Ensure database is connected."""
        if not self._is_connected or not self._pool:
            raise StoreUnavailableError("LedgerDatabase is not connected. Call connect() first.")

    @property
    def _db_pool(self) -> asyncpg.Pool:
        """Get the primary pool, raising if not connected."""
        self._ensure_connected()
        assert self._pool is not None  # For type checker
        return self._pool

    @property
    def schema(self) -> str:
        return self._schema

    @property
    def is_connected(self) -> bool:
        """Check if connected."""
        return self._is_connected


def ledger_config_from_dict(db_config: dict[str, Any]) -> LedgerDatabaseConfig:
    """Build LedgerDatabaseConfig from the database.ledger config section."""
    defaults = LedgerDatabaseConfig()

    def get(key: str, default: Any) -> Any:
        return resolve_env(db_config.get(key, default))

    return LedgerDatabaseConfig(
        host=get("host", defaults.host),
        port=int(get("port", defaults.port)),
        dsn=get("dsn", defaults.dsn) or "",
        database=get("database", defaults.database),
        user=get("user", defaults.user),
        password=get("password", defaults.password),
        pool_min_size=int(get("pool_min_size", defaults.pool_min_size)),
        pool_max_size=int(get("pool_max_size", defaults.pool_max_size)),
        schema=get("schema", defaults.schema),
        auto_create_schema=_as_bool(get("auto_create_schema", defaults.auto_create_schema)),
        command_timeout=float(get("command_timeout", defaults.command_timeout)),
        transaction_timeout=float(get("transaction_timeout", defaults.transaction_timeout)),
        max_conflict_retries=int(get("max_conflict_retries", defaults.max_conflict_retries)),
        replica_host=get("replica_host", defaults.replica_host) or "",
        replica_port=int(get("replica_port", defaults.replica_port) or 0),
        use_replica_for_reports=_as_bool(
            get("use_replica_for_reports", defaults.use_replica_for_reports)
        ),
    )


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() in ("true", "yes", "1", "on")
    return bool(value)


def create_ledger_database_from_config(
    config_path: str = "config/ledger-config.yaml",
) -> LedgerDatabase:
    """
    Create LedgerDatabase from configuration file.

    Returns:
        Configured (not yet connected) LedgerDatabase instance.
    """
    config = load_config(config_path)
    db_config = config.get_dict("database.ledger", {})

    if not db_config:
        raise ValueError("Ledger database configuration not found")

    return LedgerDatabase(ledger_config_from_dict(db_config))
