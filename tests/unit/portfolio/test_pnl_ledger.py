# === MODULE PURPOSE ===
# Tests for PnLLedger: CRUD, limit+1 pagination and summary statistics.

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from src.portfolio.errors import InvalidArgumentError, NotFoundError
from src.portfolio.models import PnLUpdate
from src.portfolio.pnl_ledger import PnLLedger


class TestCreate:
    """Tests for PnLLedger.create()."""

    @pytest.mark.asyncio
    async def test_realized_at_defaults_to_now(self, db, conn, pnl_row):
        conn.fetchrow.return_value = pnl_row()
        ledger = PnLLedger(db)
        before = datetime.now(timezone.utc)

        await ledger.create(7, 1, 250.0)

        realized_at = conn.fetchrow.await_args.args[4]
        assert realized_at >= before
        assert realized_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_explicit_realized_at(self, db, conn, pnl_row):
        when = datetime(2025, 12, 31, tzinfo=timezone.utc)
        conn.fetchrow.return_value = pnl_row(realized_at=when)
        ledger = PnLLedger(db)

        entry = await ledger.create(7, 1, -40.0, realized_at=when)

        assert conn.fetchrow.await_args.args[1:] == (7, 1, -40.0, when)
        assert entry.realized_at == when


class TestPagination:
    """Tests for paginated listings."""

    @pytest.mark.asyncio
    async def test_n_plus_one_rows_has_more(self, db, conn, pnl_row):
        """limit=3 with 4 rows available -> 3 entries, has_more=True."""
        conn.fetch.return_value = [pnl_row(id=i) for i in range(4, 0, -1)]
        ledger = PnLLedger(db)

        page = await ledger.find_by_owner(7, limit=3, offset=0)

        assert [e.id for e in page.items] == [4, 3, 2]
        assert page.has_more is True
        assert conn.fetch.await_args.args[1:] == (7, 4, 0)

    @pytest.mark.asyncio
    async def test_exactly_n_rows_no_more(self, db, conn, pnl_row):
        conn.fetch.return_value = [pnl_row(id=i) for i in range(3)]
        ledger = PnLLedger(db)

        page = await ledger.find_by_owner(7, limit=3)

        assert len(page.items) == 3
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_find_by_position(self, db, conn, pnl_row):
        conn.fetch.return_value = [pnl_row(cash_position_id=5)]
        ledger = PnLLedger(db)

        page = await ledger.find_by_position(5, 7, limit=500, offset=-1)

        assert page.limit == 10
        assert page.offset == 0
        assert conn.fetch.await_args.args[1:] == (5, 7, 11, 0)
        assert "ORDER BY realized_at DESC" in conn.fetch.await_args.args[0]


class TestUpdateDelete:
    """Tests for update and soft delete."""

    @pytest.mark.asyncio
    async def test_update_amount(self, db, conn, pnl_row):
        conn.fetchrow.return_value = pnl_row(amount=300.0)
        ledger = PnLLedger(db)

        entry = await ledger.update(1, 7, PnLUpdate(amount=300.0))

        assert entry.amount == 300.0
        assert "amount = $3" in conn.fetchrow.await_args.args[0]

    @pytest.mark.asyncio
    async def test_update_cannot_clear_amount(self, db):
        ledger = PnLLedger(db)

        with pytest.raises(InvalidArgumentError):
            await ledger.update(1, 7, PnLUpdate(amount=None))

    @pytest.mark.asyncio
    async def test_update_missing_entry(self, db, conn):
        conn.fetchrow.return_value = None
        ledger = PnLLedger(db)

        with pytest.raises(NotFoundError):
            await ledger.update(1, 7, PnLUpdate(amount=1.0))

    @pytest.mark.asyncio
    async def test_find_by_id_after_delete(self, db, conn):
        conn.fetchval.return_value = 1
        conn.fetchrow.return_value = None
        ledger = PnLLedger(db)

        await ledger.delete(1, 7)
        with pytest.raises(NotFoundError):
            await ledger.find_by_id(1, 7)


class TestSummary:
    """Tests for PnLLedger.get_summary()."""

    @pytest.mark.asyncio
    async def test_summary(self, db, conn):
        conn.fetchrow.return_value = {
            "total_amount": Decimal("250"),
            "count": 3,
            "avg_amount": Decimal("83.333333"),
            "max_amount": Decimal("200"),
            "min_amount": Decimal("-50"),
            "last_realized_at": None,
        }
        ledger = PnLLedger(db)

        summary = await ledger.get_summary(7)

        assert summary.avg_amount == 83.33
        assert summary.count == 3
        assert "deleted_at IS NULL" in conn.fetchrow.await_args.args[0]

    @pytest.mark.asyncio
    async def test_summary_without_entries(self, db, conn):
        conn.fetchrow.return_value = None
        ledger = PnLLedger(db)

        summary = await ledger.get_summary(7)

        assert summary.count == 0
        assert summary.last_realized_at is None
