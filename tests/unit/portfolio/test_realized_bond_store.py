# === MODULE PURPOSE ===
# Tests for RealizedBondStore.

from datetime import datetime, timezone

import pytest

from src.portfolio.errors import InvalidArgumentError, NotFoundError
from src.portfolio.models import RealizedBondCreate, RealizedBondUpdate
from src.portfolio.realized_bond_store import RealizedBondStore


class TestCreate:
    """Tests for RealizedBondStore.create()."""

    @pytest.mark.asyncio
    async def test_defaults(self, db, conn, realized_bond_row):
        """Omitted realized_date is now, omitted coupon total is 0."""
        conn.fetchrow.return_value = realized_bond_row()
        store = RealizedBondStore(db)
        before = datetime.now(timezone.utc)

        await store.create(7, RealizedBondCreate(bond_position_id=1, realized_price=1_020_000.0))

        _, user_id, bond_position_id, price, coupons, realized_date, note = (
            conn.fetchrow.await_args.args
        )
        assert (user_id, bond_position_id, price) == (7, 1, 1_020_000.0)
        assert coupons == 0.0
        assert realized_date >= before
        assert note is None

    @pytest.mark.asyncio
    async def test_negative_coupons(self, db):
        store = RealizedBondStore(db)

        with pytest.raises(InvalidArgumentError):
            await store.create(
                7,
                RealizedBondCreate(bond_position_id=1, realized_price=1.0, total_coupons_received=-1),
            )

    @pytest.mark.asyncio
    async def test_unknown_bond(self, db, conn):
        conn.fetchrow.return_value = None
        store = RealizedBondStore(db)

        with pytest.raises(NotFoundError):
            await store.create(7, RealizedBondCreate(bond_position_id=9, realized_price=1.0))


class TestListings:
    """Tests for paginated listings."""

    @pytest.mark.asyncio
    async def test_find_by_owner_has_more(self, db, conn, realized_bond_row):
        conn.fetch.return_value = [realized_bond_row(id=i) for i in range(1, 4)]
        store = RealizedBondStore(db)

        page = await store.find_by_owner(7, limit=2)

        assert len(page.items) == 2
        assert page.has_more is True
        assert "ORDER BY realized_date DESC" in conn.fetch.await_args.args[0]

    @pytest.mark.asyncio
    async def test_find_by_bond_position(self, db, conn, realized_bond_row):
        conn.fetch.return_value = [realized_bond_row()]
        store = RealizedBondStore(db)

        page = await store.find_by_bond_position(1, 7, limit=5, offset=5)

        assert page.has_more is False
        assert conn.fetch.await_args.args[1:] == (7, 1, 6, 5)


class TestUpdateDelete:
    """Tests for update and soft delete."""

    @pytest.mark.asyncio
    async def test_update_price(self, db, conn, realized_bond_row):
        conn.fetchrow.return_value = realized_bond_row(realized_price=1_010_000.0)
        store = RealizedBondStore(db)

        realized = await store.update(1, 7, RealizedBondUpdate(realized_price=1_010_000.0))

        assert realized.realized_price == 1_010_000.0

    @pytest.mark.asyncio
    async def test_clear_note_allowed(self, db, conn, realized_bond_row):
        conn.fetchrow.return_value = realized_bond_row()
        store = RealizedBondStore(db)

        await store.update(1, 7, RealizedBondUpdate(note=None))

        assert "note = $3" in conn.fetchrow.await_args.args[0]

    @pytest.mark.asyncio
    async def test_soft_delete(self, db, conn):
        conn.fetchval.return_value = 1
        store = RealizedBondStore(db)

        await store.delete(1, 7)

        assert "deleted_at = CURRENT_TIMESTAMP" in conn.fetchval.await_args.args[0]
