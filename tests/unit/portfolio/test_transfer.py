# === MODULE PURPOSE ===
# Tests for TransferCoordinator.move_asset().
# A move is all-or-nothing: preconditions are checked on locked rows and any
# failure leaves both positions untouched.

import pytest

from src.portfolio.errors import InvalidArgumentError, InvalidStateError, NotFoundError
from src.portfolio.transfer import TransferCoordinator


class TestMoveAsset:
    """Tests for TransferCoordinator.move_asset()."""

    @pytest.mark.asyncio
    async def test_move_credits_target_and_retires_source(self, db, conn, cash_row):
        """Matured 500 into active 1000 -> target 1500, source soft-deleted."""
        conn.fetch.return_value = [
            cash_row(id=1, amount=500.0, status="maturity"),
            cash_row(id=2, amount=1000.0, status="active"),
        ]
        conn.fetchrow.return_value = cash_row(id=2, amount=1500.0)
        coordinator = TransferCoordinator(db)

        result = await coordinator.move_asset(1, 2, user_id=7)

        assert result.moved_amount == 500.0
        assert result.target.amount == 1500.0
        assert result.source.id == 1

        lock_sql = conn.fetch.await_args.args[0]
        assert "FOR UPDATE" in lock_sql
        assert "ORDER BY id" in lock_sql
        assert conn.fetch.await_args.args[1] == [1, 2]

        credit_args = conn.fetchrow.await_args.args
        assert credit_args[1:] == (1500.0, 2, 7)

        retire_sql, source_id, user_id = conn.execute.await_args.args
        assert "deleted_at = CURRENT_TIMESTAMP" in retire_sql
        assert (source_id, user_id) == (1, 7)

        assert len(conn.transactions) == 1
        assert conn.transactions[0].committed

    @pytest.mark.asyncio
    async def test_active_source_rejected(self, db, conn, cash_row):
        """Source must be matured; nothing is written and the transaction rolls back."""
        conn.fetch.return_value = [
            cash_row(id=1, amount=500.0, status="active"),
            cash_row(id=2, status="active"),
        ]
        coordinator = TransferCoordinator(db)

        with pytest.raises(InvalidStateError, match="maturity"):
            await coordinator.move_asset(1, 2, user_id=7)

        conn.fetchrow.assert_not_awaited()
        conn.execute.assert_not_awaited()
        assert conn.transactions[0].rolled_back

    @pytest.mark.asyncio
    async def test_matured_target_rejected(self, db, conn, cash_row):
        conn.fetch.return_value = [
            cash_row(id=1, status="maturity"),
            cash_row(id=2, status="maturity"),
        ]
        coordinator = TransferCoordinator(db)

        with pytest.raises(InvalidStateError, match="active"):
            await coordinator.move_asset(1, 2, user_id=7)

        conn.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_self_transfer_rejected_before_db(self, db, conn):
        coordinator = TransferCoordinator(db)

        with pytest.raises(InvalidArgumentError):
            await coordinator.move_asset(3, 3, user_id=7)

        conn.fetch.assert_not_awaited()
        assert conn.transactions == []

    @pytest.mark.asyncio
    async def test_missing_source(self, db, conn, cash_row):
        """A deleted or foreign source is simply not returned by the lock query."""
        conn.fetch.return_value = [cash_row(id=2, status="active")]
        coordinator = TransferCoordinator(db)

        with pytest.raises(NotFoundError, match="Source"):
            await coordinator.move_asset(1, 2, user_id=7)

    @pytest.mark.asyncio
    async def test_missing_target(self, db, conn, cash_row):
        conn.fetch.return_value = [cash_row(id=1, status="maturity")]
        coordinator = TransferCoordinator(db)

        with pytest.raises(NotFoundError, match="Target"):
            await coordinator.move_asset(1, 2, user_id=7)

        conn.fetchrow.assert_not_awaited()
        assert conn.transactions[0].rolled_back

    @pytest.mark.asyncio
    async def test_second_move_of_same_source_fails(self, db, conn, cash_row):
        """After a move the source is deleted, so repeating it is NotFound."""
        conn.fetch.side_effect = [
            [cash_row(id=1, amount=500.0, status="maturity"), cash_row(id=2, amount=1000.0)],
            [cash_row(id=2, amount=1500.0)],
        ]
        conn.fetchrow.return_value = cash_row(id=2, amount=1500.0)
        coordinator = TransferCoordinator(db)

        await coordinator.move_asset(1, 2, user_id=7)
        with pytest.raises(NotFoundError):
            await coordinator.move_asset(1, 2, user_id=7)

        assert conn.execute.await_count == 1
