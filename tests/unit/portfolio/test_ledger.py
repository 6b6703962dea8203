# === MODULE PURPOSE ===
# Tests for the PortfolioLedger composition root.

import pytest

import src.portfolio as portfolio
from src.portfolio.ledger import PortfolioLedger, create_portfolio_ledger_from_config


class TestPortfolioLedger:
    """Tests for PortfolioLedger wiring."""

    def test_components_share_one_database(self, db):
        ledger = PortfolioLedger(db)

        components = [
            ledger.cash,
            ledger.pnl,
            ledger.transfers,
            ledger.realizations,
            ledger.bonds,
            ledger.coupons,
            ledger.realized_bonds,
            ledger.gains,
        ]
        assert all(component._db is db for component in components)
        assert ledger.gains._coupons is ledger.coupons

    @pytest.mark.asyncio
    async def test_stop_closes_pools(self, db, pool):
        db._pool = pool
        ledger = PortfolioLedger(db)

        await ledger.stop()

        pool.close.assert_awaited_once()
        assert db.is_connected is False

    def test_from_config_file(self, tmp_path):
        path = tmp_path / "ledger.yaml"
        path.write_text("database:\n  ledger:\n    schema: books\n", encoding="utf-8")

        ledger = create_portfolio_ledger_from_config(str(path))

        assert ledger.db.schema == "books"
        assert ledger.db.is_connected is False


class TestPublicApi:
    """Tests for the names exported by src.portfolio."""

    def test_exports_resolve(self):
        missing = [name for name in portfolio.__all__ if not hasattr(portfolio, name)]

        assert missing == []

    def test_callers_pass_user_id_not_identity_objects(self):
        assert "Identity" not in portfolio.__all__
        assert not hasattr(portfolio, "Identity")
