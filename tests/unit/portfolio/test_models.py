# === MODULE PURPOSE ===
# Tests for ledger data models and conversions.

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from src.portfolio.errors import InvalidArgumentError
from src.portfolio.models import (
    BondPosition,
    BondWithPotentialGain,
    CashPosition,
    CashStatus,
    CouponFrequency,
    MarketPriceType,
    PnLSummary,
    coerce_enum,
    round_money,
)


class TestRoundMoney:
    """Tests for round_money()."""

    def test_half_up(self):
        assert round_money(0.125) == 0.13
        assert round_money(2.675) == 2.68
        assert round_money(-0.125) == -0.13

    def test_repeating_fraction(self):
        assert round_money(250 / 3) == 83.33


class TestCoerceEnum:
    """Tests for coerce_enum()."""

    def test_accepts_member_and_value(self):
        assert coerce_enum(CouponFrequency, CouponFrequency.ANNUAL, "f") is CouponFrequency.ANNUAL
        assert coerce_enum(CouponFrequency, "semi-annual", "f") is CouponFrequency.SEMI_ANNUAL

    def test_unknown_value(self):
        with pytest.raises(InvalidArgumentError, match="coupon_frequency"):
            coerce_enum(CouponFrequency, "weekly", "coupon_frequency")


class TestPnLSummary:
    """Tests for PnLSummary.from_record()."""

    def test_summary_of_three_entries(self):
        """Entries {100, -50, 200}: avg 83.33 after half-up rounding."""
        last = datetime(2026, 2, 1, tzinfo=timezone.utc)
        row = {
            "total_amount": Decimal("250.00"),
            "count": 3,
            "avg_amount": Decimal("83.3333333333333333"),
            "max_amount": Decimal("200.00"),
            "min_amount": Decimal("-50.00"),
            "last_realized_at": last,
        }

        summary = PnLSummary.from_record(row)

        assert summary.total_amount == 250.0
        assert summary.count == 3
        assert summary.avg_amount == 83.33
        assert summary.max_amount == 200.0
        assert summary.min_amount == -50.0
        assert summary.to_dict()["last_realized_at"] == last.isoformat()

    def test_empty_defaults(self):
        d = PnLSummary().to_dict()

        assert d["count"] == 0
        assert d["total_amount"] == 0.0
        assert d["last_realized_at"] is None


class TestCashPosition:
    """Tests for CashPosition conversions."""

    def test_from_record_converts_decimal(self, cash_row):
        position = CashPosition.from_record(cash_row(amount=Decimal("1234.50"), status="maturity"))

        assert position.amount == 1234.5
        assert isinstance(position.amount, float)
        assert position.status == CashStatus.MATURITY
        assert position.is_deleted is False

    def test_to_dict(self, cash_row):
        d = CashPosition.from_record(cash_row()).to_dict()

        assert d["status"] == "active"
        assert d["yield_period"] == "per_year"
        assert d["deleted_at"] is None
        assert d["created_at"].startswith("2026-03-02")


class TestBondPosition:
    """Tests for BondPosition market price selection."""

    def test_tracked_price_when_no_override(self, bond_row):
        bond = BondPosition.from_record(bond_row())

        assert bond.market_price_type == MarketPriceType.MARKET_TRACKING
        assert bond.effective_market_price == 1_050_000.0

    def test_override_wins_even_when_equal(self, bond_row):
        bond = BondPosition.from_record(bond_row(market_price_override=1_050_000.0))

        assert bond.market_price_type == MarketPriceType.USER_OVERRIDE
        assert bond.effective_market_price == 1_050_000.0

    def test_missing_market_price_column(self, bond_row):
        row = bond_row()
        del row["market_price"]

        bond = BondPosition.from_record(row)

        assert bond.market_price is None
        assert bond.effective_market_price is None

    def test_gain_view_to_dict(self, bond_row):
        bond = BondPosition.from_record(bond_row())
        view = BondWithPotentialGain(
            bond=bond,
            total_coupons_received=30_000.0,
            potential_gain=80_000.0,
        )

        d = view.to_dict()

        assert d["bond_id"] == "US912828XG55"
        assert d["coupon_frequency"] == "semi-annual"
        assert d["potential_gain"] == 80_000.0
        assert d["market_price_type"] == "market_tracking"
