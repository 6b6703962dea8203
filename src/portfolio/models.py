# === MODULE PURPOSE ===
# Data models for the portfolio ledger: persisted rows, derived views and
# typed request payloads passed into stores and coordinators.

# === KEY CONCEPTS ===
# - Row models (CashPosition, RealizedPnL, BondPosition, Coupon, RealizedBond)
#   are built from asyncpg records via from_record()
# - *Create payloads carry required fields; *Update payloads default every
#   field to UNSET so "not supplied" and "set to None" stay distinguishable
# - CashPosition state machine: ACTIVE -> MATURITY (realize) -> soft-deleted (transfer source)
# - BondPosition state machine: ACTIVE -> INACTIVE | MATURED | SOLD (all terminal)

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from src.portfolio.errors import InvalidArgumentError
from src.portfolio.patch import UNSET


class CashStatus(Enum):
    """Lifecycle status of a cash position."""

    ACTIVE = "active"  # Accepting funds
    MATURITY = "maturity"  # Realized, may be moved into an active position


class CashCategory(Enum):
    """Kind of cash holding."""

    LIQUID = "liquid"
    TIME_DEPOSIT = "time_deposit"
    MONEY_MARKET = "money_market"
    OTHER = "other"


class YieldFrequencyType(Enum):
    """Unit of the yield payment frequency."""

    DAILY = "daily"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class CouponFrequency(Enum):
    """How often a bond pays its coupon."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUAL = "semi-annual"
    ANNUAL = "annual"


class BondStatus(Enum):
    """Lifecycle status of a bond position."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    MATURED = "matured"
    SOLD = "sold"


# Allowed status moves; staying in the same status is always allowed
BOND_STATUS_TRANSITIONS: dict[BondStatus, frozenset[BondStatus]] = {
    BondStatus.ACTIVE: frozenset({BondStatus.INACTIVE, BondStatus.MATURED, BondStatus.SOLD}),
    BondStatus.INACTIVE: frozenset(),
    BondStatus.MATURED: frozenset(),
    BondStatus.SOLD: frozenset(),
}


class CouponStatus(Enum):
    """Payment status of a scheduled coupon."""

    PENDING = "pending"
    RECEIVED = "received"
    MISSED = "missed"


class MarketPriceType(Enum):
    """Source of the market price used for a bond valuation."""

    USER_OVERRIDE = "user_override"
    MARKET_TRACKING = "market_tracking"


DEFAULT_YIELD_PERIOD = "per_year"


def _to_float(value: Any) -> float | None:
    """Convert NUMERIC/Decimal values to float, keeping None."""
    return float(value) if value is not None else None


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def coerce_enum(enum_cls: type[Enum], value: Any, field_name: str) -> Any:
    """
    Convert a raw value to enum_cls.

    Raises:
        InvalidArgumentError: If value is not a member of enum_cls.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(str(m.value) for m in enum_cls)
        raise InvalidArgumentError(
            f"Invalid {field_name}: {value!r} (expected one of: {allowed})"
        ) from None


def round_money(value: float) -> float:
    """Round half-up to 2 decimal places."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


# ==================== Cash ====================


@dataclass
class CashPosition:
    """A cash holding (savings, deposit, money market) owned by one user."""

    id: int
    user_id: int
    account: str
    bank: str
    amount: float
    yield_frequency_type: str
    yield_frequency_value: int
    yield_payment_type: str
    category: str
    yield_rate: float | None = None
    yield_period: str = DEFAULT_YIELD_PERIOD
    has_maturity: bool = False
    maturity_date: datetime | None = None
    note: str | None = None
    status: CashStatus = CashStatus.ACTIVE
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @classmethod
    def from_record(cls, row: Any) -> CashPosition:
        """Create from a database record."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            account=row["account"],
            bank=row["bank"],
            amount=_to_float(row["amount"]) or 0.0,
            yield_rate=_to_float(row["yield_rate"]),
            yield_period=row["yield_period"],
            yield_frequency_type=row["yield_frequency_type"],
            yield_frequency_value=row["yield_frequency_value"],
            yield_payment_type=row["yield_payment_type"],
            has_maturity=row["has_maturity"],
            maturity_date=row["maturity_date"],
            note=row["note"],
            status=CashStatus(row["status"]),
            category=row["category"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            deleted_at=row["deleted_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for the response envelope."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "account": self.account,
            "bank": self.bank,
            "amount": self.amount,
            "yield_rate": self.yield_rate,
            "yield_period": self.yield_period,
            "yield_frequency_type": self.yield_frequency_type,
            "yield_frequency_value": self.yield_frequency_value,
            "yield_payment_type": self.yield_payment_type,
            "has_maturity": self.has_maturity,
            "maturity_date": _iso(self.maturity_date),
            "note": self.note,
            "status": self.status.value,
            "category": self.category,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }


@dataclass
class RealizedPnL:
    """A booked profit (positive) or loss (negative) for a cash position."""

    id: int
    user_id: int
    cash_position_id: int
    amount: float
    realized_at: datetime
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @classmethod
    def from_record(cls, row: Any) -> RealizedPnL:
        """Create from a database record."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            cash_position_id=row["cash_position_id"],
            amount=_to_float(row["amount"]) or 0.0,
            realized_at=row["realized_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            deleted_at=row["deleted_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "cash_position_id": self.cash_position_id,
            "amount": self.amount,
            "realized_at": _iso(self.realized_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }


@dataclass
class PnLSummary:
    """Aggregate statistics over a user's alive PnL entries."""

    total_amount: float = 0.0
    count: int = 0
    avg_amount: float = 0.0
    max_amount: float = 0.0
    min_amount: float = 0.0
    last_realized_at: datetime | None = None

    @classmethod
    def from_record(cls, row: Any) -> PnLSummary:
        """Create from the aggregate row; empty aggregates come back as zeros."""
        return cls(
            total_amount=_to_float(row["total_amount"]) or 0.0,
            count=int(row["count"] or 0),
            avg_amount=round_money(_to_float(row["avg_amount"]) or 0.0),
            max_amount=_to_float(row["max_amount"]) or 0.0,
            min_amount=_to_float(row["min_amount"]) or 0.0,
            last_realized_at=row["last_realized_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_amount": self.total_amount,
            "count": self.count,
            "avg_amount": self.avg_amount,
            "max_amount": self.max_amount,
            "min_amount": self.min_amount,
            "last_realized_at": _iso(self.last_realized_at),
        }


@dataclass
class MoveAssetResult:
    """Outcome of a transfer: source as it was before the move, credited target."""

    source: CashPosition
    target: CashPosition
    moved_amount: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.to_dict(),
            "target": self.target.to_dict(),
            "moved_amount": self.moved_amount,
        }


@dataclass
class RealizeResult:
    """Outcome of a realization: the matured position and its booked PnL."""

    position: CashPosition
    pnl: RealizedPnL

    def to_dict(self) -> dict[str, Any]:
        return {"position": self.position.to_dict(), "pnl": self.pnl.to_dict()}


@dataclass
class CashPositionCreate:
    """Payload for creating a cash position."""

    account: str
    bank: str
    amount: float
    yield_frequency_type: YieldFrequencyType | str
    yield_frequency_value: int
    yield_payment_type: str
    category: CashCategory | str
    yield_rate: float | None = None
    yield_period: str = DEFAULT_YIELD_PERIOD
    has_maturity: bool = False
    maturity_date: datetime | None = None
    note: str | None = None


@dataclass
class CashPositionUpdate:
    """Partial update for a cash position. Unsupplied fields stay UNSET."""

    account: Any = UNSET
    bank: Any = UNSET
    amount: Any = UNSET
    yield_rate: Any = UNSET
    yield_period: Any = UNSET
    yield_frequency_type: Any = UNSET
    yield_frequency_value: Any = UNSET
    yield_payment_type: Any = UNSET
    has_maturity: Any = UNSET
    maturity_date: Any = UNSET
    note: Any = UNSET
    status: Any = UNSET
    category: Any = UNSET


@dataclass
class PnLUpdate:
    """Partial update for a PnL entry."""

    amount: Any = UNSET
    realized_at: Any = UNSET


# ==================== Bonds ====================


@dataclass
class BondPosition:
    """
    A bond holding.

    market_price comes from the external tracker and is read-only here;
    market_price_override is set by the owner and wins when present.
    """

    id: int
    user_id: int
    bond_id: str
    purchase_price: float
    coupon_rate: float
    coupon_frequency: CouponFrequency
    quantity: int
    name: str | None = None
    next_coupon_date: date | None = None
    maturity_date: date | None = None
    status: BondStatus = BondStatus.ACTIVE
    note: str | None = None
    market_price: float | None = None
    market_price_override: float | None = None
    market_price_override_date: datetime | None = None
    secondary_market: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def market_price_type(self) -> MarketPriceType:
        if self.market_price_override is not None:
            return MarketPriceType.USER_OVERRIDE
        return MarketPriceType.MARKET_TRACKING

    @property
    def effective_market_price(self) -> float | None:
        """Override when set, otherwise the tracked price."""
        if self.market_price_override is not None:
            return self.market_price_override
        return self.market_price

    @classmethod
    def from_record(cls, row: Any) -> BondPosition:
        """Create from a database record (market_price may be absent)."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            bond_id=row["bond_id"],
            name=row["name"],
            purchase_price=_to_float(row["purchase_price"]) or 0.0,
            coupon_rate=_to_float(row["coupon_rate"]) or 0.0,
            coupon_frequency=CouponFrequency(row["coupon_frequency"]),
            next_coupon_date=row["next_coupon_date"],
            maturity_date=row["maturity_date"],
            quantity=row["quantity"],
            status=BondStatus(row["status"]),
            note=row["note"],
            market_price=_to_float(row.get("market_price")),
            market_price_override=_to_float(row["market_price_override"]),
            market_price_override_date=row["market_price_override_date"],
            secondary_market=row["secondary_market"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            deleted_at=row["deleted_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "bond_id": self.bond_id,
            "name": self.name,
            "purchase_price": self.purchase_price,
            "coupon_rate": self.coupon_rate,
            "coupon_frequency": self.coupon_frequency.value,
            "next_coupon_date": _iso(self.next_coupon_date),
            "maturity_date": _iso(self.maturity_date),
            "quantity": self.quantity,
            "status": self.status.value,
            "note": self.note,
            "market_price": self.market_price,
            "market_price_override": self.market_price_override,
            "market_price_override_date": _iso(self.market_price_override_date),
            "secondary_market": self.secondary_market,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class BondWithPotentialGain:
    """Bond position enriched with coupon income and liquidation gain."""

    bond: BondPosition
    total_coupons_received: float = 0.0
    potential_gain: float = 0.0
    market_price_type: MarketPriceType = MarketPriceType.MARKET_TRACKING

    def to_dict(self) -> dict[str, Any]:
        result = self.bond.to_dict()
        result.update(
            {
                "total_coupons_received": self.total_coupons_received,
                "potential_gain": self.potential_gain,
                "market_price_type": self.market_price_type.value,
            }
        )
        return result


@dataclass
class Coupon:
    """A scheduled coupon payment of a bond position."""

    id: int
    user_id: int
    bond_position_id: int
    coupon_number: int
    payment_date: date
    amount: float
    status: CouponStatus = CouponStatus.PENDING
    note: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @classmethod
    def from_record(cls, row: Any) -> Coupon:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            bond_position_id=row["bond_position_id"],
            coupon_number=row["coupon_number"],
            payment_date=row["payment_date"],
            amount=_to_float(row["amount"]) or 0.0,
            status=CouponStatus(row["status"]),
            note=row["note"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            deleted_at=row["deleted_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "bond_position_id": self.bond_position_id,
            "coupon_number": self.coupon_number,
            "payment_date": _iso(self.payment_date),
            "amount": self.amount,
            "status": self.status.value,
            "note": self.note,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }


@dataclass
class RealizedBond:
    """A closed bond position with its exit price and coupon income."""

    id: int
    user_id: int
    bond_position_id: int
    realized_price: float
    total_coupons_received: float
    realized_date: datetime
    note: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @classmethod
    def from_record(cls, row: Any) -> RealizedBond:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            bond_position_id=row["bond_position_id"],
            realized_price=_to_float(row["realized_price"]) or 0.0,
            total_coupons_received=_to_float(row["total_coupons_received"]) or 0.0,
            realized_date=row["realized_date"],
            note=row["note"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            deleted_at=row["deleted_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "bond_position_id": self.bond_position_id,
            "realized_price": self.realized_price,
            "total_coupons_received": self.total_coupons_received,
            "realized_date": _iso(self.realized_date),
            "note": self.note,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }


@dataclass
class BondPositionCreate:
    """Payload for adding a bond to a portfolio."""

    bond_id: str
    purchase_price: float
    coupon_rate: float
    coupon_frequency: CouponFrequency | str
    maturity_date: date
    quantity: int
    name: str | None = None
    next_coupon_date: date | None = None
    secondary_market: bool = False
    note: str | None = None


@dataclass
class BondPositionUpdate:
    """Partial update for a bond position. market_price is owned by the tracker."""

    name: Any = UNSET
    purchase_price: Any = UNSET
    coupon_rate: Any = UNSET
    coupon_frequency: Any = UNSET
    next_coupon_date: Any = UNSET
    maturity_date: Any = UNSET
    quantity: Any = UNSET
    note: Any = UNSET
    status: Any = UNSET
    secondary_market: Any = UNSET


@dataclass
class CouponCreate:
    bond_position_id: int
    coupon_number: int
    payment_date: date
    amount: float
    status: CouponStatus | str = CouponStatus.PENDING
    note: str | None = None


@dataclass
class CouponUpdate:
    coupon_number: Any = UNSET
    payment_date: Any = UNSET
    amount: Any = UNSET
    status: Any = UNSET
    note: Any = UNSET


@dataclass
class RealizedBondCreate:
    """Payload for recording a closed bond; omitted date/coupons get defaults."""

    bond_position_id: int
    realized_price: float
    total_coupons_received: float | None = None
    realized_date: datetime | None = None
    note: str | None = None


@dataclass
class RealizedBondUpdate:
    realized_price: Any = UNSET
    total_coupons_received: Any = UNSET
    realized_date: Any = UNSET
    note: Any = UNSET


@dataclass
class PortfolioGainSummary:
    """Portfolio-level totals over a list of bond valuations."""

    bond_count: int = 0
    total_purchase_price: float = 0.0
    total_market_value: float = 0.0
    total_coupons_received: float = 0.0
    total_potential_gain: float = 0.0
    override_count: int = 0
    bond_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "bond_count": self.bond_count,
            "total_purchase_price": self.total_purchase_price,
            "total_market_value": self.total_market_value,
            "total_coupons_received": self.total_coupons_received,
            "total_potential_gain": self.total_potential_gain,
            "override_count": self.override_count,
            "bond_ids": list(self.bond_ids),
        }
