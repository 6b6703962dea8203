# === MODULE PURPOSE ===
# Portfolio ledger: cash and bond holdings, their realizations and valuations.

from .bond_store import BondPositionStore
from .cash_store import CashPositionStore
from .coupon_store import CouponStore
from .database import LedgerDatabase, LedgerDatabaseConfig, create_ledger_database_from_config
from .errors import (
    InvalidArgumentError,
    InvalidStateError,
    LedgerError,
    NotFoundError,
    StoreUnavailableError,
    WriteConflictError,
)
from .gain_calculator import GainCalculator, compute_potential_gain
from .ledger import PortfolioLedger, create_portfolio_ledger_from_config
from .models import (
    BondPosition,
    BondPositionCreate,
    BondPositionUpdate,
    BondStatus,
    BondWithPotentialGain,
    CashCategory,
    CashPosition,
    CashPositionCreate,
    CashPositionUpdate,
    CashStatus,
    Coupon,
    CouponCreate,
    CouponFrequency,
    CouponStatus,
    CouponUpdate,
    MarketPriceType,
    MoveAssetResult,
    PnLSummary,
    PnLUpdate,
    PortfolioGainSummary,
    RealizedBond,
    RealizedBondCreate,
    RealizedBondUpdate,
    RealizedPnL,
    RealizeResult,
    YieldFrequencyType,
)
from .pagination import Page
from .patch import UNSET
from .pnl_ledger import PnLLedger
from .realization import RealizationCoordinator
from .realized_bond_store import RealizedBondStore
from .transfer import TransferCoordinator

__all__ = [
    "UNSET",
    "BondPosition",
    "BondPositionCreate",
    "BondPositionStore",
    "BondPositionUpdate",
    "BondStatus",
    "BondWithPotentialGain",
    "CashCategory",
    "CashPosition",
    "CashPositionCreate",
    "CashPositionStore",
    "CashPositionUpdate",
    "CashStatus",
    "Coupon",
    "CouponCreate",
    "CouponFrequency",
    "CouponStatus",
    "CouponStore",
    "CouponUpdate",
    "GainCalculator",
    "InvalidArgumentError",
    "InvalidStateError",
    "LedgerDatabase",
    "LedgerDatabaseConfig",
    "LedgerError",
    "MarketPriceType",
    "MoveAssetResult",
    "NotFoundError",
    "Page",
    "PnLLedger",
    "PnLSummary",
    "PnLUpdate",
    "PortfolioGainSummary",
    "PortfolioLedger",
    "RealizationCoordinator",
    "RealizeResult",
    "RealizedBond",
    "RealizedBondCreate",
    "RealizedBondStore",
    "RealizedBondUpdate",
    "RealizedPnL",
    "StoreUnavailableError",
    "TransferCoordinator",
    "WriteConflictError",
    "YieldFrequencyType",
    "compute_potential_gain",
    "create_ledger_database_from_config",
    "create_portfolio_ledger_from_config",
]
