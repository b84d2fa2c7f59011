"""Mason loyalty services: ledger, bonus rules and the review state machines."""

from .bag_lifts import BagLiftReviewService, BagLiftRow
from .bonus import (
    BonusThreshold,
    calculate_extra_bonus_points,
    calculate_joining_bonus_points,
    check_referral_bonus_trigger,
    load_thresholds,
)
from .errors import (
    DuplicateSourceError,
    ForbiddenError,
    InsufficientStockError,
    InvalidTransitionError,
    LoyaltyError,
    NoOpError,
    NotFoundError,
    TerminalStateError,
)
from .kyc import UNSET, KycOutcome, MasonKycService
from .ledger import LedgerPage, LedgerRow, PointsLedger
from .reconciliation import LedgerReconciliationService, MasonDrift, ReconciliationReport
from .redemptions import RedemptionRow, RedemptionStatusService

__all__ = [
    "BagLiftReviewService",
    "BagLiftRow",
    "BonusThreshold",
    "DuplicateSourceError",
    "ForbiddenError",
    "InsufficientStockError",
    "InvalidTransitionError",
    "KycOutcome",
    "LedgerPage",
    "LedgerReconciliationService",
    "LedgerRow",
    "LoyaltyError",
    "MasonDrift",
    "MasonKycService",
    "NoOpError",
    "NotFoundError",
    "PointsLedger",
    "ReconciliationReport",
    "RedemptionRow",
    "RedemptionStatusService",
    "TerminalStateError",
    "UNSET",
    "calculate_extra_bonus_points",
    "calculate_joining_bonus_points",
    "check_referral_bonus_trigger",
    "load_thresholds",
]
