"""SQLAlchemy models package."""

from .user import User  # noqa: F401
from .mason import (  # noqa: F401
    KycSubmission,
    KycSubmissionStatus,
    MasonAccount,
    MasonKycStatus,
)
from .loyalty import (  # noqa: F401
    BagLift,
    BagLiftStatus,
    PointsLedgerEntry,
    PointsSourceType,
    RedemptionStatus,
    Reward,
    RewardRedemption,
)
