"""Role-based capability checks for back-office actions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping
from uuid import UUID

from sfa_api.core.settings import Settings, settings


class LoyaltyAction(str, Enum):
    """Actions gated at the entry of each loyalty operation."""

    BAG_LIFT_READ = "bag_lift:read"
    BAG_LIFT_REVIEW = "bag_lift:review"
    REDEMPTION_READ = "redemption:read"
    REDEMPTION_UPDATE = "redemption:update"
    MASON_KYC = "mason:kyc"
    POINTS_LEDGER_READ = "points_ledger:read"


@dataclass(frozen=True, slots=True)
class Actor:
    """Resolved identity of whoever triggered the operation."""

    user_id: UUID
    company_id: int
    role: str


class AccessPolicy:
    """Maps actions to the roles permitted to perform them."""

    def __init__(self, grants: Mapping[LoyaltyAction, Iterable[str]]) -> None:
        self._grants = {action: frozenset(roles) for action, roles in grants.items()}

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "AccessPolicy":
        config = config or settings
        reviewers = list(config.loyalty_reviewer_roles)
        return cls(
            {
                LoyaltyAction.BAG_LIFT_READ: reviewers,
                LoyaltyAction.BAG_LIFT_REVIEW: reviewers,
                LoyaltyAction.REDEMPTION_READ: config.loyalty_ledger_reader_roles,
                LoyaltyAction.REDEMPTION_UPDATE: reviewers,
                LoyaltyAction.MASON_KYC: reviewers,
                LoyaltyAction.POINTS_LEDGER_READ: config.loyalty_ledger_reader_roles,
            }
        )

    def authorize(self, actor: Actor, action: LoyaltyAction) -> bool:
        return actor.role in self._grants.get(action, frozenset())


__all__ = ["AccessPolicy", "Actor", "LoyaltyAction"]
