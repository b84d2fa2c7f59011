"""Side-effect-free point rules for bag slabs, referrals and joining bonuses.

Thresholds are business configuration (see ``loyalty_slab_bonuses`` and
``loyalty_referral_milestones`` in settings). A threshold is crossed by a lift
when ``prior < threshold <= prior + new``, so the award for any threshold can be
earned at most once per mason as the cumulative total grows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence

from sfa_api.core.settings import settings


@dataclass(frozen=True, slots=True)
class BonusThreshold:
    """Cumulative bag total that awards ``points`` when crossed."""

    threshold: int
    points: int
    starts_on: date | None = None
    ends_on: date | None = None

    def active_on(self, when: date) -> bool:
        if self.starts_on is not None and when < self.starts_on:
            return False
        if self.ends_on is not None and when > self.ends_on:
            return False
        return True

    def crossed(self, prior_total: int, new_total: int) -> bool:
        return prior_total < self.threshold <= new_total

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BonusThreshold":
        return cls(
            threshold=int(data["threshold"]),
            points=int(data["points"]),
            starts_on=_parse_date(data.get("startsOn") or data.get("starts_on")),
            ends_on=_parse_date(data.get("endsOn") or data.get("ends_on")),
        )


def _parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def load_thresholds(raw: Iterable[Mapping[str, Any]]) -> list[BonusThreshold]:
    """Build threshold rules from configuration, ordered by bag count."""

    return sorted((BonusThreshold.from_mapping(item) for item in raw), key=lambda rule: rule.threshold)


def _validate_counts(prior_bags_lifted: int, new_bag_count: int) -> int:
    if new_bag_count < 0:
        raise ValueError("new_bag_count must not be negative")
    return max(prior_bags_lifted, 0)


def calculate_extra_bonus_points(
    prior_bags_lifted: int,
    new_bag_count: int,
    purchase_date: datetime | date,
    *,
    slabs: Sequence[BonusThreshold] | None = None,
) -> int:
    """Extra points for every slab this lift pushes the mason's total across."""

    prior = _validate_counts(prior_bags_lifted, new_bag_count)
    rules = slabs if slabs is not None else load_thresholds(settings.loyalty_slab_bonuses)
    purchased_on = purchase_date.date() if isinstance(purchase_date, datetime) else purchase_date
    new_total = prior + new_bag_count

    return sum(
        rule.points
        for rule in rules
        if rule.points > 0 and rule.crossed(prior, new_total) and rule.active_on(purchased_on)
    )


def check_referral_bonus_trigger(
    prior_bags_lifted: int,
    new_bag_count: int,
    *,
    milestones: Sequence[BonusThreshold] | None = None,
) -> int:
    """Points owed to the referring mason when the referred mason hits a milestone."""

    prior = _validate_counts(prior_bags_lifted, new_bag_count)
    rules = milestones if milestones is not None else load_thresholds(settings.loyalty_referral_milestones)
    new_total = prior + new_bag_count

    return sum(rule.points for rule in rules if rule.points > 0 and rule.crossed(prior, new_total))


def calculate_joining_bonus_points(*, amount: int | None = None) -> int:
    """Fixed one-time bonus granted on first KYC verification; ``0`` disables it."""

    value = settings.loyalty_joining_bonus_points if amount is None else amount
    return max(int(value), 0)


__all__ = [
    "BonusThreshold",
    "calculate_extra_bonus_points",
    "calculate_joining_bonus_points",
    "check_referral_bonus_trigger",
    "load_thresholds",
]
