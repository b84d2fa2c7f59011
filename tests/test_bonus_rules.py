from datetime import date, datetime, timezone

import pytest

from sfa_api.services.loyalty.bonus import (
    BonusThreshold,
    calculate_extra_bonus_points,
    calculate_joining_bonus_points,
    check_referral_bonus_trigger,
    load_thresholds,
)


SLABS = [BonusThreshold(100, 20), BonusThreshold(250, 50), BonusThreshold(500, 100)]
MILESTONES = [BonusThreshold(100, 100)]
PURCHASED = datetime(2026, 3, 1, tzinfo=timezone.utc)


def test_slab_bonus_awarded_when_threshold_crossed() -> None:
    assert calculate_extra_bonus_points(95, 10, PURCHASED, slabs=SLABS) == 20


def test_slab_bonus_zero_when_nothing_crossed() -> None:
    assert calculate_extra_bonus_points(0, 10, PURCHASED, slabs=SLABS) == 0
    assert calculate_extra_bonus_points(100, 50, PURCHASED, slabs=SLABS) == 0


def test_slab_bonus_counts_landing_exactly_on_threshold() -> None:
    assert calculate_extra_bonus_points(90, 10, PURCHASED, slabs=SLABS) == 20
    assert calculate_extra_bonus_points(100, 1, PURCHASED, slabs=SLABS) == 0


def test_slab_bonus_sums_every_crossed_slab() -> None:
    assert calculate_extra_bonus_points(90, 200, PURCHASED, slabs=SLABS) == 70
    assert calculate_extra_bonus_points(0, 600, PURCHASED, slabs=SLABS) == 170


def test_slab_bonus_is_monotonic_in_new_bags() -> None:
    awards = [calculate_extra_bonus_points(80, count, PURCHASED, slabs=SLABS) for count in range(0, 500, 7)]
    assert awards == sorted(awards)


def test_slab_bonus_respects_purchase_window() -> None:
    seasonal = [BonusThreshold(100, 40, starts_on=date(2026, 1, 1), ends_on=date(2026, 1, 31))]

    assert calculate_extra_bonus_points(95, 10, datetime(2026, 1, 15), slabs=seasonal) == 40
    assert calculate_extra_bonus_points(95, 10, date(2026, 2, 1), slabs=seasonal) == 0


def test_negative_new_bag_count_rejected() -> None:
    with pytest.raises(ValueError):
        calculate_extra_bonus_points(10, -1, PURCHASED, slabs=SLABS)
    with pytest.raises(ValueError):
        check_referral_bonus_trigger(10, -1, milestones=MILESTONES)


def test_referral_trigger_only_on_crossing() -> None:
    assert check_referral_bonus_trigger(95, 10, milestones=MILESTONES) == 100
    assert check_referral_bonus_trigger(105, 10, milestones=MILESTONES) == 0
    assert check_referral_bonus_trigger(0, 99, milestones=MILESTONES) == 0


def test_joining_bonus_uses_configured_amount() -> None:
    assert calculate_joining_bonus_points(amount=100) == 100
    assert calculate_joining_bonus_points(amount=0) == 0
    assert calculate_joining_bonus_points(amount=-5) == 0


def test_load_thresholds_accepts_camel_case_windows() -> None:
    rules = load_thresholds(
        [
            {"threshold": 250, "points": 50},
            {"threshold": 100, "points": 20, "startsOn": "2026-01-01", "endsOn": "2026-12-31"},
        ]
    )

    assert [rule.threshold for rule in rules] == [100, 250]
    assert rules[0].starts_on == date(2026, 1, 1)
    assert rules[0].ends_on == date(2026, 12, 31)
    assert rules[1].starts_on is None
