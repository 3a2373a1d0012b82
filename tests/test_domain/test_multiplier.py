"""
Tests for multiplier composition.
"""
from decimal import Decimal

import pytest

from progression.domain.multiplier import (
    ONE, compose, resolve_amount, streak_bonus_for, tier_multiplier_for,
)


@pytest.mark.parametrize("streak,expected", [
    (0, "1"),
    (1, "1"),
    (2, "1"),
    (3, "1.25"),
    (4, "1.25"),
    (5, "1.5"),
    (6, "1.5"),
    (7, "2.0"),
    (100, "2.0"),
])
def test_streak_bonus_bands(streak, expected):
    assert streak_bonus_for(streak) == Decimal(expected)


def test_streak_bonus_custom_bands():
    bands = ((2, Decimal("1.1")),)
    assert streak_bonus_for(1, bands) == ONE
    assert streak_bonus_for(2, bands) == Decimal("1.1")


def test_tier_multiplier_known_tier():
    assert tier_multiplier_for("all_access") == Decimal("1.5")


def test_tier_multiplier_unknown_or_missing_tier():
    assert tier_multiplier_for("platinum") == ONE
    assert tier_multiplier_for(None) == ONE


def test_factors_multiply():
    # 10 × 1.5 × 2.0 = 30
    assert resolve_amount(10, Decimal("1.5"), Decimal("2.0")) == 30


def test_rounding_happens_once_half_up():
    # 10 × 1.25 × 1.25 = 15.625 → 16 (per-factor rounding would give 12 × 1.25 = 15)
    assert resolve_amount(10, Decimal("1.25"), Decimal("1.25")) == 16
    # 2 × 1.25 = 2.5 → 3
    assert resolve_amount(2, ONE, Decimal("1.25")) == 3


def test_no_multipliers_returns_base():
    assert resolve_amount(7, ONE, ONE) == 7


def test_compose_keeps_factors():
    award = compose(10, Decimal("1.1"), Decimal("1.25"))
    assert award.tier_multiplier == Decimal("1.1")
    assert award.streak_bonus == Decimal("1.25")
    assert award.final_amount == 14  # 13.75 → 14
