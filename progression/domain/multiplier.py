"""
Multiplier composition.

  final_amount = round(base_amount × tier_multiplier × streak_bonus)

Factors multiply, and rounding (half-up) happens once on the product.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from progression.domain.rules import DEFAULT_STREAK_BONUS_BANDS, DEFAULT_TIER_MULTIPLIERS

ONE = Decimal("1")


@dataclass(frozen=True)
class ResolvedAward:
    tier_multiplier: Decimal
    streak_bonus: Decimal
    final_amount: int


def streak_bonus_for(
    streak_count: int,
    bands: tuple[tuple[int, Decimal], ...] = DEFAULT_STREAK_BONUS_BANDS,
) -> Decimal:
    """Step function: the highest band whose threshold the streak reaches."""
    bonus = ONE
    for threshold, value in sorted(bands):
        if streak_count >= threshold:
            bonus = value
    return bonus


def tier_multiplier_for(
    tier: str | None,
    tiers: tuple[tuple[str, Decimal], ...] = DEFAULT_TIER_MULTIPLIERS,
) -> Decimal:
    """Multiplier for a subscription tier; 1.0 when there is no (known) tier."""
    if tier is None:
        return ONE
    return dict(tiers).get(tier, ONE)


def resolve_amount(base_amount: int, tier_multiplier: Decimal, streak_bonus: Decimal) -> int:
    product = Decimal(base_amount) * Decimal(tier_multiplier) * Decimal(streak_bonus)
    return int(product.quantize(ONE, rounding=ROUND_HALF_UP))


def compose(base_amount: int, tier_multiplier: Decimal, streak_bonus: Decimal) -> ResolvedAward:
    return ResolvedAward(
        tier_multiplier=Decimal(tier_multiplier),
        streak_bonus=Decimal(streak_bonus),
        final_amount=resolve_amount(base_amount, tier_multiplier, streak_bonus),
    )
