"""
Tunable progression constants.

Only the shape of the rules is fixed (fixed-step levels, step-function streak
bonus, multiplicative composition). The numbers below are defaults and are
overridden from Settings.
"""
from dataclasses import dataclass
from decimal import Decimal

DEFAULT_XP_PER_LEVEL = 100

# (minimum streak days, bonus), ascending
DEFAULT_STREAK_BONUS_BANDS: tuple[tuple[int, Decimal], ...] = (
    (3, Decimal("1.25")),
    (5, Decimal("1.5")),
    (7, Decimal("2.0")),
)

# Subscription tier → multiplier, cheapest first
DEFAULT_TIER_MULTIPLIERS: tuple[tuple[str, Decimal], ...] = (
    ("free", Decimal("1.0")),
    ("single_tutor", Decimal("1.1")),
    ("five_tutor", Decimal("1.25")),
    ("all_access", Decimal("1.5")),
    ("elite", Decimal("2.0")),
)

DEFAULT_REFERRAL_COINS = 5


@dataclass(frozen=True)
class ProgressionRules:
    xp_per_level: int = DEFAULT_XP_PER_LEVEL
    streak_bonus_bands: tuple[tuple[int, Decimal], ...] = DEFAULT_STREAK_BONUS_BANDS
    tier_multipliers: tuple[tuple[str, Decimal], ...] = DEFAULT_TIER_MULTIPLIERS
    referral_coins: int = DEFAULT_REFERRAL_COINS

    def tier_rank(self, tier: str | None) -> int:
        """
        Position of *tier* when tiers are ordered by multiplier (0 = free).

        Unknown or missing tiers rank as 0.
        """
        ordered = sorted(self.tier_multipliers, key=lambda item: item[1])
        for rank, (name, _) in enumerate(ordered):
            if name == tier:
                return rank
        return 0
