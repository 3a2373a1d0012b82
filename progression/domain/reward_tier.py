"""
Tiered one-shot rewards (referral milestones, subscription perks)

Each tier is claimable at most once per user. Eligibility is recomputed from
current aggregates at claim time; the claimed flag is the existence of a
reward_tier_claims row, never a client-side boolean.
"""
from dataclasses import dataclass

KIND_REFERRAL = "referral"
KIND_SUBSCRIPTION = "subscription"


@dataclass(frozen=True)
class RewardTier:
    """
    Args:
        threshold: completed referrals (referral tiers)
        required_tier: minimum active subscription tier (subscription tiers)
    """
    id: str
    name: str
    kind: str
    bonus_coins: int
    threshold: int = 0
    required_tier: str | None = None

    def __post_init__(self):
        if self.kind not in (KIND_REFERRAL, KIND_SUBSCRIPTION):
            raise ValueError(f"Unknown reward tier kind: {self.kind}")
        if self.bonus_coins < 0:
            raise ValueError("bonus_coins must be non-negative")


REWARD_TIERS: tuple[RewardTier, ...] = (
    RewardTier("referral_silver", "Silver", KIND_REFERRAL, bonus_coins=25, threshold=5),
    RewardTier("referral_gold", "Gold", KIND_REFERRAL, bonus_coins=50, threshold=10),
    RewardTier("referral_diamond", "Diamond", KIND_REFERRAL, bonus_coins=100, threshold=25),
    RewardTier("perk_single_tutor", "Tutor Welcome Pack", KIND_SUBSCRIPTION,
               bonus_coins=10, required_tier="single_tutor"),
    RewardTier("perk_all_access", "All Access Welcome Pack", KIND_SUBSCRIPTION,
               bonus_coins=50, required_tier="all_access"),
    RewardTier("perk_elite", "Elite Legend Chest", KIND_SUBSCRIPTION,
               bonus_coins=150, required_tier="elite"),
)


def find_tier(tier_id: str, catalog: tuple[RewardTier, ...] = REWARD_TIERS) -> RewardTier | None:
    for tier in catalog:
        if tier.id == tier_id:
            return tier
    return None


def highest_referral_tier(
    completed: int,
    catalog: tuple[RewardTier, ...] = REWARD_TIERS,
) -> RewardTier | None:
    """Referral milestone with the largest threshold that *completed* reaches, claimed or not."""
    reached = [t for t in catalog if t.kind == KIND_REFERRAL and completed >= t.threshold]
    return max(reached, key=lambda t: t.threshold, default=None)
