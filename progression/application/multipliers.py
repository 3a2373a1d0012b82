"""
MultiplierResolver - turns a base award into (tier multiplier, streak bonus,
final amount) at award time.

The resolved values are stored on the ledger row; they are never re-derived
from the user's current tier afterwards.
"""
import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from progression.domain.multiplier import (
    ResolvedAward, compose, streak_bonus_for, tier_multiplier_for, ONE,
)
from progression.domain.rules import ProgressionRules
from progression.domain.xp_transaction import REWARD_SOURCES
from progression.infrastructure.db.models import UserSubscription

logger = logging.getLogger(__name__)

SUBSCRIPTION_ACTIVE = "active"


class SubscriptionTierProvider:
    """Supplies the user's active subscription tier (None = free)."""

    def active_tier(self, user_id: str) -> str | None:
        raise NotImplementedError


class DbSubscriptionTierProvider(SubscriptionTierProvider):
    """Reads user_subscriptions, maintained by the billing webhook."""

    def __init__(self, db: Session):
        self.db = db

    def active_tier(self, user_id: str) -> str | None:
        sub = self.db.query(UserSubscription).filter(
            UserSubscription.user_id == user_id,
            UserSubscription.status == SUBSCRIPTION_ACTIVE,
        ).first()
        return sub.tier if sub else None


class MultiplierResolver:
    def __init__(self, subscriptions: SubscriptionTierProvider, rules: ProgressionRules):
        self.subscriptions = subscriptions
        self.rules = rules

    def tier_multiplier(self, user_id: str) -> Decimal:
        tier = self.subscriptions.active_tier(user_id)
        if tier is not None and tier not in dict(self.rules.tier_multipliers):
            logger.info("Unknown subscription tier %r for user %s, using 1.0", tier, user_id)
        return tier_multiplier_for(tier, self.rules.tier_multipliers)

    def resolve(self, user_id: str, base_amount: int, source: str, streak_count: int) -> ResolvedAward:
        """
        Args:
            streak_count: streak including the day of this award
        """
        if source in REWARD_SOURCES:
            return compose(base_amount, ONE, ONE)

        tier_multiplier = self.tier_multiplier(user_id)
        streak_bonus = streak_bonus_for(streak_count, self.rules.streak_bonus_bands)
        return compose(base_amount, tier_multiplier, streak_bonus)
