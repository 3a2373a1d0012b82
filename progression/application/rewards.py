"""
TieredRewardCoordinator - one-shot referral milestone and subscription perk claims.

claim() is a compare-and-swap on the claimed flag: the flag is the existence of
a reward_tier_claims row, and the unique (user_id, tier_id) constraint picks
exactly one winner among concurrent claims. The coin credit is appended in the
same unit of work with a key derived from (user_id, tier_id), so a retried
claim cannot credit twice even if the two writes were ever split.
"""
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from progression.application.ledger import TransactionLedger, commit_or_fail
from progression.application.multipliers import SubscriptionTierProvider
from progression.application.referrals import ReferralCounter
from progression.domain.errors import ProgressionValidationError, TransientStorageFailure
from progression.domain.reward_tier import REWARD_TIERS, RewardTier, KIND_REFERRAL, find_tier
from progression.domain.state import ClaimResult, ClaimStatus, Reward
from progression.domain.xp_transaction import (
    XpTransaction, CURRENCY_COINS, SOURCE_TIER_REWARD, tier_reward_key,
)
from progression.infrastructure.db.models import RewardTierClaim

logger = logging.getLogger(__name__)


class TieredRewardCoordinator:
    def __init__(
        self,
        db: Session,
        ledger: TransactionLedger,
        referrals: ReferralCounter,
        subscriptions: SubscriptionTierProvider,
        catalog: tuple[RewardTier, ...] = REWARD_TIERS,
    ):
        self.db = db
        self.ledger = ledger
        self.referrals = referrals
        self.subscriptions = subscriptions
        self.catalog = catalog

    def _get_tier(self, tier_id: str) -> RewardTier:
        tier = find_tier(tier_id, self.catalog)
        if tier is None:
            raise ProgressionValidationError(f"Unknown reward tier: {tier_id}")
        return tier

    def claimed_ids(self, user_id: str) -> set[str]:
        rows = self.db.query(RewardTierClaim.tier_id).filter(
            RewardTierClaim.user_id == user_id
        ).all()
        return {row[0] for row in rows}

    def is_eligible(self, user_id: str, tier: RewardTier) -> bool:
        """Recomputed from current aggregates on every call."""
        if tier.kind == KIND_REFERRAL:
            return self.referrals.completed_count(user_id) >= tier.threshold

        rules = self.ledger.rules
        active = self.subscriptions.active_tier(user_id)
        if active is None:
            return False
        return rules.tier_rank(active) >= rules.tier_rank(tier.required_tier)

    def claim(self, user_id: str, tier_id: str) -> ClaimResult:
        """
        Raises:
            ProgressionValidationError: unknown tier
            TransientStorageFailure: the claim could not be recorded
        """
        tier = self._get_tier(tier_id)

        if tier.id in self.claimed_ids(user_id):
            return ClaimResult(ClaimStatus.ALREADY_CLAIMED)

        if not self.is_eligible(user_id, tier):
            return ClaimResult(ClaimStatus.NOT_ELIGIBLE)

        # Claim row first: losing the race must leave nothing else pending
        claim = RewardTierClaim(
            user_id=user_id,
            tier_id=tier.id,
            bonus_coins=tier.bonus_coins,
            claimed_at=self.ledger.calendar.now(),
        )
        self.db.add(claim)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.info("Concurrent claim of %s for user %s lost", tier.id, user_id)
            return ClaimResult(ClaimStatus.ALREADY_CLAIMED)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise TransientStorageFailure("Could not record reward claim") from exc

        credit = XpTransaction.create(
            user_id=user_id,
            source=SOURCE_TIER_REWARD,
            base_amount=tier.bonus_coins,
            idempotency_key=tier_reward_key(user_id, tier.id),
            activity_day=self.ledger.calendar.today(user_id),
            currency=CURRENCY_COINS,
            ref_id=tier.id,
        )
        self.ledger.record(credit)
        if claim not in self.db:
            # The ledger insert lost a race and rolled the claim row back with it
            return ClaimResult(ClaimStatus.ALREADY_CLAIMED)

        commit_or_fail(self.db)
        logger.info("User %s claimed %s (+%d coins)", user_id, tier.id, tier.bonus_coins)
        return ClaimResult(ClaimStatus.CLAIMED, Reward(tier_id=tier.id, bonus_coins=tier.bonus_coins))

    def list_tiers(self, user_id: str) -> list[dict]:
        """Catalog with eligible/claimed flags for this user."""
        claimed = self.claimed_ids(user_id)
        return [
            {
                "tier_id": tier.id,
                "name": tier.name,
                "kind": tier.kind,
                "threshold": tier.threshold,
                "required_tier": tier.required_tier,
                "bonus_coins": tier.bonus_coins,
                "eligible": self.is_eligible(user_id, tier),
                "claimed": tier.id in claimed,
            }
            for tier in self.catalog
        ]
