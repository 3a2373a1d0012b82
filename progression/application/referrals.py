"""
Referral use cases - record referrals and credit the referrer.

A user can be referred once (referrals.referred_id is unique). Completing a
referral credits the referrer through the ledger with a key derived from the
referred user, so a replayed webhook never pays twice.
"""
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from progression.application.ledger import TransactionLedger, commit_or_fail
from progression.domain.errors import ProgressionValidationError
from progression.domain.reward_tier import REWARD_TIERS, RewardTier, highest_referral_tier
from progression.domain.xp_transaction import (
    XpTransaction, CURRENCY_COINS, SOURCE_REFERRAL_BONUS, referral_bonus_key,
)
from progression.infrastructure.db.models import ReferralRecord

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"


class ReferralCounter:
    """Supplies the number of completed referrals for a user."""

    def completed_count(self, user_id: str) -> int:
        raise NotImplementedError


class ReferralService(ReferralCounter):
    def __init__(self, db: Session, ledger: TransactionLedger):
        self.db = db
        self.ledger = ledger

    def completed_count(self, user_id: str) -> int:
        return self.db.query(ReferralRecord).filter(
            ReferralRecord.referrer_id == user_id,
            ReferralRecord.status == STATUS_COMPLETED,
        ).count()

    def _get(self, referred_id: str) -> ReferralRecord | None:
        return self.db.query(ReferralRecord).filter(
            ReferralRecord.referred_id == referred_id
        ).first()

    def _validate(self, referrer_id: str, referred_id: str) -> ReferralRecord | None:
        if not referrer_id or not referred_id:
            raise ProgressionValidationError("referrer_id and referred_id are required")
        if referrer_id == referred_id:
            raise ProgressionValidationError("Cannot refer yourself")

        existing = self._get(referred_id)
        if existing and existing.referrer_id != referrer_id:
            raise ProgressionValidationError("User already has a referrer")
        return existing

    def register(self, referrer_id: str, referred_id: str) -> ReferralRecord:
        """Record a pending referral (sign-up with a referral code)."""
        existing = self._validate(referrer_id, referred_id)
        if existing:
            return existing

        record = ReferralRecord(
            referrer_id=referrer_id,
            referred_id=referred_id,
            status=STATUS_PENDING,
            coins_earned=0,
        )
        self.db.add(record)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            return self._validate(referrer_id, referred_id)
        commit_or_fail(self.db)
        return record

    def complete(self, referrer_id: str, referred_id: str) -> ReferralRecord:
        """
        Mark the referral completed and credit the referrer.

        Idempotent: completing an already completed referral returns it as is.
        """
        existing = self._validate(referrer_id, referred_id)
        if existing and existing.status == STATUS_COMPLETED:
            return existing

        coins = self.ledger.rules.referral_coins
        credit = XpTransaction.create(
            user_id=referrer_id,
            source=SOURCE_REFERRAL_BONUS,
            base_amount=coins,
            idempotency_key=referral_bonus_key(referred_id),
            activity_day=self.ledger.calendar.today(referrer_id),
            currency=CURRENCY_COINS,
            ref_id=referred_id,
        )
        # Ledger row first: a lost race rolls back the whole unit of work
        self.ledger.record(credit)

        record = self._get(referred_id)
        if record is None:
            record = ReferralRecord(referrer_id=referrer_id, referred_id=referred_id)
            self.db.add(record)
        record.status = STATUS_COMPLETED
        record.coins_earned = coins
        record.completed_at = self.ledger.calendar.now()

        commit_or_fail(self.db)
        logger.info("Referral %s -> %s completed, +%d coins", referrer_id, referred_id, coins)
        return record

    def leaderboard(self, limit: int = 25, catalog: tuple[RewardTier, ...] = REWARD_TIERS) -> list[dict]:
        """
        Referrers ranked by completed referrals, then by coins earned from them.

        tier is the highest referral milestone the count reaches, whether or
        not the reward was claimed.
        """
        total = func.count(ReferralRecord.id).label("total_referrals")
        earned = func.coalesce(func.sum(ReferralRecord.coins_earned), 0).label("coins_earned")
        rows = (
            self.db.query(ReferralRecord.referrer_id, total, earned)
            .filter(ReferralRecord.status == STATUS_COMPLETED)
            .group_by(ReferralRecord.referrer_id)
            .order_by(total.desc(), earned.desc(), ReferralRecord.referrer_id.asc())
            .limit(limit)
            .all()
        )

        board = []
        for rank, (referrer_id, count, coins) in enumerate(rows, start=1):
            tier = highest_referral_tier(int(count), catalog)
            board.append({
                "rank": rank,
                "user_id": referrer_id,
                "total_referrals": int(count),
                "coins_earned": int(coins),
                "tier_id": tier.id if tier else None,
                "tier": tier.name if tier else None,
            })
        return board
