"""
ProgressionFacade - the single entry point for chat, games, challenges,
referral and subscription screens.

Flow of a grant:
  caller event → MultiplierResolver → TransactionLedger (append)
              → AchievementEvaluator / level / streak (recompute)
              → ProgressionState returned, events broadcast

Every operation is one request/response. Storage failures surface as
TransientStorageFailure and are never retried here: callers own the
idempotency key and can resend safely.
"""
import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from progression.application.achievements import AchievementEvaluator
from progression.application.coins import CoinWallet
from progression.application.ledger import TransactionLedger, commit_or_fail
from progression.application.multipliers import (
    DbSubscriptionTierProvider, MultiplierResolver, SubscriptionTierProvider,
)
from progression.application.notifications import AchievementUnlocked, LevelUp, ProgressionNotifier
from progression.application.referrals import ReferralCounter, ReferralService
from progression.application.rewards import TieredRewardCoordinator
from progression.application.users import UserCalendar
from progression.application.xp_history import XpHistoryService
from progression.config import get_settings
from progression.domain.achievement import Achievement
from progression.domain.errors import ProgressionValidationError
from progression.domain.rules import ProgressionRules
from progression.domain.state import (
    ClaimResult, GrantResult, ProgressionState, SpendResult, UnlockStatus,
)
from progression.domain.xp_transaction import (
    XpTransaction, ACTIVITY_SOURCES, SOURCE_DAILY_LOGIN, daily_login_key, validate_amount,
)
from progression.infrastructure.db.models import AchievementUnlock, ReferralRecord
from progression.readmodels.projectors.base import ProjectorOrchestrator
from progression.readmodels.projectors.progression_snapshot import ProgressionSnapshotProjector
from progression.utils.calendar import Clock

logger = logging.getLogger(__name__)

DAILY_LOGIN_XP = 10


class ProgressionFacade:
    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        notifier: ProgressionNotifier | None = None,
        rules: ProgressionRules | None = None,
        subscriptions: SubscriptionTierProvider | None = None,
        referral_counter: ReferralCounter | None = None,
    ):
        settings = get_settings()
        self.db = db
        self.rules = rules or settings.get_rules()
        self.calendar = UserCalendar(db, clock, fallback_tz=settings.TIMEZONE)
        self.notifier = notifier or ProgressionNotifier()

        self.ledger = TransactionLedger(db, self.calendar, self.rules)
        self.subscriptions = subscriptions or DbSubscriptionTierProvider(db)
        self.multipliers = MultiplierResolver(self.subscriptions, self.rules)
        self.referrals = ReferralService(db, self.ledger)
        self.coins = CoinWallet(db, self.ledger)
        counter = referral_counter or self.referrals
        self.achievements = AchievementEvaluator(db, self.ledger, counter)
        self.rewards = TieredRewardCoordinator(db, self.ledger, counter, self.subscriptions)
        self.history = XpHistoryService(db)

        self.projectors = ProjectorOrchestrator(db)
        self.projectors.register(ProgressionSnapshotProjector(db, self.rules))

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    def grant_xp(
        self,
        user_id: str,
        base_amount: int,
        source: str,
        idempotency_key: str,
        subject: str | None = None,
        ref_id: str | None = None,
    ) -> GrantResult:
        """
        Award XP for an activity.

        Returns:
            GrantResult; .state is the ProgressionState after the call.
            A repeated idempotency_key yields status DUPLICATE and the
            unchanged state.

        Raises:
            ProgressionValidationError: bad amount, source or key
            TransientStorageFailure: the award could not be recorded
        """
        if source not in ACTIVITY_SOURCES:
            raise ProgressionValidationError(f"Unknown XP source: {source}")
        validate_amount(base_amount)

        today = self.calendar.today(user_id)
        before = self.ledger.state(user_id, today)

        streak = self.ledger.streaks.with_activity_on(user_id, today)
        award = self.multipliers.resolve(user_id, base_amount, source, streak.streak_count)
        tx = XpTransaction.create(
            user_id=user_id,
            source=source,
            base_amount=base_amount,
            idempotency_key=idempotency_key,
            activity_day=today,
            tier_multiplier=award.tier_multiplier,
            streak_bonus=award.streak_bonus,
            final_amount=award.final_amount,
            subject=subject,
            ref_id=ref_id,
        )

        result = self.ledger.record(tx)
        if result.accepted:
            commit_or_fail(self.db)

        # Runs on duplicates too: the first attempt may have failed after its commit
        newly = self.achievements.evaluate_until_stable(user_id)
        after = self.ledger.state(user_id)

        self._refresh_snapshot(user_id)
        self._announce(user_id, before.level, after.level, newly)

        return GrantResult(
            state=after,
            status=result.status,
            transaction=result.transaction,
            newly_unlocked=newly,
            leveled_up=after.level > before.level,
        )

    def record_daily_login(self, user_id: str, base_amount: int = DAILY_LOGIN_XP) -> GrantResult:
        """
        Daily login XP, at most once per user-local day on any device.

        The key is derived here from the user's local day rather than trusted
        from a client-side "already awarded today" flag.
        """
        key = daily_login_key(user_id, self.calendar.today(user_id))
        return self.grant_xp(user_id, base_amount, SOURCE_DAILY_LOGIN, key)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_progress(self, user_id: str) -> ProgressionState:
        return self.ledger.state(user_id)

    def get_streak_reset_time(self, user_id: str) -> datetime | None:
        return self.ledger.streaks.reset_time(user_id)

    def list_transactions(self, user_id: str, limit: int = 10) -> list[dict]:
        return self.history.list_recent(user_id, limit=limit)

    def list_achievements(self, user_id: str) -> list[dict]:
        unlocks = {
            row.achievement_id: row.unlocked_at
            for row in self.db.query(AchievementUnlock).filter(AchievementUnlock.user_id == user_id).all()
        }
        return [
            {
                "achievement_id": a.id,
                "name": a.name,
                "description": a.description,
                "xp_reward": a.xp_reward,
                "hidden": a.is_manual,
                "unlocked": a.id in unlocks,
                "unlocked_at": unlocks.get(a.id),
            }
            for a in self.achievements.catalog
        ]

    def list_reward_tiers(self, user_id: str) -> list[dict]:
        return self.rewards.list_tiers(user_id)

    def referral_leaderboard(self, limit: int = 25) -> list[dict]:
        return self.referrals.leaderboard(limit=limit)

    # ------------------------------------------------------------------
    # One-shot transitions
    # ------------------------------------------------------------------

    def claim_tier_reward(self, user_id: str, tier_id: str) -> ClaimResult:
        result = self.rewards.claim(user_id, tier_id)
        if result.ok:
            self._refresh_snapshot(user_id)
        return result

    def unlock_achievement(self, user_id: str, achievement_id: str) -> Achievement | None:
        """
        Returns:
            The achievement if this call unlocked it; None when it was
            already unlocked or its predicate does not hold.
        """
        before = self.ledger.state(user_id)
        result = self.achievements.unlock(user_id, achievement_id)
        if result.status is not UnlockStatus.UNLOCKED:
            return None

        newly = [result.achievement] + self.achievements.evaluate_until_stable(user_id)
        after = self.ledger.state(user_id)

        self._refresh_snapshot(user_id)
        self._announce(user_id, before.level, after.level, newly)
        return result.achievement

    def complete_referral(self, referrer_id: str, referred_id: str) -> ReferralRecord:
        before = self.ledger.state(referrer_id)
        record = self.referrals.complete(referrer_id, referred_id)

        newly = self.achievements.evaluate_until_stable(referrer_id)
        after = self.ledger.state(referrer_id)

        self._refresh_snapshot(referrer_id)
        self._announce(referrer_id, before.level, after.level, newly)
        return record

    def spend_coins(
        self,
        user_id: str,
        amount: int,
        idempotency_key: str,
        item: str | None = None,
    ) -> SpendResult:
        result = self.coins.spend(user_id, amount, idempotency_key, item=item)
        if result.ok:
            self._refresh_snapshot(user_id)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _announce(self, user_id: str, old_level: int, new_level: int, newly: list[Achievement]) -> None:
        for achievement in newly:
            self.notifier.emit(AchievementUnlocked(user_id=user_id, achievement=achievement))
        if new_level > old_level:
            logger.info("User %s leveled up from %d to %d", user_id, old_level, new_level)
            self.notifier.emit(LevelUp(user_id=user_id, old_level=old_level, new_level=new_level))

    def _refresh_snapshot(self, user_id: str) -> None:
        """The snapshot is a cache; failing to refresh it never fails the caller."""
        try:
            self.projectors.run_all(user_id)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Snapshot refresh failed for user %s", user_id)
