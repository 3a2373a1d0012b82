"""
AchievementEvaluator - unlocks catalog achievements exactly once per user.

Uniqueness lives in the database (achievement_unlocks has a unique
(user_id, achievement_id) constraint); the evaluator only reports an
achievement as newly unlocked when its own insert won.
"""
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from progression.application.ledger import TransactionLedger, commit_or_fail
from progression.application.referrals import ReferralCounter
from progression.domain.achievement import ACHIEVEMENTS, Achievement, AggregateStats, find_achievement
from progression.domain.errors import ProgressionValidationError, TransientStorageFailure
from progression.domain.level import level_of
from progression.domain.state import UnlockResult, UnlockStatus
from progression.domain.streak import live_streak_count
from progression.domain.xp_transaction import (
    XpTransaction, SOURCE_ACHIEVEMENT_REWARD, achievement_reward_key,
)
from progression.infrastructure.db.models import AchievementUnlock

logger = logging.getLogger(__name__)


class AchievementEvaluator:
    def __init__(
        self,
        db: Session,
        ledger: TransactionLedger,
        referrals: ReferralCounter,
        catalog: tuple[Achievement, ...] = ACHIEVEMENTS,
    ):
        self.db = db
        self.ledger = ledger
        self.referrals = referrals
        self.catalog = catalog

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def collect_stats(self, user_id: str) -> AggregateStats:
        repo = self.ledger.repo
        total_xp = repo.sum_amount(user_id)
        streak = self.ledger.streaks.history(user_id)
        today = self.ledger.calendar.today(user_id)

        return AggregateStats(
            total_xp=total_xp,
            level=level_of(total_xp, self.ledger.rules.xp_per_level).level,
            streak_count=live_streak_count(streak, today),
            best_streak=streak.best_streak,
            completed_referrals=self.referrals.completed_count(user_id),
            source_counts=repo.count_by_source(user_id),
            distinct_refs=repo.distinct_refs_by_source(user_id),
            subject_xp=repo.xp_by_subject(user_id),
        )

    def unlocked_ids(self, user_id: str) -> set[str]:
        rows = self.db.query(AchievementUnlock.achievement_id).filter(
            AchievementUnlock.user_id == user_id
        ).all()
        return {row[0] for row in rows}

    # ------------------------------------------------------------------
    # Unlocking
    # ------------------------------------------------------------------

    def evaluate(self, user_id: str, stats: AggregateStats) -> list[Achievement]:
        """
        Unlock every not-yet-unlocked achievement whose predicate holds.

        Returns only the achievements this call unlocked; re-running against
        unchanged stats returns [].
        """
        unlocked = self.unlocked_ids(user_id)
        newly: list[Achievement] = []

        for achievement in self.catalog:
            if achievement.id in unlocked or not achievement.is_satisfied(stats):
                continue
            if self._unlock_once(user_id, achievement):
                newly.append(achievement)

        return newly

    def evaluate_until_stable(self, user_id: str) -> list[Achievement]:
        """
        Evaluate, then re-evaluate while unlock rewards keep changing the
        aggregates. Terminates: each pass unlocks at least one of a finite catalog.
        """
        newly: list[Achievement] = []
        while True:
            batch = self.evaluate(user_id, self.collect_stats(user_id))
            if not batch:
                return newly
            newly.extend(batch)

    def unlock(self, user_id: str, achievement_id: str, stats: AggregateStats | None = None) -> UnlockResult:
        """
        Explicit unlock. Manual achievements always qualify; predicate
        achievements still need their predicate to hold.

        Raises:
            ProgressionValidationError: unknown achievement id
        """
        achievement = find_achievement(achievement_id, self.catalog)
        if achievement is None:
            raise ProgressionValidationError(f"Unknown achievement: {achievement_id}")

        if achievement.id in self.unlocked_ids(user_id):
            return UnlockResult(UnlockStatus.ALREADY_UNLOCKED, achievement)

        if not achievement.is_manual:
            if stats is None:
                stats = self.collect_stats(user_id)
            if not achievement.is_satisfied(stats):
                return UnlockResult(UnlockStatus.NOT_ELIGIBLE, achievement)

        if self._unlock_once(user_id, achievement):
            return UnlockResult(UnlockStatus.UNLOCKED, achievement)
        return UnlockResult(UnlockStatus.ALREADY_UNLOCKED, achievement)

    def _unlock_once(self, user_id: str, achievement: Achievement) -> bool:
        """
        Insert the unlock row and its XP reward as one unit of work.

        Returns:
            True if this call created the unlock, False if another writer won
        """
        if achievement.xp_reward:
            reward = XpTransaction.create(
                user_id=user_id,
                source=SOURCE_ACHIEVEMENT_REWARD,
                base_amount=achievement.xp_reward,
                idempotency_key=achievement_reward_key(user_id, achievement.id),
                activity_day=self.ledger.calendar.today(user_id),
                ref_id=achievement.id,
            )
            self.ledger.record(reward)

        self.db.add(AchievementUnlock(
            user_id=user_id,
            achievement_id=achievement.id,
            unlocked_at=self.ledger.calendar.now(),
        ))
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.debug("Achievement %s already unlocked for user %s", achievement.id, user_id)
            return False
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise TransientStorageFailure("Could not record achievement unlock") from exc

        commit_or_fail(self.db)
        logger.info("User %s unlocked achievement %s", user_id, achievement.id)
        return True
