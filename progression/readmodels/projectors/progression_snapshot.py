"""
ProgressionSnapshotProjector - maintains the cacheable progression_state row.

The snapshot is recomputed from the ledger with the same pure functions the
read path uses (level curve, streak fold); it is never incremented in place,
so rebuilding it from scratch always gives the same row.

streak_count here is the folded streak as of last_active_day. Whether it has
lapsed depends on "today" and is decided by the reader.
"""
from sqlalchemy.orm import Session

from progression.domain.level import level_of
from progression.domain.rules import ProgressionRules
from progression.domain.streak import fold_streak
from progression.domain.xp_transaction import CURRENCY_XP, CURRENCY_COINS
from progression.infrastructure.db.models import ProgressionStateSnapshot, XpTransactionRecord
from progression.readmodels.projectors.base import BaseProjector


class ProgressionSnapshotProjector(BaseProjector):
    def __init__(self, db: Session, rules: ProgressionRules | None = None):
        super().__init__(db, projector_name="progression_snapshot")
        self.rules = rules or ProgressionRules()

    def handle_transaction(self, tx: XpTransactionRecord) -> None:
        # Rows only signal that the snapshot is stale; after_batch recomputes it
        pass

    def after_batch(self, user_id: str) -> None:
        repo = self.ledger_repo
        total_xp = repo.sum_amount(user_id, CURRENCY_XP)
        level = level_of(total_xp, self.rules.xp_per_level)
        streak = fold_streak(repo.activity_days(user_id))

        snapshot = self.db.query(ProgressionStateSnapshot).filter(
            ProgressionStateSnapshot.user_id == user_id
        ).first()
        if not snapshot:
            snapshot = ProgressionStateSnapshot(user_id=user_id)
            self.db.add(snapshot)

        snapshot.total_xp = total_xp
        snapshot.level = level.level
        snapshot.level_progress = level.level_progress
        snapshot.streak_count = streak.streak_count
        snapshot.best_streak = streak.best_streak
        snapshot.last_active_day = streak.last_active_day
        snapshot.coins = repo.sum_amount(user_id, CURRENCY_COINS)
        self.db.flush()

    def reset(self, user_id: str) -> None:
        """Drop the snapshot for this user and reset the checkpoint."""
        self.db.query(ProgressionStateSnapshot).filter(
            ProgressionStateSnapshot.user_id == user_id
        ).delete()
        super().reset(user_id)
