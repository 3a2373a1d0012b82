"""
TransactionLedger - the only write path to XP and coin totals.

append() is a conditional insert keyed by (user_id, idempotency_key): a
second submission of the same logical event is a no-op that returns the
current state. Totals are SUM(final_amount) over accepted rows.
"""
import logging
from datetime import date

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from progression.application.streaks import StreakTracker
from progression.application.users import UserCalendar
from progression.domain.errors import TransientStorageFailure
from progression.domain.level import level_of
from progression.domain.rules import ProgressionRules
from progression.domain.state import AppendResult, AppendStatus, ProgressionState
from progression.domain.xp_transaction import XpTransaction, CURRENCY_XP, CURRENCY_COINS
from progression.infrastructure.ledger.repository import LedgerRepository

logger = logging.getLogger(__name__)


def commit_or_fail(db: Session) -> None:
    """
    Commit the unit of work; storage errors become TransientStorageFailure.
    """
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Commit failed")
        raise TransientStorageFailure("Could not record progression change") from exc


class TransactionLedger:
    def __init__(self, db: Session, calendar: UserCalendar, rules: ProgressionRules):
        self.db = db
        self.calendar = calendar
        self.rules = rules
        self.repo = LedgerRepository(db)
        self.streaks = StreakTracker(db, calendar)

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def record(self, tx: XpTransaction) -> AppendResult:
        """
        Insert *tx* into the current unit of work without committing.

        A lost race on the unique key rolls the session back, so callers must
        keep the ledger row as the first write of their unit of work.
        """
        existing = self.repo.find_by_key(tx.user_id, tx.idempotency_key)
        if existing:
            logger.debug("Duplicate ledger key %s for user %s", tx.idempotency_key, tx.user_id)
            return AppendResult(AppendStatus.DUPLICATE, existing)

        try:
            record = self.repo.insert(tx, created_at=self.calendar.now())
        except IntegrityError:
            # Concurrent writer inserted the same key between check and insert
            self.db.rollback()
            existing = self.repo.find_by_key(tx.user_id, tx.idempotency_key)
            return AppendResult(AppendStatus.DUPLICATE, existing)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Ledger insert failed for user %s", tx.user_id)
            raise TransientStorageFailure("Could not append ledger entry") from exc

        logger.info(
            "Ledger %+d %s to user %s for %s (base %d × %s × %s)",
            tx.final_amount, tx.currency, tx.user_id, tx.source,
            tx.base_amount, tx.tier_multiplier, tx.streak_bonus,
        )
        return AppendResult(AppendStatus.ACCEPTED, record)

    def append(self, tx: XpTransaction) -> ProgressionState:
        """Record and commit; returns the state after the append (or unchanged state on duplicates)."""
        result = self.record(tx)
        if result.accepted:
            commit_or_fail(self.db)
        return self.state(tx.user_id)

    # ------------------------------------------------------------------
    # Read side (always derived)
    # ------------------------------------------------------------------

    def total_xp(self, user_id: str) -> int:
        return self.repo.sum_amount(user_id, CURRENCY_XP)

    def coins(self, user_id: str) -> int:
        return self.repo.sum_amount(user_id, CURRENCY_COINS)

    def state(self, user_id: str, today: date | None = None) -> ProgressionState:
        if today is None:
            today = self.calendar.today(user_id)

        total_xp = self.total_xp(user_id)
        level = level_of(total_xp, self.rules.xp_per_level)
        streak, live_count = self.streaks.current_count(user_id, today)

        return ProgressionState(
            user_id=user_id,
            total_xp=total_xp,
            level=level.level,
            level_progress=level.level_progress,
            streak_count=live_count,
            best_streak=streak.best_streak,
            last_active_day=streak.last_active_day,
            today_xp=self.repo.sum_amount(user_id, CURRENCY_XP, day=today),
            coins=self.coins(user_id),
        )
