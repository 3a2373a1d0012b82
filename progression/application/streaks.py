"""
StreakTracker - daily streaks derived from the ledger.

The streak is never stored: it is the fold of the user's distinct qualifying
activity days (user-local, fixed at append time) through advance_streak.
"""
from datetime import date, datetime

from sqlalchemy.orm import Session

from progression.application.users import UserCalendar
from progression.domain.streak import StreakState, advance_streak, fold_streak, live_streak_count
from progression.infrastructure.ledger.repository import LedgerRepository
from progression.utils.calendar import streak_lapse_time


class StreakTracker:
    def __init__(self, db: Session, calendar: UserCalendar):
        self.db = db
        self.calendar = calendar
        self.repo = LedgerRepository(db)

    def history(self, user_id: str) -> StreakState:
        """Streak state after the last recorded activity day."""
        return fold_streak(self.repo.activity_days(user_id))

    def current_count(self, user_id: str, today: date | None = None) -> tuple[StreakState, int]:
        """
        Returns:
            (folded state, streak as shown today, 0 once lapsed)
        """
        if today is None:
            today = self.calendar.today(user_id)
        state = self.history(user_id)
        return state, live_streak_count(state, today)

    def with_activity_on(self, user_id: str, day: date) -> StreakState:
        """State the streak would be in if the user is active on *day*."""
        return advance_streak(self.history(user_id), day)

    def reset_time(self, user_id: str) -> datetime | None:
        """
        When the current streak lapses without activity. Advisory only;
        recomputed from last_active_day on every call.
        """
        state = self.history(user_id)
        if state.last_active_day is None:
            return None
        return streak_lapse_time(state.last_active_day, self.calendar.zone_for(user_id))
