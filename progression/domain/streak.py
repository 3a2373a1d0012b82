"""
Daily streak state machine.

Transitions happen once per qualifying activity per local calendar day:
  - same day as last_active_day → no change
  - exactly the next day        → streak + 1
  - any larger gap              → streak resets to 1 (today is day one)
  - first ever activity         → streak = 1
"""
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Iterable


@dataclass(frozen=True)
class StreakState:
    streak_count: int = 0
    best_streak: int = 0
    last_active_day: date | None = None


def advance_streak(state: StreakState, day: date) -> StreakState:
    """Apply one qualifying activity on *day* (user-local date)."""
    last = state.last_active_day

    if last is None:
        count = 1
    elif day == last:
        return state
    elif day < last:
        # Late-arriving event for a day already folded in; the streak only
        # moves forward.
        return state
    elif day - last == timedelta(days=1):
        count = state.streak_count + 1
    else:
        count = 1

    return replace(
        state,
        streak_count=count,
        best_streak=max(state.best_streak, count),
        last_active_day=day,
    )


def fold_streak(days: Iterable[date]) -> StreakState:
    """Replay distinct activity days (any order) into a StreakState."""
    state = StreakState()
    for day in sorted(set(days)):
        state = advance_streak(state, day)
    return state


def is_lapsed(state: StreakState, today: date) -> bool:
    """
    True once the day after last_active_day has passed with no activity.
    """
    if state.last_active_day is None:
        return True
    return today - state.last_active_day > timedelta(days=1)


def live_streak_count(state: StreakState, today: date) -> int:
    """Streak as shown to the user on *today*: lapsed streaks read as 0."""
    return 0 if is_lapsed(state, today) else state.streak_count
