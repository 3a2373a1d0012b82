"""
Tests for the daily streak state machine.
"""
from datetime import date

from progression.domain.streak import (
    StreakState, advance_streak, fold_streak, is_lapsed, live_streak_count,
)


D10 = date(2026, 3, 10)
D11 = date(2026, 3, 11)
D12 = date(2026, 3, 12)
D13 = date(2026, 3, 13)


def test_first_activity_starts_streak():
    state = advance_streak(StreakState(), D10)
    assert state.streak_count == 1
    assert state.best_streak == 1
    assert state.last_active_day == D10


def test_same_day_is_noop():
    state = advance_streak(StreakState(), D10)
    assert advance_streak(state, D10) == state


def test_next_day_increments():
    state = advance_streak(advance_streak(StreakState(), D10), D11)
    assert state.streak_count == 2
    assert state.last_active_day == D11


def test_gap_resets_to_one():
    state = advance_streak(StreakState(streak_count=5, best_streak=5, last_active_day=D10), D12)
    assert state.streak_count == 1
    assert state.best_streak == 5
    assert state.last_active_day == D12


def test_earlier_day_does_not_move_streak_back():
    state = StreakState(streak_count=2, best_streak=2, last_active_day=D11)
    assert advance_streak(state, D10) == state


def test_fold_ignores_order_and_duplicates():
    state = fold_streak([D12, D10, D11, D11])
    assert state.streak_count == 3
    assert state.best_streak == 3


def test_fold_keeps_best_across_breaks():
    state = fold_streak([D10, D11, D13])
    assert state.streak_count == 1
    assert state.best_streak == 2


def test_fold_of_nothing_is_empty_state():
    assert fold_streak([]) == StreakState()


class TestLapse:
    def test_active_today_not_lapsed(self):
        state = fold_streak([D10])
        assert not is_lapsed(state, D10)
        assert live_streak_count(state, D10) == 1

    def test_yesterday_still_alive(self):
        state = fold_streak([D10])
        assert live_streak_count(state, D11) == 1

    def test_two_days_later_reads_zero(self):
        state = fold_streak([D10, D11])
        assert is_lapsed(state, D13)
        assert live_streak_count(state, D13) == 0

    def test_never_active_is_lapsed(self):
        assert is_lapsed(StreakState(), D10)
