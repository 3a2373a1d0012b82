"""
Tests for StreakTracker (streak derived from ledger activity days).
"""
from datetime import date, datetime, timezone

from progression.application.streaks import StreakTracker
from progression.application.users import SetUserTimezoneUseCase, UserCalendar
from progression.domain.xp_transaction import XpTransaction, CURRENCY_COINS
from progression.infrastructure.ledger.repository import LedgerRepository


def _add(db_session, user_id, day, key, source="chat_completion", currency="xp"):
    LedgerRepository(db_session).insert(XpTransaction.create(
        user_id=user_id,
        source=source,
        base_amount=5,
        idempotency_key=key,
        activity_day=day,
        currency=currency,
    ))
    db_session.commit()


def test_history_folds_activity_days(db_session, fixed_clock, user_id):
    for i, day in enumerate([date(2026, 3, 8), date(2026, 3, 9), date(2026, 3, 10)]):
        _add(db_session, user_id, day, f"k{i}")

    tracker = StreakTracker(db_session, UserCalendar(db_session, fixed_clock))
    state, live = tracker.current_count(user_id)

    assert state.streak_count == 3
    assert live == 3


def test_reward_rows_ignored(db_session, fixed_clock, user_id):
    _add(db_session, user_id, date(2026, 3, 9), "reward", source="tier_reward", currency=CURRENCY_COINS)
    _add(db_session, user_id, date(2026, 3, 10), "chat")

    tracker = StreakTracker(db_session, UserCalendar(db_session, fixed_clock))

    assert tracker.history(user_id).streak_count == 1


def test_with_activity_on_previews_next_day(db_session, fixed_clock, user_id):
    _add(db_session, user_id, date(2026, 3, 10), "chat")
    tracker = StreakTracker(db_session, UserCalendar(db_session, fixed_clock))

    assert tracker.with_activity_on(user_id, date(2026, 3, 11)).streak_count == 2
    assert tracker.with_activity_on(user_id, date(2026, 3, 10)).streak_count == 1
    assert tracker.with_activity_on(user_id, date(2026, 3, 13)).streak_count == 1


def test_reset_time_in_user_zone(db_session, fixed_clock, user_id):
    SetUserTimezoneUseCase(db_session).execute(user_id, "America/New_York")
    _add(db_session, user_id, date(2026, 3, 10), "chat")

    tracker = StreakTracker(db_session, UserCalendar(db_session, fixed_clock))

    # local midnight opening 2026-03-12 in New York (EDT, UTC-4)
    assert tracker.reset_time(user_id) == datetime(2026, 3, 12, 4, 0, tzinfo=timezone.utc)
