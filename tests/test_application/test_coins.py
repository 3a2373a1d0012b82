"""
Tests for coin spending through the ledger.
"""
import pytest

from progression.domain.errors import ProgressionValidationError
from progression.domain.state import SpendStatus
from progression.domain.xp_transaction import XpTransaction, CURRENCY_COINS
from progression.infrastructure.db.models import User, XpTransactionRecord


def _credit(facade, user_id, coins, key="credit-1"):
    facade.ledger.append(XpTransaction.create(
        user_id=user_id,
        source="tier_reward",
        base_amount=coins,
        idempotency_key=key,
        activity_day=facade.calendar.today(user_id),
        currency=CURRENCY_COINS,
    ))


def _spends(db_session):
    return db_session.query(XpTransactionRecord).filter(XpTransactionRecord.source == "coin_spend")


def test_spend_debits_balance(facade, user_id):
    _credit(facade, user_id, 10)

    result = facade.spend_coins(user_id, 4, "shop:1", item="game_pass")

    assert result.status is SpendStatus.SPENT
    assert result.balance == 6
    assert result.transaction.final_amount == -4
    assert facade.get_progress(user_id).coins == 6


def test_resent_spend_charges_once(facade, user_id, db_session):
    _credit(facade, user_id, 10)

    first = facade.spend_coins(user_id, 4, "shop:1")
    second = facade.spend_coins(user_id, 4, "shop:1")

    assert second.status is SpendStatus.DUPLICATE
    assert second.transaction.id == first.transaction.id
    assert second.balance == 6
    assert _spends(db_session).count() == 1


def test_insufficient_balance_refused(facade, user_id, db_session):
    _credit(facade, user_id, 3)

    result = facade.spend_coins(user_id, 4, "shop:1")

    assert result.status is SpendStatus.INSUFFICIENT_FUNDS
    assert not result.ok
    assert result.balance == 3
    assert _spends(db_session).count() == 0
    assert facade.get_progress(user_id).coins == 3


def test_refused_spend_can_succeed_after_credit(facade, user_id):
    assert facade.spend_coins(user_id, 5, "shop:1").status is SpendStatus.INSUFFICIENT_FUNDS

    _credit(facade, user_id, 5)

    assert facade.spend_coins(user_id, 5, "shop:1").status is SpendStatus.SPENT
    assert facade.get_progress(user_id).coins == 0


def test_spend_leaves_xp_and_streak_alone(facade, user_id):
    _credit(facade, user_id, 10)

    facade.spend_coins(user_id, 10, "shop:1")
    state = facade.get_progress(user_id)

    assert state.coins == 0
    assert state.total_xp == 0
    assert state.streak_count == 0


def test_spend_keys_do_not_collide_with_grant_keys(facade, user_id):
    _credit(facade, user_id, 10)

    grant = facade.grant_xp(user_id, 10, "chat_completion", "shop:1")
    spend = facade.spend_coins(user_id, 2, "shop:1")

    assert grant.status.value == "accepted"
    assert spend.status is SpendStatus.SPENT


def test_spend_registers_wallet_owner(facade, user_id, db_session):
    _credit(facade, user_id, 10)

    facade.spend_coins(user_id, 1, "shop:1")

    assert db_session.query(User).filter(User.id == user_id).count() == 1


def test_spend_appears_in_history(facade, user_id):
    _credit(facade, user_id, 10)
    facade.spend_coins(user_id, 4, "shop:1", item="game_pass")

    latest = facade.list_transactions(user_id, limit=1)[0]

    assert latest["source"] == "coin_spend"
    assert latest["final_amount"] == -4
    assert latest["description"] == "Coins spent: game_pass"


@pytest.mark.parametrize("amount, key", [
    (0, "shop:1"),
    (-3, "shop:1"),
    (True, "shop:1"),
    (10**20, "shop:1"),
    (1, ""),
    (1, "   "),
])
def test_invalid_spends_rejected(facade, user_id, db_session, amount, key):
    _credit(facade, user_id, 10)

    with pytest.raises(ProgressionValidationError):
        facade.spend_coins(user_id, amount, key)

    assert _spends(db_session).count() == 0
