"""
Tests for TieredRewardCoordinator: one-shot claims of referral and subscription tiers.
"""
from unittest.mock import patch

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy import create_engine

from progression.application.progression import ProgressionFacade
from progression.domain.errors import ProgressionValidationError
from progression.domain.reward_tier import RewardTier, KIND_REFERRAL
from progression.domain.state import ClaimStatus
from progression.infrastructure.db.models import RewardTierClaim, UserSubscription, XpTransactionRecord
from progression.infrastructure.db.session import Base


FIVE_FRIENDS = RewardTier("five_friends", "Five Friends", KIND_REFERRAL, bonus_coins=20, threshold=5)


def _refer(facade, referrer_id, count):
    for i in range(count):
        facade.complete_referral(referrer_id, f"friend-{i}")


@pytest.fixture
def referral_facade(facade):
    facade.rewards.catalog = (FIVE_FRIENDS,)
    return facade


# ---------------------------------------------------------------------------
# Referral tiers
# ---------------------------------------------------------------------------

def test_claim_after_threshold(referral_facade, user_id):
    _refer(referral_facade, user_id, 5)
    coins_before = referral_facade.get_progress(user_id).coins

    result = referral_facade.claim_tier_reward(user_id, "five_friends")

    assert result.status is ClaimStatus.CLAIMED
    assert result.reward.bonus_coins == 20
    assert referral_facade.get_progress(user_id).coins == coins_before + 20


def test_second_claim_already_claimed(referral_facade, user_id, db_session):
    _refer(referral_facade, user_id, 5)
    referral_facade.claim_tier_reward(user_id, "five_friends")
    coins = referral_facade.get_progress(user_id).coins

    result = referral_facade.claim_tier_reward(user_id, "five_friends")

    assert result.status is ClaimStatus.ALREADY_CLAIMED
    assert result.reward is None
    assert referral_facade.get_progress(user_id).coins == coins
    assert db_session.query(RewardTierClaim).count() == 1


def test_claim_below_threshold_not_eligible(referral_facade, user_id, db_session):
    _refer(referral_facade, user_id, 4)

    result = referral_facade.claim_tier_reward(user_id, "five_friends")

    assert result.status is ClaimStatus.NOT_ELIGIBLE
    assert db_session.query(RewardTierClaim).count() == 0


def test_eligibility_recomputed_on_read(referral_facade, user_id):
    _refer(referral_facade, user_id, 4)
    assert not referral_facade.list_reward_tiers(user_id)[0]["eligible"]

    referral_facade.complete_referral(user_id, "friend-late")

    tier = referral_facade.list_reward_tiers(user_id)[0]
    assert tier["eligible"]
    assert not tier["claimed"]


def test_unknown_tier_rejected(facade, user_id):
    with pytest.raises(ProgressionValidationError):
        facade.claim_tier_reward(user_id, "referral_platinum")


def test_lost_claim_race_reports_already_claimed(referral_facade, user_id, db_session):
    _refer(referral_facade, user_id, 5)
    referral_facade.claim_tier_reward(user_id, "five_friends")
    coins = referral_facade.get_progress(user_id).coins

    # The fast-path read happened before the other claim committed
    with patch.object(referral_facade.rewards, "claimed_ids", return_value=set()):
        result = referral_facade.claim_tier_reward(user_id, "five_friends")

    assert result.status is ClaimStatus.ALREADY_CLAIMED
    assert referral_facade.get_progress(user_id).coins == coins


def test_concurrent_sessions_credit_once(tmp_path, fixed_clock):
    engine = create_engine(f"sqlite:///{tmp_path / 'claims.db'}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)

    with SessionLocal() as setup:
        setup_facade = ProgressionFacade(setup, clock=fixed_clock)
        _refer(setup_facade, "u-race", 5)

    with SessionLocal() as first, SessionLocal() as second:
        a = ProgressionFacade(first, clock=fixed_clock)
        b = ProgressionFacade(second, clock=fixed_clock)
        a.rewards.catalog = b.rewards.catalog = (FIVE_FRIENDS,)

        # b checked "not claimed yet" before a committed
        stale = b.rewards.claimed_ids("u-race")
        first_result = a.claim_tier_reward("u-race", "five_friends")
        with patch.object(b.rewards, "claimed_ids", return_value=stale):
            second_result = b.claim_tier_reward("u-race", "five_friends")

        assert first_result.status is ClaimStatus.CLAIMED
        assert second_result.status is ClaimStatus.ALREADY_CLAIMED

    with SessionLocal() as check:
        credits = check.query(XpTransactionRecord).filter(
            XpTransactionRecord.user_id == "u-race",
            XpTransactionRecord.source == "tier_reward",
        ).count()
        assert credits == 1
        assert check.query(RewardTierClaim).count() == 1

    engine.dispose()


# ---------------------------------------------------------------------------
# Subscription perks
# ---------------------------------------------------------------------------

def _subscribe(db_session, user_id, tier, status="active"):
    db_session.add(UserSubscription(user_id=user_id, tier=tier, status=status))
    db_session.commit()


def test_perk_requires_subscription(facade, user_id):
    result = facade.claim_tier_reward(user_id, "perk_single_tutor")
    assert result.status is ClaimStatus.NOT_ELIGIBLE


def test_perk_requires_minimum_tier(facade, user_id, db_session):
    _subscribe(db_session, user_id, "single_tutor")

    assert facade.claim_tier_reward(user_id, "perk_all_access").status is ClaimStatus.NOT_ELIGIBLE
    assert facade.claim_tier_reward(user_id, "perk_single_tutor").status is ClaimStatus.CLAIMED
    assert facade.get_progress(user_id).coins == 10


def test_higher_tier_unlocks_lower_perks(facade, user_id, db_session):
    _subscribe(db_session, user_id, "elite")

    tiers = {t["tier_id"]: t for t in facade.list_reward_tiers(user_id)}
    assert tiers["perk_single_tutor"]["eligible"]
    assert tiers["perk_all_access"]["eligible"]
    assert tiers["perk_elite"]["eligible"]
    assert not tiers["referral_silver"]["eligible"]


def test_canceled_subscription_not_eligible(facade, user_id, db_session):
    _subscribe(db_session, user_id, "elite", status="canceled")

    assert facade.claim_tier_reward(user_id, "perk_elite").status is ClaimStatus.NOT_ELIGIBLE


def test_claim_credit_is_coins_not_xp(facade, user_id, db_session):
    _subscribe(db_session, user_id, "all_access")

    facade.claim_tier_reward(user_id, "perk_all_access")

    state = facade.get_progress(user_id)
    assert state.coins == 50
    assert state.total_xp == 0
    credit = db_session.query(XpTransactionRecord).filter(XpTransactionRecord.source == "tier_reward").one()
    assert credit.idempotency_key == f"tier_reward:{user_id}:perk_all_access"
    assert credit.final_amount == 50
