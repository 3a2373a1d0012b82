"""
Tests for the progression API endpoints
"""
import pytest
from fastapi.testclient import TestClient

from progression.api.deps import get_clock, get_current_user_id, get_db
from progression.main import app
from progression.infrastructure.db.models import UserSubscription


@pytest.fixture
def client(db_session, fixed_clock, user_id):
    """Test client with the in-memory session, a fixed clock and a logged-in user"""
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_clock] = lambda: fixed_clock
    app.dependency_overrides[get_current_user_id] = lambda: user_id
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(db_session):
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _grant(client, amount=10, source="chat_completion", key="chat:1", **extra):
    payload = {"base_amount": amount, "source": source, "idempotency_key": key, **extra}
    return client.post("/api/v1/progression/xp", json=payload)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.text == "ok"


def test_requires_session(anonymous_client):
    response = anonymous_client.get("/api/v1/progression/")
    assert response.status_code == 401


def test_get_progress_for_new_user(client, user_id):
    response = client.get("/api/v1/progression/")

    assert response.status_code == 200
    data = response.json()
    assert data["user_id"] == user_id
    assert data["total_xp"] == 0
    assert data["level"] == 1
    assert data["last_active_day"] is None


def test_grant_xp(client):
    response = _grant(client, amount=10, subject="math")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "accepted"
    assert data["awarded"] == 10
    assert data["progress"]["total_xp"] == 10
    assert data["progress"]["streak_count"] == 1


def test_grant_duplicate_key(client):
    _grant(client, key="chat:1")
    response = _grant(client, key="chat:1")

    assert response.status_code == 200
    assert response.json()["status"] == "duplicate"
    assert response.json()["awarded"] == 0
    assert response.json()["progress"]["total_xp"] == 10


@pytest.mark.parametrize("payload", [
    {"base_amount": -1, "source": "chat_completion", "idempotency_key": "k"},
    {"base_amount": 1, "source": "tier_reward", "idempotency_key": "k"},
    {"base_amount": 1, "source": "chat_completion", "idempotency_key": "  "},
    {"base_amount": 10**20, "source": "chat_completion", "idempotency_key": "k"},
    {"base_amount": 1, "source": "chat_completion", "idempotency_key": "k", "subject": "s" * 65},
    {"base_amount": 1, "source": "chat_completion", "idempotency_key": "k", "ref_id": "r" * 129},
])
def test_grant_validation(client, payload):
    response = client.post("/api/v1/progression/xp", json=payload)
    assert response.status_code == 422


def test_daily_login_once(client):
    first = client.post("/api/v1/progression/daily-login")
    second = client.post("/api/v1/progression/daily-login", json={"base_amount": 10})

    assert first.json()["status"] == "accepted"
    assert second.json()["status"] == "duplicate"
    assert second.json()["progress"]["total_xp"] == 10


def test_streak_reset(client):
    assert client.get("/api/v1/progression/streak-reset").json()["reset_at"] is None

    _grant(client)
    reset_at = client.get("/api/v1/progression/streak-reset").json()["reset_at"]

    assert reset_at.startswith("2026-03-12T00:00:00")


def test_transactions(client):
    _grant(client, key="chat:1", subject="math")
    _grant(client, key="chat:2")

    data = client.get("/api/v1/progression/transactions", params={"page_size": 1}).json()

    assert data["total"] == 2
    assert data["pages"] == 2
    assert len(data["items"]) == 1


def test_achievements_and_unlock(client):
    response = client.post("/api/v1/progression/achievements/hidden_vine/unlock")
    assert response.json() == {"achievement_id": "hidden_vine", "unlocked": True}

    again = client.post("/api/v1/progression/achievements/hidden_vine/unlock")
    assert again.json()["unlocked"] is False

    items = {a["achievement_id"]: a for a in client.get("/api/v1/progression/achievements").json()}
    assert items["hidden_vine"]["unlocked"]
    assert client.get("/api/v1/progression/").json()["total_xp"] == 15


def test_unlock_unknown_achievement(client):
    response = client.post("/api/v1/progression/achievements/nope/unlock")
    assert response.status_code == 404


def test_reward_claim_statuses(client, db_session, user_id):
    assert client.post("/api/v1/progression/rewards/perk_single_tutor/claim").status_code == 403

    db_session.add(UserSubscription(user_id=user_id, tier="single_tutor", status="active"))
    db_session.commit()

    claimed = client.post("/api/v1/progression/rewards/perk_single_tutor/claim")
    assert claimed.status_code == 200
    assert claimed.json() == {"status": "claimed", "tier_id": "perk_single_tutor", "bonus_coins": 10}

    assert client.post("/api/v1/progression/rewards/perk_single_tutor/claim").status_code == 409
    assert client.get("/api/v1/progression/").json()["coins"] == 10


def test_claim_unknown_tier(client):
    assert client.post("/api/v1/progression/rewards/nope/claim").status_code == 404


def test_list_rewards(client):
    tiers = client.get("/api/v1/progression/rewards").json()

    assert {t["tier_id"] for t in tiers} >= {"referral_silver", "referral_gold", "referral_diamond"}
    assert not any(t["claimed"] for t in tiers)


def test_set_timezone(client):
    response = client.put("/api/v1/progression/timezone", json={"timezone": "Asia/Tokyo"})
    assert response.json()["timezone"] == "Asia/Tokyo"

    bad = client.put("/api/v1/progression/timezone", json={"timezone": "Nowhere/Land"})
    assert bad.status_code == 400


def test_redeem_referral_credits_referrer(client, db_session, user_id):
    response = client.post("/api/v1/progression/referrals/redeem", json={"referrer_id": "friend-0"})

    assert response.status_code == 200
    assert response.json() == {"referrer_id": "friend-0", "status": "completed", "coins_earned": 5}

    again = client.post("/api/v1/progression/referrals/redeem", json={"referrer_id": "friend-0"})
    assert again.status_code == 200


def test_redeem_own_referral_rejected(client, user_id):
    response = client.post("/api/v1/progression/referrals/redeem", json={"referrer_id": user_id})
    assert response.status_code == 400


def test_referral_leaderboard(client, facade, user_id):
    for i in range(5):
        facade.complete_referral(user_id, f"friend-{i}")
    facade.complete_referral("rival", "friend-9")

    board = client.get("/api/v1/progression/referrals/leaderboard", params={"limit": 10}).json()

    assert [e["user_id"] for e in board] == [user_id, "rival"]
    assert board[0] == {
        "rank": 1,
        "user_id": user_id,
        "total_referrals": 5,
        "coins_earned": 25,
        "tier_id": "referral_silver",
        "tier": "Silver",
        "is_current_user": True,
    }
    assert board[1]["tier"] is None
    assert not board[1]["is_current_user"]


def _subscribe_and_claim(client, db_session, user_id):
    db_session.add(UserSubscription(user_id=user_id, tier="single_tutor", status="active"))
    db_session.commit()
    client.post("/api/v1/progression/rewards/perk_single_tutor/claim")


def test_spend_coins(client, db_session, user_id):
    _subscribe_and_claim(client, db_session, user_id)
    payload = {"amount": 4, "idempotency_key": "shop:1", "item": "game_pass"}

    first = client.post("/api/v1/progression/coins/spend", json=payload)
    again = client.post("/api/v1/progression/coins/spend", json=payload)

    assert first.json() == {"status": "spent", "spent": 4, "balance": 6}
    assert again.json() == {"status": "duplicate", "spent": 0, "balance": 6}
    assert client.get("/api/v1/progression/").json()["coins"] == 6


def test_spend_coins_insufficient(client, db_session, user_id):
    _subscribe_and_claim(client, db_session, user_id)

    response = client.post("/api/v1/progression/coins/spend", json={"amount": 11, "idempotency_key": "shop:1"})

    assert response.status_code == 402
    assert client.get("/api/v1/progression/").json()["coins"] == 10


@pytest.mark.parametrize("payload", [
    {"amount": 0, "idempotency_key": "shop:1"},
    {"amount": 10**20, "idempotency_key": "shop:1"},
    {"amount": 1, "idempotency_key": " "},
    {"amount": 1, "idempotency_key": "shop:1", "item": "i" * 129},
])
def test_spend_coins_validation(client, payload):
    assert client.post("/api/v1/progression/coins/spend", json=payload).status_code == 422
