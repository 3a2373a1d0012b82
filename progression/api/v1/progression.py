"""
Progression API endpoints
"""
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from progression.api.deps import get_current_user_id, get_db, get_facade
from progression.application.progression import ProgressionFacade
from progression.application.users import SetUserTimezoneUseCase
from progression.domain.achievement import find_achievement
from progression.domain.errors import ProgressionValidationError, TransientStorageFailure
from progression.domain.state import AppendStatus, ClaimStatus, ProgressionState, SpendStatus
from progression.domain.xp_transaction import (
    ACTIVITY_SOURCES, MAX_AMOUNT, MAX_KEY_LENGTH, MAX_REF_ID_LENGTH, MAX_SUBJECT_LENGTH,
)


router = APIRouter(prefix="/api/v1/progression", tags=["progression"])


# === Request/Response models ===

class GrantXpRequest(BaseModel):
    base_amount: int
    source: str  # chat_completion, game_completion, ...
    idempotency_key: str
    subject: str | None = None  # tutor subject
    ref_id: str | None = None  # game / challenge id

    @field_validator("base_amount")
    @classmethod
    def validate_amount(cls, v: int) -> int:
        if v < 0:
            raise ValueError("base_amount must be >= 0")
        if v > MAX_AMOUNT:
            raise ValueError(f"base_amount must be <= {MAX_AMOUNT}")
        return v

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        if v not in ACTIVITY_SOURCES:
            raise ValueError(f"Unknown XP source: {v}")
        return v

    @field_validator("idempotency_key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("idempotency_key is required")
        if len(v) > MAX_KEY_LENGTH:
            raise ValueError(f"idempotency_key must be at most {MAX_KEY_LENGTH} characters")
        return v

    @field_validator("subject")
    @classmethod
    def validate_subject(cls, v: str | None) -> str | None:
        if v is not None and len(v) > MAX_SUBJECT_LENGTH:
            raise ValueError(f"subject must be at most {MAX_SUBJECT_LENGTH} characters")
        return v

    @field_validator("ref_id")
    @classmethod
    def validate_ref_id(cls, v: str | None) -> str | None:
        if v is not None and len(v) > MAX_REF_ID_LENGTH:
            raise ValueError(f"ref_id must be at most {MAX_REF_ID_LENGTH} characters")
        return v


class DailyLoginRequest(BaseModel):
    base_amount: int = 10

    @field_validator("base_amount")
    @classmethod
    def validate_amount(cls, v: int) -> int:
        if v < 0:
            raise ValueError("base_amount must be >= 0")
        if v > MAX_AMOUNT:
            raise ValueError(f"base_amount must be <= {MAX_AMOUNT}")
        return v


class ProgressResponse(BaseModel):
    user_id: str
    total_xp: int
    level: int
    level_progress: float
    streak_count: int
    best_streak: int
    last_active_day: date | None
    today_xp: int
    coins: int


class GrantResponse(BaseModel):
    status: str  # accepted | duplicate
    awarded: int
    leveled_up: bool
    newly_unlocked: list[str]
    progress: ProgressResponse


class StreakResetResponse(BaseModel):
    reset_at: datetime | None


class AchievementResponse(BaseModel):
    achievement_id: str
    name: str
    description: str
    xp_reward: int
    hidden: bool
    unlocked: bool
    unlocked_at: datetime | None


class RewardTierResponse(BaseModel):
    tier_id: str
    name: str
    kind: str
    threshold: int
    required_tier: str | None
    bonus_coins: int
    eligible: bool
    claimed: bool


class ClaimResponse(BaseModel):
    status: str
    tier_id: str
    bonus_coins: int


class TimezoneRequest(BaseModel):
    timezone: str | None = None  # e.g. "Europe/Berlin"; null = server default


class RedeemReferralRequest(BaseModel):
    referrer_id: str

    @field_validator("referrer_id")
    @classmethod
    def validate_referrer(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("referrer_id is required")
        return v


class SpendCoinsRequest(BaseModel):
    amount: int
    idempotency_key: str  # one per purchase attempt, reused on resend
    item: str | None = None  # what the coins buy, e.g. "game_pass"

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: int) -> int:
        if v < 1:
            raise ValueError("amount must be >= 1")
        if v > MAX_AMOUNT:
            raise ValueError(f"amount must be <= {MAX_AMOUNT}")
        return v

    @field_validator("idempotency_key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("idempotency_key is required")
        return v

    @field_validator("item")
    @classmethod
    def validate_item(cls, v: str | None) -> str | None:
        if v is not None and len(v) > MAX_REF_ID_LENGTH:
            raise ValueError(f"item must be at most {MAX_REF_ID_LENGTH} characters")
        return v


class SpendResponse(BaseModel):
    status: str  # spent | duplicate
    spent: int
    balance: int


class LeaderboardEntryResponse(BaseModel):
    rank: int
    user_id: str
    total_referrals: int
    coins_earned: int
    tier_id: str | None
    tier: str | None
    is_current_user: bool


# === Helper functions ===

def _progress(state: ProgressionState) -> ProgressResponse:
    return ProgressResponse(
        user_id=state.user_id,
        total_xp=state.total_xp,
        level=state.level,
        level_progress=state.level_progress,
        streak_count=state.streak_count,
        best_streak=state.best_streak,
        last_active_day=state.last_active_day,
        today_xp=state.today_xp,
        coins=state.coins,
    )


def _storage_unavailable(exc: TransientStorageFailure) -> HTTPException:
    return HTTPException(status_code=503, detail=f"{exc}. Please try again.")


def _grant_response(result) -> GrantResponse:
    return GrantResponse(
        status=result.status.value,
        awarded=result.transaction.final_amount if result.status is AppendStatus.ACCEPTED else 0,
        leveled_up=result.leveled_up,
        newly_unlocked=[a.id for a in result.newly_unlocked],
        progress=_progress(result.state),
    )


# === Endpoints ===

@router.get("/", response_model=ProgressResponse)
def get_progress(
    user_id: str = Depends(get_current_user_id),
    facade: ProgressionFacade = Depends(get_facade),
):
    """Current progression state (always derived from the ledger)"""
    return _progress(facade.get_progress(user_id))


@router.post("/xp", response_model=GrantResponse)
def grant_xp(
    req: GrantXpRequest,
    user_id: str = Depends(get_current_user_id),
    facade: ProgressionFacade = Depends(get_facade),
):
    """Award XP for an activity; resending the same idempotency_key is a no-op"""
    try:
        result = facade.grant_xp(
            user_id=user_id,
            base_amount=req.base_amount,
            source=req.source,
            idempotency_key=req.idempotency_key,
            subject=req.subject,
            ref_id=req.ref_id,
        )
    except ProgressionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransientStorageFailure as e:
        raise _storage_unavailable(e)

    return _grant_response(result)


@router.post("/daily-login", response_model=GrantResponse)
def daily_login(
    req: DailyLoginRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    facade: ProgressionFacade = Depends(get_facade),
):
    """Daily login XP, once per local day across all devices"""
    base_amount = req.base_amount if req else DailyLoginRequest().base_amount
    try:
        result = facade.record_daily_login(user_id, base_amount=base_amount)
    except TransientStorageFailure as e:
        raise _storage_unavailable(e)

    return _grant_response(result)


@router.get("/streak-reset", response_model=StreakResetResponse)
def streak_reset(
    user_id: str = Depends(get_current_user_id),
    facade: ProgressionFacade = Depends(get_facade),
):
    """When the current streak lapses without new activity"""
    return StreakResetResponse(reset_at=facade.get_streak_reset_time(user_id))


@router.get("/transactions")
def list_transactions(
    user_id: str = Depends(get_current_user_id),
    facade: ProgressionFacade = Depends(get_facade),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    from_day: date | None = None,
    to_day: date | None = None,
    source: str | None = None,
    currency: str | None = None,
):
    """XP and coin history, newest first"""
    items, total, pages = facade.history.list_paginated(
        user_id,
        page=page,
        page_size=page_size,
        from_day=from_day,
        to_day=to_day,
        source=source,
        currency=currency,
    )
    return {"items": items, "total": total, "pages": pages, "page": min(page, pages)}


@router.get("/achievements", response_model=list[AchievementResponse])
def list_achievements(
    user_id: str = Depends(get_current_user_id),
    facade: ProgressionFacade = Depends(get_facade),
):
    """Achievement catalog with unlocked flags"""
    return [AchievementResponse(**item) for item in facade.list_achievements(user_id)]


@router.post("/achievements/{achievement_id}/unlock")
def unlock_achievement(
    achievement_id: str,
    user_id: str = Depends(get_current_user_id),
    facade: ProgressionFacade = Depends(get_facade),
):
    """Explicit unlock (hidden achievements, easter eggs)"""
    if find_achievement(achievement_id, facade.achievements.catalog) is None:
        raise HTTPException(status_code=404, detail="Achievement not found")

    try:
        achievement = facade.unlock_achievement(user_id, achievement_id)
    except TransientStorageFailure as e:
        raise _storage_unavailable(e)

    return {"achievement_id": achievement_id, "unlocked": achievement is not None}


@router.get("/rewards", response_model=list[RewardTierResponse])
def list_rewards(
    user_id: str = Depends(get_current_user_id),
    facade: ProgressionFacade = Depends(get_facade),
):
    """Referral milestones and subscription perks with eligible/claimed flags"""
    return [RewardTierResponse(**item) for item in facade.list_reward_tiers(user_id)]


@router.post("/rewards/{tier_id}/claim", response_model=ClaimResponse)
def claim_reward(
    tier_id: str,
    user_id: str = Depends(get_current_user_id),
    facade: ProgressionFacade = Depends(get_facade),
):
    """Claim a reward tier once"""
    try:
        result = facade.claim_tier_reward(user_id, tier_id)
    except ProgressionValidationError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TransientStorageFailure as e:
        raise _storage_unavailable(e)

    if result.status is ClaimStatus.ALREADY_CLAIMED:
        raise HTTPException(status_code=409, detail="Reward already claimed")
    if result.status is ClaimStatus.NOT_ELIGIBLE:
        raise HTTPException(status_code=403, detail="Not eligible for this reward")

    return ClaimResponse(
        status=result.status.value,
        tier_id=result.reward.tier_id,
        bonus_coins=result.reward.bonus_coins,
    )


@router.put("/timezone")
def set_timezone(
    req: TimezoneRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Store the user's IANA zone; local days and streak resets follow it"""
    try:
        user = SetUserTimezoneUseCase(db).execute(user_id, req.timezone)
    except ProgressionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"user_id": user.id, "timezone": user.timezone}


@router.post("/referrals/redeem")
def redeem_referral(
    req: RedeemReferralRequest,
    user_id: str = Depends(get_current_user_id),
    facade: ProgressionFacade = Depends(get_facade),
):
    """Current user joined through *referrer_id*'s link; credits the referrer once"""
    try:
        record = facade.complete_referral(req.referrer_id, user_id)
    except ProgressionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransientStorageFailure as e:
        raise _storage_unavailable(e)

    return {
        "referrer_id": record.referrer_id,
        "status": record.status,
        "coins_earned": record.coins_earned,
    }


@router.get("/referrals/leaderboard", response_model=list[LeaderboardEntryResponse])
def referral_leaderboard(
    limit: int = Query(25, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    facade: ProgressionFacade = Depends(get_facade),
):
    """Top referrers with the highest referral tier each has reached"""
    return [
        LeaderboardEntryResponse(**entry, is_current_user=entry["user_id"] == user_id)
        for entry in facade.referral_leaderboard(limit=limit)
    ]


@router.post("/coins/spend", response_model=SpendResponse)
def spend_coins(
    req: SpendCoinsRequest,
    user_id: str = Depends(get_current_user_id),
    facade: ProgressionFacade = Depends(get_facade),
):
    """Debit coins once per idempotency_key; refused when the balance is too low"""
    try:
        result = facade.spend_coins(user_id, req.amount, req.idempotency_key, item=req.item)
    except ProgressionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransientStorageFailure as e:
        raise _storage_unavailable(e)

    if result.status is SpendStatus.INSUFFICIENT_FUNDS:
        raise HTTPException(status_code=402, detail=f"Insufficient coins (balance {result.balance})")

    return SpendResponse(
        status=result.status.value,
        spent=req.amount if result.ok else 0,
        balance=result.balance,
    )
