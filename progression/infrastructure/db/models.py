"""
SQLAlchemy ORM models (ledger tables + readmodels)
"""
from datetime import date as date_type, datetime
from decimal import Decimal
from sqlalchemy import String, Integer, TIMESTAMP, Date, Float, Numeric, func, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from progression.infrastructure.db.session import Base


class User(Base):
    """
    Learner known to the ledger. The id comes from the identity provider.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # IANA zone, e.g. "Europe/Berlin"; NULL → Settings.TIMEZONE
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )


class XpTransactionRecord(Base):
    """
    Append-only ledger - source of truth for XP and coin totals

    Rows are inserted once and never updated or deleted.
    (user_id, idempotency_key) is unique: the conditional insert that collapses
    duplicate submissions of one logical event.
    """
    __tablename__ = "xp_transactions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    currency: Mapped[str] = mapped_column(String(16), nullable=False, server_default="xp")
    source: Mapped[str] = mapped_column(String(64), nullable=False)

    base_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    tier_multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False, server_default="1")
    streak_bonus: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False, server_default="1")
    final_amount: Mapped[int] = mapped_column(Integer, nullable=False)

    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    # User-local calendar day of the event (fixed at append time)
    activity_day: Mapped[date_type] = mapped_column(Date, nullable=False)

    subject: Mapped[str | None] = mapped_column(String(64), nullable=True)
    ref_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False
    )

    __table_args__ = (
        UniqueConstraint('user_id', 'idempotency_key', name='uq_xp_transactions_user_key'),
        Index('ix_xp_transactions_user_day', 'user_id', 'activity_day'),
    )


class AchievementUnlock(Base):
    """One row per (user, achievement), ever."""
    __tablename__ = "achievement_unlocks"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    achievement_id: Mapped[str] = mapped_column(String(64), nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'achievement_id', name='uq_achievement_unlock'),
    )


class RewardTierClaim(Base):
    """Existence of a row == tier claimed. Never deleted."""
    __tablename__ = "reward_tier_claims"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    tier_id: Mapped[str] = mapped_column(String(64), nullable=False)
    bonus_coins: Mapped[int] = mapped_column(Integer, nullable=False)
    claimed_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'tier_id', name='uq_reward_tier_claim'),
    )


class ReferralRecord(Base):
    """Referral between two users; a user can be referred only once."""
    __tablename__ = "referrals"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    referrer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    referred_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="pending")  # pending, completed
    coins_earned: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class UserSubscription(Base):
    """Active plan per user, written by the billing webhook."""
    __tablename__ = "user_subscriptions"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tier: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="active")  # active, canceled
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


# ============================================================================
# Read Models (projections built from the ledger)
# ============================================================================


class ProjectorCheckpoint(Base):
    """
    Last ledger row processed by a projector for a user
    """
    __tablename__ = "projector_checkpoints"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    projector_name: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    last_transaction_id: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint('projector_name', 'user_id', name='uq_projector_user'),
    )


class ProgressionStateSnapshot(Base):
    """Read model: cached ProgressionState (built by ProgressionSnapshotProjector)."""
    __tablename__ = "progression_state"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    level: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    level_progress: Mapped[float] = mapped_column(Float, nullable=False, server_default="0")
    streak_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    best_streak: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    last_active_day: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    coins: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
