"""
Read-side state and operation outcomes.

Duplicates, repeated claims and unmet predicates are expected results and are
reported here as statuses, not raised.
"""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from progression.domain.achievement import Achievement


@dataclass(frozen=True)
class ProgressionState:
    """Derived snapshot; every field is recomputable from the ledger."""
    user_id: str
    total_xp: int = 0
    level: int = 1
    level_progress: float = 0.0
    streak_count: int = 0
    best_streak: int = 0
    last_active_day: date | None = None
    today_xp: int = 0
    coins: int = 0


class AppendStatus(str, Enum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class AppendResult:
    status: AppendStatus
    transaction: Any  # ORM row (XpTransactionRecord)

    @property
    def accepted(self) -> bool:
        return self.status is AppendStatus.ACCEPTED


class ClaimStatus(str, Enum):
    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"
    NOT_ELIGIBLE = "not_eligible"


@dataclass(frozen=True)
class Reward:
    tier_id: str
    bonus_coins: int


@dataclass(frozen=True)
class ClaimResult:
    status: ClaimStatus
    reward: Reward | None = None

    @property
    def ok(self) -> bool:
        return self.status is ClaimStatus.CLAIMED


class UnlockStatus(str, Enum):
    UNLOCKED = "unlocked"
    ALREADY_UNLOCKED = "already_unlocked"
    NOT_ELIGIBLE = "not_eligible"


@dataclass(frozen=True)
class UnlockResult:
    status: UnlockStatus
    achievement: Achievement


@dataclass(frozen=True)
class GrantResult:
    state: ProgressionState
    status: AppendStatus
    transaction: Any = None
    newly_unlocked: list[Achievement] = field(default_factory=list)
    leveled_up: bool = False


class SpendStatus(str, Enum):
    SPENT = "spent"
    DUPLICATE = "duplicate"
    INSUFFICIENT_FUNDS = "insufficient_funds"


@dataclass(frozen=True)
class SpendResult:
    status: SpendStatus
    balance: int
    transaction: Any = None

    @property
    def ok(self) -> bool:
        return self.status is SpendStatus.SPENT
