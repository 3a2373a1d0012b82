"""
XpTransaction domain entity - describes one ledger entry before it is appended

Ledger entries are immutable: the Transaction Ledger is the only writer and it
never updates or deletes a row. Everything about an award (multipliers, final
amount, local day) is fixed at creation so later tier changes never rewrite
history.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from progression.domain.errors import ProgressionValidationError

CURRENCY_XP = "xp"
CURRENCY_COINS = "coins"

# Activity sources (qualify for streaks and receive multipliers)
SOURCE_DAILY_LOGIN = "daily_login"
SOURCE_CHAT_COMPLETION = "chat_completion"
SOURCE_CHALLENGE_COMPLETION = "challenge_completion"
SOURCE_GAME_COMPLETION = "game_completion"
SOURCE_LESSON_COMPLETION = "lesson_completion"
SOURCE_FLASHCARD_REVIEW = "flashcard_review"
SOURCE_JOURNAL_ENTRY = "journal_entry"
SOURCE_BOOKMARK = "bookmark"
SOURCE_REACTION = "reaction"
SOURCE_QUOTE_SHARE = "quote_share"

# Reward credits (never multiplied, never extend a streak)
SOURCE_TIER_REWARD = "tier_reward"
SOURCE_REFERRAL_BONUS = "referral_bonus"
SOURCE_ACHIEVEMENT_REWARD = "achievement_reward"

# Coin debits (stored with a negative final_amount)
SOURCE_COIN_SPEND = "coin_spend"

ACTIVITY_SOURCES: frozenset[str] = frozenset({
    SOURCE_DAILY_LOGIN,
    SOURCE_CHAT_COMPLETION,
    SOURCE_CHALLENGE_COMPLETION,
    SOURCE_GAME_COMPLETION,
    SOURCE_LESSON_COMPLETION,
    SOURCE_FLASHCARD_REVIEW,
    SOURCE_JOURNAL_ENTRY,
    SOURCE_BOOKMARK,
    SOURCE_REACTION,
    SOURCE_QUOTE_SHARE,
})

REWARD_SOURCES: frozenset[str] = frozenset({
    SOURCE_TIER_REWARD,
    SOURCE_REFERRAL_BONUS,
    SOURCE_ACHIEVEMENT_REWARD,
})

DEBIT_SOURCES: frozenset[str] = frozenset({SOURCE_COIN_SPEND})

ALL_SOURCES: frozenset[str] = ACTIVITY_SOURCES | REWARD_SOURCES | DEBIT_SOURCES

# Column limits of xp_transactions (amounts are 32-bit INTEGER)
MAX_AMOUNT = 2_147_483_647
MAX_USER_ID_LENGTH = 64
MAX_SUBJECT_LENGTH = 64
MAX_REF_ID_LENGTH = 128
MAX_KEY_LENGTH = 255


def validate_amount(amount: int, field_name: str = "base_amount") -> int:
    """
    Raises:
        ProgressionValidationError: not an int, negative, or too large to store
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ProgressionValidationError(f"{field_name} must be a non-negative integer")
    if amount > MAX_AMOUNT:
        raise ProgressionValidationError(f"{field_name} must not exceed {MAX_AMOUNT}")
    return amount


def _check_length(value: str | None, limit: int, field_name: str) -> None:
    if value is not None and len(value) > limit:
        raise ProgressionValidationError(f"{field_name} is longer than {limit} characters")


# ----------------------------------------------------------------------------
# Idempotency keys: deterministic from the triggering event, never from the
# wall clock at the call site.
# ----------------------------------------------------------------------------

def daily_login_key(user_id: str, local_day: date) -> str:
    return f"daily_login:{user_id}:{local_day.isoformat()}"


def tier_reward_key(user_id: str, tier_id: str) -> str:
    return f"tier_reward:{user_id}:{tier_id}"


def achievement_reward_key(user_id: str, achievement_id: str) -> str:
    return f"achievement:{user_id}:{achievement_id}"


def referral_bonus_key(referred_id: str) -> str:
    # A user can be referred once, so the referred id alone identifies the event
    return f"referral:{referred_id}"


def coin_spend_key(user_id: str, request_key: str) -> str:
    return f"coin_spend:{user_id}:{request_key}"


@dataclass(frozen=True)
class XpTransaction:
    """
    Value describing a ledger entry (XP or coins)

    final_amount is computed once by the Multiplier Resolver and stored as is.
    """
    user_id: str
    source: str
    base_amount: int
    tier_multiplier: Decimal
    streak_bonus: Decimal
    final_amount: int
    idempotency_key: str
    activity_day: date
    currency: str = CURRENCY_XP
    subject: str | None = None
    ref_id: str | None = None

    @staticmethod
    def create(
        user_id: str,
        source: str,
        base_amount: int,
        idempotency_key: str,
        activity_day: date,
        tier_multiplier: Decimal = Decimal("1"),
        streak_bonus: Decimal = Decimal("1"),
        final_amount: int | None = None,
        currency: str = CURRENCY_XP,
        subject: str | None = None,
        ref_id: str | None = None,
    ) -> "XpTransaction":
        """
        Validate and build a ledger entry

        Raises:
            ProgressionValidationError: on any malformed field
        """
        if not user_id:
            raise ProgressionValidationError("user_id is required")
        if source not in ALL_SOURCES:
            raise ProgressionValidationError(f"Unknown XP source: {source}")
        if currency not in (CURRENCY_XP, CURRENCY_COINS):
            raise ProgressionValidationError(f"Unknown currency: {currency}")
        validate_amount(base_amount)
        if not idempotency_key or not idempotency_key.strip():
            raise ProgressionValidationError("idempotency_key is required")
        _check_length(user_id, MAX_USER_ID_LENGTH, "user_id")
        _check_length(idempotency_key, MAX_KEY_LENGTH, "idempotency_key")
        _check_length(subject, MAX_SUBJECT_LENGTH, "subject")
        _check_length(ref_id, MAX_REF_ID_LENGTH, "ref_id")
        if tier_multiplier < 1 or streak_bonus < 1:
            raise ProgressionValidationError("multipliers must be >= 1")

        if source in DEBIT_SOURCES:
            if currency != CURRENCY_COINS:
                raise ProgressionValidationError(f"{source} only applies to coins")
            final_amount = -base_amount
        else:
            if final_amount is None:
                final_amount = base_amount
            validate_amount(final_amount, "final_amount")

        return XpTransaction(
            user_id=user_id,
            source=source,
            base_amount=base_amount,
            tier_multiplier=tier_multiplier,
            streak_bonus=streak_bonus,
            final_amount=final_amount,
            idempotency_key=idempotency_key,
            activity_day=activity_day,
            currency=currency,
            subject=subject,
            ref_id=ref_id,
        )

    @property
    def is_activity(self) -> bool:
        """Whether this entry counts towards the daily streak."""
        return self.currency == CURRENCY_XP and self.source in ACTIVITY_SOURCES
