"""
XP History service - read-side queries over the ledger with descriptions.
"""
from __future__ import annotations

import math
from datetime import date

from sqlalchemy.orm import Session

from progression.infrastructure.db.models import XpTransactionRecord
from progression.infrastructure.ledger.repository import LedgerRepository

# Maps ledger source → human-readable label
XP_SOURCE_LABELS: dict[str, str] = {
    "daily_login": "Daily login",
    "chat_completion": "Tutor chat completed",
    "challenge_completion": "Challenge completed",
    "game_completion": "Game completed",
    "lesson_completion": "Lesson completed",
    "flashcard_review": "Flashcards reviewed",
    "journal_entry": "Journal entry",
    "bookmark": "Bookmarked a message",
    "reaction": "Reacted to a message",
    "quote_share": "Shared a quote",
    "tier_reward": "Tier reward claimed",
    "referral_bonus": "Friend joined",
    "achievement_reward": "Achievement reward",
    "coin_spend": "Coins spent",
}


def describe_transaction(source: str, subject: str | None = None, ref_id: str | None = None) -> str:
    """
    Build a human-readable description for a ledger row.

    Examples:
        'Tutor chat completed: math', 'Tier reward claimed: referral_gold'
    """
    base = XP_SOURCE_LABELS.get(source, "XP awarded")

    if subject:
        return f"{base}: {subject}"
    if ref_id and source in ("tier_reward", "achievement_reward", "game_completion", "coin_spend"):
        return f"{base}: {ref_id}"
    return base


class XpHistoryService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def list_recent(self, user_id: str, limit: int = 10) -> list[dict]:
        """Return the last *limit* ledger rows for *user_id*, newest first."""
        rows = LedgerRepository(self.db).list_for_user(user_id, limit=limit)
        return [self._format(row) for row in rows]

    def list_paginated(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
        from_day: date | None = None,
        to_day: date | None = None,
        source: str | None = None,
        currency: str | None = None,
    ) -> tuple[list[dict], int, int]:
        """
        Return (items, total_count, total_pages) for the given filters.

        Day filters use the user-local activity day stored on each row.
        """
        q = self._base_query(user_id)

        if from_day:
            q = q.filter(XpTransactionRecord.activity_day >= from_day)
        if to_day:
            q = q.filter(XpTransactionRecord.activity_day <= to_day)
        if source:
            q = q.filter(XpTransactionRecord.source == source)
        if currency:
            q = q.filter(XpTransactionRecord.currency == currency)

        total = q.count()
        total_pages = max(1, math.ceil(total / page_size))
        page = max(1, min(page, total_pages))

        rows = q.offset((page - 1) * page_size).limit(page_size).all()
        return [self._format(row) for row in rows], total, total_pages

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _base_query(self, user_id: str):
        return (
            self.db.query(XpTransactionRecord)
            .filter(XpTransactionRecord.user_id == user_id)
            .order_by(XpTransactionRecord.id.desc())
        )

    def _format(self, row: XpTransactionRecord) -> dict:
        return {
            "id": row.id,
            "source": row.source,
            "currency": row.currency,
            "base_amount": row.base_amount,
            "tier_multiplier": str(row.tier_multiplier),
            "streak_bonus": str(row.streak_bonus),
            "final_amount": row.final_amount,
            "activity_day": row.activity_day.isoformat(),
            "created_at": row.created_at.isoformat() if row.created_at else None,
            "description": describe_transaction(row.source, row.subject, row.ref_id),
        }
