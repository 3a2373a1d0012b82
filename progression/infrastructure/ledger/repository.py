"""
Ledger Repository - source of truth for XP and coins

Every award is an immutable row in xp_transactions. Totals, streaks and
achievement aggregates are queries over these rows, never stored counters.
"""
from datetime import date, datetime, timezone
from typing import Dict, List, Optional
from sqlalchemy import func, distinct
from sqlalchemy.orm import Session

from progression.domain.xp_transaction import XpTransaction, CURRENCY_XP, ACTIVITY_SOURCES
from progression.infrastructure.db.models import XpTransactionRecord


class LedgerRepository:
    """
    Repository for the append-only xp_transactions table
    """

    def __init__(self, db: Session):
        self.db = db

    def insert(self, tx: XpTransaction, created_at: Optional[datetime] = None) -> XpTransactionRecord:
        """
        Add a ledger row inside the caller's transaction

        Args:
            tx: Validated ledger entry
            created_at: Instant of the append (default: now)

        Returns:
            The flushed row (id assigned)

        Raises:
            IntegrityError: if (user_id, idempotency_key) already exists
        """
        if created_at is None:
            created_at = datetime.now(timezone.utc)

        record = XpTransactionRecord(
            user_id=tx.user_id,
            currency=tx.currency,
            source=tx.source,
            base_amount=tx.base_amount,
            tier_multiplier=tx.tier_multiplier,
            streak_bonus=tx.streak_bonus,
            final_amount=tx.final_amount,
            idempotency_key=tx.idempotency_key,
            activity_day=tx.activity_day,
            subject=tx.subject,
            ref_id=tx.ref_id,
            created_at=created_at,
        )

        self.db.add(record)
        self.db.flush()  # surface the unique violation now, get the id without commit

        return record

    def find_by_key(self, user_id: str, idempotency_key: str) -> Optional[XpTransactionRecord]:
        return (
            self.db.query(XpTransactionRecord)
            .filter(
                XpTransactionRecord.user_id == user_id,
                XpTransactionRecord.idempotency_key == idempotency_key,
            )
            .first()
        )

    def sum_amount(
        self,
        user_id: str,
        currency: str = CURRENCY_XP,
        day: Optional[date] = None,
    ) -> int:
        """
        SUM(final_amount) for a user, optionally limited to one local day
        """
        query = self.db.query(func.sum(XpTransactionRecord.final_amount)).filter(
            XpTransactionRecord.user_id == user_id,
            XpTransactionRecord.currency == currency,
        )
        if day is not None:
            query = query.filter(XpTransactionRecord.activity_day == day)
        return int(query.scalar() or 0)

    def activity_days(self, user_id: str) -> List[date]:
        """Distinct local days with at least one qualifying activity, ascending."""
        rows = (
            self.db.query(XpTransactionRecord.activity_day)
            .filter(
                XpTransactionRecord.user_id == user_id,
                XpTransactionRecord.currency == CURRENCY_XP,
                XpTransactionRecord.source.in_(sorted(ACTIVITY_SOURCES)),
            )
            .distinct()
            .order_by(XpTransactionRecord.activity_day.asc())
            .all()
        )
        return [row[0] for row in rows]

    def count_by_source(self, user_id: str) -> Dict[str, int]:
        rows = (
            self.db.query(XpTransactionRecord.source, func.count(XpTransactionRecord.id))
            .filter(
                XpTransactionRecord.user_id == user_id,
                XpTransactionRecord.currency == CURRENCY_XP,
            )
            .group_by(XpTransactionRecord.source)
            .all()
        )
        return {source: int(count) for source, count in rows}

    def distinct_refs_by_source(self, user_id: str) -> Dict[str, int]:
        """Number of distinct ref_ids per source, e.g. distinct games played."""
        rows = (
            self.db.query(
                XpTransactionRecord.source,
                func.count(distinct(XpTransactionRecord.ref_id)),
            )
            .filter(
                XpTransactionRecord.user_id == user_id,
                XpTransactionRecord.currency == CURRENCY_XP,
                XpTransactionRecord.ref_id.isnot(None),
            )
            .group_by(XpTransactionRecord.source)
            .all()
        )
        return {source: int(count) for source, count in rows}

    def xp_by_subject(self, user_id: str) -> Dict[str, int]:
        rows = (
            self.db.query(XpTransactionRecord.subject, func.sum(XpTransactionRecord.final_amount))
            .filter(
                XpTransactionRecord.user_id == user_id,
                XpTransactionRecord.currency == CURRENCY_XP,
                XpTransactionRecord.subject.isnot(None),
            )
            .group_by(XpTransactionRecord.subject)
            .all()
        )
        return {subject: int(total or 0) for subject, total in rows}

    def list_for_user(self, user_id: str, limit: int = 50) -> List[XpTransactionRecord]:
        """Newest ledger rows first"""
        return (
            self.db.query(XpTransactionRecord)
            .filter(XpTransactionRecord.user_id == user_id)
            .order_by(XpTransactionRecord.id.desc())
            .limit(limit)
            .all()
        )

    def list_since(
        self,
        user_id: str,
        after_id: int = 0,
        limit: int = 200,
    ) -> List[XpTransactionRecord]:
        """
        Ledger rows with id > after_id, ascending (for projectors)
        """
        return (
            self.db.query(XpTransactionRecord)
            .filter(
                XpTransactionRecord.user_id == user_id,
                XpTransactionRecord.id > after_id,
            )
            .order_by(XpTransactionRecord.id.asc())
            .limit(limit)
            .all()
        )

    def count(self, user_id: str) -> int:
        return self.db.query(XpTransactionRecord).filter(XpTransactionRecord.user_id == user_id).count()
