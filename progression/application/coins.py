"""
Coin spending - debits go through the same append-only ledger as credits.

A spend is a coin_spend row with a negative final_amount, keyed by the
caller's request key, so a resent purchase is charged once. Spends of one
user are serialized on the users row (SELECT ... FOR UPDATE on PostgreSQL,
SQLite serializes writers itself), so two concurrent spends cannot both pass
the balance check.
"""
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from progression.application.ledger import TransactionLedger, commit_or_fail
from progression.domain.errors import ProgressionValidationError, TransientStorageFailure
from progression.domain.state import SpendResult, SpendStatus
from progression.domain.xp_transaction import (
    XpTransaction, CURRENCY_COINS, SOURCE_COIN_SPEND, coin_spend_key,
)
from progression.infrastructure.db.models import User

logger = logging.getLogger(__name__)


class CoinWallet:
    def __init__(self, db: Session, ledger: TransactionLedger):
        self.db = db
        self.ledger = ledger

    def balance(self, user_id: str) -> int:
        return self.ledger.coins(user_id)

    def spend(
        self,
        user_id: str,
        amount: int,
        idempotency_key: str,
        item: str | None = None,
    ) -> SpendResult:
        """
        Debit *amount* coins once per idempotency_key.

        Returns:
            SpendResult. INSUFFICIENT_FUNDS leaves the ledger untouched;
            DUPLICATE carries the earlier debit.

        Raises:
            ProgressionValidationError: amount below 1, malformed key or item
            TransientStorageFailure: the debit could not be recorded
        """
        if not idempotency_key or not idempotency_key.strip():
            raise ProgressionValidationError("idempotency_key is required")

        tx = XpTransaction.create(
            user_id=user_id,
            source=SOURCE_COIN_SPEND,
            base_amount=amount,
            idempotency_key=coin_spend_key(user_id, idempotency_key),
            activity_day=self.ledger.calendar.today(user_id),
            currency=CURRENCY_COINS,
            ref_id=item,
        )
        if tx.base_amount < 1:
            raise ProgressionValidationError("amount must be at least 1")

        existing = self.ledger.repo.find_by_key(user_id, tx.idempotency_key)
        if existing:
            return SpendResult(SpendStatus.DUPLICATE, self.balance(user_id), existing)

        self._lock_wallet(user_id)
        balance = self.balance(user_id)
        if balance < amount:
            self.db.rollback()
            logger.info("User %s cannot spend %d coins (balance %d)", user_id, amount, balance)
            return SpendResult(SpendStatus.INSUFFICIENT_FUNDS, balance)

        result = self.ledger.record(tx)
        if not result.accepted:
            return SpendResult(SpendStatus.DUPLICATE, self.balance(user_id), result.transaction)

        commit_or_fail(self.db)
        logger.info("User %s spent %d coins on %s", user_id, amount, item or "unspecified item")
        return SpendResult(SpendStatus.SPENT, self.balance(user_id), result.transaction)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _locked_owner(self, user_id: str) -> User | None:
        return self.db.query(User).filter(User.id == user_id).with_for_update().first()

    def _lock_wallet(self, user_id: str) -> None:
        """Lock the owner's users row until the unit of work ends, registering it if needed."""
        if self._locked_owner(user_id) is not None:
            return

        self.db.add(User(id=user_id))
        try:
            self.db.commit()
        except IntegrityError:
            # Registered by a concurrent request
            self.db.rollback()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Could not register wallet owner %s", user_id)
            raise TransientStorageFailure("Could not record coin spend") from exc

        self._locked_owner(user_id)
