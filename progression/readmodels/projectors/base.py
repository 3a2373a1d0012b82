"""
Base Projector - base class for ledger projectors (CQRS read side)

Projectors build read models from the xp_transactions ledger and keep a
per-user checkpoint (last processed ledger id) for incremental runs.
"""
from abc import ABC, abstractmethod
from typing import List
from sqlalchemy.orm import Session

from progression.infrastructure.db.models import ProjectorCheckpoint, XpTransactionRecord
from progression.infrastructure.ledger.repository import LedgerRepository


class BaseProjector(ABC):
    """
    Base class for all projectors

    Each projector:
    1. Reads ledger rows after its checkpoint
    2. Handles each row (handle_transaction)
    3. Finishes the batch (after_batch) to update its read model
    4. Saves the new checkpoint
    """

    def __init__(self, db: Session, projector_name: str):
        """
        Args:
            db: SQLAlchemy session
            projector_name: Unique projector name (checkpoint key)
        """
        self.db = db
        self.projector_name = projector_name
        self.ledger_repo = LedgerRepository(db)

    @abstractmethod
    def handle_transaction(self, tx: XpTransactionRecord) -> None:
        """
        Process one ledger row

        Note:
            Must be idempotent - handling the same row twice must not
            corrupt the read model.
        """
        pass

    def after_batch(self, user_id: str) -> None:
        """Hook called once per processed batch."""
        pass

    def get_checkpoint(self, user_id: str) -> int:
        """
        Returns:
            last processed ledger id (0 if the projector never ran)
        """
        checkpoint = self.db.query(ProjectorCheckpoint).filter(
            ProjectorCheckpoint.projector_name == self.projector_name,
            ProjectorCheckpoint.user_id == user_id
        ).first()

        return checkpoint.last_transaction_id if checkpoint else 0

    def save_checkpoint(self, user_id: str, transaction_id: int) -> None:
        # Flush before query to see uncommitted changes
        self.db.flush()

        checkpoint = self.db.query(ProjectorCheckpoint).filter(
            ProjectorCheckpoint.projector_name == self.projector_name,
            ProjectorCheckpoint.user_id == user_id
        ).first()

        if checkpoint:
            checkpoint.last_transaction_id = transaction_id
        else:
            checkpoint = ProjectorCheckpoint(
                projector_name=self.projector_name,
                user_id=user_id,
                last_transaction_id=transaction_id
            )
            self.db.add(checkpoint)

    def run(self, user_id: str, batch_size: int = 200) -> int:
        """
        Process all new ledger rows for a user

        Returns:
            Number of processed rows

        Example:
            >>> projector = ProgressionSnapshotProjector(db)
            >>> count = projector.run(user_id="u-1")
        """
        checkpoint = self.get_checkpoint(user_id)
        processed_count = 0

        while True:
            rows = self.ledger_repo.list_since(
                user_id=user_id,
                after_id=checkpoint,
                limit=batch_size,
            )

            if not rows:
                break

            for tx in rows:
                self.handle_transaction(tx)
                checkpoint = tx.id
                processed_count += 1

            self.after_batch(user_id)
            self.save_checkpoint(user_id, checkpoint)
            self.db.commit()

            if len(rows) < batch_size:
                break

        return processed_count

    def reset(self, user_id: str) -> None:
        """
        Reset the checkpoint (full rebuild on next run)

        Subclasses drop their own read model as well.
        """
        self.save_checkpoint(user_id, 0)


class ProjectorOrchestrator:
    """
    Runs registered projectors in registration order
    """

    def __init__(self, db: Session):
        self.db = db
        self.projectors: List[BaseProjector] = []

    def register(self, projector: BaseProjector) -> None:
        self.projectors.append(projector)

    def run_all(self, user_id: str) -> dict[str, int]:
        """
        Returns:
            {projector_name: processed_count}
        """
        results = {}

        for projector in self.projectors:
            count = projector.run(user_id)
            results[projector.projector_name] = count

        return results
