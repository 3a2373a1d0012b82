"""
Progression error taxonomy.

Only TransientStorageFailure is a real error: duplicates, repeated claims and
unsatisfied predicates are ordinary outcomes reported through status values
(see progression.domain.state).
"""


class ProgressionValidationError(ValueError):
    """Bad input: negative amount, unknown source, tier or achievement."""
    pass


class TransientStorageFailure(RuntimeError):
    """The append/claim could not be durably recorded. Safe to resend."""
    pass
