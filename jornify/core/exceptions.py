from typing import Optional


class HashComputationError(Exception):
    """The row hash of a time record could not be computed.

    Raised for malformed records (missing owner or start time, unparseable
    timestamps, unknown record type) and for failures of the digest itself.
    A record that triggered this must never be persisted.
    """


class PersistenceError(Exception):
    """The record store rejected a write."""

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message


class ChainConflictError(PersistenceError):
    """A write lost the compare-and-swap on an employee's chain tail."""


class RecordNotFoundError(LookupError):
    pass
