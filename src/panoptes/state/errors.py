"""State management errors."""


class StateError(Exception):
    """Base exception for history and metadata storage operations."""


class LedgerWriteError(StateError):
    """Raised when a history entry cannot be durably written.

    A rename must not proceed when this is raised for its entry.
    """


class StoreError(StateError):
    """Raised when the metadata database rejects an operation."""


class EntryNotFoundError(StateError):
    """Raised when a history entry id is not present in the ledger."""
