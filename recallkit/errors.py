"""
Error types raised by the recallkit engine.

Caller errors (InvalidRating, InvalidSnapshot) are raised before any state
is touched. UnknownSchemaVersion aborts the load or import that hit it.
StoreWriteFailure means the durable write did not complete and the
in-memory ledger still holds its previous value.
"""

from __future__ import annotations


class RecallkitError(Exception):
    """Base class for all recallkit errors."""

    pass


class InvalidRating(RecallkitError, ValueError):
    """Raised when a rating is not one of peeked/struggled/recalled."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid rating: {value!r} (expected peeked, struggled or recalled)")


class UnknownSchemaVersion(RecallkitError):
    """Raised when a ledger was written by a newer, unrecognized format."""

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Ledger schema version {found} is newer than supported version {supported}"
        )


class InvalidSnapshot(RecallkitError, ValueError):
    """Raised when an import payload fails shape or invariant validation."""

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = errors or []
        detail = f": {'; '.join(self.errors)}" if self.errors else ""
        super().__init__(f"{message}{detail}")


class StoreWriteFailure(RecallkitError):
    """Raised when the durable write of the progress ledger fails."""

    pass
