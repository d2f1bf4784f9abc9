"""
Board exceptions.

The ordering engine never raises; everything else in the package reports
failures with one of these.
"""


class BoardError(Exception):
    """Base class for task board errors."""
    pass


class NotFound(BoardError, LookupError):
    """Raised when a task or milestone id is not present."""

    def __init__(self, kind: str, item_id: str):
        super().__init__(f"{kind} {item_id} not found")
        self.kind = kind
        self.item_id = item_id


class ValidationError(BoardError, ValueError):
    """Raised for malformed payloads, patches, or field values."""
    pass


class RemoteWriteFailure(BoardError):
    """Raised when a persistence call is rejected or cannot be delivered."""
    pass


class PartialBulkFailure(RemoteWriteFailure):
    """
    Raised when some calls of a bulk or import operation succeeded before
    another one failed. The remote side may be left in a mixed state.
    """

    def __init__(self, message: str, succeeded: int, failed: int):
        super().__init__(message)
        self.succeeded = succeeded
        self.failed = failed
