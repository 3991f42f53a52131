from __future__ import annotations

from typing import Optional


class RangeServeError(Exception):
    """Base exception for rangeserve errors."""
    pass


class ConfigurationError(RangeServeError):
    """Raised when a caller hands the responder an unusable request (e.g. a relative path)."""
    pass


class TransferError(RangeServeError):
    """Raised when reading the file fails while its bytes are being streamed.

    Headers may already be on the wire when this is raised, so the host can
    only abort the connection.
    """

    def __init__(self, message: str, *, path: str, offset: int = 0, sent: int = 0, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.path = path
        self.offset = offset
        self.sent = sent
        self.cause = cause
