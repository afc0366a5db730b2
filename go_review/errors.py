"""
Exceptions raised by the Go move review pipeline.

Every failure that aborts the review of a game record derives from
ReviewError, so callers can isolate one bad file from the rest of a batch.
"""


class ReviewError(Exception):
    """Base exception for move review errors."""
    pass


class FormatError(ReviewError):
    """Raised when an SGF game record is malformed."""
    pass


class ConversionError(ReviewError):
    """Raised when a coordinate is malformed or outside the board."""
    pass


class ProtocolError(ReviewError):
    """Raised when a KataGo response is unparseable, mismatched or reports an error."""
    pass


class ProcessError(ReviewError):
    """Raised when the KataGo process cannot be started or stops answering."""
    pass
