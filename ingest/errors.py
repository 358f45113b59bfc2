"""Exception hierarchy for feed imports."""

__all__ = [
    "IngestError",
    "ConfigurationError",
    "TransportError",
    "FeedParseError",
    "RecordError",
]


class IngestError(Exception):
    """Base class for all import failures."""
    pass


class ConfigurationError(IngestError):
    """Raised when a supplier cannot run: missing feed URL, unknown or unseeded code."""
    pass


class TransportError(IngestError):
    """Raised when a feed cannot be retrieved (non-success status, timeout, connection)."""

    def __init__(self, message: str, url: str = "", status_code=None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class FeedParseError(IngestError):
    """Raised when a feed body is not valid XML/JSON or lacks the expected root."""
    pass


class RecordError(IngestError):
    """Raised when a single feed record cannot be mapped.

    Carries the zero-based position of the record within the feed.
    """

    def __init__(self, message: str, position: int):
        super().__init__(f"Record #{position}: {message}")
        self.position = position
