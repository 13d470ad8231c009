"""
Error types and helpers for consistent error message extraction.

Expected pipeline failures (bad payloads, policy denials) are returned
as values, see :mod:`analytics_xray.models.results`.  The exceptions
here are reserved for conditions a caller cannot recover from inline.
"""


class XrayError(Exception):
    """Base class for analytics capture errors."""


class PersistenceError(XrayError):
    """A durable-storage read or write failed."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Storage operation failed for {key!r}: {reason}")
        self.key = key
        self.reason = reason


class StorageUnavailableError(XrayError):
    """The storage directory cannot be created or accessed."""


def get_error_message(error: BaseException | object) -> str:
    """
    Safely extract an error message from an unknown error type.

    Falls back to the exception class name when the exception was
    raised without a message.
    """
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    return "Unknown error"
