from typing import List, Optional


class PunchlistError(Exception):
    """Base class for every error raised by the punchlist core."""


class CapabilityUnavailable(PunchlistError):
    """The platform has no speech-recognition facility. Permanent."""


UnsupportedCapability = CapabilityUnavailable


class CaptureError(PunchlistError):
    """A recognition session ended with an error. Session-scoped, recoverable."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message


class ValidationError(PunchlistError):
    def __init__(self, message: str, missing_fields: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.missing_fields = list(missing_fields or [])


class InvalidTransition(PunchlistError):
    """An operation was requested in a draft state that does not allow it."""


class NotFound(PunchlistError):
    """Stale reference to a job or item that no longer exists."""


class PersistenceError(PunchlistError):
    """
    A write to the backing store failed.

    When the photo upload already succeeded, its URL is kept on the error so
    the caller can retry or clean it up.
    """

    def __init__(self, message: str, orphaned_photo_url: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.orphaned_photo_url = orphaned_photo_url


class StorageCleanupError(PunchlistError):
    """Best-effort photo deletion failed. Logged, never raised to callers."""

    def __init__(self, url: str, details: str):
        super().__init__(f"failed to delete {url}: {details}")
        self.url = url
        self.details = details
