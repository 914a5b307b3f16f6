"""
Custom exceptions for the activity archive.
"""

from typing import Optional


class ActivityArchiveError(Exception):
    """Base exception for all activity archive errors."""
    pass


class DecryptionFailed(ActivityArchiveError):
    """
    A sealed blob could not be opened with the given key.

    Raised when:
    - Blob is shorter than nonce + authentication tag
    - Authentication fails (wrong key, corrupted or truncated ciphertext)
    - Decompressed payload is not valid gzip
    - Payload is not valid UTF-8 JSON

    Callers treat every reason the same way ("unreadable with this key");
    the reason is kept for log messages only.
    """

    def __init__(self, message: str, reason: str = "unknown"):
        super().__init__(message)
        self.reason = reason


class RemoteFetchError(ActivityArchiveError):
    """
    Error fetching activities from the remote API.

    Raised when:
    - The API is unreachable after all retries
    - The API answers with a non-success status
    - The payload is not a list of activities
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ArchiveClosedError(ActivityArchiveError):
    """Operation attempted on a store or archiver after close()."""
    pass


class ArchiveConfigError(ActivityArchiveError):
    """
    Error in archive configuration.

    Raised when:
    - Configuration document is not a mapping
    - Numeric settings are missing or out of range
    """
    pass
