"""Custom exceptions for the photo ingestion pipeline."""

from __future__ import annotations

from typing import List, Optional, Sequence


class PhotoIngestError(Exception):
    """Base exception for all photo ingestion errors."""

    retryable: bool = False


class ValidationError(PhotoIngestError):
    """Bad input shape, unsupported type or oversize payload. Never retried."""


class InvalidReferenceError(ValidationError):
    """Raised when a link is neither a single-file nor a folder reference."""


class TransientIOError(PhotoIngestError):
    """Network, timeout or throttling failure that may succeed on retry."""

    retryable = True


class ItemTimeoutError(TransientIOError):
    """Raised when one item's pipeline run exceeds its time budget."""


class AllSourcesUnavailableError(PhotoIngestError):
    """Raised when every fetch hint for a source item was rejected."""

    def __init__(
        self,
        source_id: str,
        attempted_hints: Sequence[str],
        transient: bool = False,
        errors: Optional[List[str]] = None,
    ):
        self.source_id = source_id
        self.attempted_hints = list(attempted_hints)
        self.errors = list(errors or [])
        self.retryable = transient
        super().__init__(
            f"All {len(self.attempted_hints)} source URLs failed for {source_id}"
        )


class DecodeError(PhotoIngestError):
    """Raised when source bytes are not a decodable image."""


class StorageError(PhotoIngestError):
    """Raised for object storage failures."""

    def __init__(self, message: str, retryable: bool = False, code: str = ""):
        super().__init__(message)
        self.retryable = retryable
        self.code = code


class IndexingError(PhotoIngestError):
    """Raised when face indexing of a stored asset fails."""

    def __init__(self, message: str, retryable: bool = False, code: str = ""):
        super().__init__(message)
        self.retryable = retryable
        self.code = code


class SystemicError(PhotoIngestError):
    """Failure that makes the whole batch pointless; aborts before item work."""


class ConfigurationError(SystemicError):
    """Error raised for invalid or missing configuration options."""


def is_retryable(exc: BaseException) -> bool:
    """Return True if ``exc`` belongs to a transient failure class."""
    if isinstance(exc, PhotoIngestError):
        return bool(exc.retryable)
    return False
