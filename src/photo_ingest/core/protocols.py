"""Protocol definitions for dependency injection and testability."""

from typing import Any, Dict, Optional, Protocol

from .models import EventStatsDelta, ProgressEvent


class S3ClientProtocol(Protocol):
    """Subset of the async (aioboto3) S3 client used by the pipeline."""

    async def put_object(self, **kwargs: Any) -> Dict[str, Any]:
        """Put object to S3."""
        ...

    def get_paginator(self, operation_name: str) -> Any:
        """Get paginator for S3 operations."""
        ...


class RekognitionClientProtocol(Protocol):
    """Subset of the async Rekognition client used by the pipeline."""

    async def create_collection(self, **kwargs: Any) -> Dict[str, Any]:
        """Create a face collection."""
        ...

    async def index_faces(self, **kwargs: Any) -> Dict[str, Any]:
        """Detect and index faces of an S3-hosted image."""
        ...


class DynamoDBClientProtocol(Protocol):
    """Subset of the async DynamoDB client used by the metadata lookups."""

    async def get_item(self, **kwargs: Any) -> Dict[str, Any]:
        ...

    async def update_item(self, **kwargs: Any) -> Dict[str, Any]:
        ...


class EventDirectory(Protocol):
    """Read-only access to event and user metadata."""

    async def get_event(self, event_id: str) -> Optional[Dict[str, Any]]:
        """Return the event record, or None if it does not exist."""
        ...

    async def get_user(self, email: str) -> Optional[Dict[str, Any]]:
        """Return the user record, or None if it does not exist."""
        ...


class StatsSink(Protocol):
    """Receives per-batch aggregates for an event."""

    async def update_event_stats(self, event_id: str, delta: EventStatsDelta) -> None:
        ...


class LogoSource(Protocol):
    """Turns a logo reference into bytes, or None when unavailable."""

    async def fetch(self, logo_ref: Optional[str]) -> Optional[bytes]:
        ...


class ProgressListener(Protocol):
    """Observer notified after every terminal item outcome."""

    def on_progress(self, event: ProgressEvent) -> None:
        ...
