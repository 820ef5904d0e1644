"""Runtime configuration for the photo ingestion pipeline."""

import os
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from .error_handling import INDEX_RETRY_POLICY, ITEM_RETRY_POLICY, RetryPolicy
from .exceptions import ConfigurationError
from .models import TransformSpec, WatermarkSpec

DEFAULT_BRANDING_OVERRIDES: Dict[str, str] = {"910245": "/taf and child logo.png"}


def parse_branding_overrides(raw: str) -> Dict[str, str]:
    """Parse ``"id=logo,id=logo"`` into a mapping; empty entries are ignored."""
    overrides: Dict[str, str] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" not in entry:
            raise ConfigurationError(f"Invalid branding override entry: {entry!r}")
        event_id, logo_ref = entry.split("=", 1)
        overrides[event_id.strip()] = logo_ref.strip()
    return overrides


class PipelineSettings(BaseModel):
    """Configuration for one ingestion deployment."""

    bucket: str
    region: str = "us-east-1"
    public_base_url: Optional[str] = None
    site_base_url: str = "https://chitradup.netlify.app"
    key_prefix: str = "events/shared"
    collection_prefix: str = "event-"

    concurrency: int = Field(default=5, ge=1)
    item_timeout: float = Field(default=300.0, gt=0)
    fetch_timeout: float = Field(default=60.0, gt=0)
    max_file_size: int = 200 * 1024 * 1024
    cache_control: str = "max-age=31536000"

    item_retry: RetryPolicy = ITEM_RETRY_POLICY
    index_retry: RetryPolicy = INDEX_RETRY_POLICY
    index_chunk_size: int = Field(default=10, ge=1)
    index_chunk_delay: float = 1.0
    max_faces: int = 10
    quality_filter: str = "AUTO"

    transform: TransformSpec = TransformSpec(watermark=WatermarkSpec())
    branding_overrides: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_BRANDING_OVERRIDES)
    )

    events_table: str = "Events"
    users_table: str = "Users"

    @property
    def resolved_public_base_url(self) -> str:
        if self.public_base_url:
            return self.public_base_url.rstrip("/")
        return f"https://{self.bucket}.s3.amazonaws.com"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PipelineSettings":
        """
        Build settings from environment variables.

        Environment Variables:
            PHOTO_INGEST_BUCKET: Destination bucket (required)
            AWS_REGION: AWS region for S3, Rekognition and DynamoDB
            PHOTO_INGEST_PUBLIC_BASE_URL: Base URL for public asset links
            PHOTO_INGEST_SITE_BASE_URL: Site used to resolve relative logo paths
            PHOTO_INGEST_CONCURRENCY: Items processed simultaneously
            PHOTO_INGEST_MAX_ATTEMPTS: Attempts per item
            PHOTO_INGEST_ITEM_TIMEOUT: Per-item timeout in seconds
            PHOTO_INGEST_BRANDING_OVERRIDES: ``event=logo,event=logo``

        Raises:
            ConfigurationError: If a required value is missing or invalid
        """
        env = os.environ if environ is None else environ

        bucket = env.get("PHOTO_INGEST_BUCKET") or env.get("S3_BUCKET_NAME")
        if not bucket:
            raise ConfigurationError("PHOTO_INGEST_BUCKET is not set")

        values: Dict[str, object] = {"bucket": bucket}
        if env.get("AWS_REGION"):
            values["region"] = env["AWS_REGION"]
        if env.get("PHOTO_INGEST_PUBLIC_BASE_URL"):
            values["public_base_url"] = env["PHOTO_INGEST_PUBLIC_BASE_URL"]
        if env.get("PHOTO_INGEST_SITE_BASE_URL"):
            values["site_base_url"] = env["PHOTO_INGEST_SITE_BASE_URL"].rstrip("/")
        if env.get("PHOTO_INGEST_CONCURRENCY"):
            values["concurrency"] = env["PHOTO_INGEST_CONCURRENCY"]
        if env.get("PHOTO_INGEST_ITEM_TIMEOUT"):
            values["item_timeout"] = env["PHOTO_INGEST_ITEM_TIMEOUT"]
        if env.get("PHOTO_INGEST_MAX_ATTEMPTS"):
            values["item_retry"] = ITEM_RETRY_POLICY.model_copy(
                update={"max_attempts": _parse_int(env["PHOTO_INGEST_MAX_ATTEMPTS"])}
            )
        if "PHOTO_INGEST_BRANDING_OVERRIDES" in env:
            values["branding_overrides"] = parse_branding_overrides(
                env["PHOTO_INGEST_BRANDING_OVERRIDES"]
            )

        try:
            return cls(**values)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid pipeline settings: {e}") from e


def _parse_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"Expected an integer, got {raw!r}") from e
    if value < 1:
        raise ConfigurationError(f"Expected a positive integer, got {raw!r}")
    return value
