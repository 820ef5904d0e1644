"""Shared data models for the photo ingestion pipeline."""

from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class SourceItem(BaseModel):
    """
    One retrievable photo: a remote object with fetch hints, or a local file.

    Local files are referenced by ``local_path`` and read when fetched;
    ``local_bytes`` carries content already held in memory.
    """

    id: str
    suggested_name: str
    fetch_hints: List[str] = Field(default_factory=list)
    local_path: Optional[str] = None
    local_bytes: Optional[bytes] = Field(default=None, repr=False)
    content_type: Optional[str] = None
    size_hint: Optional[int] = None

    @property
    def is_local(self) -> bool:
        return self.local_path is not None or self.local_bytes is not None


class SourceReference(BaseModel):
    """A resolved reference returned by list-only requests."""

    name: str
    url: str


class FetchedAsset(BaseModel):
    """Raw bytes of a source item. Never persisted."""

    source_id: str
    data: bytes = Field(repr=False)
    declared_content_type: str

    @property
    def size(self) -> int:
        return len(self.data)


class WatermarkTier(BaseModel):
    """Sizing band keyed by the image's shorter dimension."""

    model_config = ConfigDict(frozen=True)

    upper_bound: float
    fraction: float
    floor: int


DEFAULT_SIZE_TIERS: Tuple[WatermarkTier, ...] = (
    WatermarkTier(upper_bound=800, fraction=0.20, floor=160),
    WatermarkTier(upper_bound=1600, fraction=0.18, floor=200),
    WatermarkTier(upper_bound=3000, fraction=0.16, floor=300),
    WatermarkTier(upper_bound=float("inf"), fraction=0.14, floor=400),
)

DEFAULT_PADDING_TIERS: Tuple[WatermarkTier, ...] = (
    WatermarkTier(upper_bound=800, fraction=0.05, floor=30),
    WatermarkTier(upper_bound=1600, fraction=0.055, floor=40),
    WatermarkTier(upper_bound=3000, fraction=0.06, floor=50),
    WatermarkTier(upper_bound=float("inf"), fraction=0.065, floor=60),
)


class WatermarkSpec(BaseModel):
    """Proportional, corner-anchored logo overlay settings."""

    model_config = ConfigDict(frozen=True)

    size_tiers: Tuple[WatermarkTier, ...] = DEFAULT_SIZE_TIERS
    padding_tiers: Tuple[WatermarkTier, ...] = DEFAULT_PADDING_TIERS
    max_fraction_of_max_dim: float = 0.35
    anchor: Literal["bottom-left"] = "bottom-left"


class TransformSpec(BaseModel):
    """Target size and encoding for processed variants."""

    model_config = ConfigDict(frozen=True)

    max_edge: int = 1024
    quality: int = Field(default=90, ge=1, le=100)
    format: Literal["JPEG"] = "JPEG"
    watermark: Optional[WatermarkSpec] = None

    @property
    def content_type(self) -> str:
        return "image/jpeg"

    @property
    def extension(self) -> str:
        return ".jpg"

    @classmethod
    def client_precompression(cls) -> "TransformSpec":
        """Settings used for browser-side pre-compression before upload."""
        return cls(max_edge=2048, quality=80)


class WatermarkPlacement(BaseModel):
    """Logo rectangle in a given coordinate space."""

    model_config = ConfigDict(frozen=True)

    x: int
    y: int
    logo_width: int
    logo_height: int
    padding: int
    logo_size: int

    def scaled(self, sx: float, sy: float) -> "WatermarkPlacement":
        """Rescale every coordinate linearly by ``(sx, sy)``."""
        return WatermarkPlacement(
            x=int(self.x * sx),
            y=int(self.y * sy),
            logo_width=max(1, int(self.logo_width * sx)),
            logo_height=max(1, int(self.logo_height * sy)),
            padding=int(self.padding * min(sx, sy)),
            logo_size=max(1, int(self.logo_size * min(sx, sy))),
        )

    def fits_within(self, width: int, height: int) -> bool:
        return (
            self.x >= 0
            and self.y >= 0
            and self.x + self.logo_width <= width
            and self.y + self.logo_height <= height
        )


class TransformedImage(BaseModel):
    """Encoded output of the transformer plus size bookkeeping."""

    data: bytes = Field(repr=False)
    width: int
    height: int
    original_width: int
    original_height: int
    original_size: int
    processed_size: int
    placement: Optional[WatermarkPlacement] = None

    @property
    def watermarked(self) -> bool:
        return self.placement is not None


class StoredAsset(BaseModel):
    """Reference to an object written to the event namespace."""

    model_config = ConfigDict(frozen=True)

    key: str
    public_url: str
    original_size: int
    processed_size: int


class IndexOutcome(BaseModel):
    """Result of indexing one stored asset into a face collection."""

    key: str
    indexed: bool
    face_ids: List[str] = Field(default_factory=list)
    reason: str = ""
    attempts: int = 1


class IndexBatchResult(BaseModel):
    """Success/failure partition of a bulk indexing run."""

    succeeded: List[IndexOutcome] = Field(default_factory=list)
    failed: List[IndexOutcome] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)


class ItemSuccess(BaseModel):
    status: Literal["success"] = "success"
    source_id: str
    file_name: str
    stored_asset: StoredAsset
    indexed: bool = False
    face_ids: List[str] = Field(default_factory=list)
    watermarked: bool = False
    attempts: int = 1


class ItemSkipped(BaseModel):
    status: Literal["skipped"] = "skipped"
    source_id: str
    file_name: str
    reason: str = "duplicate"


class ItemFailure(BaseModel):
    status: Literal["failure"] = "failure"
    source_id: str
    reason: str
    error_type: str = ""
    retryable: bool = False
    attempts: int = 1


BatchItemResult = Annotated[
    Union[ItemSuccess, ItemSkipped, ItemFailure], Field(discriminator="status")
]


class BatchResult(BaseModel):
    """Aggregated outcome of one batch invocation."""

    total: int = 0
    successes: List[ItemSuccess] = Field(default_factory=list)
    failures: List[ItemFailure] = Field(default_factory=list)
    skipped: List[ItemSkipped] = Field(default_factory=list)
    total_original_bytes: int = 0
    total_processed_bytes: int = 0

    @property
    def success_count(self) -> int:
        return len(self.successes)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def is_complete(self) -> bool:
        """Every input produced exactly one terminal outcome."""
        return self.success_count + self.failure_count + self.skipped_count == self.total

    def add(self, result: Union[ItemSuccess, ItemSkipped, ItemFailure]) -> None:
        if isinstance(result, ItemSuccess):
            self.successes.append(result)
            self.total_original_bytes += result.stored_asset.original_size
            self.total_processed_bytes += result.stored_asset.processed_size
        elif isinstance(result, ItemSkipped):
            self.skipped.append(result)
        else:
            self.failures.append(result)

    def summary(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.success_count,
            "failed": self.failure_count,
            "skipped": self.skipped_count,
            "total_original_bytes": self.total_original_bytes,
            "total_processed_bytes": self.total_processed_bytes,
        }


class BrandingContext(BaseModel):
    """Watermark decision resolved once per batch."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    logo_url: Optional[str] = None

    @property
    def wants_watermark(self) -> bool:
        return self.enabled and bool(self.logo_url)


class ProgressEvent(BaseModel):
    """Published after each item reaches a terminal state."""

    completed: int
    total: int
    current_item: str
    outcome: Literal["success", "skipped", "failure"]


class DisplaySize(BaseModel):
    size: float
    unit: Literal["MB", "GB"]


class EventStatsDelta(BaseModel):
    """Aggregates pushed to the event statistics store after a batch."""

    photo_count_delta: int
    original_bytes_delta: int
    compressed_bytes_delta: int

    @classmethod
    def from_batch(cls, result: BatchResult) -> "EventStatsDelta":
        return cls(
            photo_count_delta=result.success_count,
            original_bytes_delta=result.total_original_bytes,
            compressed_bytes_delta=result.total_processed_bytes,
        )


class IngestRequest(BaseModel):
    """Input of the "ingest batch" entry point."""

    event_id: str
    link: Optional[str] = None
    files: List[str] = Field(default_factory=list)
    branding_override: Optional[bool] = None
