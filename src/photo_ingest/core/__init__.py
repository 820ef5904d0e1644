"""Core utilities and shared components for the photo ingestion pipeline."""

from .filenames import output_filename, sanitize_filename
from .image_utils import (
    compute_logo_size,
    compute_padding,
    compute_watermark_placement,
    fit_within,
)
from .logging_config import get_logger, set_debug_logging, setup_logger
from .exceptions import (
    PhotoIngestError,
    ValidationError,
    InvalidReferenceError,
    TransientIOError,
    ItemTimeoutError,
    AllSourcesUnavailableError,
    DecodeError,
    StorageError,
    IndexingError,
    SystemicError,
    ConfigurationError,
    is_retryable,
)
from .error_handling import RetryPolicy, retry_async, with_error_handling
from .config import PipelineSettings
from .models import (
    BatchResult,
    BrandingContext,
    IngestRequest,
    ItemFailure,
    ItemSkipped,
    ItemSuccess,
    SourceItem,
    TransformSpec,
    WatermarkSpec,
)

__all__ = [
    "sanitize_filename",
    "output_filename",
    "compute_logo_size",
    "compute_padding",
    "compute_watermark_placement",
    "fit_within",
    "setup_logger",
    "get_logger",
    "set_debug_logging",
    "PhotoIngestError",
    "ValidationError",
    "InvalidReferenceError",
    "TransientIOError",
    "ItemTimeoutError",
    "AllSourcesUnavailableError",
    "DecodeError",
    "StorageError",
    "IndexingError",
    "SystemicError",
    "ConfigurationError",
    "is_retryable",
    "RetryPolicy",
    "retry_async",
    "with_error_handling",
    "PipelineSettings",
    "BatchResult",
    "BrandingContext",
    "IngestRequest",
    "ItemFailure",
    "ItemSkipped",
    "ItemSuccess",
    "SourceItem",
    "TransformSpec",
    "WatermarkSpec",
]
