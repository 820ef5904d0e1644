"""Pipeline stages: resolve, fetch, transform, deduplicate, store, index."""

from .resolver import DriveLinkResolver, SourceResolver, classify_link, extract_file_ids
from .fetcher import ContentFetcher
from .transformer import ImageTransformer
from .duplicates import DuplicateGuard
from .storage import StorageWriter
from .indexer import FaceIndexer
from .orchestrator import BatchOrchestrator, CallbackProgressListener

__all__ = [
    "DriveLinkResolver",
    "SourceResolver",
    "classify_link",
    "extract_file_ids",
    "ContentFetcher",
    "ImageTransformer",
    "DuplicateGuard",
    "StorageWriter",
    "FaceIndexer",
    "BatchOrchestrator",
    "CallbackProgressListener",
]
