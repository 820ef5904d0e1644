"""Event photo ingestion: fetch, resize, watermark, store and face-index."""

__version__ = "0.1.0"
