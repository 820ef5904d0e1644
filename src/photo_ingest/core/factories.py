"""Factories for creating a fully wired ingestion pipeline."""

from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Optional

import aioboto3
import httpx

from ..stages.fetcher import ContentFetcher
from ..stages.indexer import FaceIndexer
from ..stages.orchestrator import BatchOrchestrator
from ..stages.resolver import DriveLinkResolver, SourceResolver
from ..stages.storage import StorageWriter
from ..stages.transformer import ImageTransformer
from .branding import BrandingResolver, LogoFetcher
from .config import PipelineSettings
from .logging_config import get_logger
from .observability import MetricsCollector
from .protocols import (
    DynamoDBClientProtocol,
    RekognitionClientProtocol,
    S3ClientProtocol,
    StatsSink,
)
from .services import IngestService
from .stats import DynamoEventDirectory, DynamoStatsSink


def build_service(
    settings: PipelineSettings,
    http_client: httpx.AsyncClient,
    s3_client: S3ClientProtocol,
    rekognition_client: Optional[RekognitionClientProtocol],
    dynamodb_client: DynamoDBClientProtocol,
    stats_sink: Optional[StatsSink] = None,
    metrics_collector: Optional[MetricsCollector] = None,
    concurrency: Optional[int] = None,
) -> IngestService:
    """
    Assemble an ``IngestService`` from already-open clients.

    Passing ``rekognition_client=None`` disables face indexing.
    """
    storage = StorageWriter(
        s3_client,
        bucket=settings.bucket,
        public_base_url=settings.resolved_public_base_url,
        key_prefix=settings.key_prefix,
        cache_control=settings.cache_control,
    )
    indexer = None
    if rekognition_client is not None:
        indexer = FaceIndexer(
            rekognition_client,
            bucket=settings.bucket,
            collection_prefix=settings.collection_prefix,
            max_faces=settings.max_faces,
            quality_filter=settings.quality_filter,
            retry_policy=settings.index_retry,
            chunk_size=settings.index_chunk_size,
            chunk_delay=settings.index_chunk_delay,
        )
    directory = DynamoEventDirectory(
        dynamodb_client,
        events_table=settings.events_table,
        users_table=settings.users_table,
    )
    orchestrator = BatchOrchestrator(
        fetcher=ContentFetcher(
            http_client,
            timeout=settings.fetch_timeout,
            max_file_size=settings.max_file_size,
        ),
        transformer=ImageTransformer(),
        storage=storage,
        indexer=indexer,
        branding_resolver=BrandingResolver(directory, settings.branding_overrides),
        logo_source=LogoFetcher(
            http_client,
            site_base_url=settings.site_base_url,
            storage_base_url=settings.resolved_public_base_url,
        ),
        transform_spec=settings.transform,
        concurrency=concurrency or settings.concurrency,
        retry_policy=settings.item_retry,
        item_timeout=settings.item_timeout,
        metrics_collector=metrics_collector or MetricsCollector(),
    )
    if stats_sink is None:
        stats_sink = DynamoStatsSink(dynamodb_client, events_table=settings.events_table)
    resolver = SourceResolver(DriveLinkResolver(http_client))
    return IngestService(resolver, orchestrator, stats_sink)


@asynccontextmanager
async def create_pipeline(
    settings: PipelineSettings,
    concurrency: Optional[int] = None,
    index_faces: bool = True,
) -> AsyncIterator[IngestService]:
    """
    Open the AWS and HTTP clients and yield a ready ``IngestService``.

    All clients are closed when the context exits.
    """
    logger = get_logger("factories")
    session = aioboto3.Session(region_name=settings.region)
    async with AsyncExitStack() as stack:
        http_client = await stack.enter_async_context(httpx.AsyncClient())
        s3_client = await stack.enter_async_context(session.client("s3"))  # type: ignore[reportUnknownMemberType]
        dynamodb_client = await stack.enter_async_context(session.client("dynamodb"))  # type: ignore[reportUnknownMemberType]
        rekognition_client = None
        if index_faces:
            rekognition_client = await stack.enter_async_context(session.client("rekognition"))  # type: ignore[reportUnknownMemberType]
        logger.debug(
            f"Opened clients for bucket {settings.bucket} in {settings.region} "
            f"(face indexing {'on' if index_faces else 'off'})"
        )
        yield build_service(
            settings,
            http_client=http_client,
            s3_client=s3_client,
            rekognition_client=rekognition_client,
            dynamodb_client=dynamodb_client,
            concurrency=concurrency,
        )
