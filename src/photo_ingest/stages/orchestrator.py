"""Drives the end-to-end ingestion pipeline over a batch of source items."""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

from ..core.branding import BrandingResolver
from ..core.error_handling import (
    ITEM_RETRY_POLICY,
    BatchOperationContextManager,
    RetryPolicy,
    retry_async,
)
from ..core.exceptions import ItemTimeoutError, is_retryable
from ..core.filenames import external_image_id, output_filename
from ..core.models import (
    BatchResult,
    BrandingContext,
    ItemFailure,
    ItemSkipped,
    ItemSuccess,
    ProgressEvent,
    SourceItem,
    TransformSpec,
)
from ..core.observability import (
    LogContext,
    MetricsCollector,
    StructuredLogger,
    log_metrics_summary,
    timed_stage,
)
from ..core.protocols import LogoSource, ProgressListener
from .duplicates import DuplicateGuard
from .fetcher import ContentFetcher
from .indexer import FaceIndexer
from .storage import StorageWriter
from .transformer import ImageTransformer

ItemOutcome = Union[ItemSuccess, ItemSkipped, ItemFailure]

SIZE_STEP_BYTES = 50 * 1024 * 1024
SIZE_STEP_SECONDS = 60.0


class ItemState(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    TRANSFORMING = "transforming"
    DUPLICATE_CHECK = "duplicate_check"
    STORING = "storing"
    INDEXING = "indexing"
    DONE = "done"


@dataclass
class BatchContext:
    """Inputs resolved once per batch and shared read-only by every item."""

    event_id: str
    branding: BrandingContext
    transform_spec: TransformSpec
    duplicate_guard: DuplicateGuard
    logo: Optional[bytes] = None
    index_faces: bool = True
    correlation_id: str = field(default_factory=lambda: f"batch_{int(time.time() * 1000)}")


class CallbackProgressListener:
    """Adapts a ``(completed, total, current_item)`` callable to a listener."""

    def __init__(self, callback: Callable[[int, int, str], Any]):
        self._callback = callback

    def on_progress(self, event: ProgressEvent) -> None:
        self._callback(event.completed, event.total, event.current_item)


class BatchOrchestrator:
    """
    Runs fetch, transform, duplicate check, store and index for each item.

    At most ``concurrency`` items are in flight. Each item's fetch-to-store
    run is retried as a whole on transient failures and bounded by a
    per-attempt timeout. Face indexing follows once the asset is stored,
    under its own timeout, and never turns a stored item into a failure.
    Item failures are captured as ``ItemFailure``; only batch setup errors
    (for example an unreachable recognition service) propagate.
    """

    def __init__(
        self,
        fetcher: ContentFetcher,
        transformer: ImageTransformer,
        storage: StorageWriter,
        indexer: Optional[FaceIndexer],
        branding_resolver: BrandingResolver,
        logo_source: LogoSource,
        transform_spec: TransformSpec = TransformSpec(),
        concurrency: int = 5,
        retry_policy: RetryPolicy = ITEM_RETRY_POLICY,
        item_timeout: float = 300.0,
        metrics_collector: Optional[MetricsCollector] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._fetcher = fetcher
        self._transformer = transformer
        self._storage = storage
        self._indexer = indexer
        self._branding_resolver = branding_resolver
        self._logo_source = logo_source
        self._transform_spec = transform_spec
        self._concurrency = concurrency
        self._retry_policy = retry_policy
        self._item_timeout = item_timeout
        self._metrics = metrics_collector
        self._sleep = sleep
        self._listeners: List[ProgressListener] = []
        self._cancelled = asyncio.Event()
        self._logger = StructuredLogger("orchestrator")

    def add_listener(self, listener: Union[ProgressListener, Callable[[int, int, str], Any]]) -> None:
        if not hasattr(listener, "on_progress"):
            listener = CallbackProgressListener(listener)  # type: ignore[arg-type]
        self._listeners.append(listener)  # type: ignore[arg-type]

    def cancel(self) -> None:
        """Stop starting new items; in-flight items finish or time out."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def timeout_for(self, item: SourceItem, attempt: int) -> float:
        """Per-attempt budget: grows with the attempt number and the known size."""
        timeout = self._item_timeout * min(max(attempt, 1), 3)
        if item.size_hint:
            timeout += (item.size_hint // SIZE_STEP_BYTES) * SIZE_STEP_SECONDS
        return timeout

    async def prepare(self, event_id: str, branding_override: Optional[bool] = None) -> BatchContext:
        """
        Resolve everything shared by the batch before any item starts.

        Raises:
            SystemicError: If the face collection cannot be set up
        """
        branding = await self._branding_resolver.resolve(event_id, branding_override)

        logo: Optional[bytes] = None
        spec = self._transform_spec
        if branding.wants_watermark and spec.watermark is not None:
            try:
                logo = await self._logo_source.fetch(branding.logo_url)
            except Exception as e:  # noqa: BLE001
                self._logger.error("Logo fetch failed", event_id=event_id, error=repr(e))
            if logo is None:
                self._logger.warning(
                    "Logo unavailable, continuing without watermark", event_id=event_id
                )
        if logo is None:
            spec = spec.model_copy(update={"watermark": None})

        duplicate_guard = await DuplicateGuard.load(self._storage, event_id)

        if self._indexer is not None:
            await self._indexer.ensure_collection(event_id)

        return BatchContext(
            event_id=event_id,
            branding=branding,
            transform_spec=spec,
            duplicate_guard=duplicate_guard,
            logo=logo,
            index_faces=self._indexer is not None,
        )

    async def run(
        self,
        items: Sequence[SourceItem],
        event_id: str,
        branding_override: Optional[bool] = None,
    ) -> BatchResult:
        """Process every item and aggregate one terminal outcome per item."""
        result = BatchResult(total=len(items))
        if not items:
            self._logger.info("No items to process", event_id=event_id)
            return result

        start_time = time.time()
        context = await self.prepare(event_id, branding_override)
        log_context = LogContext(
            correlation_id=context.correlation_id,
            component="batch_orchestrator",
            event_id=event_id,
        )
        self._logger.info(
            "Starting batch",
            log_context.with_operation("run_batch"),
            items=len(items),
            concurrency=self._concurrency,
            watermark=context.logo is not None,
        )

        semaphore = asyncio.Semaphore(self._concurrency)
        completed = 0

        with BatchOperationContextManager(f"Ingest batch for event {event_id}") as batch_ops:

            async def run_one(item: SourceItem) -> None:
                nonlocal completed
                async with semaphore:
                    outcome = await self._process_item(item, context, log_context)
                result.add(outcome)
                if isinstance(outcome, ItemFailure):
                    batch_ops.add_error(outcome.reason, item.id)
                completed += 1
                self._notify(completed, len(items), item, outcome)

            await asyncio.gather(*(run_one(item) for item in items))

        self._logger.info(
            "Batch finished",
            log_context.with_operation("run_batch"),
            duration_s=round(time.time() - start_time, 2),
            **result.summary(),
        )
        if self._metrics is not None:
            log_metrics_summary(self._logger, self._metrics)
        return result

    async def _process_item(
        self, item: SourceItem, context: BatchContext, batch_log: LogContext
    ) -> ItemOutcome:
        if self.cancelled:
            return ItemFailure(
                source_id=item.id, reason="cancelled", error_type="Cancelled", attempts=0
            )

        item_log = batch_log.with_metadata(source_id=item.id, name=item.suggested_name)
        attempt_counter = 0

        async def attempt_once() -> Union[ItemSuccess, ItemSkipped]:
            nonlocal attempt_counter
            attempt_counter += 1
            timeout = self.timeout_for(item, attempt_counter)
            try:
                return await asyncio.wait_for(
                    self._run_pipeline(item, context, item_log, attempt_counter), timeout
                )
            except asyncio.TimeoutError as e:
                raise ItemTimeoutError(
                    f"Processing {item.suggested_name} exceeded {timeout:.0f}s"
                ) from e

        def on_retry(attempt: int, error: BaseException, delay: float) -> None:
            self._logger.warning(
                "Retrying item",
                item_log.with_operation("retry"),
                attempt=attempt,
                delay_s=round(delay, 2),
                error=str(error),
            )

        try:
            outcome, attempts = await retry_async(
                attempt_once,
                self._retry_policy,
                should_retry=is_retryable,
                description=f"Item {item.id}",
                sleep=self._sleep,
                on_retry=on_retry,
            )
        except Exception as e:
            attempts = getattr(e, "attempts", attempt_counter) or 1
            self._logger.error(
                "Item failed",
                item_log.with_operation("process_item"),
                error_type=type(e).__name__,
                attempts=attempts,
                error=str(e),
            )
            return ItemFailure(
                source_id=item.id,
                reason=str(e),
                error_type=type(e).__name__,
                retryable=is_retryable(e),
                attempts=attempts,
            )

        if isinstance(outcome, ItemSuccess):
            outcome = outcome.model_copy(update={"attempts": attempts})
            if context.index_faces and self._indexer is not None:
                outcome = await self._index_stored(self._indexer, item, outcome, context, item_log)
            self._logger.info(
                "Stored",
                item_log.with_operation(ItemState.DONE.value),
                key=outcome.stored_asset.key,
                indexed=outcome.indexed,
                faces=len(outcome.face_ids),
            )
        return outcome

    async def _run_pipeline(
        self,
        item: SourceItem,
        context: BatchContext,
        item_log: LogContext,
        attempt: int,
    ) -> Union[ItemSuccess, ItemSkipped]:
        file_name = output_filename(item.suggested_name, context.transform_spec.extension)
        if context.duplicate_guard.is_duplicate(file_name):
            self._logger.info(
                "Skipping duplicate",
                item_log.with_operation(ItemState.DUPLICATE_CHECK.value),
                file_name=file_name,
            )
            return ItemSkipped(source_id=item.id, file_name=file_name)

        state = ItemState.FETCHING
        self._logger.debug("Fetching", item_log.with_operation(state.value), attempt=attempt)
        async with timed_stage(state.value, self._metrics, item.id):
            asset = await self._fetcher.fetch(item)

        state = ItemState.TRANSFORMING
        async with timed_stage(state.value, self._metrics, item.id):
            transformed = await self._transformer.transform_async(
                asset, context.transform_spec, context.logo
            )
        self._logger.debug(
            "Transformed",
            item_log.with_operation(state.value),
            size=f"{transformed.width}x{transformed.height}",
            original_bytes=transformed.original_size,
            processed_bytes=transformed.processed_size,
        )

        state = ItemState.DUPLICATE_CHECK
        if not context.duplicate_guard.claim(file_name, owner=item.id):
            self._logger.info("Skipping duplicate", item_log.with_operation(state.value), file_name=file_name)
            return ItemSkipped(source_id=item.id, file_name=file_name)

        state = ItemState.STORING
        try:
            async with timed_stage(state.value, self._metrics, item.id):
                stored = await self._storage.write(
                    context.event_id,
                    file_name,
                    transformed.data,
                    context.transform_spec.content_type,
                    original_size=transformed.original_size,
                )
        except BaseException:
            context.duplicate_guard.release(file_name)
            raise

        return ItemSuccess(
            source_id=item.id,
            file_name=file_name,
            stored_asset=stored,
            watermarked=transformed.watermarked,
        )

    async def _index_stored(
        self,
        indexer: FaceIndexer,
        item: SourceItem,
        outcome: ItemSuccess,
        context: BatchContext,
        item_log: LogContext,
    ) -> ItemSuccess:
        """Best-effort face indexing of an asset that is already stored."""
        state = ItemState.INDEXING
        timeout = self.timeout_for(item, 1)
        try:
            async with timed_stage(state.value, self._metrics, item.id):
                index_outcome = await asyncio.wait_for(
                    indexer.index_asset(
                        context.event_id,
                        outcome.stored_asset.key,
                        external_image_id(outcome.file_name),
                    ),
                    timeout,
                )
        except asyncio.TimeoutError:
            self._logger.warning(
                "Face indexing timed out, asset kept",
                item_log.with_operation(state.value),
                key=outcome.stored_asset.key,
                timeout_s=timeout,
            )
            return outcome
        return outcome.model_copy(
            update={"indexed": index_outcome.indexed, "face_ids": index_outcome.face_ids}
        )

    def _notify(self, completed: int, total: int, item: SourceItem, outcome: ItemOutcome) -> None:
        event = ProgressEvent(
            completed=completed,
            total=total,
            current_item=item.suggested_name,
            outcome=outcome.status,
        )
        for listener in self._listeners:
            try:
                listener.on_progress(event)
            except Exception as e:  # noqa: BLE001
                self._logger.warning("Progress listener failed", error=str(e))
