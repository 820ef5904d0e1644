"""Entry-point service wiring source resolution, batch processing and stats."""

import time
from typing import List, Optional

from ..stages.orchestrator import BatchOrchestrator
from ..stages.resolver import SourceResolver
from .exceptions import ValidationError
from .models import BatchResult, EventStatsDelta, IngestRequest, SourceReference
from .observability import LogContext, StructuredLogger
from .protocols import StatsSink


class IngestService:
    """
    Runs one ingestion request end to end.

    The batch result is returned even when the statistics push fails;
    stats are a best-effort side effect.
    """

    def __init__(
        self,
        resolver: SourceResolver,
        orchestrator: BatchOrchestrator,
        stats_sink: Optional[StatsSink] = None,
    ):
        self._resolver = resolver
        self._orchestrator = orchestrator
        self._stats_sink = stats_sink
        self._logger = StructuredLogger("service")

    @property
    def orchestrator(self) -> BatchOrchestrator:
        return self._orchestrator

    async def ingest(self, request: IngestRequest) -> BatchResult:
        """
        Resolve the request's source and ingest every item.

        Raises:
            ValidationError: If the request names no source, both sources,
                or an unusable link
            SystemicError: If batch setup fails
        """
        if not request.event_id.strip():
            raise ValidationError("event_id is required")
        if bool(request.link) == bool(request.files):
            raise ValidationError("Provide exactly one of a link or a list of files")

        context = LogContext(
            correlation_id=f"ingest_{request.event_id}_{int(time.time() * 1000)}",
            operation="ingest",
            component="ingest_service",
            event_id=request.event_id,
        )
        reference = request.link if request.link else request.files
        items = await self._resolver.resolve(reference)
        self._logger.info("Resolved source items", context, items=len(items))

        result = await self._orchestrator.run(
            items, request.event_id, branding_override=request.branding_override
        )

        if result.success_count > 0:
            await self._push_stats(request.event_id, result, context)
        return result

    async def list_only(self, link: str) -> List[SourceReference]:
        """Resolve a link to its raw references without ingesting anything."""
        return await self._resolver.list_references(link)

    async def _push_stats(self, event_id: str, result: BatchResult, context: LogContext) -> None:
        if self._stats_sink is None:
            return
        delta = EventStatsDelta.from_batch(result)
        try:
            await self._stats_sink.update_event_stats(event_id, delta)
        except Exception as e:  # noqa: BLE001
            self._logger.error(
                "Failed to update event stats",
                context.with_operation("update_stats"),
                error=str(e),
            )
