"""Correlated log lines and per-stage timings for ingestion batches."""

import dataclasses
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

from .logging_config import get_logger


@dataclass
class LogContext:
    """
    Identity carried through every log line of one batch.

    ``correlation_id`` ties the lines of a batch together; ``operation``
    names the item state or service step; ``metadata`` holds per-item
    fields such as the source id.
    """

    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    operation: str = ""
    component: str = ""
    event_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def with_operation(self, operation: str) -> "LogContext":
        return dataclasses.replace(self, operation=operation, metadata=dict(self.metadata))

    def with_metadata(self, **kwargs: Any) -> "LogContext":
        return dataclasses.replace(self, metadata={**self.metadata, **kwargs})


def render_fields(fields: Dict[str, Any]) -> str:
    return ", ".join(f"{key}={value}" for key, value in fields.items())


class StructuredLogger:
    """
    Wraps a pipeline logger and renders context as a message prefix.

    ``info("Stored", ctx, key=k)`` logs
    ``[storing] [batch_1] Stored (event_id=e1, key=k)``.
    """

    def __init__(self, name: str, level: Optional[int] = None):
        self._logger = get_logger(name)
        if level is not None:
            self._logger.setLevel(level)

    @property
    def name(self) -> str:
        return self._logger.name

    def format(self, message: str, context: Optional[LogContext] = None, **kwargs: Any) -> str:
        fields: Dict[str, Any] = {}
        prefix = ""
        if context is not None:
            prefix = f"[{context.correlation_id}] "
            if context.operation:
                prefix = f"[{context.operation}] {prefix}"
            if context.event_id:
                fields["event_id"] = context.event_id
            fields.update(context.metadata)
        fields.update(kwargs)
        text = f"{prefix}{message}"
        return f"{text} ({render_fields(fields)})" if fields else text

    def log(self, level: int, message: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, self.format(message, context, **kwargs))

    def debug(self, message: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        self.log(logging.DEBUG, message, context, **kwargs)

    def info(self, message: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        self.log(logging.INFO, message, context, **kwargs)

    def warning(self, message: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        self.log(logging.WARNING, message, context, **kwargs)

    def error(self, message: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        self.log(logging.ERROR, message, context, **kwargs)


@dataclass
class StageTiming:
    """One timed run of a pipeline stage for one item."""

    stage: str
    started: float
    finished: float
    success: bool = True
    error: Optional[str] = None
    item_id: Optional[str] = None

    @property
    def duration(self) -> float:
        return self.finished - self.started


@dataclass
class StageSummary:
    stage: str
    runs: int
    failed: int
    avg_seconds: float
    max_seconds: float
    total_seconds: float


class MetricsCollector:
    """Accumulates stage timings over a batch."""

    def __init__(self) -> None:
        self._timings: List[StageTiming] = []

    def record(self, timing: StageTiming) -> None:
        self._timings.append(timing)

    def timings(self, stage: Optional[str] = None) -> List[StageTiming]:
        if stage is None:
            return list(self._timings)
        return [t for t in self._timings if t.stage == stage]

    def stages(self) -> List[str]:
        """Stage names in first-recorded order."""
        return list(dict.fromkeys(t.stage for t in self._timings))

    def summary(self, stage: str) -> Optional[StageSummary]:
        timings = self.timings(stage)
        if not timings:
            return None
        durations = [t.duration for t in timings]
        return StageSummary(
            stage=stage,
            runs=len(timings),
            failed=sum(1 for t in timings if not t.success),
            avg_seconds=sum(durations) / len(durations),
            max_seconds=max(durations),
            total_seconds=sum(durations),
        )

    def clear(self) -> None:
        self._timings.clear()


@asynccontextmanager
async def timed_stage(
    stage: str,
    metrics_collector: Optional[MetricsCollector] = None,
    item_id: Optional[str] = None,
) -> AsyncIterator[None]:
    """Record how long the wrapped block took and whether it raised."""
    started = time.perf_counter()
    error: Optional[str] = None
    try:
        yield
    except BaseException as exc:
        error = str(exc) or type(exc).__name__
        raise
    finally:
        if metrics_collector is not None:
            metrics_collector.record(
                StageTiming(
                    stage=stage,
                    started=started,
                    finished=time.perf_counter(),
                    success=error is None,
                    error=error,
                    item_id=item_id,
                )
            )


def log_metrics_summary(logger: StructuredLogger, metrics_collector: MetricsCollector) -> None:
    """Log one summary line per recorded stage."""
    for stage in metrics_collector.stages():
        summary = metrics_collector.summary(stage)
        if summary is None:
            continue
        logger.info(
            f"Stage {stage}",
            runs=summary.runs,
            failed=summary.failed,
            avg_ms=round(summary.avg_seconds * 1000, 1),
            max_ms=round(summary.max_seconds * 1000, 1),
        )
