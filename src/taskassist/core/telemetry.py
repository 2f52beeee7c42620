"""
Telemetry events for remote operations and code generation outcomes.

The orchestrator does not own a telemetry destination. It emits
TelemetryEvent objects into a TelemetrySink supplied by the caller; the
default sink writes them to the structured log.

Usage::

    async with track_operation(sink, RemoteOperation.CREATE_UPLOAD_URL, conversation_id) as span:
        url = await client.create_upload_url(...)
        span.attributes["repository_size"] = size
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import structlog

from taskassist.core.constants import MetricDataResult
from taskassist.core.exceptions import (
    DomainRemoteError,
    OperationCancelledError,
    PackageSizeExceededError,
    WorkspaceSelectionError,
)

logger = structlog.get_logger()


@dataclass
class TelemetryEvent:
    """One telemetry record, keyed by operation name."""

    operation: str
    result: MetricDataResult
    conversation_id: str = ""
    duration_ms: float = 0.0
    reason: str = ""
    attributes: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "result": str(self.result),
            "conversation_id": self.conversation_id,
            "duration_ms": round(self.duration_ms, 2),
            "reason": self.reason,
            "attributes": dict(self.attributes),
        }


class TelemetrySink(ABC):
    """Destination for telemetry events."""

    @abstractmethod
    def record(self, event: TelemetryEvent) -> None:
        """Accept one event. Must not raise."""


class StructlogTelemetrySink(TelemetrySink):
    """Writes each event to the structured log."""

    def record(self, event: TelemetryEvent) -> None:
        logger.info("telemetry_event", **event.to_dict())


class RecordingTelemetrySink(TelemetrySink):
    """Keeps events in memory. Handy for tests and for the CLI summary."""

    def __init__(self) -> None:
        self.events: list[TelemetryEvent] = []

    def record(self, event: TelemetryEvent) -> None:
        self.events.append(event)

    def by_operation(self, operation: str) -> list[TelemetryEvent]:
        return [e for e in self.events if e.operation == operation]


def classify_exception(exc: BaseException) -> MetricDataResult:
    """Map an exception to the telemetry result it is reported with."""
    if isinstance(exc, (DomainRemoteError, PackageSizeExceededError, WorkspaceSelectionError)):
        return MetricDataResult.ERROR
    if isinstance(exc, OperationCancelledError):
        return MetricDataResult.ERROR
    return MetricDataResult.FAULT


@dataclass
class OperationSpan:
    """Mutable view of an in-flight tracked operation."""

    result: MetricDataResult = MetricDataResult.SUCCESS
    reason: str = ""
    attributes: dict[str, Any] = field(default_factory=dict)


@asynccontextmanager
async def track_operation(
    sink: TelemetrySink,
    operation: str,
    conversation_id: str = "",
) -> AsyncIterator[OperationSpan]:
    """
    Time the wrapped block and emit one event for it.

    Exceptions are classified, reported, and re-raised unchanged.
    """
    span = OperationSpan()
    started = time.monotonic()
    try:
        yield span
    except BaseException as exc:
        span.result = classify_exception(exc)
        span.reason = span.reason or type(exc).__name__
        raise
    finally:
        event = TelemetryEvent(
            operation=str(operation),
            result=span.result,
            conversation_id=conversation_id,
            duration_ms=(time.monotonic() - started) * 1000,
            reason=span.reason,
            attributes=span.attributes,
        )
        try:
            sink.record(event)
        except Exception:  # noqa: BLE001
            logger.warning("telemetry_sink_failed", operation=str(operation), exc_info=True)
