"""
Diff metrics — which proposed paths did the user keep?

``generated`` holds every path the agent proposed in the conversation so far;
``accepted`` holds the paths the user kept. Accounting is append-only: a
path recorded as accepted stays accepted even if a later decision rejects it.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from taskassist.core.constants import MetricDataResult
from taskassist.core.telemetry import TelemetryEvent, TelemetrySink

DIFF_METRICS_OPERATION = "DiffMetrics"


@dataclass
class DiffMetricsProcessed:
    accepted: set[str] = field(default_factory=set)
    generated: set[str] = field(default_factory=set)

    def record(self, path: str, accepted: bool) -> None:
        """Record one review decision. Re-recording is a no-op."""
        self.generated.add(path)
        if accepted:
            self.accepted.add(path)

    def record_generated(self, paths: Iterable[str]) -> None:
        self.generated.update(paths)

    @property
    def acceptance_rate(self) -> float:
        if not self.generated:
            return 0.0
        return len(self.accepted & self.generated) / len(self.generated)

    def snapshot(self) -> dict[str, Any]:
        return {
            "accepted": sorted(self.accepted),
            "generated": sorted(self.generated),
            "accepted_count": len(self.accepted),
            "generated_count": len(self.generated),
        }

    def emit(self, sink: TelemetrySink, conversation_id: str) -> None:
        sink.record(
            TelemetryEvent(
                operation=DIFF_METRICS_OPERATION,
                result=MetricDataResult.SUCCESS,
                conversation_id=conversation_id,
                attributes={
                    "accepted_count": len(self.accepted),
                    "generated_count": len(self.generated),
                    "acceptance_rate": round(self.acceptance_rate, 4),
                },
            )
        )
