"""
Metrics Service for the recommendation pipeline.

Tracks latency and success per pipeline component:
- Pathway planning (Responses API)
- Search and generative research tiers
- Structured extraction
- Per-pathway research, simulation and end-to-end orchestration

Metrics live in memory only and are summarized on demand (GET /performance).
"""

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from core.logging_config import get_request_id

logger = logging.getLogger("metrics")


class ComponentType(Enum):
    """Recommendation pipeline components."""
    PLANNER = "planner"
    SEARCH = "search"
    GENERATIVE = "generative"
    EXTRACTOR = "extractor"
    RESEARCHER = "researcher"
    SIMULATOR = "simulator"
    ORCHESTRATOR = "orchestrator"


@dataclass
class LatencyMetric:
    """Latency-specific metrics."""
    component: ComponentType
    operation: str
    duration_ms: float
    success: bool
    request_id: Optional[str]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    metadata: Dict[str, Any] = field(default_factory=dict)


def _percentile(values: List[float], pct: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    index = max(0, math.ceil(pct * len(ordered)) - 1)
    return ordered[index]


class MetricsCollector:
    """Central in-memory metrics collection."""

    def __init__(self, max_events: int = 5000):
        self.max_events = max_events
        self._latency_buffer: List[LatencyMetric] = []

    def record_latency(self, component: ComponentType, operation: str,
                       duration_ms: float, success: bool = True,
                       request_id: Optional[str] = None, **metadata):
        """Record a latency metric."""
        metric = LatencyMetric(
            component=component,
            operation=operation,
            duration_ms=duration_ms,
            success=success,
            request_id=request_id or get_request_id(),
            metadata=metadata,
        )
        self._latency_buffer.append(metric)
        if len(self._latency_buffer) > self.max_events:
            del self._latency_buffer[: len(self._latency_buffer) - self.max_events]
        logger.debug(f"Recorded latency: {component.value}.{operation} = {duration_ms:.2f}ms")

    @property
    def events(self) -> List[LatencyMetric]:
        return list(self._latency_buffer)

    def summary(self) -> Dict[str, Any]:
        """Count, success rate, mean and p95 latency per component.operation."""
        grouped: Dict[str, List[LatencyMetric]] = {}
        for metric in self._latency_buffer:
            grouped.setdefault(f"{metric.component.value}.{metric.operation}", []).append(metric)

        components = {}
        for key, metrics in sorted(grouped.items()):
            durations = [m.duration_ms for m in metrics]
            successes = sum(1 for m in metrics if m.success)
            components[key] = {
                "count": len(metrics),
                "success_rate": round(successes / len(metrics), 3),
                "avg_latency_ms": round(sum(durations) / len(durations), 2),
                "p95_latency_ms": round(_percentile(durations, 0.95), 2),
            }

        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "total_events": len(self._latency_buffer),
            "components": components,
        }


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector


class MetricsContext:
    """Async context manager timing one operation; failures are recorded and re-raised."""

    def __init__(self, component: ComponentType, operation: str,
                 request_id: Optional[str] = None, collector: Optional[MetricsCollector] = None,
                 **metadata):
        self.component = component
        self.operation = operation
        self.request_id = request_id
        self.collector = collector or get_metrics_collector()
        self.start_time: Optional[float] = None
        self.metadata: Dict[str, Any] = metadata

    async def __aenter__(self):
        self.start_time = time.perf_counter()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self.start_time is not None:
            duration_ms = (time.perf_counter() - self.start_time) * 1000
            metadata = dict(self.metadata)
            if exc_type is not None:
                metadata["error_type"] = exc_type.__name__
            self.collector.record_latency(
                self.component,
                self.operation,
                duration_ms,
                exc_type is None,
                self.request_id,
                **metadata
            )
        return False
