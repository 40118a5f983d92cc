"""Real-time metrics tracking for the capture loop."""
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import psutil
import structlog

from ..policy import Outcome, OutcomeKind

logger = structlog.get_logger()


@dataclass
class LoopMetrics:
    """Metrics snapshot for a capture loop session."""

    cycles_started: int = 0
    labels: int = 0
    no_results: int = 0
    unavailable: int = 0
    empty_frames: int = 0
    last_label: str | None = None
    cycles_per_second: float = 0.0
    avg_inference_ms: float = 0.0
    memory_mb: float = 0.0
    memory_percent: float = 0.0
    started_at: float = field(default_factory=time.time)

    @property
    def outcomes(self) -> int:
        """Total outcomes emitted."""
        return self.labels + self.no_results + self.unavailable

    @property
    def elapsed_seconds(self) -> float:
        """Time elapsed since start."""
        return time.time() - self.started_at

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "cycles_started": self.cycles_started,
            "outcomes": self.outcomes,
            "labels": self.labels,
            "no_results": self.no_results,
            "unavailable": self.unavailable,
            "empty_frames": self.empty_frames,
            "last_label": self.last_label,
            "cycles_per_second": round(self.cycles_per_second, 2),
            "avg_inference_ms": round(self.avg_inference_ms, 1),
            "memory_mb": round(self.memory_mb, 1),
            "memory_percent": round(self.memory_percent, 1),
            "elapsed_seconds": round(self.elapsed_seconds, 1),
        }


class MetricsTracker:
    """Track and compute metrics for the capture loop.

    Only called from the event loop, so no locking is needed.
    """

    def __init__(self):
        self.metrics = LoopMetrics()
        self._inference_times: list[float] = []
        self._outcome_timestamps: list[float] = []
        self._callbacks: list[Callable[[LoopMetrics], None]] = []

    def on_update(self, callback: Callable[[LoopMetrics], None]) -> None:
        """Register a callback for metrics updates."""
        self._callbacks.append(callback)

    def record_cycle_start(self) -> None:
        self.metrics.cycles_started += 1

    def record_empty_frame(self) -> None:
        self.metrics.empty_frames += 1

    def record_outcome(self, outcome: Outcome, inference_ms: float) -> None:
        """Record an emitted outcome and the inference time behind it."""
        now = time.time()
        if outcome.kind == OutcomeKind.LABEL:
            self.metrics.labels += 1
            self.metrics.last_label = outcome.label
        elif outcome.kind == OutcomeKind.NO_RESULT:
            self.metrics.no_results += 1
        else:
            self.metrics.unavailable += 1

        self._inference_times.append(inference_ms)
        self._outcome_timestamps.append(now)

        # Rolling average over the last 50 inferences
        recent_times = self._inference_times[-50:]
        self.metrics.avg_inference_ms = sum(recent_times) / len(recent_times)
        del self._inference_times[:-50]

        # Cycles per second over the last 30 seconds
        cutoff = now - 30
        self._outcome_timestamps = [t for t in self._outcome_timestamps if t > cutoff]
        if len(self._outcome_timestamps) >= 2:
            window_seconds = now - self._outcome_timestamps[0]
            if window_seconds > 0:
                self.metrics.cycles_per_second = (
                    (len(self._outcome_timestamps) - 1) / window_seconds
                )

        self._notify_callbacks()

    def _update_memory(self) -> None:
        """Update memory usage metrics."""
        process = psutil.Process()
        memory_info = process.memory_info()
        self.metrics.memory_mb = memory_info.rss / (1024 * 1024)
        self.metrics.memory_percent = process.memory_percent()

    def _notify_callbacks(self) -> None:
        """Notify all registered callbacks."""
        for callback in self._callbacks:
            try:
                callback(self.metrics)
            except Exception as e:
                logger.error("metrics_callback_error", error=str(e))

    def get_metrics(self) -> LoopMetrics:
        """Get current metrics snapshot."""
        self._update_memory()
        return self.metrics
