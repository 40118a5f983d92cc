"""Services for wiring and observing the capture loop."""
from .metrics import LoopMetrics, MetricsTracker

__all__ = [
    "LoopMetrics",
    "MetricsTracker",
]
