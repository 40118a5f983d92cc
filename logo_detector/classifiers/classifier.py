"""Classifier: runs the model on a captured frame and normalizes its output."""
import math
import time

import structlog

from ..camera.base import CapturedFrame
from ..camera.frames import upright
from .base import (
    Classification,
    ClassificationError,
    ClassificationResult,
    ModelProvider,
    Result,
)

logger = structlog.get_logger()


def normalize(raw) -> ClassificationResult:
    """Convert raw model output into ranked Classification entries.

    Order is preserved. Entries without a label or with a non-numeric or
    non-finite score are dropped; confidences are clamped into [0, 1].
    """
    results: ClassificationResult = []
    for entry in raw if raw is not None else ():
        if isinstance(entry, Classification):
            entry = (entry.label, entry.confidence)
        try:
            label, confidence = entry
            confidence = float(confidence)
        except (TypeError, ValueError):
            logger.debug("classification_entry_dropped", entry=repr(entry)[:80])
            continue

        label = str(label).strip() if label is not None else ""
        if not label or not math.isfinite(confidence):
            continue

        results.append(Classification(label=label, confidence=min(1.0, max(0.0, confidence))))
    return results


class Classifier:
    """Wraps a ModelProvider.

    classify() is blocking and CPU bound. The capture loop calls it on a
    worker thread and hands the result back to the event loop.
    """

    def __init__(self, provider: ModelProvider):
        self.provider = provider

    def classify(self, frame: CapturedFrame) -> Result[ClassificationResult]:
        """Classify one frame.

        Returns:
            Result with the ranked entries (possibly empty), or a failed
            Result with MODEL_INVOCATION_FAILED if the model call raised.
        """
        start = time.perf_counter()
        try:
            raw = self.provider.infer(upright(frame))
        except Exception as e:
            logger.error(
                "model_invocation_failed",
                provider=self.provider.name,
                error=str(e),
            )
            return Result.fail(ClassificationError.MODEL_INVOCATION_FAILED, str(e))

        inference_ms = (time.perf_counter() - start) * 1000
        results = normalize(raw)
        logger.debug(
            "classification_complete",
            provider=self.provider.name,
            count=len(results),
            inference_ms=round(inference_ms, 1),
        )
        return Result.ok(results)
