"""Decision policy: ranked classifications -> displayable outcome."""
from dataclasses import dataclass
from enum import Enum

from .classifiers.base import ClassificationResult, Result

DEFAULT_THRESHOLD = 0.6
NO_RESULT_TEXT = "No results found"
UNAVAILABLE_TEXT = "Classification unavailable"


class OutcomeKind(Enum):
    LABEL = "label"
    NO_RESULT = "no_result"
    CLASSIFICATION_UNAVAILABLE = "classification_unavailable"


@dataclass(frozen=True)
class Outcome:
    """User-facing result of one cycle."""
    kind: OutcomeKind
    label: str | None = None

    @classmethod
    def of_label(cls, label: str) -> "Outcome":
        return cls(kind=OutcomeKind.LABEL, label=label)

    @classmethod
    def no_result(cls) -> "Outcome":
        return cls(kind=OutcomeKind.NO_RESULT)

    @classmethod
    def unavailable(cls) -> "Outcome":
        return cls(kind=OutcomeKind.CLASSIFICATION_UNAVAILABLE)

    @property
    def text(self) -> str:
        """What the display shows."""
        if self.kind == OutcomeKind.LABEL:
            return self.label
        if self.kind == OutcomeKind.NO_RESULT:
            return NO_RESULT_TEXT
        return UNAVAILABLE_TEXT


def decide(results: ClassificationResult, threshold: float = DEFAULT_THRESHOLD) -> Outcome:
    """Pick the most confident entry and apply the threshold.

    Ties keep the first maximum encountered. The winner must score
    strictly above threshold; an empty result is NO_RESULT.
    """
    best = None
    for entry in results:
        if best is None or entry.confidence > best.confidence:
            best = entry

    if best is not None and best.confidence > threshold:
        return Outcome.of_label(best.label)
    return Outcome.no_result()


class DecisionPolicy:
    """decide() bound to a fixed threshold."""

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        self.threshold = threshold

    def __call__(self, results: ClassificationResult) -> Outcome:
        return decide(results, self.threshold)

    def evaluate(self, result: Result[ClassificationResult]) -> Outcome:
        """Map a classifier Result to an Outcome; failures are UNAVAILABLE."""
        if not result.success:
            return Outcome.unavailable()
        return decide(result.value or [], self.threshold)
