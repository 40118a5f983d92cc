"""Outcome sinks: where each cycle's outcome is displayed."""
from abc import ABC, abstractmethod
from datetime import datetime, timezone

import structlog

from .policy import Outcome

logger = structlog.get_logger()


class OutcomeSink(ABC):
    """One-way display contract.

    Both methods are only called from the event loop thread.
    """

    @abstractmethod
    def emit(self, outcome: Outcome) -> None:
        pass

    @abstractmethod
    def dismiss(self) -> None:
        """Close the display; the session is over."""
        pass


class DisplayState(OutcomeSink):
    """Holds what the display currently shows. Read by the HTTP API."""

    def __init__(self):
        self.outcome: Outcome | None = None
        self.updated_at: datetime | None = None
        self.emitted = 0
        self.dismissed = False

    def emit(self, outcome: Outcome) -> None:
        self.outcome = outcome
        self.updated_at = datetime.now(timezone.utc)
        self.emitted += 1

    def dismiss(self) -> None:
        self.dismissed = True

    @property
    def text(self) -> str:
        """Current display text; an ellipsis until the first outcome."""
        return self.outcome.text if self.outcome else "..."


class LogSink(OutcomeSink):
    """Writes each outcome to the structured log."""

    def emit(self, outcome: Outcome) -> None:
        logger.info("outcome", kind=outcome.kind.value, label=outcome.label)

    def dismiss(self) -> None:
        logger.info("display_dismissed")


class MultiSink(OutcomeSink):
    """Fans out to several sinks in order."""

    def __init__(self, *sinks: OutcomeSink):
        self.sinks = list(sinks)

    def emit(self, outcome: Outcome) -> None:
        for sink in self.sinks:
            sink.emit(outcome)

    def dismiss(self) -> None:
        for sink in self.sinks:
            sink.dismiss()
