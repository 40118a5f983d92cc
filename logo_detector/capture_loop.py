"""Capture loop: capture -> classify -> decide -> emit -> cool down -> repeat.

The loop is an explicit state machine. Camera completions, classifier
completions, the cooldown timer and shutdown requests are all posted as
typed events to one asyncio.Queue, and a single transition function
(CaptureLoop.handle) consumes them on the event loop. Every event except
shutdown carries the number of the cycle it belongs to, so a late or
duplicate completion can never advance a newer cycle.

At most one capture and one classification are outstanding at any time.
"""
import asyncio
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

import structlog

from .camera.base import CameraDevice, CameraUnavailable, CapturedFrame
from .classifiers.base import (
    ClassificationError,
    ClassificationResult,
    ModelInvocationFailed,
    Result,
)
from .classifiers.classifier import Classifier
from .permission import PermissionGate
from .policy import DecisionPolicy, Outcome
from .services.metrics import MetricsTracker
from .sinks import OutcomeSink

logger = structlog.get_logger()

DEFAULT_COOLDOWN = 1.0


class LoopState(Enum):
    IDLE = "idle"
    AWAITING_FRAME = "awaiting_frame"
    CLASSIFYING = "classifying"
    COOLING = "cooling"
    STOPPED = "stopped"


@dataclass(frozen=True)
class FrameReady:
    cycle: int
    frame: CapturedFrame | None


@dataclass(frozen=True)
class ClassificationDone:
    cycle: int
    result: Result[ClassificationResult]
    inference_ms: float = 0.0


@dataclass(frozen=True)
class TimerFired:
    cycle: int


@dataclass(frozen=True)
class ShutdownRequested:
    reason: str = "shutdown_requested"


LoopEvent = FrameReady | ClassificationDone | TimerFired | ShutdownRequested


class Clock:
    """Event loop time and sleep. Tests swap in a fake clock."""

    def time(self) -> float:
        return asyncio.get_running_loop().time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class CaptureLoop:
    """Drives one camera session until shutdown."""

    def __init__(
        self,
        camera: CameraDevice,
        classifier: Classifier,
        sink: OutcomeSink,
        policy: DecisionPolicy | None = None,
        cooldown: float = DEFAULT_COOLDOWN,
        fail_on_model_error: bool = False,
        metrics: MetricsTracker | None = None,
        clock: Clock | None = None,
        executor: Executor | None = None,
    ):
        """Initialize the loop. Nothing starts until run().

        Args:
            camera: Camera collaborator; the loop owns its session.
            classifier: Runs on the worker executor.
            sink: Receives one outcome per cycle, and dismiss() on abort.
            policy: Decision policy, threshold 0.6 by default.
            cooldown: Seconds between an outcome and the next capture.
            fail_on_model_error: Stop and raise ModelInvocationFailed on a
                                 model error instead of emitting an
                                 unavailable outcome.
            metrics: Tracker to record cycles into.
            clock: Time source for the cooldown.
            executor: Worker for classification. Defaults to a private
                      single-thread pool.
        """
        self.camera = camera
        self.classifier = classifier
        self.sink = sink
        self.policy = policy or DecisionPolicy()
        self.cooldown = cooldown
        self.fail_on_model_error = fail_on_model_error
        self.metrics = metrics or MetricsTracker()
        self.clock = clock or Clock()
        self.gate = PermissionGate(camera)

        self.state = LoopState.IDLE
        self.cycle = 0
        self.cooling_since: float | None = None
        self.stop_reason: str | None = None

        self._executor = executor
        self._owns_executor = executor is None
        self._queue: asyncio.Queue[LoopEvent] | None = None
        self._pending: set[asyncio.Task] = set()
        self._timer: asyncio.Task | None = None
        self._session_open = False
        self._shutdown_requested = False
        self._started = False
        self._fatal: ModelInvocationFailed | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def run(self) -> LoopState:
        """Resolve permission, start the session and loop until stopped.

        Returns once the loop is STOPPED and any in-flight capture or
        classification has finished; their results are discarded.

        Raises:
            ModelInvocationFailed: only with fail_on_model_error.
        """
        if self._started:
            raise RuntimeError("CaptureLoop.run() can only be called once")
        self._started = True
        if self.state == LoopState.STOPPED:
            return self.state
        self._queue = asyncio.Queue()
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="inference")

        try:
            authorization = await self.gate.resolve()

            if self._shutdown_requested:
                self._stop("shutdown_requested")
            elif not self.gate.proceeds(authorization):
                self._abort(f"permission_{authorization.value}")
            else:
                self._start_session()

            while self.state != LoopState.STOPPED:
                event = await self._queue.get()
                self.handle(event)

            await self._settle()
            await self._release_session()
        finally:
            if self.state != LoopState.STOPPED:
                self._stop("run_interrupted")
            if self._session_open:
                # Cancelled before the session was released
                self._session_open = False
                asyncio.get_running_loop().run_in_executor(None, self._close_session)
            if self._owns_executor:
                self._executor.shutdown(wait=False)

        if self._fatal is not None:
            raise self._fatal
        return self.state

    def shutdown(self, reason: str = "shutdown_requested") -> None:
        """Ask the loop to stop. Safe to call at any time, more than once."""
        if self.state == LoopState.STOPPED or self._shutdown_requested:
            return
        self._shutdown_requested = True
        logger.info("capture_loop_shutdown_requested", reason=reason, state=self.state.value)
        if self._queue is not None:
            self._queue.put_nowait(ShutdownRequested(reason))
        elif not self._started:
            self.state = LoopState.STOPPED
            self.stop_reason = reason

    def _start_session(self) -> None:
        try:
            self.camera.start_session()
        except CameraUnavailable as e:
            logger.error("camera_session_failed", camera=self.camera.name, error=str(e))
            self._abort("camera_unavailable")
            return

        self._session_open = True
        logger.info(
            "capture_loop_started",
            camera=self.camera.name,
            provider=self.classifier.provider.name,
            threshold=self.policy.threshold,
            cooldown=self.cooldown,
        )
        self._request_frame()

    # -------------------------------------------------------------------------
    # Transition function
    # -------------------------------------------------------------------------

    def handle(self, event: LoopEvent) -> None:
        """Apply one event to the state machine."""
        if isinstance(event, ShutdownRequested):
            self._stop(event.reason)
            return

        if self.state == LoopState.STOPPED:
            logger.debug("event_after_stop_discarded", event_type=type(event).__name__)
            return

        if event.cycle != self.cycle:
            logger.warning(
                "stale_event_discarded",
                event_type=type(event).__name__,
                event_cycle=event.cycle,
                cycle=self.cycle,
            )
            return

        if isinstance(event, FrameReady):
            self._on_frame(event)
        elif isinstance(event, ClassificationDone):
            self._on_classification(event)
        elif isinstance(event, TimerFired):
            self._on_timer(event)

    def _on_frame(self, event: FrameReady) -> None:
        if self.state != LoopState.AWAITING_FRAME:
            self._protocol_violation(event)
            return

        if event.frame is None:
            logger.warning("empty_frame_data", cycle=event.cycle)
            self.metrics.record_empty_frame()
            self._cool_down()
            return

        self.state = LoopState.CLASSIFYING
        self._spawn(self._classify(event.cycle, event.frame))

    def _on_classification(self, event: ClassificationDone) -> None:
        if self.state != LoopState.CLASSIFYING:
            self._protocol_violation(event)
            return

        result = event.result
        if not result.success and self.fail_on_model_error:
            self._fatal = ModelInvocationFailed(result.detail or result.error.value)
            self._stop("model_invocation_failed")
            return

        outcome = self.policy.evaluate(result)
        self._emit(outcome)
        self.metrics.record_outcome(outcome, event.inference_ms)
        self._cool_down()

    def _on_timer(self, event: TimerFired) -> None:
        if self.state != LoopState.COOLING:
            self._protocol_violation(event)
            return
        self._request_frame()

    def _protocol_violation(self, event: LoopEvent) -> None:
        logger.warning(
            "protocol_violation",
            event_type=type(event).__name__,
            state=self.state.value,
            cycle=self.cycle,
        )

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def _request_frame(self) -> None:
        self.cycle += 1
        self.state = LoopState.AWAITING_FRAME
        self.metrics.record_cycle_start()
        logger.debug("capture_requested", cycle=self.cycle)
        self._spawn(self._capture(self.cycle))

    def _cool_down(self) -> None:
        self.state = LoopState.COOLING
        self.cooling_since = self.clock.time()
        self._timer = asyncio.create_task(self._fire_after(self.cycle))

    def _emit(self, outcome: Outcome) -> None:
        logger.debug("outcome_emitted", cycle=self.cycle, kind=outcome.kind.value, label=outcome.label)
        try:
            self.sink.emit(outcome)
        except Exception as e:
            logger.error("sink_emit_failed", cycle=self.cycle, error=str(e))

    def _stop(self, reason: str) -> None:
        if self.state == LoopState.STOPPED:
            return
        previous = self.state
        self.state = LoopState.STOPPED
        self.stop_reason = reason

        if self._timer is not None and not self._timer.done():
            self._timer.cancel()

        logger.info(
            "capture_loop_stopped",
            reason=reason,
            previous_state=previous.value,
            cycles=self.cycle,
        )

    def _abort(self, reason: str) -> None:
        """Stop before the loop ever ran and close the display."""
        self._stop(reason)
        try:
            self.sink.dismiss()
        except Exception as e:
            logger.error("sink_dismiss_failed", error=str(e))

    # -------------------------------------------------------------------------
    # Background work; completions are posted back as events
    # -------------------------------------------------------------------------

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _post(self, event: LoopEvent) -> None:
        self._queue.put_nowait(event)

    async def _capture(self, cycle: int) -> None:
        try:
            frame = await self.camera.capture_frame()
        except Exception as e:
            logger.error("camera_capture_failed", cycle=cycle, error=str(e))
            frame = None
        self._post(FrameReady(cycle, frame))

    async def _classify(self, cycle: int, frame: CapturedFrame) -> None:
        loop = asyncio.get_running_loop()
        start = time.perf_counter()
        try:
            result = await loop.run_in_executor(self._executor, self.classifier.classify, frame)
        except Exception as e:
            logger.error("classification_crashed", cycle=cycle, error=str(e))
            result = Result.fail(ClassificationError.MODEL_INVOCATION_FAILED, str(e))
        inference_ms = (time.perf_counter() - start) * 1000
        self._post(ClassificationDone(cycle, result, inference_ms))

    async def _fire_after(self, cycle: int) -> None:
        await self.clock.sleep(self.cooldown)
        self._post(TimerFired(cycle))

    async def _release_session(self) -> None:
        """Stop the camera session on a worker thread, exactly once.

        Runs after _settle(), so no capture holds the device any more.
        """
        if not self._session_open:
            return
        self._session_open = False
        await asyncio.to_thread(self._close_session)

    def _close_session(self) -> None:
        try:
            self.camera.stop_session()
        except Exception as e:
            logger.error("camera_stop_failed", camera=self.camera.name, error=str(e))

    async def _settle(self) -> None:
        """Let in-flight work finish without cancelling it, then drop its results."""
        waiting = list(self._pending)
        if self._timer is not None:
            waiting.append(self._timer)
        if waiting:
            await asyncio.gather(*waiting, return_exceptions=True)

        discarded = 0
        while not self._queue.empty():
            self.handle(self._queue.get_nowait())
            discarded += 1
        if discarded:
            logger.debug("late_events_discarded", count=discarded)
