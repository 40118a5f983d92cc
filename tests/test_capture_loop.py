"""Tests for the capture loop state machine."""
import asyncio
import threading
import time

import numpy as np
import pytest

from conftest import FakeCamera, FixedProvider, GatedProvider, RecordingSink, make_frame
from logo_detector.camera import OpenCVCamera
from logo_detector.camera.base import AuthorizationState
from logo_detector.capture_loop import (
    CaptureLoop,
    ClassificationDone,
    FrameReady,
    LoopState,
    ShutdownRequested,
    TimerFired,
)
from logo_detector.classifiers import Classifier, ModelInvocationFailed, Result
from logo_detector.policy import DecisionPolicy, Outcome, OutcomeKind


def make_loop(camera, sink, provider=None, clock=None, **kwargs) -> CaptureLoop:
    return CaptureLoop(
        camera=camera,
        classifier=Classifier(provider or FixedProvider()),
        sink=sink,
        clock=clock,
        **kwargs,
    )


class SlowVideoCapture:
    """Stands in for cv2.VideoCapture on a device whose reads block."""

    def __init__(self, delay: float):
        self.delay = delay
        self.reading = threading.Event()
        self.released = False

    def isOpened(self):
        return not self.released

    def read(self):
        self.reading.set()
        time.sleep(self.delay)
        return True, np.zeros((4, 4, 3), dtype=np.uint8)

    def release(self):
        self.released = True


def stop_after(loop: CaptureLoop, captures: int):
    """Camera callback that requests shutdown on the Nth capture."""
    def on_capture(count):
        if count >= captures:
            loop.shutdown()
    return on_capture


class TestCycle:
    async def test_emits_label_each_cycle(self, camera, sink, clock):
        loop = make_loop(camera, sink, clock=clock)
        camera.on_capture = stop_after(loop, 3)

        state = await asyncio.wait_for(loop.run(), timeout=5)

        assert state == LoopState.STOPPED
        assert sink.outcomes == [Outcome.of_label("nike")] * 2
        assert camera.start_calls == 1
        assert camera.stop_calls == 1

    async def test_low_confidence_emits_no_result(self, camera, sink, clock):
        provider = FixedProvider([("nike", 0.6), ("adidas", 0.2)])
        loop = make_loop(camera, sink, provider, clock=clock)
        camera.on_capture = stop_after(loop, 2)

        await asyncio.wait_for(loop.run(), timeout=5)

        assert sink.outcomes == [Outcome.no_result()]

    async def test_empty_model_output_is_no_result(self, camera, sink, clock):
        loop = make_loop(camera, sink, FixedProvider([]), clock=clock)
        camera.on_capture = stop_after(loop, 2)

        await asyncio.wait_for(loop.run(), timeout=5)

        assert sink.outcomes == [Outcome.no_result()]

    async def test_policy_threshold_is_used(self, camera, sink, clock):
        loop = make_loop(
            camera, sink, FixedProvider([("nike", 0.8)]), clock=clock,
            policy=DecisionPolicy(0.9),
        )
        camera.on_capture = stop_after(loop, 2)

        await asyncio.wait_for(loop.run(), timeout=5)

        assert sink.outcomes == [Outcome.no_result()]

    async def test_metrics_recorded(self, camera, sink, clock):
        loop = make_loop(camera, sink, clock=clock)
        camera.on_capture = stop_after(loop, 3)

        await asyncio.wait_for(loop.run(), timeout=5)

        metrics = loop.metrics.get_metrics()
        assert metrics.cycles_started == 3
        assert metrics.labels == 2
        assert metrics.last_label == "nike"


class TestSerialization:
    async def test_one_outstanding_request_during_slow_classification(
        self, camera, sink, clock, wait_until
    ):
        """No second capture is issued while classification is pending."""
        provider = GatedProvider()
        loop = make_loop(camera, sink, provider, clock=clock)
        task = asyncio.create_task(loop.run())

        await wait_until(provider.started.is_set)
        await asyncio.sleep(0.05)
        assert loop.state == LoopState.CLASSIFYING
        assert camera.capture_count == 1

        camera.on_capture = stop_after(loop, 3)
        provider.release.set()
        await asyncio.wait_for(task, timeout=5)

        assert camera.max_in_flight == 1
        # Outcome N was emitted before capture N+1 was requested
        assert sink.captures_at_emit == [1, 2]

    async def test_cycle_numbers_increase(self, camera, sink, clock):
        loop = make_loop(camera, sink, clock=clock)
        camera.on_capture = stop_after(loop, 4)

        await asyncio.wait_for(loop.run(), timeout=5)

        assert loop.cycle == 4
        assert len(sink.outcomes) == 3


class TestCadence:
    async def test_next_capture_exactly_one_cooldown_later(self, camera, sink, clock):
        loop = make_loop(camera, sink, clock=clock)
        camera.on_capture = stop_after(loop, 3)

        await asyncio.wait_for(loop.run(), timeout=5)

        assert camera.capture_times == [0.0, 1.0, 2.0]
        assert clock.sleeps == [1.0, 1.0]

    async def test_custom_cooldown(self, camera, sink, clock):
        loop = make_loop(camera, sink, clock=clock, cooldown=0.25)
        camera.on_capture = stop_after(loop, 3)

        await asyncio.wait_for(loop.run(), timeout=5)

        assert camera.capture_times == [0.0, 0.25, 0.5]

    async def test_cooling_entered_after_outcome(self, camera, sink, clock):
        loop = make_loop(camera, sink, clock=clock)
        camera.on_capture = stop_after(loop, 2)

        await asyncio.wait_for(loop.run(), timeout=5)

        # Second capture happened exactly one cooldown after cooling began
        assert loop.cooling_since == 0.0
        assert camera.capture_times[1] - loop.cooling_since == loop.cooldown


class TestShutdown:
    async def test_result_after_shutdown_is_discarded(self, camera, sink, clock, wait_until):
        provider = GatedProvider()
        loop = make_loop(camera, sink, provider, clock=clock)
        task = asyncio.create_task(loop.run())

        await wait_until(provider.started.is_set)
        loop.shutdown()
        await wait_until(lambda: loop.state == LoopState.STOPPED)
        # Released only once the classification in flight has finished
        assert camera.stop_calls == 0

        provider.release.set()
        await asyncio.wait_for(task, timeout=5)

        assert sink.outcomes == []
        assert sink.dismissed == 0
        assert camera.stop_calls == 1
        assert loop.stop_reason == "shutdown_requested"

    async def test_shutdown_while_cooling_cancels_timer(self, sink, wait_until):
        camera = FakeCamera()
        loop = make_loop(camera, sink, cooldown=30)
        task = asyncio.create_task(loop.run())

        await wait_until(lambda: loop.state == LoopState.COOLING)
        loop.shutdown()
        await asyncio.wait_for(task, timeout=5)

        assert camera.capture_count == 1
        assert len(sink.outcomes) == 1

    async def test_shutdown_is_idempotent(self, camera, sink, clock):
        loop = make_loop(camera, sink, clock=clock)

        def on_capture(count):
            loop.shutdown()
            loop.shutdown("again")

        camera.on_capture = on_capture
        await asyncio.wait_for(loop.run(), timeout=5)

        assert camera.stop_calls == 1
        assert loop.stop_reason == "shutdown_requested"

    async def test_shutdown_before_run(self, camera, sink):
        loop = make_loop(camera, sink)
        loop.shutdown()

        assert await loop.run() == LoopState.STOPPED
        assert camera.start_calls == 0
        assert camera.capture_count == 0

    async def test_run_only_once(self, camera, sink, clock):
        loop = make_loop(camera, sink, clock=clock)
        camera.on_capture = stop_after(loop, 1)
        await asyncio.wait_for(loop.run(), timeout=5)

        with pytest.raises(RuntimeError, match="only be called once"):
            await loop.run()

    async def test_shutdown_during_slow_read_keeps_event_loop_responsive(
        self, sink, wait_until
    ):
        device = SlowVideoCapture(delay=0.5)
        camera = OpenCVCamera(forced_authorization="authorized")
        camera._cap = device
        loop = make_loop(camera, sink)
        task = asyncio.create_task(loop.run())

        await wait_until(device.reading.is_set)
        event_loop = asyncio.get_running_loop()
        gaps = []

        async def tick():
            last = event_loop.time()
            while not task.done():
                await asyncio.sleep(0.01)
                now = event_loop.time()
                gaps.append(now - last)
                last = now

        ticker = asyncio.create_task(tick())
        loop.shutdown()
        await asyncio.wait_for(task, timeout=5)
        await ticker

        assert max(gaps) < 0.2
        assert device.released
        assert sink.outcomes == []
        assert loop.state == LoopState.STOPPED


class TestPermissionAbort:
    @pytest.mark.parametrize(
        "authorization",
        [
            AuthorizationState.DENIED,
            AuthorizationState.RESTRICTED,
            AuthorizationState.UNKNOWN,
        ],
    )
    async def test_refused_permission_dismisses(self, sink, authorization):
        camera = FakeCamera(authorization=authorization)
        loop = make_loop(camera, sink)

        assert await asyncio.wait_for(loop.run(), timeout=5) == LoopState.STOPPED
        assert sink.dismissed == 1
        assert camera.start_calls == 0
        assert camera.stop_calls == 0
        assert loop.stop_reason == f"permission_{authorization.value}"

    async def test_declined_prompt_dismisses(self, sink):
        camera = FakeCamera(authorization=AuthorizationState.NOT_DETERMINED, grant=False)
        loop = make_loop(camera, sink)

        await asyncio.wait_for(loop.run(), timeout=5)

        assert camera.prompts == 1
        assert sink.dismissed == 1
        assert camera.capture_count == 0

    async def test_granted_prompt_starts_loop(self, sink, clock):
        camera = FakeCamera(
            authorization=AuthorizationState.NOT_DETERMINED, grant=True, clock=clock
        )
        loop = make_loop(camera, sink, clock=clock)
        camera.on_capture = stop_after(loop, 2)

        await asyncio.wait_for(loop.run(), timeout=5)

        assert camera.prompts == 1
        assert len(sink.outcomes) == 1

    async def test_camera_unavailable_dismisses(self, sink):
        camera = FakeCamera(start_error=True)
        loop = make_loop(camera, sink)

        await asyncio.wait_for(loop.run(), timeout=5)

        assert sink.dismissed == 1
        assert camera.stop_calls == 0
        assert loop.stop_reason == "camera_unavailable"


class TestFailures:
    async def test_empty_frame_reissues_after_cooldown(self, clock, sink):
        camera = FakeCamera(frames=[None], clock=clock)
        sink.camera = camera
        loop = make_loop(camera, sink, clock=clock)
        camera.on_capture = stop_after(loop, 3)

        await asyncio.wait_for(loop.run(), timeout=5)

        assert camera.capture_times == [0.0, 1.0, 2.0]
        assert len(sink.outcomes) == 1
        assert loop.metrics.get_metrics().empty_frames == 1

    async def test_capture_exception_treated_as_empty(self, clock, sink):
        camera = FakeCamera(clock=clock, capture_error=True)
        loop = make_loop(camera, sink, clock=clock)
        camera.on_capture = stop_after(loop, 3)

        await asyncio.wait_for(loop.run(), timeout=5)

        assert sink.outcomes == []
        assert loop.metrics.get_metrics().empty_frames == 2

    async def test_model_failure_emits_unavailable_and_continues(self, camera, sink, clock):
        provider = FixedProvider(error=ValueError("malformed input"))
        loop = make_loop(camera, sink, provider, clock=clock)
        camera.on_capture = stop_after(loop, 3)

        state = await asyncio.wait_for(loop.run(), timeout=5)

        assert state == LoopState.STOPPED
        assert [o.kind for o in sink.outcomes] == [OutcomeKind.CLASSIFICATION_UNAVAILABLE] * 2
        assert loop.metrics.get_metrics().unavailable == 2

    async def test_fail_on_model_error_stops_and_raises(self, camera, sink, clock):
        provider = FixedProvider(error=ValueError("malformed input"))
        loop = make_loop(camera, sink, provider, clock=clock, fail_on_model_error=True)

        with pytest.raises(ModelInvocationFailed, match="malformed input"):
            await asyncio.wait_for(loop.run(), timeout=5)

        assert sink.outcomes == []
        assert camera.stop_calls == 1
        assert loop.state == LoopState.STOPPED

    async def test_sink_error_does_not_stop_loop(self, camera, clock):
        class BrokenSink(RecordingSink):
            def emit(self, outcome):
                super().emit(outcome)
                raise RuntimeError("display gone")

        sink = BrokenSink()
        loop = make_loop(camera, sink, clock=clock)
        camera.on_capture = stop_after(loop, 3)

        await asyncio.wait_for(loop.run(), timeout=5)

        assert len(sink.outcomes) == 2


class TestTransitions:
    def test_frame_outside_awaiting_frame_is_ignored(self, camera, sink):
        loop = make_loop(camera, sink)

        loop.handle(FrameReady(cycle=0, frame=make_frame()))

        assert loop.state == LoopState.IDLE

    def test_stale_cycle_is_ignored(self, camera, sink):
        loop = make_loop(camera, sink)
        loop.state = LoopState.COOLING
        loop.cycle = 3

        loop.handle(TimerFired(cycle=2))

        assert loop.state == LoopState.COOLING
        assert loop.cycle == 3

    def test_classification_while_cooling_is_ignored(self, camera, sink):
        loop = make_loop(camera, sink)
        loop.state = LoopState.COOLING
        loop.cycle = 1

        loop.handle(ClassificationDone(cycle=1, result=Result.ok([])))

        assert loop.state == LoopState.COOLING
        assert sink.outcomes == []

    def test_events_after_stop_are_ignored(self, camera, sink):
        loop = make_loop(camera, sink)
        loop.handle(ShutdownRequested())
        assert loop.state == LoopState.STOPPED

        loop.handle(ClassificationDone(cycle=0, result=Result.ok([])))

        assert sink.outcomes == []
        assert loop.state == LoopState.STOPPED
