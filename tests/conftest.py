"""Pytest configuration and fixtures"""
import asyncio
import threading

import numpy as np
import pytest

from logo_detector.camera.base import (
    AuthorizationState,
    CameraDevice,
    CameraUnavailable,
    CapturedFrame,
)
from logo_detector.classifiers.base import ModelProvider
from logo_detector.sinks import OutcomeSink


class FakeClock:
    """Deterministic clock: sleep() advances time instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeCamera(CameraDevice):
    """Scriptable camera that records every call."""

    name = "fake"

    def __init__(
        self,
        authorization: AuthorizationState = AuthorizationState.AUTHORIZED,
        grant: bool = True,
        frames: list | None = None,
        clock: FakeClock | None = None,
        start_error: bool = False,
        capture_error: bool = False,
    ):
        self.authorization = authorization
        self.grant = grant
        self.frames = list(frames or [])
        self.clock = clock
        self.start_error = start_error
        self.capture_error = capture_error
        self.prompts = 0
        self.start_calls = 0
        self.stop_calls = 0
        self.capture_times: list[float] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.on_capture = None

    @property
    def capture_count(self) -> int:
        return len(self.capture_times)

    def authorization_status(self) -> AuthorizationState:
        return self.authorization

    async def request_authorization(self) -> bool:
        self.prompts += 1
        await asyncio.sleep(0)
        return self.grant

    def start_session(self) -> None:
        self.start_calls += 1
        if self.start_error:
            raise CameraUnavailable("no device")

    async def capture_frame(self) -> CapturedFrame | None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.capture_times.append(self.clock.time() if self.clock else 0.0)
        await asyncio.sleep(0)
        self.in_flight -= 1

        if self.on_capture is not None:
            self.on_capture(self.capture_count)
        if self.capture_error:
            raise OSError("device gone")
        if self.frames:
            return self.frames.pop(0)
        return make_frame()

    def stop_session(self) -> None:
        self.stop_calls += 1


class FixedProvider(ModelProvider):
    """Returns the same pairs every call, or raises if told to."""

    name = "fixed"

    def __init__(self, pairs=None, error: Exception | None = None):
        self.pairs = pairs if pairs is not None else [("nike", 0.9)]
        self.error = error
        self.shapes: list[tuple] = []

    def infer(self, image):
        self.shapes.append(image.shape)
        if self.error is not None:
            raise self.error
        return list(self.pairs)

    def health_check(self) -> bool:
        return True


class GatedProvider(FixedProvider):
    """Blocks inside infer() until release is set."""

    name = "gated"

    def __init__(self, pairs=None):
        super().__init__(pairs)
        self.started = threading.Event()
        self.release = threading.Event()

    def infer(self, image):
        self.started.set()
        self.release.wait(timeout=5)
        return super().infer(image)


class RecordingSink(OutcomeSink):
    """Remembers every outcome and dismiss call."""

    def __init__(self, camera: FakeCamera | None = None):
        self.outcomes = []
        self.captures_at_emit: list[int] = []
        self.dismissed = 0
        self.camera = camera

    def emit(self, outcome) -> None:
        self.outcomes.append(outcome)
        if self.camera is not None:
            self.captures_at_emit.append(self.camera.capture_count)

    def dismiss(self) -> None:
        self.dismissed += 1


def make_frame(width: int = 64, height: int = 48) -> CapturedFrame:
    return CapturedFrame(image=np.full((height, width, 3), 90, dtype=np.uint8))


async def _wait_until(predicate, timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def clock():
    """Deterministic clock for cooldown timing."""
    return FakeClock()


@pytest.fixture
def camera(clock):
    """Authorized fake camera bound to the fake clock."""
    return FakeCamera(clock=clock)


@pytest.fixture
def sink(camera):
    """Sink that records outcomes and the capture count at each emit."""
    return RecordingSink(camera)


@pytest.fixture
def wait_until():
    """Poll a predicate on the event loop until it holds."""
    return _wait_until
