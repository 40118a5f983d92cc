"""Mock camera for development and testing."""
import asyncio
import random
from itertools import cycle
from pathlib import Path

import numpy as np
import structlog

from .base import AuthorizationState, CameraDevice, CameraUnavailable, CapturedFrame
from .frames import is_supported_format, load_frame

logger = structlog.get_logger()


class MockCamera(CameraDevice):
    """Camera that serves still images from a directory.

    Useful for:
    - Running the loop without a webcam
    - Testing permission and capture paths
    - CI/CD environments

    Without images it serves a synthetic gray frame.
    """

    name = "mock"

    def __init__(
        self,
        images_dir: str | Path | None = None,
        authorization: AuthorizationState = AuthorizationState.AUTHORIZED,
        grant: bool = True,
        shuffle: bool = False,
        frame_size: tuple[int, int] = (640, 480),
    ):
        """Initialize mock camera.

        Args:
            images_dir: Directory of stills to serve, in name order.
            authorization: State reported before any prompt.
            grant: Answer given when prompted.
            shuffle: Serve the stills in random order instead.
            frame_size: (width, height) of the synthetic frame.
        """
        self._authorization = authorization
        self._grant = grant
        self._frame_size = frame_size
        self.prompts = 0
        self.captures = 0
        self.session_active = False

        self._paths: list[Path] = []
        if images_dir is not None and Path(images_dir).is_dir():
            self._paths = sorted(
                p for p in Path(images_dir).iterdir() if is_supported_format(p)
            )
            if shuffle:
                random.shuffle(self._paths)
        self._next_path = cycle(self._paths) if self._paths else None

        logger.info("mock_camera_initialized", images=len(self._paths))

    def authorization_status(self) -> AuthorizationState:
        return self._authorization

    async def request_authorization(self) -> bool:
        self.prompts += 1
        self._authorization = (
            AuthorizationState.AUTHORIZED if self._grant else AuthorizationState.DENIED
        )
        return self._grant

    def start_session(self) -> None:
        if self._authorization != AuthorizationState.AUTHORIZED:
            raise CameraUnavailable("Camera access not authorized")
        self.session_active = True

    async def capture_frame(self) -> CapturedFrame | None:
        if not self.session_active:
            return None
        self.captures += 1

        if self._next_path is None:
            width, height = self._frame_size
            return CapturedFrame(image=np.full((height, width, 3), 127, dtype=np.uint8))

        path = next(self._next_path)
        logger.debug("mock_camera_serving", image=path.name)
        return await asyncio.to_thread(load_frame, path)

    def stop_session(self) -> None:
        self.session_active = False
