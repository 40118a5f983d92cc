"""OpenCV webcam adapter.

CAMERA_INDEX selects the device. On Linux the authorization state is read
from the permissions of /dev/videoN; elsewhere the operating system decides
the first time the device is opened, so the state starts as NOT_DETERMINED
and opening the device is the prompt.
"""
import asyncio
import os
import sys
import threading
from pathlib import Path

import cv2
import structlog

from .base import (
    AuthorizationState,
    CameraDevice,
    CameraUnavailable,
    CapturedFrame,
    Orientation,
)

logger = structlog.get_logger()


class OpenCVCamera(CameraDevice):
    """Webcam capture through cv2.VideoCapture."""

    name = "opencv"

    def __init__(self, index: int = 0, forced_authorization: str | None = None):
        """Initialize the adapter. The device is not opened yet.

        Args:
            index: OpenCV device index.
            forced_authorization: If set, report this authorization state
                                  instead of probing the device.
        """
        self.index = index
        self._forced = (
            AuthorizationState.parse(forced_authorization)
            if forced_authorization
            else None
        )
        self._granted: bool | None = None
        self._cap: cv2.VideoCapture | None = None
        self._lock = threading.Lock()

    @property
    def device_path(self) -> Path:
        return Path(f"/dev/video{self.index}")

    def authorization_status(self) -> AuthorizationState:
        if self._forced is not None:
            return self._forced
        if self._granted is not None:
            return AuthorizationState.AUTHORIZED if self._granted else AuthorizationState.DENIED

        if sys.platform.startswith("linux"):
            if not self.device_path.exists():
                return AuthorizationState.UNKNOWN
            if os.access(self.device_path, os.R_OK | os.W_OK):
                return AuthorizationState.AUTHORIZED
            # Needs membership of the video group, which the user can't grant
            return AuthorizationState.RESTRICTED

        return AuthorizationState.NOT_DETERMINED

    async def request_authorization(self) -> bool:
        logger.info("camera_authorization_prompt", index=self.index)
        opened = await asyncio.to_thread(self._open)
        self._granted = opened
        logger.info("camera_authorization_answered", index=self.index, granted=opened)
        return opened

    def _open(self) -> bool:
        with self._lock:
            if self._cap is None or not self._cap.isOpened():
                self._cap = cv2.VideoCapture(self.index)
            return self._cap.isOpened()

    def start_session(self) -> None:
        if not self._open():
            logger.error("camera_open_failed", index=self.index)
            raise CameraUnavailable(f"Failed to open camera device {self.index}")
        logger.info("camera_session_started", index=self.index)

    async def capture_frame(self) -> CapturedFrame | None:
        return await asyncio.to_thread(self._read)

    def _read(self) -> CapturedFrame | None:
        with self._lock:
            if self._cap is None or not self._cap.isOpened():
                return None
            ret, frame = self._cap.read()

        if not ret or frame is None or frame.size == 0:
            logger.warning("camera_frame_capture_failed", index=self.index)
            return None
        # VideoCapture frames arrive upright
        return CapturedFrame(image=frame, orientation=Orientation.UP)

    def stop_session(self) -> None:
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
        logger.info("camera_session_stopped", index=self.index)
