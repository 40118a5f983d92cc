"""Camera adapters that deliver still frames to the capture loop."""
from .base import (
    AuthorizationState,
    CameraDevice,
    CameraUnavailable,
    CapturedFrame,
    Orientation,
)
from .cv2_camera import OpenCVCamera
from .frames import decode_frame, load_frame, upright
from .mock_camera import MockCamera

__all__ = [
    # Base classes
    "AuthorizationState",
    "CameraDevice",
    "CameraUnavailable",
    "CapturedFrame",
    "Orientation",
    # Adapters
    "MockCamera",
    "OpenCVCamera",
    # Frame helpers
    "decode_frame",
    "load_frame",
    "upright",
]
