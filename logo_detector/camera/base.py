"""Base classes for camera adapters"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

import numpy as np


class AuthorizationState(Enum):
    AUTHORIZED = "authorized"
    DENIED = "denied"
    RESTRICTED = "restricted"
    NOT_DETERMINED = "not_determined"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> "AuthorizationState":
        """Parse a state name, UNKNOWN for anything unrecognized."""
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.lower().strip())
        except ValueError:
            return cls.UNKNOWN


class Orientation(Enum):
    """Pixel orientation of a captured frame, valued as the EXIF tag."""
    UP = 1
    UP_MIRRORED = 2
    DOWN = 3
    DOWN_MIRRORED = 4
    LEFT_MIRRORED = 5
    RIGHT = 6
    RIGHT_MIRRORED = 7
    LEFT = 8

    @classmethod
    def from_exif(cls, tag: int | None) -> "Orientation":
        """Map an EXIF orientation tag to an Orientation.

        A missing tag means the image is stored upright. Values outside
        the 8 canonical orientations fall back to DOWN.
        """
        if tag is None:
            return cls.UP
        try:
            return cls(tag)
        except ValueError:
            return cls.DOWN


@dataclass
class CapturedFrame:
    """One still image delivered by the camera."""
    image: np.ndarray  # BGR, HxWx3, uint8
    orientation: Orientation = Orientation.UP

    @property
    def size(self) -> tuple[int, int]:
        """(width, height) of the stored pixels."""
        return self.image.shape[1], self.image.shape[0]


class CameraUnavailable(RuntimeError):
    """Raised when a camera session cannot be established."""


class CameraDevice(ABC):
    """Abstract interface for camera drivers.

    The capture loop owns the session for its whole lifetime and never
    has more than one capture outstanding.
    """

    name: str = "base"

    @abstractmethod
    def authorization_status(self) -> AuthorizationState:
        """Current authorization, without prompting."""
        pass

    @abstractmethod
    async def request_authorization(self) -> bool:
        """Prompt for access once. Returns True if granted."""
        pass

    @abstractmethod
    def start_session(self) -> None:
        """Open the device. Raises CameraUnavailable on failure."""
        pass

    @abstractmethod
    async def capture_frame(self) -> CapturedFrame | None:
        """Capture one frame. Returns None when no image data came back."""
        pass

    @abstractmethod
    def stop_session(self) -> None:
        """Release the device."""
        pass
