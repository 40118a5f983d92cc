"""Frame decoding and orientation helpers.

Frames are kept as BGR numpy arrays, the layout OpenCV reads and the DNN
module expects.
"""
import io
from pathlib import Path

import cv2
import numpy as np
import structlog
from PIL import Image, UnidentifiedImageError

from .base import CapturedFrame, Orientation

logger = structlog.get_logger()

# Still formats the mock camera can serve
SUPPORTED_FORMATS = {".jpg", ".jpeg", ".png", ".bmp", ".webp", ".tiff", ".tif"}

EXIF_ORIENTATION_TAG = 0x0112


def decode_frame(data: bytes) -> CapturedFrame | None:
    """Decode encoded image bytes into a CapturedFrame.

    The EXIF orientation tag, when present, is kept as the frame
    orientation; pixels are left as stored.

    Returns:
        CapturedFrame, or None if the bytes hold no usable image.
    """
    if not data:
        return None

    try:
        with Image.open(io.BytesIO(data)) as img:
            tag = img.getexif().get(EXIF_ORIENTATION_TAG)
            rgb = np.asarray(img.convert("RGB"))
    except (UnidentifiedImageError, OSError) as e:
        logger.warning("frame_decode_failed", error=str(e), size=len(data))
        return None

    if rgb.size == 0:
        return None

    image = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
    return CapturedFrame(image=image, orientation=Orientation.from_exif(tag))


def load_frame(path: str | Path) -> CapturedFrame | None:
    """Load an image file as a CapturedFrame."""
    path = Path(path)
    if path.suffix.lower() not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported format: {path.suffix}")
    return decode_frame(path.read_bytes())


def is_supported_format(path: str | Path) -> bool:
    """Check if file format is supported."""
    return Path(path).suffix.lower() in SUPPORTED_FORMATS


def upright(frame: CapturedFrame) -> np.ndarray:
    """Return the frame pixels rotated/flipped so that they display upright."""
    img = frame.image
    orientation = frame.orientation

    if orientation == Orientation.UP:
        return img
    if orientation == Orientation.UP_MIRRORED:
        return cv2.flip(img, 1)
    if orientation == Orientation.DOWN:
        return cv2.rotate(img, cv2.ROTATE_180)
    if orientation == Orientation.DOWN_MIRRORED:
        return cv2.flip(img, 0)
    if orientation == Orientation.LEFT_MIRRORED:
        return cv2.transpose(img)
    if orientation == Orientation.RIGHT:
        return cv2.rotate(img, cv2.ROTATE_90_CLOCKWISE)
    if orientation == Orientation.RIGHT_MIRRORED:
        return cv2.flip(cv2.transpose(img), -1)
    return cv2.rotate(img, cv2.ROTATE_90_COUNTERCLOCKWISE)
