"""ONNX classifier provider using OpenCV's DNN module.

Loads an image classification network exported to ONNX together with a
plain-text labels file (one label per line, in output order). Input frames
are center-cropped to a square, scaled to the network input size and
normalized with the ImageNet mean and standard deviation.
"""
from pathlib import Path

import cv2
import numpy as np
import structlog

from .base import ModelInvocationFailed, ModelProvider

logger = structlog.get_logger()

IMAGENET_MEAN = np.array([0.485, 0.456, 0.406], dtype=np.float32)
IMAGENET_STD = np.array([0.229, 0.224, 0.225], dtype=np.float32)


def load_labels(labels_path: str | Path) -> list[str]:
    """Read labels, one per line, skipping blank lines."""
    lines = Path(labels_path).read_text(encoding="utf-8").splitlines()
    labels = [line.strip() for line in lines if line.strip()]
    if not labels:
        raise ValueError(f"No labels found in {labels_path}")
    return labels


def center_crop(image: np.ndarray, size: int) -> np.ndarray:
    """Crop the largest centered square and scale it to size x size."""
    h, w = image.shape[:2]
    side = min(h, w)
    top = (h - side) // 2
    left = (w - side) // 2
    square = image[top:top + side, left:left + side]
    return cv2.resize(square, (size, size), interpolation=cv2.INTER_AREA)


def softmax(logits: np.ndarray) -> np.ndarray:
    """Numerically stable softmax over a 1-D array."""
    shifted = logits - np.max(logits)
    exp = np.exp(shifted)
    return exp / exp.sum()


def to_probabilities(scores: np.ndarray) -> np.ndarray:
    """Return scores as probabilities.

    Networks exported with a softmax head already sum to 1; raw logits
    are passed through softmax.
    """
    scores = scores.astype(np.float64)
    if scores.min() >= 0.0 and abs(scores.sum() - 1.0) < 1e-3:
        return scores
    return softmax(scores)


def preprocess(image: np.ndarray, size: int) -> np.ndarray:
    """Turn an upright BGR frame into a 1x3xSxS float32 NCHW blob."""
    crop = center_crop(image, size)
    blob = cv2.dnn.blobFromImage(crop, scalefactor=1.0 / 255, swapRB=True)
    return (blob - IMAGENET_MEAN.reshape(1, 3, 1, 1)) / IMAGENET_STD.reshape(1, 3, 1, 1)


class DnnProvider(ModelProvider):
    """Pretrained ONNX classifier run through cv2.dnn."""

    name = "opencv-dnn"

    def __init__(self, model_path: str, labels_path: str, input_size: int = 224):
        """Load the network and labels.

        Args:
            model_path: Path to the .onnx model file
            labels_path: Path to the labels file
            input_size: Square input resolution of the network
        """
        self.model_path = Path(model_path)
        self.labels_path = Path(labels_path)
        self.input_size = input_size

        if not self.model_path.exists():
            raise FileNotFoundError(f"Model not found: {model_path}")
        if not self.labels_path.exists():
            raise FileNotFoundError(f"Labels not found: {labels_path}")

        self.labels = load_labels(self.labels_path)
        self._net = cv2.dnn.readNetFromONNX(str(self.model_path))

        logger.info(
            "dnn_provider_initialized",
            model_path=str(self.model_path),
            labels=len(self.labels),
            input_size=input_size,
        )

    def infer(self, image: np.ndarray) -> list[tuple[str, float]]:
        """Return every label with its probability, best first."""
        if image is None or image.size == 0:
            raise ModelInvocationFailed("Empty input image")

        try:
            self._net.setInput(preprocess(image, self.input_size))
            output = self._net.forward()
        except cv2.error as e:
            raise ModelInvocationFailed(f"Forward pass failed: {e}") from e

        scores = np.asarray(output).reshape(-1)
        if scores.shape[0] != len(self.labels):
            raise ModelInvocationFailed(
                f"Model returned {scores.shape[0]} scores for {len(self.labels)} labels"
            )

        probabilities = to_probabilities(scores)
        order = np.argsort(-probabilities, kind="stable")
        return [(self.labels[i], float(probabilities[i])) for i in order]

    def health_check(self) -> bool:
        """Check that the network is loaded and the files still exist."""
        return (
            not self._net.empty()
            and self.model_path.exists()
            and self.labels_path.exists()
        )
