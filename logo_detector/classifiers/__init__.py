"""Model providers and the frame classifier."""
from .base import (
    Classification,
    ClassificationError,
    ClassificationResult,
    ModelInvocationFailed,
    ModelProvider,
    Result,
)
from .classifier import Classifier
from .dnn_provider import DnnProvider
from .mock_provider import MockProvider

__all__ = [
    "Classification",
    "ClassificationError",
    "ClassificationResult",
    "Classifier",
    "DnnProvider",
    "MockProvider",
    "ModelInvocationFailed",
    "ModelProvider",
    "Result",
]
