"""Base classes for model providers"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

import numpy as np

T = TypeVar('T')


class ClassificationError(str, Enum):
    MODEL_INVOCATION_FAILED = "MODEL_INVOCATION_FAILED"


class ModelInvocationFailed(RuntimeError):
    """The underlying model call itself errored."""


@dataclass
class Result(Generic[T]):
    """Result type for operations that can fail."""
    success: bool
    value: T | None = None
    error: ClassificationError | None = None
    detail: str | None = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: ClassificationError, detail: str | None = None) -> "Result[T]":
        return cls(success=False, error=error, detail=detail)


@dataclass(frozen=True)
class Classification:
    """One ranked entry from the model."""
    label: str
    confidence: float


# Ordered as the model returned it; may be empty, labels may repeat
ClassificationResult = list[Classification]


class ModelProvider(ABC):
    """Abstract interface for classification models.

    Implement this to add new models. The capture loop doesn't
    care which model is used, only that infer() returns
    (label, confidence) pairs.
    """

    name: str = "base"

    @abstractmethod
    def infer(self, image: np.ndarray) -> list[tuple[str, float]]:
        """Classify one upright BGR image.

        Raises:
            Any exception if the model call itself fails.
        """
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """Verify model is loaded and ready."""
        pass
