"""Mock model provider for development and testing."""
import random

import numpy as np
import structlog

from .base import ModelProvider

logger = structlog.get_logger()

DEFAULT_LABELS = ["apple", "nike", "starbucks", "mcdonalds", "adidas"]


class MockProvider(ModelProvider):
    """Mock provider that returns random scores.

    Useful for:
    - Development without a trained model
    - Testing the capture loop
    - CI/CD environments
    """

    name = "mock"

    def __init__(
        self,
        labels: list[str] | None = None,
        fixed: list[tuple[str, float]] | None = None,
        seed: int | None = None,
    ):
        """Initialize mock provider.

        Args:
            labels: Labels to score. Defaults to a few well-known logos.
            fixed: If set, always return these pairs.
                   If None, return random scores that sum to 1.
            seed: Seed for the random scores.
        """
        self.labels = labels or DEFAULT_LABELS
        self.fixed = fixed
        self._random = random.Random(seed)
        self.calls = 0
        logger.info("mock_provider_initialized", labels=len(self.labels))

    def infer(self, image: np.ndarray) -> list[tuple[str, float]]:
        """Return mock scores, best first."""
        self.calls += 1
        if self.fixed is not None:
            return list(self.fixed)

        weights = [self._random.random() for _ in self.labels]
        # Occasionally make one label dominant so both outcomes show up
        if self._random.random() > 0.5:
            weights[self._random.randrange(len(weights))] += len(weights)
        total = sum(weights)
        pairs = [(label, w / total) for label, w in zip(self.labels, weights)]
        return sorted(pairs, key=lambda p: p[1], reverse=True)

    def health_check(self) -> bool:
        """Always healthy."""
        return True
