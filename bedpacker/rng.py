"""
rng.py - Seeded random source shared by every packing stage
"""
import math

import numpy as np

from .exceptions import ConfigurationError


class SeededRandom:
    """
    Deterministic pseudo-random source backed by numpy's PCG64 bit generator.

    PCG64 double streams are platform independent, so identical seeds give
    bit-identical sequences. One instance is created per packer and handed
    down to the sub-algorithms that need randomness.
    """

    def __init__(self, seed: int):
        if isinstance(seed, bool) or not isinstance(seed, (int, np.integer)) or seed < 0:
            raise ConfigurationError(f"seed must be a non-negative integer, got {seed!r}")
        self.seed = int(seed)
        self._generator = np.random.Generator(np.random.PCG64(self.seed))

    def random(self) -> float:
        """Uniform float in [0, 1)."""
        return float(self._generator.random())

    def uniform(self, low: float, high: float) -> float:
        return low + (high - low) * self.random()

    def angle(self) -> float:
        return self.random() * 2 * math.pi

    def jitter(self, scale: float):
        """Offset pair drawn from [-scale, scale)."""
        return (self.random() - 0.5) * 2 * scale, (self.random() - 0.5) * 2 * scale

    def __repr__(self) -> str:
        return f"SeededRandom(seed={self.seed})"


def seeded_random(seed: int) -> SeededRandom:
    """Create the single random source for one packing run."""
    return SeededRandom(seed)
