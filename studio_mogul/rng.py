"""Injectable random source for the simulation."""

from __future__ import annotations

import random
from typing import Iterator, Optional


class DeterministicRNG:
    """Wraps :mod:`random` with deterministic replay support.

    Every draw the engine makes goes through one of these methods, so tests can
    pass a seeded instance (or a subclass pinning a method) to get exact
    outcomes.
    """

    def __init__(self, seed: int) -> None:
        self._seed = seed & 0xFFFFFFFF
        # nosec B311 - pseudo-RNG acceptable for game mechanics
        self._random = random.Random(self._seed)

    @classmethod
    def from_entropy(cls) -> "DeterministicRNG":
        """Fresh unseeded-per-call generator, used when the caller passes none."""

        return cls(random.SystemRandom().getrandbits(32))

    @property
    def seed(self) -> int:
        return self._seed

    def random(self) -> float:
        return self._random.random()

    def chance(self, probability: float) -> bool:
        return self.random() < probability

    def choice(self, seq):
        return self._random.choice(seq)

    def randint(self, a: int, b: int) -> int:
        return self._random.randint(a, b)

    def randrange(self, start: int, stop: int | None = None, step: int = 1) -> int:
        return self._random.randrange(start, stop, step)

    def uniform(self, a: float, b: float) -> float:
        return self._random.uniform(a, b)

    def sample(self, population, k: int):
        return self._random.sample(population, k)

    def token(self, prefix: Optional[str] = None) -> str:
        """Short identifier drawn from the stream."""

        value = f"{self._random.getrandbits(48):012x}"
        return f"{prefix}-{value}" if prefix else value

    def stream(self) -> Iterator[float]:
        while True:
            yield self._random.random()


__all__ = ["DeterministicRNG"]
