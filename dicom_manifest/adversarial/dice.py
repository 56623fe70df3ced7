"""Randomness capability for the adversarial generator.

Every generation function receives a Dice instead of touching the random
module directly, so a seeded Dice replays a document exactly. A Dice
serializes access to its generator; one instance may be shared between
threads.
"""

from __future__ import annotations

import random
import threading
from collections.abc import Sequence
from typing import TypeVar

from dicom_manifest.core.config import get_settings

T = TypeVar("T")

#: Root of UUID-derived UIDs (PS3.5 B.2)
UUID_UID_ROOT = "2.25."


class Dice:
    """Thread-safe wrapper around a random generator."""

    def __init__(self, rng: random.Random, seed: int | None = None) -> None:
        self._rng = rng
        self._lock = threading.Lock()
        self.seed = seed

    @classmethod
    def from_seed(cls, seed: int | None = None) -> Dice:
        """Seeded dice replay the same sequence; unseeded dice use SystemRandom."""
        if seed is None:
            return cls(random.SystemRandom())
        return cls(random.Random(seed), seed)

    def chance(self, p: float) -> bool:
        """True with probability p; p <= 0 never fires, p >= 1 always does."""
        if p <= 0.0:
            return False
        if p >= 1.0:
            return True
        with self._lock:
            return self._rng.random() < p

    def randbelow(self, bound: int) -> int:
        """Uniform integer in [0, bound)."""
        if bound <= 0:
            raise ValueError(f"bound must be positive, got {bound}")
        with self._lock:
            return self._rng.randrange(bound)

    def between(self, low: int, high: int) -> int:
        """Uniform integer in [low, high]."""
        with self._lock:
            return self._rng.randint(low, high)

    def choice(self, options: Sequence[T]) -> T:
        with self._lock:
            return self._rng.choice(options)

    def getrandbits(self, k: int) -> int:
        with self._lock:
            return self._rng.getrandbits(k)

    def token(self, length: int = 6) -> str:
        """Lowercase hex string of the given length."""
        return f"{self.getrandbits(4 * length):0{length}x}"

    def uid(self) -> str:
        """A 2.25 UID drawn from 128 random bits."""
        return f"{UUID_UID_ROOT}{self.getrandbits(128)}"

    def random_bytes(self, length: int) -> bytes:
        return self.getrandbits(8 * length).to_bytes(length, "little")


_default_dice: Dice | None = None
_default_lock = threading.Lock()


def default_dice() -> Dice:
    """Process-wide dice, created on first use from Settings.generator.seed."""
    global _default_dice
    with _default_lock:
        if _default_dice is None:
            _default_dice = Dice.from_seed(get_settings().generator.seed)
        return _default_dice
