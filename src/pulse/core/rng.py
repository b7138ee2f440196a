from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass
class RNG:
    """
    Seeded random source. seed=None draws the seed from OS entropy.
    """

    seed: int | None = None

    def __post_init__(self) -> None:
        self._r = random.Random(self.seed)

    def nibble(self) -> int:
        return self._r.getrandbits(4)
