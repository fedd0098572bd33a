"""
Deterministic RNG - seeded linear congruential stream

Every random draw in a particle batch comes from this stream, so a batch is
fully reproducible from (seed, parameters, count) on any platform.
"""

import math
from typing import Iterator, List


# Numerical Recipes LCG constants, 32-bit unsigned wraparound
LCG_MULTIPLIER = 1664525
LCG_INCREMENT = 1013904223
LCG_MODULUS = 2 ** 32
UINT32_MASK = LCG_MODULUS - 1


class Lcg:
    """
    Seeded pseudo-random stream of floats in [0, 1).

    Example:
        rng = Lcg(12345)
        a = rng()       # same as rng.next()
        b = rng.next()
    """

    def __init__(self, seed: int = 0):
        self.seed = int(seed) & UINT32_MASK
        self.state = self.seed
        self.draws = 0

    def next(self) -> float:
        """Advance the recurrence and return the next value in [0, 1)"""
        self.state = (self.state * LCG_MULTIPLIER + LCG_INCREMENT) & UINT32_MASK
        self.draws += 1
        return self.state / LCG_MODULUS

    __call__ = next

    def symmetric(self) -> float:
        """Uniform float in [-1, 1)"""
        return self.next() * 2 - 1

    def take(self, count: int) -> List[float]:
        """Draw `count` values (mostly for inspection and tests)"""
        return [self.next() for _ in range(count)]

    def __iter__(self) -> Iterator[float]:
        while True:
            yield self.next()

    def __repr__(self) -> str:
        return f"Lcg(seed={self.seed}, draws={self.draws})"


def gaussian(rng: Lcg) -> float:
    """
    Approximately standard-normal sample via Box-Muller.

    Consumes one pair of non-zero uniforms; a zero draw on either side is
    rejected and redrawn so the logarithm is always defined.
    """
    u = 0.0
    v = 0.0
    while u == 0.0:
        u = rng.next()
    while v == 0.0:
        v = rng.next()
    return math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)
