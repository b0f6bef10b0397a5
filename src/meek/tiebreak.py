"""
Strategies for strong ties.

A strong tie is one that earlier rounds cannot break. The count hands the
sorted list of tied candidate ids to a tie-breaker and eliminates (or, at the
end of the count, rejects) whichever one it returns.
"""

import random
from typing import List, Optional, Protocol


class TieBreaker(Protocol):
    def choose(self, candidates: List[int]) -> int:
        ...


class RandomTieBreaker:
    """Pick uniformly at random. Pass a seed for reproducible counts."""

    def __init__(self, seed: Optional[int] = None):
        self.rng = random.Random(seed)

    def choose(self, candidates: List[int]) -> int:
        return self.rng.choice(candidates)


class FixedTieBreaker:
    """Always pick the candidate at a given position of the sorted tie."""

    def __init__(self, position: int = 0):
        self.position = position

    def choose(self, candidates: List[int]) -> int:
        return candidates[self.position % len(candidates)]
