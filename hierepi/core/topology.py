"""
Population Topologies
=====================
Describe how the containment hierarchy is grown.  A topology only answers
"how many children does the next node at this level get"; the
PopulationTree asks it while building depth-first.
"""

import numpy as np
from typing import Sequence, Union

from .disease_params import OffspringDistribution

Fanout = Union[int, OffspringDistribution]


class Topology:
    """Base class for hierarchy builders"""

    levels: int = 1

    def reset(self):
        """Called once before every tree build"""

    def offspring_count(self, level: int, rng: np.random.Generator) -> int:
        """
        Number of children of the next node built at `level`

        For level 1 (families) this is the number of individuals.
        """
        raise NotImplementedError

    def describe(self) -> str:
        return f"{type(self).__name__}(levels={self.levels})"


class HierarchicalTopology(Topology):
    """
    Fixed or random fanout per level

    Args:
        fanout: one entry per level, fanout[0] being the family size and
            fanout[-1] the number of children of the root.  An int gives a
            fixed count, an OffspringDistribution a random one.
    """

    def __init__(self, fanout: Sequence[Fanout]):
        if len(fanout) == 0:
            raise ValueError("fanout needs at least one level")
        for f in fanout:
            if isinstance(f, OffspringDistribution):
                continue
            if int(f) != f or f < 0:
                raise ValueError(f"Fixed fanout must be a non-negative integer, got {f}")
        self.fanout = list(fanout)
        self.levels = len(self.fanout)

    def offspring_count(self, level: int, rng: np.random.Generator) -> int:
        f = self.fanout[level - 1]
        if isinstance(f, OffspringDistribution):
            return f.sample(rng)
        return int(f)

    def describe(self) -> str:
        parts = []
        for level in range(self.levels, 0, -1):
            f = self.fanout[level - 1]
            parts.append(f"level {level}: {f}")
        return "Hierarchy(" + ", ".join(parts) + ")"


class FullyConnectedTopology(Topology):
    """A single well-mixed group of n individuals"""

    levels = 1

    def __init__(self, n: int):
        if n < 1:
            raise ValueError("n must be positive")
        self.n = n

    def offspring_count(self, level: int, rng: np.random.Generator) -> int:
        return self.n

    def describe(self) -> str:
        return f"FullyConnected(n={self.n})"
