"""
Disease Parameters and Distributions
====================================
Rate constants of the SEEIIR dynamics and the offspring-count
distributions used to grow the population hierarchy
"""

import math
import numpy as np
from dataclasses import dataclass, replace
from typing import Sequence, Tuple


@dataclass(frozen=True)
class RateConstants:
    """
    Full rate-constant vector of the SEEIIR model

    beta holds one contact rate per hierarchy level, beta[0] being the
    family (level 1) rate and beta[-1] the whole-population rate.
    A RateConstants is also the payload of a rate-change event, in which
    case `time` is the moment it takes effect.
    """

    beta: Tuple[float, ...]
    sigma1: float = 0.0   # E1 -> E2
    sigma2: float = 0.0   # E2 -> I1
    gamma1: float = 0.0   # I1 -> I2
    gamma2: float = 0.0   # I2 -> R
    time: float = 0.0

    def __post_init__(self):
        beta = tuple(float(b) for b in self.beta)
        object.__setattr__(self, 'beta', beta)
        if len(beta) == 0:
            raise ValueError("beta needs at least one level")
        rates = beta + (self.sigma1, self.sigma2, self.gamma1, self.gamma2)
        if any(r < 0 or math.isnan(r) for r in rates):
            raise ValueError(f"Rate constants must be non-negative: {rates}")

    @property
    def levels(self) -> int:
        """Number of hierarchy levels covered by beta"""
        return len(self.beta)

    def beta_at(self, level: int) -> float:
        """Contact rate at hierarchy level (1 = families)"""
        return self.beta[level - 1]

    @property
    def beta_out(self) -> float:
        """Rate just above the family level (the family rate in one-level trees)"""
        return self.beta[1] if len(self.beta) > 1 else self.beta[0]

    @property
    def infectious_period(self) -> float:
        """Mean time spent in I1 + I2"""
        total = 0.0
        for gamma in (self.gamma1, self.gamma2):
            if gamma == 0:
                return math.inf
            total += 1. / gamma
        return total

    def at_time(self, time: float) -> "RateConstants":
        """Same constants scheduled at another time"""
        return replace(self, time=time)


class OffspringDistribution:
    """
    Distribution of the number of children of a hierarchy node

    weights[k] is the (unnormalised) weight of having k+1 children, so a
    family-size distribution over 1..M is given as M weights.
    """

    def __init__(self, weights: Sequence[float]):
        w = np.asarray(weights, dtype=float)
        if w.ndim != 1 or len(w) == 0:
            raise ValueError("weights must be a non-empty 1-D sequence")
        if np.any(w < 0) or w.sum() <= 0:
            raise ValueError("weights must be non-negative with a positive sum")
        self.probabilities = w / w.sum()

    @property
    def max_count(self) -> int:
        return len(self.probabilities)

    @property
    def mean(self) -> float:
        """Expected number of children"""
        counts = np.arange(1, self.max_count + 1)
        return float(np.dot(counts, self.probabilities))

    def sample(self, rng: np.random.Generator) -> int:
        """Draw a number of children in 1..max_count"""
        return int(rng.choice(self.max_count, p=self.probabilities)) + 1

    def __repr__(self) -> str:
        return f"OffspringDistribution(max_count={self.max_count}, mean={self.mean:.3g})"


if __name__ == "__main__":
    rates = RateConstants(beta=(0.3, 0.05, 0.01), sigma1=0.4, sigma2=0.4,
                          gamma1=0.25, gamma2=0.25)
    families = OffspringDistribution([0.3, 0.35, 0.2, 0.1, 0.05])
    rng = np.random.default_rng(42)

    print("Rate Constants Test")
    print("=" * 50)
    print(f"Levels: {rates.levels}")
    print(f"Mean infectious period: {rates.infectious_period:.2f}")
    print(f"Family sizes (10 samples): {[families.sample(rng) for _ in range(10)]}")
    print(f"Mean family size: {families.mean:.2f}")
