"""
Transition Rates
================
All transitions possible in the current state, stored as a cumulative
rate array for weighted random selection by bisection.

Entry order is fixed: one infection entry per infected node (roster
order), followed by the model's global stage progressions.
"""

import logging
import numpy as np
from dataclasses import dataclass
from typing import Dict, Iterable, List

from .disease_params import RateConstants
from .models import EpidemicModel
from .population import Compartment, PopulationTree

logger = logging.getLogger(__name__)

GLOBAL = -1   # node of population-wide transitions


@dataclass(frozen=True)
class Transition:
    """One possible transition and its propensity"""
    source: Compartment
    target: Compartment
    node: int            # infecting group for S transitions, GLOBAL otherwise
    rate: float

    @property
    def is_infection(self) -> bool:
        return self.source is Compartment.S


def infection_propensity(tree: PopulationTree, rates: RateConstants, index: int) -> float:
    """S_n * beta[level] * (I1 + I2)_n * contact weight of node n"""
    node = tree.nodes[index]
    return node.S * rates.beta_at(node.level) * node.infected * tree.contact_weight(index)


class RateTable:
    """Cumulative-sum table of transition propensities"""

    def __init__(self):
        self.transitions: List[Transition] = []
        self.cumulative = np.zeros(1)
        self._infection_cache: Dict[int, float] = {}

    def __len__(self) -> int:
        return len(self.transitions)

    @property
    def total_rate(self) -> float:
        return float(self.cumulative[-1])

    @property
    def propensities(self) -> np.ndarray:
        return np.diff(self.cumulative)

    def recompute_all(self, tree: PopulationTree, rates: RateConstants, model: EpidemicModel):
        """Rebuild every entry from the current tree state"""
        self._infection_cache = {
            index: infection_propensity(tree, rates, index) for index in tree.infected_nodes
        }
        self._assemble(tree, rates, model)

    def update(self, tree: PopulationTree, rates: RateConstants, model: EpidemicModel,
               touched: Iterable[int]):
        """
        Refresh after a single transition

        Only the infection terms of `touched` nodes (the path from the
        changed family to the root) are recomputed; other infected nodes
        keep their cached value.
        """
        touched = set(touched)
        cache = {}
        for index in tree.infected_nodes:
            if index in touched or index not in self._infection_cache:
                cache[index] = infection_propensity(tree, rates, index)
            else:
                cache[index] = self._infection_cache[index]
        self._infection_cache = cache
        self._assemble(tree, rates, model)

    def _assemble(self, tree: PopulationTree, rates: RateConstants, model: EpidemicModel):
        transitions = []
        for index in tree.infected_nodes:
            rate = self._clamp(self._infection_cache[index], Compartment.S, index)
            transitions.append(Transition(Compartment.S, model.infection_target, index, rate))

        root = tree.root_node
        for progression in model.progressions:
            rate = root.counts[progression.source] * progression.rate(rates)
            rate = self._clamp(rate, progression.source, GLOBAL)
            transitions.append(Transition(progression.source, progression.target, GLOBAL, rate))

        self.transitions = transitions
        values = np.fromiter((t.rate for t in transitions), dtype=float, count=len(transitions))
        self.cumulative = np.concatenate(([0.], np.cumsum(values)))

    @staticmethod
    def _clamp(rate: float, source: Compartment, node: int) -> float:
        if rate < 0:
            logger.debug("Clamped negative %s rate %.3g at node %d", source.name, rate, node)
            return 0.
        return rate

    def select(self, u: float) -> int:
        """
        Index i with cumulative[i] < u <= cumulative[i+1]

        u equal to cumulative[k] resolves to k - 1, so entries with zero
        propensity are never chosen.
        """
        if not 0 < u <= self.total_rate:
            raise ValueError(f"u={u} outside (0, {self.total_rate}]")
        return int(np.searchsorted(self.cumulative, u, side='left')) - 1

    def transition_at(self, u: float) -> Transition:
        return self.transitions[self.select(u)]
