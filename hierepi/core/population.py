"""
Population Hierarchy
====================
Hierarchical population state: individuals grouped in families, families
in neighbourhoods, and so on up to the whole population.  Every node keeps
aggregate compartment counts for its subtree, and flat per-compartment
member lists allow picking a random individual in O(1).

Individuals are never materialised: level 1 nodes (families) are the
lowest stored unit and only count their members.
"""

import logging
import numpy as np
from collections import Counter
from dataclasses import dataclass, field, asdict
from enum import IntEnum
from typing import Dict, Iterator, List, Optional

from .disease_params import RateConstants
from .errors import InsufficientSusceptibles, InternalInvariantViolation, MalformedInputSeries
from .topology import Topology
from ..utils.logging import log_call

logger = logging.getLogger(__name__)


class Compartment(IntEnum):
    """Epidemiological states"""
    S = 0
    E1 = 1
    E2 = 2
    I1 = 3
    I2 = 4
    R = 5


# Compartments with a flat member list.  R is only tracked for forced recoveries.
TRACKED = (Compartment.S, Compartment.E1, Compartment.E2, Compartment.I1, Compartment.I2)


def _zero_counts() -> List[int]:
    return [0] * len(Compartment)


@dataclass
class HierarchyNode:
    """One aggregation unit (family, neighbourhood, ..., whole population)"""
    index: int
    level: int
    parent: int = -1               # -1 for the root
    children: List[int] = field(default_factory=list)
    n_children: int = 0            # individuals for families
    size: int = 0                  # total individuals in the subtree

    counts: List[int] = field(default_factory=_zero_counts)

    # Bookkeeping for O(1) member lookup
    first_susceptible: int = -1    # offset of the subtree's first entry in the S list
    level_position: int = -1       # position among the nodes of the same level
    roster_position: int = -1      # position in the infected roster, -1 if absent

    @property
    def S(self) -> int:
        return self.counts[Compartment.S]

    @property
    def E1(self) -> int:
        return self.counts[Compartment.E1]

    @property
    def E2(self) -> int:
        return self.counts[Compartment.E2]

    @property
    def I1(self) -> int:
        return self.counts[Compartment.I1]

    @property
    def I2(self) -> int:
        return self.counts[Compartment.I2]

    @property
    def R(self) -> int:
        return self.counts[Compartment.R]

    @property
    def infected(self) -> int:
        """Currently infectious individuals (I1 + I2)"""
        return self.counts[Compartment.I1] + self.counts[Compartment.I2]

    @property
    def is_leaf(self) -> bool:
        return self.level == 1


@dataclass
class InfectionTallies:
    """Cumulative counts kept across a run"""
    imported: int = 0
    forcibly_recovered: int = 0
    exposed_total: int = 0
    by_level: List[int] = field(default_factory=list)   # onset credited to a level


@dataclass(frozen=True)
class RootSnapshot:
    """Read-only view of the whole-population state handed to observers"""
    N: int
    S: int
    E1: int
    E2: int
    I1: int
    I2: int
    R: int
    imported: int
    close_contact: int
    community: int
    exposed_total: int
    beta_out: float
    infectious_period: float

    def as_record(self) -> Dict[str, float]:
        return asdict(self)


class PopulationTree:
    """
    Hierarchical container of epidemiological state

    Nodes live in an arena (`nodes`) and refer to each other by index.
    This class is the only place where compartment counts change.
    """

    def __init__(self, topology: Topology, rng: np.random.Generator):
        """
        Build the hierarchy

        Args:
            topology: Source of the number of children at each level
            rng: Shared random generator
        """
        self.topology = topology
        self.levels = topology.levels
        self.rng = rng

        self.nodes: List[HierarchyNode] = []
        self.level_nodes: List[List[int]] = []
        self.root = -1

        self.members: Dict[Compartment, List[int]] = {c: [] for c in TRACKED}
        self.forced_recovered: List[int] = []
        self.infected_nodes: List[int] = []
        self.tallies = InfectionTallies(by_level=[0] * (self.levels + 1))

        self.rebuild_hierarchy()

    # ------------------------------------------------------------------
    # Construction and reset

    @log_call
    def rebuild_hierarchy(self):
        """Grow a new tree from the topology and set everyone susceptible"""
        self.nodes = []
        self.level_nodes = [[] for _ in range(self.levels + 1)]
        self.topology.reset()
        self.root = self._build_tree(self.levels, parent=-1)
        self.reset_to_all_susceptible()
        logger.debug("Built hierarchy with %d nodes and %d individuals",
                     len(self.nodes), self.total_population)

    def _build_tree(self, level: int, parent: int) -> int:
        """Recursively build the subtree rooted at a new node of `level`"""
        index = len(self.nodes)
        node = HierarchyNode(index=index, level=level, parent=parent,
                             level_position=len(self.level_nodes[level]))
        self.nodes.append(node)
        self.level_nodes[level].append(index)
        node.n_children = self.topology.offspring_count(level, self.rng)

        if level > 1:   # families are the leaves, individuals are not stored
            for _ in range(node.n_children):
                node.children.append(self._build_tree(level - 1, index))
        return index

    @log_call
    def reset_to_all_susceptible(self):
        """Start of an independent run: everybody susceptible, tallies cleared"""
        for node in self.nodes:
            node.size = node.n_children if node.is_leaf else 0
            node.counts = _zero_counts()
            node.counts[Compartment.S] = node.size
        self.forced_recovered.clear()
        self.recompute_counts()
        self.tallies = InfectionTallies(by_level=[0] * (self.levels + 1))

    def recompute_counts(self):
        """
        Rebuild aggregates, member lists, offsets and roster from leaf counts

        The forced-recovery list is left untouched.
        """
        for member_list in self.members.values():
            member_list.clear()
        self.infected_nodes.clear()

        s_list = self.members[Compartment.S]
        for index in self.level_nodes[1]:
            node = self.nodes[index]
            node.size = node.n_children
            node.first_susceptible = len(s_list)
            node.roster_position = -1
            for comp in TRACKED:
                self.members[comp].extend([index] * node.counts[comp])
            if node.infected > 0:
                self._roster_add(node)

        for level in range(2, self.levels + 1):
            n_prev = 0
            for index in self.level_nodes[level]:
                node = self.nodes[index]
                counts = _zero_counts()
                size = 0
                for child_index in node.children:
                    child = self.nodes[child_index]
                    size += child.size
                    for comp in Compartment:
                        counts[comp] += child.counts[comp]
                node.counts = counts
                node.size = size
                node.first_susceptible = n_prev
                node.roster_position = -1
                if node.infected > 0:
                    self._roster_add(node)
                n_prev += node.S

    # ------------------------------------------------------------------
    # Navigation (hierarchy capability interface)

    @property
    def root_node(self) -> HierarchyNode:
        return self.nodes[self.root]

    @property
    def total_population(self) -> int:
        return self.root_node.size

    @property
    def infected_leaves(self) -> List[int]:
        """Families currently holding at least one infectious member"""
        return [i for i in self.infected_nodes if self.nodes[i].is_leaf]

    def iter_leaves(self) -> Iterator[HierarchyNode]:
        for index in self.level_nodes[1]:
            yield self.nodes[index]

    def ancestors(self, index: int) -> Iterator[int]:
        """Strict ancestors of a node, nearest first"""
        parent = self.nodes[index].parent
        while parent != -1:
            yield parent
            parent = self.nodes[parent].parent

    def path_to_root(self, index: int) -> List[int]:
        """The node itself followed by all its ancestors"""
        return [index] + list(self.ancestors(index))

    def contact_weight(self, index: int) -> float:
        """
        Normalisation of the infection term of a node

        Families use the raw counts; larger groups are normalised by the
        number of possible contacts of one member, N - 1.
        """
        node = self.nodes[index]
        if node.is_leaf:
            return 1.
        if node.size <= 1:
            return 0.
        return 1. / (node.size - 1)

    def random_member(self, compartment: Compartment, index: Optional[int] = None) -> int:
        """Family of a uniformly chosen individual in `compartment`"""
        position = self._random_position(compartment, index)
        return self.members[compartment][position]

    def _random_position(self, compartment: Compartment, index: Optional[int] = None) -> int:
        if index is None or index == self.root:
            available = len(self.members[compartment])
            offset = 0
        elif compartment is Compartment.S:
            node = self.nodes[index]
            available = node.S
            offset = node.first_susceptible
        else:
            raise ValueError("Only susceptibles can be drawn from inside a subtree")
        if available == 0:
            raise InternalInvariantViolation(
                f"No {compartment.name} individual to draw from node {index}")
        return offset + int(self.rng.integers(available))

    # ------------------------------------------------------------------
    # Transitions

    def apply_transition(self, position: int, source: Compartment, target: Compartment) -> int:
        """
        Move one individual between compartments

        Args:
            position: Index of the individual in the `source` member list
            source: Current compartment
            target: New compartment

        Returns:
            Index of the family containing the individual
        """
        if source is Compartment.R or target is Compartment.S:
            raise InternalInvariantViolation(
                f"Transition {source.name}->{target.name} cannot be applied incrementally")
        source_list = self.members[source]
        if not 0 <= position < len(source_list):
            raise InternalInvariantViolation(
                f"Position {position} outside {source.name} list of length {len(source_list)}")

        leaf = source_list.pop(position)
        if self.nodes[leaf].counts[source] <= 0:
            raise InternalInvariantViolation(
                f"Family {leaf} listed in {source.name} but holds none")
        if target in self.members:
            self.members[target].append(leaf)

        self._cascade(leaf, source, target)
        if source is Compartment.S:
            self._reindex_after_susceptible_removal(leaf)
        return leaf

    def _cascade(self, leaf: int, source: Compartment, target: Compartment):
        """Propagate a -1/+1 count change from a family up to the root"""
        index = leaf
        while index != -1:
            node = self.nodes[index]
            was_infected = node.infected > 0
            node.counts[source] -= 1
            node.counts[target] += 1
            if node.counts[source] < 0:
                raise InternalInvariantViolation(
                    f"Negative {source.name} count at node {index}")
            is_infected = node.infected > 0
            if is_infected and not was_infected:
                self._roster_add(node)
            elif was_infected and not is_infected:
                self._roster_remove(node)
            index = node.parent

    def _roster_add(self, node: HierarchyNode):
        node.roster_position = len(self.infected_nodes)
        self.infected_nodes.append(node.index)

    def _roster_remove(self, node: HierarchyNode):
        position = node.roster_position
        del self.infected_nodes[position]
        for index in self.infected_nodes[position:]:
            self.nodes[index].roster_position -= 1
        node.roster_position = -1

    def _reindex_after_susceptible_removal(self, leaf: int):
        """Shift the susceptible offsets of every later node on each level of the path"""
        for index in self.path_to_root(leaf):
            node = self.nodes[index]
            same_level = self.level_nodes[node.level]
            for later in same_level[node.level_position + 1:]:
                self.nodes[later].first_susceptible -= 1

    def infect_within(self, index: int, target: Compartment) -> int:
        """Infect a random susceptible of the subtree rooted at `index`"""
        position = self._random_position(Compartment.S, index)
        leaf = self.apply_transition(position, Compartment.S, target)
        self.tallies.exposed_total += 1
        return leaf

    def progress_random(self, source: Compartment, target: Compartment) -> int:
        """Advance a random individual of `source` (population wide) to `target`"""
        position = self._random_position(source)
        return self.apply_transition(position, source, target)

    def count_infection_kind(self, leaf: int) -> int:
        """
        Credit a new symptomatic infection to a hierarchy level

        The infection is attributed to the lowest group in which somebody
        else was already infected or recovered (the whole population if
        nobody was).  Counts must already include the new case.
        """
        for index in self.path_to_root(leaf):
            node = self.nodes[index]
            if node.infected + node.R > 1 or node.level == self.levels:
                self.tallies.by_level[node.level] += 1
                return node.level
        raise InternalInvariantViolation(f"Family {leaf} is not connected to the root")

    # ------------------------------------------------------------------
    # Forced (exogenous) changes

    def force_infection(self, count: int):
        """Move `count` random susceptibles straight to I1 (imported cases)"""
        self._check_forced(count)
        for _ in range(count):
            position = self._random_position(Compartment.S)
            self.apply_transition(position, Compartment.S, Compartment.I1)
        self.tallies.imported += count

    def force_recovery(self, count: int):
        """Move `count` random susceptibles straight to R"""
        self._check_forced(count)
        for _ in range(count):
            position = self._random_position(Compartment.S)
            leaf = self.apply_transition(position, Compartment.S, Compartment.R)
            self.forced_recovered.append(leaf)
        self.tallies.forcibly_recovered += count

    def restore_susceptible(self, count: int):
        """Return `count` random forcibly recovered individuals to S"""
        if count < 0 or count > len(self.forced_recovered):
            raise MalformedInputSeries(
                f"Cannot restore {count} individuals, only "
                f"{len(self.forced_recovered)} were forcibly recovered")
        for _ in range(count):
            position = int(self.rng.integers(len(self.forced_recovered)))
            leaf = self.forced_recovered.pop(position)
            node = self.nodes[leaf]
            node.counts[Compartment.R] -= 1
            node.counts[Compartment.S] += 1
        self.recompute_counts()
        self.tallies.forcibly_recovered -= count

    def _check_forced(self, count: int):
        if count < 0:
            raise MalformedInputSeries(f"Forced transition count must be non-negative, got {count}")
        available = self.root_node.S
        if count > available:
            raise InsufficientSusceptibles(count, available)

    def apply_imported(self, infected: int, recovered: int = 0):
        """
        Bring the population in line with cumulative imported-case counts

        Args:
            infected: Cumulative imported infections up to now
            recovered: Cumulative forcibly recovered individuals up to now
        """
        new_cases = infected - self.tallies.imported
        if new_cases < 0:
            raise MalformedInputSeries(
                f"Imported infections must be non-decreasing: {infected} after "
                f"{self.tallies.imported}")
        extra_recovered = max(recovered - self.tallies.forcibly_recovered, 0)
        if new_cases + extra_recovered > self.root_node.S:
            raise InsufficientSusceptibles(new_cases + extra_recovered, self.root_node.S)

        if new_cases > 0:
            self.force_infection(new_cases)
        if recovered > self.tallies.forcibly_recovered:
            self.force_recovery(recovered - self.tallies.forcibly_recovered)
        elif recovered < self.tallies.forcibly_recovered:
            self.restore_susceptible(self.tallies.forcibly_recovered - recovered)

    # ------------------------------------------------------------------
    # Reporting

    def snapshot(self, rates: RateConstants) -> RootSnapshot:
        """Root counts and cumulative tallies for observers"""
        root = self.root_node
        return RootSnapshot(
            N=root.size,
            S=root.S, E1=root.E1, E2=root.E2, I1=root.I1, I2=root.I2, R=root.R,
            imported=self.tallies.imported,
            close_contact=self.tallies.by_level[1],
            community=self.tallies.by_level[self.levels],
            exposed_total=self.tallies.exposed_total,
            beta_out=rates.beta_out,
            infectious_period=rates.infectious_period,
        )

    def level_infected(self, level: int) -> np.ndarray:
        """Infectious count of every node of a level"""
        return np.array([self.nodes[i].infected for i in self.level_nodes[level]], dtype=int)

    def check_structures(self):
        """Verify every bookkeeping invariant, raising on the first failure"""
        for node in self.nodes:
            if min(node.counts) < 0:
                raise InternalInvariantViolation(f"Negative count at node {node.index}")
            if sum(node.counts) != node.size:
                raise InternalInvariantViolation(
                    f"Counts of node {node.index} add to {sum(node.counts)}, size is {node.size}")
            if not node.is_leaf:
                for comp in Compartment:
                    total = sum(self.nodes[c].counts[comp] for c in node.children)
                    if total != node.counts[comp]:
                        raise InternalInvariantViolation(
                            f"{comp.name} of node {node.index} differs from its children")

        root = self.root_node
        for comp in TRACKED:
            member_list = self.members[comp]
            if len(member_list) != root.counts[comp]:
                raise InternalInvariantViolation(
                    f"{comp.name} list has {len(member_list)} entries, root holds {root.counts[comp]}")
            for leaf, n in Counter(member_list).items():
                if self.nodes[leaf].counts[comp] != n:
                    raise InternalInvariantViolation(
                        f"Family {leaf} appears {n} times in the {comp.name} list")

        for level in range(1, self.levels + 1):
            running = 0
            for index in self.level_nodes[level]:
                node = self.nodes[index]
                if node.first_susceptible != running:
                    raise InternalInvariantViolation(
                        f"Susceptible offset of node {index} is {node.first_susceptible}, "
                        f"expected {running}")
                running += node.S

        for node in self.nodes:
            listed = node.roster_position != -1
            if listed != (node.infected > 0):
                raise InternalInvariantViolation(f"Roster membership wrong for node {node.index}")
            if listed and self.infected_nodes[node.roster_position] != node.index:
                raise InternalInvariantViolation(f"Roster position wrong for node {node.index}")
        if len(self.infected_nodes) != sum(1 for n in self.nodes if n.infected > 0):
            raise InternalInvariantViolation("Infected roster has stale entries")

        if len(self.forced_recovered) != self.tallies.forcibly_recovered:
            raise InternalInvariantViolation("Forced recovery list out of sync with tally")

    def summary(self) -> str:
        """Return hierarchy summary statistics"""
        family_sizes = [leaf.size for leaf in self.iter_leaves()]
        root = self.root_node

        summary = f"Population Hierarchy Summary\n"
        summary += f"=" * 50 + "\n"
        summary += f"Topology: {self.topology.describe()}\n"
        summary += f"Total individuals: {self.total_population:,}\n"
        for level in range(self.levels, 0, -1):
            summary += f"  Level {level}: {len(self.level_nodes[level]):8,d} nodes\n"
        if family_sizes:
            summary += f"Family size: mean {np.mean(family_sizes):.2f}, "
            summary += f"max {np.max(family_sizes)}\n"

        summary += f"\nCurrent epidemic state:\n"
        for comp in Compartment:
            summary += f"  {comp.name:3s}: {root.counts[comp]:,}\n"
        return summary


if __name__ == "__main__":
    from .disease_params import OffspringDistribution
    from .topology import HierarchicalTopology

    rng = np.random.default_rng(42)
    topology = HierarchicalTopology([OffspringDistribution([0.3, 0.35, 0.2, 0.1, 0.05]), 20, 10])
    tree = PopulationTree(topology, rng)
    print(tree.summary())

    tree.force_infection(5)
    tree.check_structures()
    print(f"Infected families after 5 imported cases: {len(tree.infected_leaves)}")
    print(f"Infected nodes at all levels: {len(tree.infected_nodes)}")
