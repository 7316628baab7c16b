"""
Tests for the hierarchical population state.
"""

import numpy as np
import pytest

from hierepi.core.errors import (InsufficientSusceptibles, InternalInvariantViolation,
                                 MalformedInputSeries)
from hierepi.core.population import Compartment, PopulationTree, TRACKED
from hierepi.core.topology import HierarchicalTopology

S, E1, E2, I1, I2, R = (Compartment.S, Compartment.E1, Compartment.E2,
                        Compartment.I1, Compartment.I2, Compartment.R)


def dump_state(tree):
    """Everything that a reset must restore."""
    return (
        [(list(n.counts), n.size, n.first_susceptible, n.roster_position) for n in tree.nodes],
        {c: list(tree.members[c]) for c in TRACKED},
        list(tree.infected_nodes),
        list(tree.forced_recovered),
        (tree.tallies.imported, tree.tallies.forcibly_recovered,
         tree.tallies.exposed_total, list(tree.tallies.by_level)),
    )


class TestBuild:
    """Tree construction."""

    def test_fixed_fanout_sizes(self, rng):
        tree = PopulationTree(HierarchicalTopology([3, 4, 2]), rng)

        assert tree.levels == 3
        assert [len(tree.level_nodes[level]) for level in (1, 2, 3)] == [8, 2, 1]
        assert tree.total_population == 24
        assert tree.root_node.S == 24
        tree.check_structures()

    def test_leaves_of_subtree_are_contiguous(self, three_level_tree):
        tree = three_level_tree
        for index in tree.level_nodes[2]:
            positions = [tree.nodes[c].level_position for c in tree.nodes[index].children]
            assert positions == list(range(positions[0], positions[0] + len(positions)))

    def test_random_family_sizes_within_range(self, three_level_tree):
        sizes = [leaf.size for leaf in three_level_tree.iter_leaves()]
        assert len(sizes) == 24
        assert min(sizes) >= 1
        assert max(sizes) <= 4
        assert three_level_tree.total_population == sum(sizes)

    def test_all_susceptible_after_build(self, three_level_tree):
        root = three_level_tree.root_node
        assert root.S == root.size
        assert len(three_level_tree.members[S]) == root.size
        assert three_level_tree.infected_nodes == []


class TestReset:
    """Resetting between runs."""

    def test_reset_restores_initial_state(self, three_level_tree):
        tree = three_level_tree
        initial = dump_state(tree)

        tree.force_infection(4)
        tree.force_recovery(2)
        tree.progress_random(I1, I2)
        tree.reset_to_all_susceptible()

        assert dump_state(tree) == initial

    def test_reset_is_idempotent(self, three_level_tree):
        tree = three_level_tree
        tree.force_infection(3)
        tree.reset_to_all_susceptible()
        once = dump_state(tree)
        tree.reset_to_all_susceptible()
        assert dump_state(tree) == once

    def test_reset_keeps_hierarchy(self, three_level_tree):
        sizes = [leaf.size for leaf in three_level_tree.iter_leaves()]
        three_level_tree.reset_to_all_susceptible()
        assert [leaf.size for leaf in three_level_tree.iter_leaves()] == sizes


class TestApplyTransition:
    """The single mutation primitive."""

    def test_cascade_to_root(self, two_family_tree):
        tree = two_family_tree
        leaf = tree.apply_transition(0, S, E1)

        assert leaf == tree.level_nodes[1][0]
        assert tree.nodes[leaf].E1 == 1
        assert tree.root_node.E1 == 1
        assert tree.root_node.S == 9
        assert tree.members[E1] == [leaf]
        tree.check_structures()

    def test_susceptible_offsets_shift(self, rng):
        tree = PopulationTree(HierarchicalTopology([3, 3]), rng)
        tree.apply_transition(0, S, E1)

        offsets = [leaf.first_susceptible for leaf in tree.iter_leaves()]
        assert offsets == [0, 2, 5]
        tree.check_structures()

    def test_offsets_above_family_level_shift(self, rng):
        tree = PopulationTree(HierarchicalTopology([2, 2, 2]), rng)
        tree.apply_transition(1, S, E1)

        offsets = [tree.nodes[i].first_susceptible for i in tree.level_nodes[2]]
        assert offsets == [0, 3]
        tree.check_structures()

    def test_recovered_not_listed(self, two_family_tree):
        tree = two_family_tree
        tree.apply_transition(0, S, I2)
        tree.apply_transition(0, I2, R)

        assert tree.root_node.R == 1
        assert tree.members[I2] == []
        tree.check_structures()

    @pytest.mark.parametrize("source,target", [(E1, S), (R, E1), (I2, S)])
    def test_forbidden_directions(self, two_family_tree, source, target):
        with pytest.raises(InternalInvariantViolation):
            two_family_tree.apply_transition(0, source, target)

    def test_position_out_of_range(self, two_family_tree):
        with pytest.raises(InternalInvariantViolation):
            two_family_tree.apply_transition(0, E1, E2)
        with pytest.raises(InternalInvariantViolation):
            two_family_tree.apply_transition(10, S, E1)

    def test_random_sequence_keeps_invariants(self, three_level_tree):
        tree = three_level_tree
        rng = np.random.default_rng(7)
        moves = [(S, E1), (E1, E2), (E2, I1), (I1, I2), (I2, R)]

        for _ in range(300):
            available = [m for m in moves if tree.members[m[0]]]
            if not available:
                break
            source, target = available[rng.integers(len(available))]
            tree.progress_random(source, target)
            tree.check_structures()

        for comp in TRACKED:
            assert len(tree.members[comp]) == tree.root_node.counts[comp]


class TestInfectedRoster:
    """Roster of nodes with infectious members."""

    def test_single_infected_family(self, two_family_tree):
        tree = two_family_tree
        family1, family2 = tree.level_nodes[1]
        tree.apply_transition(0, S, I1)

        assert tree.infected_leaves == [family1]
        assert family2 not in tree.infected_nodes
        assert set(tree.infected_nodes) == {family1, tree.root}

    def test_leaves_roster_when_recovered(self, two_family_tree):
        tree = two_family_tree
        tree.apply_transition(0, S, I1)
        tree.apply_transition(0, I1, I2)
        assert tree.infected_leaves == [tree.level_nodes[1][0]]

        tree.apply_transition(0, I2, R)
        assert tree.infected_nodes == []
        tree.check_structures()

    def test_roster_positions_after_removal(self, rng):
        tree = PopulationTree(HierarchicalTopology([2, 3]), rng)
        tree.apply_transition(0, S, I1)    # family 0
        tree.apply_transition(1, S, I1)    # family 1
        tree.apply_transition(2, S, I1)    # family 2

        tree.apply_transition(0, I1, R)
        tree.check_structures()
        assert tree.level_nodes[1][0] not in tree.infected_nodes


class TestInfection:
    """Choosing who gets infected."""

    def test_infect_within_stays_in_subtree(self, rng):
        tree = PopulationTree(HierarchicalTopology([4, 3]), rng)
        target = tree.level_nodes[1][1]

        for _ in range(4):
            assert tree.infect_within(target, E1) == target

        assert tree.nodes[target].S == 0
        assert tree.tallies.exposed_total == 4
        tree.check_structures()

    def test_infect_within_empty_node(self, rng):
        tree = PopulationTree(HierarchicalTopology([1, 2]), rng)
        target = tree.level_nodes[1][0]
        tree.infect_within(target, E1)
        with pytest.raises(InternalInvariantViolation):
            tree.infect_within(target, E1)

    def test_close_contact_and_community(self, two_family_tree):
        tree = two_family_tree
        family1, family2 = tree.level_nodes[1]
        tree.apply_transition(0, S, I1)

        # second case in the already infected family
        leaf = tree.infect_within(family1, I1)
        assert tree.count_infection_kind(leaf) == 1

        # first case in the other family
        leaf = tree.infect_within(family2, I1)
        assert tree.count_infection_kind(leaf) == 2

        snapshot = tree.snapshot(_rates(2))
        assert snapshot.close_contact == 1
        assert snapshot.community == 1

    def test_contact_weight(self, rng):
        tree = PopulationTree(HierarchicalTopology([5, 2]), rng)
        assert tree.contact_weight(tree.level_nodes[1][0]) == 1.
        assert tree.contact_weight(tree.root) == pytest.approx(1. / 9)

        lonely = PopulationTree(HierarchicalTopology([1, 1]), rng)
        assert lonely.contact_weight(lonely.root) == 0.

    def test_random_member_subtree_only_for_susceptibles(self, two_family_tree):
        tree = two_family_tree
        family2 = tree.level_nodes[1][1]
        assert tree.random_member(S, family2) == family2
        with pytest.raises(ValueError):
            tree.random_member(E1, family2)


class TestForcedTransitions:
    """Imported infections and forced recoveries."""

    def test_force_infection(self, single_group_tree):
        tree = single_group_tree
        tree.force_infection(3)

        assert tree.root_node.I1 == 3
        assert tree.tallies.imported == 3
        tree.check_structures()

    def test_too_many_is_atomic(self, two_family_tree):
        tree = two_family_tree
        tree.force_infection(2)
        before = dump_state(tree)

        with pytest.raises(InsufficientSusceptibles) as excinfo:
            tree.force_infection(9)

        assert excinfo.value.requested == 9
        assert excinfo.value.available == 8
        assert dump_state(tree) == before

    def test_force_recovery_and_restore(self, three_level_tree):
        tree = three_level_tree
        n = tree.total_population
        tree.force_recovery(5)
        assert tree.root_node.R == 5
        assert len(tree.forced_recovered) == 5

        tree.restore_susceptible(3)
        assert tree.root_node.R == 2
        assert tree.root_node.S == n - 2
        assert tree.tallies.forcibly_recovered == 2
        tree.check_structures()

    def test_restore_more_than_recovered(self, three_level_tree):
        three_level_tree.force_recovery(1)
        with pytest.raises(MalformedInputSeries):
            three_level_tree.restore_susceptible(2)

    def test_apply_imported_cumulative(self, single_group_tree):
        tree = single_group_tree
        tree.apply_imported(3)
        tree.apply_imported(5, 2)
        assert tree.tallies.imported == 5
        assert tree.root_node.I1 == 5
        assert tree.root_node.R == 2

        tree.apply_imported(5, 0)
        assert tree.root_node.R == 0
        assert tree.root_node.S == 95
        tree.check_structures()

    def test_apply_imported_decreasing(self, single_group_tree):
        single_group_tree.apply_imported(3)
        with pytest.raises(MalformedInputSeries):
            single_group_tree.apply_imported(2)

    def test_apply_imported_too_many(self, two_family_tree):
        before = dump_state(two_family_tree)
        with pytest.raises(InsufficientSusceptibles):
            two_family_tree.apply_imported(6, 6)
        assert dump_state(two_family_tree) == before


class TestReporting:
    """Snapshots and per-level views."""

    def test_snapshot(self, single_group_tree, scenario_rates):
        single_group_tree.force_infection(2)
        snapshot = single_group_tree.snapshot(scenario_rates)

        assert snapshot.N == 100
        assert snapshot.S == 98
        assert snapshot.I1 == 2
        assert snapshot.imported == 2
        assert snapshot.infectious_period == pytest.approx(20.)
        assert snapshot.as_record()['S'] == 98

    def test_level_infected(self, two_family_tree):
        two_family_tree.apply_transition(0, S, I1)
        assert list(two_family_tree.level_infected(1)) == [1, 0]
        assert list(two_family_tree.level_infected(2)) == [1]

    def test_check_structures_detects_corruption(self, two_family_tree):
        two_family_tree.root_node.counts[S] -= 1
        with pytest.raises(InternalInvariantViolation):
            two_family_tree.check_structures()

    def test_summary(self, three_level_tree):
        text = three_level_tree.summary()
        assert "Population Hierarchy Summary" in text
        assert "Level 3" in text


def _rates(levels):
    from hierepi.core.disease_params import RateConstants
    return RateConstants(beta=(0.1,) * levels, sigma1=0.2, sigma2=0.2, gamma1=0.1, gamma2=0.1)
