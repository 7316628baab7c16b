"""
Shared test fixtures.

Trees are mutable, so every fixture builds a fresh one.
"""

import os
import sys

import matplotlib
import numpy as np
import pytest

matplotlib.use("Agg")

# Make the package importable without installation
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from hierepi.core.disease_params import OffspringDistribution, RateConstants  # noqa: E402
from hierepi.core.population import PopulationTree  # noqa: E402
from hierepi.core.topology import FullyConnectedTopology, HierarchicalTopology  # noqa: E402


@pytest.fixture
def rng():
    return np.random.default_rng(12345)


@pytest.fixture
def single_group_tree(rng):
    """One level, one group of 100 individuals."""
    return PopulationTree(FullyConnectedTopology(100), rng)


@pytest.fixture
def two_family_tree(rng):
    """Two families of 5 under a root."""
    return PopulationTree(HierarchicalTopology([5, 2]), rng)


@pytest.fixture
def three_level_tree(rng):
    """Random family sizes, 6 families per neighbourhood, 4 neighbourhoods."""
    families = OffspringDistribution([0.2, 0.3, 0.3, 0.2])
    return PopulationTree(HierarchicalTopology([families, 6, 4]), rng)


@pytest.fixture
def scenario_rates():
    return RateConstants(beta=(0.1,), sigma1=0.2, sigma2=0.2, gamma1=0.1, gamma2=0.1)


@pytest.fixture
def three_level_rates():
    return RateConstants(beta=(0.8, 0.4, 0.2), sigma1=0.5, sigma2=0.5, gamma1=0.3, gamma2=0.3)
