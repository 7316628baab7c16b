"""Core epidemic modeling components"""

from .disease_params import RateConstants, OffspringDistribution
from .errors import (SimulationError, MalformedInputSeries, InsufficientSusceptibles,
                     InternalInvariantViolation)
from .topology import Topology, HierarchicalTopology, FullyConnectedTopology
from .population import Compartment, HierarchyNode, PopulationTree, RootSnapshot
from .rates import RateTable, Transition
from .models import EpidemicModel, MODELS, get_model
from .events import (EventKind, ExogenousEvent, ExogenousEventQueue, ImportedCases,
                     read_imported_infections, read_rate_changes)
from .sampler import (Observer, RegularSampler, PassthroughSampler, TrajectoryRecorder,
                      EnsembleRecorder, LevelDetailRecorder, FanOut, plot_results)
from .gillespie import GillespieDriver, SimulationConfig, DriverState
from .seir_model import HierarchicalSEIRSimulator

__all__ = [
    'RateConstants',
    'OffspringDistribution',
    'SimulationError',
    'MalformedInputSeries',
    'InsufficientSusceptibles',
    'InternalInvariantViolation',
    'Topology',
    'HierarchicalTopology',
    'FullyConnectedTopology',
    'Compartment',
    'HierarchyNode',
    'PopulationTree',
    'RootSnapshot',
    'RateTable',
    'Transition',
    'EpidemicModel',
    'MODELS',
    'get_model',
    'EventKind',
    'ExogenousEvent',
    'ExogenousEventQueue',
    'ImportedCases',
    'read_imported_infections',
    'read_rate_changes',
    'Observer',
    'RegularSampler',
    'PassthroughSampler',
    'TrajectoryRecorder',
    'EnsembleRecorder',
    'LevelDetailRecorder',
    'FanOut',
    'plot_results',
    'GillespieDriver',
    'SimulationConfig',
    'DriverState',
    'HierarchicalSEIRSimulator',
]
