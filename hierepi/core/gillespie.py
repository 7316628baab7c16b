"""
Gillespie Driver
================
Exact continuous-time stochastic simulation of the hierarchical model.

Every iteration draws one exponential waiting time from the total rate.
If the clock reaches the next exogenous event the event is applied
instead of an internal transition; otherwise one more uniform draw picks
the transition to apply.
"""

import logging
import math
import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .disease_params import RateConstants
from .errors import MalformedInputSeries
from .events import EventKind, ExogenousEvent, ExogenousEventQueue
from .models import get_model
from .population import PopulationTree, RootSnapshot
from .rates import RateTable, Transition
from .sampler import Observer
from ..utils.logging import log_call

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulationConfig:
    """Configuration for simulation runs"""
    horizon: float = 100.0          # stop once the clock passes this time
    n_runs: int = 1                 # independent runs on the same hierarchy
    sample_interval: float = 1.0    # spacing of the regular output grid
    incremental_rates: bool = True  # update only the changed path after a transition
    model: str = 'seeiir'
    seed: Optional[int] = None
    detail_level: Optional[int] = None   # record per-node counts from this level up
    t0: float = 0.0
    check_invariants: bool = False  # verify the tree after every step (slow)

    def __post_init__(self):
        if not math.isfinite(self.horizon) or not math.isfinite(self.t0):
            raise ValueError("horizon and t0 must be finite")
        if not self.horizon >= self.t0:
            raise ValueError(f"horizon {self.horizon} lies before t0 {self.t0}")
        if self.n_runs < 1:
            raise ValueError("n_runs must be at least 1")
        if not self.sample_interval > 0:
            raise ValueError("sample_interval must be positive")
        if self.detail_level is not None and self.detail_level < 1:
            raise ValueError("detail_level starts at 1 (families)")
        get_model(self.model)


class DriverState(Enum):
    RUNNING = 'running'
    STOPPED = 'stopped'


class GillespieDriver:
    """
    One simulation run over a PopulationTree
    """

    def __init__(self,
                 tree: PopulationTree,
                 rates: RateConstants,
                 events: ExogenousEventQueue,
                 config: SimulationConfig,
                 rng: np.random.Generator,
                 observer: Optional[Observer] = None):
        """
        Initialize driver

        Args:
            tree: Population state, reset by the caller
            rates: Rate constants in effect at t0
            events: Pending exogenous events (consumed)
            config: Simulation configuration
            rng: Shared random generator
            observer: Receives the state before every change
        """
        self.tree = tree
        self.events = events
        self.config = config
        self.rng = rng
        self.observer = observer
        self.model = get_model(config.model)

        self._check_levels(rates)
        first = events.peek()
        if first.time < config.t0:
            raise MalformedInputSeries(
                f"Event at t={first.time} is scheduled before the start time {config.t0}")
        self.rates = rates
        self.table = RateTable()

        self.time = config.t0
        self.state = DriverState.RUNNING
        self.steps = 0
        # Path of the last internal transition; None forces a full recompute
        self._touched: Optional[List[int]] = None

    def _check_levels(self, rates: RateConstants):
        if rates.levels != self.tree.levels:
            raise MalformedInputSeries(
                f"Rate constants give {rates.levels} beta levels, "
                f"hierarchy has {self.tree.levels}")

    def _refresh_rates(self):
        if self._touched is None or not self.config.incremental_rates:
            self.table.recompute_all(self.tree, self.rates, self.model)
        else:
            self.table.update(self.tree, self.rates, self.model, self._touched)

    def _notify(self):
        if self.observer is not None:
            self.observer.observe(self.time, self.tree.snapshot(self.rates))

    def step(self):
        """Advance by one event, exogenous or internal"""
        if self.state is DriverState.STOPPED:
            return

        self._refresh_rates()
        total = self.table.total_rate
        if total > 0:
            self.time += self.rng.exponential(1. / total)
        else:
            self.time = math.inf

        event = self.events.peek()
        if self.time >= event.time:
            self.time = event.time
            self._notify()
            if event.is_sentinel:
                self.state = DriverState.STOPPED
                return
            self._apply_event(event)
            self.events.pop()
            self._touched = None
        else:
            self._notify()
            u = (1. - self.rng.random()) * total
            leaf = self._apply_transition(self.table.transition_at(u))
            self._touched = self.tree.path_to_root(leaf)

        self.steps += 1
        if self.config.check_invariants:
            self.tree.check_structures()

    def _apply_event(self, event: ExogenousEvent):
        if event.kind is EventKind.IMPORTED_INFECTION:
            cases = event.payload
            self.tree.apply_imported(cases.infected, cases.recovered)
            logger.debug("t=%.4g: imported cases now %d", self.time, self.tree.tallies.imported)
        else:
            self._check_levels(event.payload)
            self.rates = event.payload
            logger.debug("t=%.4g: rate constants changed to beta=%s", self.time, self.rates.beta)

    def _apply_transition(self, transition: Transition) -> int:
        if transition.is_infection:
            leaf = self.tree.infect_within(transition.node, transition.target)
        else:
            leaf = self.tree.progress_random(transition.source, transition.target)
        if transition.target is self.model.symptom_onset:
            self.tree.count_infection_kind(leaf)
        return leaf

    @log_call
    def run(self) -> RootSnapshot:
        """
        Run until the horizon is passed or the event queue is exhausted

        Returns:
            Final root state
        """
        while self.state is DriverState.RUNNING and self.time <= self.config.horizon:
            self.step()
        self.state = DriverState.STOPPED
        logger.info("Run stopped at t=%.4g after %d steps", self.time, self.steps)
        return self.tree.snapshot(self.rates)
