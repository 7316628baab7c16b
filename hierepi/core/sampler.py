"""
Observers and Samplers
======================
Sinks for the (time, snapshot) stream produced by the driver.

The driver calls `observe(time, snapshot)` with the state that held just
*before* `time`.  Samplers turn that irregular stream into rows at regular
times, recorders collect rows into pandas DataFrames.
"""

import math
import numpy as np
import pandas as pd
from typing import List, Optional

from .population import PopulationTree, RootSnapshot


class Observer:
    """Receives simulation states; must never modify the simulation"""

    def observe(self, time: float, snapshot: RootSnapshot):
        raise NotImplementedError

    def reset(self):
        """Forget state kept between calls (start of a new run)"""


class RegularSampler(Observer):
    """
    Forward the state at every grid time t0 + k * interval <= tmax

    A grid time t is emitted once the driver reports a time later than t,
    with the state valid until then.
    """

    def __init__(self, observer: Observer, t0: float, tmax: float, interval: float):
        if not interval > 0:
            raise ValueError("Sampling interval must be positive")
        if not math.isfinite(tmax):
            raise ValueError("Regular sampling needs a finite tmax")
        self.observer = observer
        self.t0 = t0
        self.tmax = tmax
        self.interval = interval
        self._k = 0

    @property
    def next_time(self) -> float:
        return self.t0 + self._k * self.interval

    def observe(self, time: float, snapshot: RootSnapshot):
        t = self.next_time
        while t < time and t <= self.tmax:
            self.observer.observe(t, snapshot)
            self._k += 1
            t = self.next_time

    def reset(self):
        self._k = 0
        self.observer.reset()


class PassthroughSampler(Observer):
    """Forward every reported state up to tmax"""

    def __init__(self, observer: Observer, tmax: float = math.inf):
        self.observer = observer
        self.tmax = tmax

    def observe(self, time: float, snapshot: RootSnapshot):
        if time <= self.tmax and not math.isinf(time):
            self.observer.observe(time, snapshot)

    def reset(self):
        self.observer.reset()


class FanOut(Observer):
    """Send every state to several observers"""

    def __init__(self, *observers: Observer):
        self.observers = list(observers)

    def observe(self, time: float, snapshot: RootSnapshot):
        for observer in self.observers:
            observer.observe(time, snapshot)

    def reset(self):
        for observer in self.observers:
            observer.reset()


class TrajectoryRecorder(Observer):
    """Collect one row per observed state"""

    def __init__(self):
        self.rows: List[dict] = []

    def observe(self, time: float, snapshot: RootSnapshot):
        record = {'time': time}
        record.update(snapshot.as_record())
        self.rows.append(record)

    def reset(self):
        self.rows = []

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows)


class EnsembleRecorder(Observer):
    """Trajectories of several independent runs"""

    def __init__(self):
        self.runs: List[TrajectoryRecorder] = []

    def begin_run(self) -> TrajectoryRecorder:
        recorder = TrajectoryRecorder()
        self.runs.append(recorder)
        return recorder

    def observe(self, time: float, snapshot: RootSnapshot):
        if not self.runs:
            self.begin_run()
        self.runs[-1].observe(time, snapshot)

    def to_dataframe(self) -> pd.DataFrame:
        """All runs stacked, with a `run` column"""
        frames = []
        for run, recorder in enumerate(self.runs):
            df = recorder.to_dataframe()
            df.insert(0, 'run', run)
            frames.append(df)
        if not frames:
            return pd.DataFrame()
        return pd.concat(frames, ignore_index=True)

    def summary(self) -> pd.DataFrame:
        """
        Mean and variance across runs at each sample time

        Columns are `<name>_mean` and `<name>_var` (population variance).
        """
        df = self.to_dataframe()
        if df.empty:
            return df
        columns = [c for c in df.columns if c not in ('run', 'time')]
        grouped = df.groupby('time')[columns]
        mean = grouped.mean().add_suffix('_mean')
        var = grouped.var(ddof=0).add_suffix('_var')
        result = mean.join(var)
        result['runs'] = df.groupby('time').size()
        return result.reset_index()


class LevelDetailRecorder(Observer):
    """
    Distribution of infectious individuals over the nodes of each level

    Records mean and variance of I1 + I2 across the nodes of every level,
    and the per-node counts for levels >= detail_level.
    """

    def __init__(self, tree: PopulationTree, detail_level: Optional[int] = None):
        self.tree = tree
        self.detail_level = tree.levels + 1 if detail_level is None else detail_level
        self.run = 0
        self.level_rows: List[dict] = []
        self.node_rows: List[dict] = []

    def observe(self, time: float, snapshot: RootSnapshot):
        for level in range(1, self.tree.levels + 1):
            infected = self.tree.level_infected(level)
            self.level_rows.append({
                'run': self.run,
                'time': time,
                'level': level,
                'nodes': len(infected),
                'mean': float(np.mean(infected)) if len(infected) else 0.,
                'var': float(np.var(infected)) if len(infected) else 0.,
            })
            if level >= self.detail_level:
                for position, count in enumerate(infected):
                    self.node_rows.append({'run': self.run, 'time': time, 'level': level,
                                           'node': position, 'infected': int(count)})

    def reset(self):
        self.level_rows = []
        self.node_rows = []

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.level_rows)

    def node_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.node_rows)


def plot_results(df: pd.DataFrame, title: str = "Hierarchical SEEIIR Simulation"):
    """
    Plot compartment curves

    Args:
        df: Trajectory DataFrame (one run) or ensemble summary (`*_mean` columns)
        title: Plot title
    """
    import matplotlib.pyplot as plt

    suffix = '_mean' if 'S_mean' in df.columns else ''
    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 10))

    # Plot 1: All states
    ax1.plot(df['time'], df['S' + suffix], label='Susceptible', color='blue', linewidth=2)
    ax1.plot(df['time'], df['E1' + suffix] + df['E2' + suffix], label='Exposed', color='orange', linewidth=2)
    ax1.plot(df['time'], df['I1' + suffix] + df['I2' + suffix], label='Infectious', color='red', linewidth=2)
    ax1.plot(df['time'], df['R' + suffix], label='Recovered', color='green', linewidth=2)

    ax1.set_xlabel('Time', fontsize=12)
    ax1.set_ylabel('Number of People', fontsize=12)
    ax1.set_title(title, fontsize=14, fontweight='bold')
    ax1.legend(loc='best', fontsize=11)
    ax1.grid(True, alpha=0.3)

    # Plot 2: where infections come from
    ax2.plot(df['time'], df['imported' + suffix], label='Imported', color='purple', linewidth=2)
    ax2.plot(df['time'], df['close_contact' + suffix], label='Close contact', color='red', linewidth=2)
    ax2.plot(df['time'], df['community' + suffix], label='Community', color='black',
             linewidth=2, linestyle='--')
    ax2.set_xlabel('Time', fontsize=12)
    ax2.set_ylabel('Cumulative Infections', fontsize=12)
    ax2.legend(loc='best', fontsize=11)
    ax2.grid(True, alpha=0.3)

    plt.tight_layout()
    return fig
