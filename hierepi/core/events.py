"""
Exogenous Events
================
Externally scheduled perturbations of the epidemic: imported cases and
changes of the rate constants.  Both series are merged into one
time-ordered queue closed by a sentinel at infinite time.
"""

import logging
import math
import pandas as pd
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator, List, Optional, Sequence, Union

from .disease_params import RateConstants
from .errors import MalformedInputSeries
from ..utils.logging import log_call

logger = logging.getLogger(__name__)


class EventKind(IntEnum):
    """Event types, in tie-break order for equal times"""
    IMPORTED_INFECTION = 0
    RATE_CHANGE = 1


@dataclass(frozen=True)
class ImportedCases:
    """Cumulative imported infections (and forced recoveries) up to `time`"""
    time: float
    infected: int
    recovered: int = 0


@dataclass(frozen=True)
class ExogenousEvent:
    time: float
    kind: EventKind
    payload: Union[ImportedCases, RateConstants, None] = None

    @property
    def is_sentinel(self) -> bool:
        return math.isinf(self.time)


# End of queue: an imported-infection record at +inf carrying no new cases
SENTINEL = ExogenousEvent(math.inf, EventKind.IMPORTED_INFECTION, ImportedCases(math.inf, 0))


def _check_times(series: Sequence, what: str):
    previous = -math.inf
    for item in series:
        if math.isnan(item.time) or item.time < previous:
            raise MalformedInputSeries(
                f"{what} times must be non-decreasing: {item.time} after {previous}")
        previous = item.time


def _check_cumulative(imported: Sequence[ImportedCases]):
    previous = 0
    for item in imported:
        if item.infected < previous:
            raise MalformedInputSeries(
                f"Cumulative imported infections decrease at t={item.time}: "
                f"{item.infected} after {previous}")
        if item.infected < 0 or item.recovered < 0:
            raise MalformedInputSeries(f"Negative cumulative count at t={item.time}")
        previous = item.infected


class ExogenousEventQueue:
    """
    Time-ordered pending events, always ending with the sentinel

    Length and iteration cover the pending events including the sentinel.
    """

    def __init__(self, events: Optional[Sequence[ExogenousEvent]] = None):
        events = list(events or [])
        if not events or not events[-1].is_sentinel:
            events.append(SENTINEL)
        self._events = events
        self._cursor = 0

    @classmethod
    @log_call
    def merge(cls, imported: Sequence[ImportedCases] = (),
              rate_changes: Sequence[RateConstants] = ()) -> "ExogenousEventQueue":
        """
        Stable two-pointer merge of both series

        Imported infections go first when times are equal.
        """
        _check_times(imported, "Imported infection")
        _check_times(rate_changes, "Rate change")
        _check_cumulative(imported)

        merged = []
        i = j = 0
        while i < len(imported) and j < len(rate_changes):
            if imported[i].time <= rate_changes[j].time:
                merged.append(ExogenousEvent(imported[i].time, EventKind.IMPORTED_INFECTION, imported[i]))
                i += 1
            else:
                merged.append(ExogenousEvent(rate_changes[j].time, EventKind.RATE_CHANGE, rate_changes[j]))
                j += 1
        for item in imported[i:]:
            merged.append(ExogenousEvent(item.time, EventKind.IMPORTED_INFECTION, item))
        for item in rate_changes[j:]:
            merged.append(ExogenousEvent(item.time, EventKind.RATE_CHANGE, item))

        logger.debug("Merged %d imported and %d rate-change events", len(imported), len(rate_changes))
        return cls(merged)

    def peek(self) -> ExogenousEvent:
        return self._events[self._cursor]

    def pop(self) -> ExogenousEvent:
        event = self.peek()
        if event.is_sentinel:
            raise IndexError("Cannot pop the end-of-queue sentinel")
        self._cursor += 1
        return event

    def copy(self) -> "ExogenousEventQueue":
        """Independent queue holding the same pending events"""
        return ExogenousEventQueue(self._events[self._cursor:])

    def __len__(self) -> int:
        return len(self._events) - self._cursor

    def __iter__(self) -> Iterator[ExogenousEvent]:
        return iter(self._events[self._cursor:])


# ----------------------------------------------------------------------
# Series files: whitespace separated columns, '#' starts a comment

def _read_series(path, what: str) -> pd.DataFrame:
    try:
        frame = pd.read_csv(path, sep=r'\s+', comment='#', header=None, engine='python')
    except pd.errors.EmptyDataError:
        return pd.DataFrame()
    except pd.errors.ParserError as exc:
        raise MalformedInputSeries(f"Cannot parse {what} file {path}: {exc}") from exc
    if frame.isnull().values.any():
        raise MalformedInputSeries(f"Missing columns in {what} file {path}")
    return frame


def read_imported_infections(path) -> List[ImportedCases]:
    """
    Read `time infected [recovered]` rows

    Args:
        path: File path or buffer

    Returns:
        Imported cases in file order
    """
    frame = _read_series(path, "imported infections")
    if frame.empty:
        return []
    if frame.shape[1] not in (2, 3):
        raise MalformedInputSeries(
            f"Imported infections need 2 or 3 columns, found {frame.shape[1]} in {path}")

    records = []
    for row in frame.itertuples(index=False):
        counts = row[1:]
        if any(float(c) != int(c) for c in counts):
            raise MalformedInputSeries(f"Non-integer imported count at t={row[0]}")
        recovered = int(counts[1]) if len(counts) > 1 else 0
        records.append(ImportedCases(float(row[0]), int(counts[0]), recovered))
    return records


def read_rate_changes(path, levels: int) -> List[RateConstants]:
    """Read `time beta_1 .. beta_levels sigma1 sigma2 gamma1 gamma2` rows"""
    frame = _read_series(path, "rate changes")
    if frame.empty:
        return []
    expected = 1 + levels + 4
    if frame.shape[1] != expected:
        raise MalformedInputSeries(
            f"Rate changes for {levels} levels need {expected} columns, "
            f"found {frame.shape[1]} in {path}")

    records = []
    for row in frame.itertuples(index=False):
        values = [float(v) for v in row]
        sigma1, sigma2, gamma1, gamma2 = values[1 + levels:]
        try:
            records.append(RateConstants(beta=tuple(values[1:1 + levels]), sigma1=sigma1,
                                         sigma2=sigma2, gamma1=gamma1, gamma2=gamma2,
                                         time=values[0]))
        except ValueError as exc:
            raise MalformedInputSeries(f"Invalid rate constants at t={values[0]}: {exc}") from exc
    return records
