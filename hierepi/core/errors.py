"""
Simulation Errors
=================
Fatal error conditions raised by the population engine and the driver
"""


class SimulationError(Exception):
    """Base class for all fatal simulation errors"""


class MalformedInputSeries(SimulationError, ValueError):
    """
    An exogenous input series violates its contract
    (non-monotonic cumulative counts, unsorted times, wrong column count)
    """


class InsufficientSusceptibles(SimulationError):
    """A forced infection or recovery asks for more susceptibles than exist"""

    def __init__(self, requested: int, available: int):
        super().__init__(
            f"Requested {requested} forced transitions but only "
            f"{available} susceptibles are available"
        )
        self.requested = requested
        self.available = available


class InternalInvariantViolation(SimulationError):
    """Aggregate counts or bookkeeping lists are inconsistent (a bug)"""
