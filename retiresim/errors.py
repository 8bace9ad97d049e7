# errors.py

"""
Exception hierarchy for the simulation core.

Structural problems (bad scenario data, broken event references) are fatal
for a trial. Distribution problems are recoverable: callers either fall back
to the default-policy table or, for inflation, rebuild the whole projection.
"""


class SimulationError(Exception):
    """Base class for every error raised by the simulation core."""


class ScenarioError(SimulationError, ValueError):
    """Missing or structurally invalid scenario / tax-table data."""


class EventTimingError(SimulationError):
    """An event's start year or duration could not be resolved."""


class UnknownEventError(EventTimingError):
    def __init__(self, event_name: str):
        super().__init__(f"Referenced event not found: {event_name}")
        self.event_name = event_name


class CircularDependencyError(EventTimingError):
    def __init__(self, event_name: str, chain=None):
        chain = list(chain or [])
        msg = f"Circular dependency detected involving event: {event_name}"
        if chain:
            msg += f" ({' -> '.join(chain + [event_name])})"
        super().__init__(msg)
        self.event_name = event_name
        self.chain = chain


class DistributionError(SimulationError, ValueError):
    """Invalid distribution parameters (negative sd, inverted bounds, missing values)."""
