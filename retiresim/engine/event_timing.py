# engine/event_timing.py

"""
Resolves each event's (start year, duration) for one trial.

Start years may depend on other events ("same year as X", "year after X ends"),
so resolution is recursive over the event graph. Results are memoized in a
cache owned by the resolver instance; one resolver is created per trial, so
concurrent trials never share timing draws.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np

from retiresim.config import simulation_defaults as defaults
from retiresim.engine.sampling import draw_normal, draw_uniform, round_half_up
from retiresim.errors import CircularDependencyError, DistributionError, UnknownEventError
from retiresim.models import Distribution, DistributionKind, Event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventTiming:
    start_year: int
    duration: int

    @property
    def end_year(self) -> int:
        """First year the event is no longer active."""
        return self.start_year + self.duration

    def is_active(self, year: int) -> bool:
        return self.start_year <= year < self.end_year


class EventTimingResolver:
    """
    Memoizing resolver for event timing within a single trial.

    Args:
        events: All events of the scenario (names must be unique).
        current_year: First simulated year; start years are floored here.
        rng: The trial's random generator.
        warn: Optional callback receiving degradation messages for the trial log.
    """

    def __init__(self,
                 events: Iterable[Event],
                 current_year: int,
                 rng: np.random.Generator,
                 warn: Optional[Callable[[str], None]] = None):
        self.events: Dict[str, Event] = {e.name: e for e in events}
        self.current_year = current_year
        self.rng = rng
        self.warn = warn
        self.cache: Dict[str, EventTiming] = {}
        self._resolving: List[str] = []

    # ----------------------------------------------------------------------
    # Public API
    # ----------------------------------------------------------------------
    def resolve(self, name: str) -> EventTiming:
        """
        Returns the timing of `name`, resolving referenced events first.

        Raises:
            UnknownEventError: `name` (or an event it references) does not exist.
            CircularDependencyError: the referential timing graph has a cycle.
        """
        cached = self.cache.get(name)
        if cached is not None:
            return cached

        if name in self._resolving:
            raise CircularDependencyError(name, self._resolving)

        event = self.events.get(name)
        if event is None:
            raise UnknownEventError(name)

        self._resolving.append(name)
        try:
            start_year = max(self.current_year, self._start_year(event))
            duration = self._duration(event)
        finally:
            self._resolving.pop()

        timing = EventTiming(start_year=start_year, duration=duration)
        self.cache[name] = timing
        logger.debug("Resolved event %s -> start %d, duration %d", name, start_year, duration)
        return timing

    def resolve_all(self) -> Dict[str, EventTiming]:
        return {name: self.resolve(name) for name in self.events}

    # ----------------------------------------------------------------------
    # Start year
    # ----------------------------------------------------------------------
    def _start_year(self, event: Event) -> int:
        spec = event.start
        cur = self.current_year
        if spec is None:
            return cur

        referential = (DistributionKind.SAME_YEAR_AS, DistributionKind.YEAR_AFTER_END_OF)
        if spec.kind in referential and not spec.event:
            method = spec.method or spec.kind.value
            self._degrade(f"Start year of event '{event.name}' ({method}) names no event; using {cur}")
            return cur
        if spec.kind == DistributionKind.SAME_YEAR_AS:
            return self.resolve(spec.event).start_year
        if spec.kind == DistributionKind.YEAR_AFTER_END_OF:
            return self.resolve(spec.event).end_year

        try:
            if spec.kind == DistributionKind.FIXED:
                if spec.value is None:
                    raise DistributionError("Fixed start year has no value")
                return round_half_up(spec.value)
            if spec.kind == DistributionKind.NORMAL:
                mean = spec.mean if spec.mean is not None else cur + defaults.start_normal_mean_offset
                sd = spec.sd if spec.sd is not None else defaults.start_normal_sd
                return round_half_up(draw_normal(self.rng, mean, sd))
            if spec.kind == DistributionKind.UNIFORM:
                lower = spec.lower if spec.lower is not None else cur + defaults.start_uniform_lower_offset
                upper = spec.upper if spec.upper is not None else cur + defaults.start_uniform_upper_offset
                return round_half_up(draw_uniform(self.rng, lower, upper))
        except DistributionError as exc:
            self._degrade(f"Start year of event '{event.name}': {exc}; using {cur}")
            return cur

        self._degrade(f"Unknown start year method '{spec.method}' for event '{event.name}'; using {cur}")
        return cur

    # ----------------------------------------------------------------------
    # Duration
    # ----------------------------------------------------------------------
    def _duration(self, event: Event) -> int:
        spec: Optional[Distribution] = event.duration
        if spec is None:
            return defaults.default_duration

        try:
            if spec.kind == DistributionKind.FIXED:
                if spec.value is None:
                    raise DistributionError("Fixed duration has no value")
                years = round_half_up(spec.value)
            elif spec.kind == DistributionKind.NORMAL:
                mean = spec.mean if spec.mean is not None else defaults.duration_normal_mean
                sd = spec.sd if spec.sd is not None else defaults.duration_normal_sd
                years = round_half_up(draw_normal(self.rng, mean, sd))
            elif spec.kind == DistributionKind.UNIFORM:
                lower = spec.lower if spec.lower is not None else defaults.duration_uniform_lower
                upper = spec.upper if spec.upper is not None else defaults.duration_uniform_upper
                years = round_half_up(draw_uniform(self.rng, lower, upper))
            else:
                self._degrade(f"Unknown duration method '{spec.method}' for event '{event.name}'")
                years = defaults.default_duration
        except DistributionError as exc:
            self._degrade(f"Duration of event '{event.name}': {exc}")
            years = defaults.default_duration

        return max(defaults.minimum_duration, years)

    def _degrade(self, msg: str):
        logger.warning(msg)
        if self.warn is not None:
            self.warn(msg)


def build_active_events(events: Iterable[Event],
                        timings: Dict[str, EventTiming],
                        current_year: int,
                        num_years: int) -> List[List[str]]:
    """
    For each year index of the horizon, the names of events active that year
    (scenario order preserved).
    """
    active: List[List[str]] = [[] for _ in range(num_years)]
    for event in events:
        timing = timings[event.name]
        first = max(0, timing.start_year - current_year)
        last = min(num_years, timing.end_year - current_year)
        for idx in range(first, last):
            active[idx].append(event.name)
    return active
