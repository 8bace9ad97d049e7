# engine/glide_path.py

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

from retiresim.models import Event, EventType, Scenario

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvestSnapshot:
    event_name: str
    allocation: Dict[str, Dict[str, float]]
    maximum_cash: Optional[float] = None


@dataclass(frozen=True)
class RebalanceSnapshot:
    event_name: str
    allocation: Dict[str, float]


# ----------------------------------------------------------------------
# Interpolation
# ----------------------------------------------------------------------
def glide_fraction(years_elapsed: int, duration: int) -> float:
    """0 in the event's first active year, 1 in its last, linear in between."""
    if duration <= 1:
        return 0.0
    fraction = years_elapsed / max(1, duration - 1)
    return min(1.0, max(0.0, fraction))


def interpolate_flat(initial: Mapping[str, float],
                     final: Mapping[str, float],
                     fraction: float) -> Dict[str, float]:
    """Linear blend of two target -> percent maps; missing leaves count as 0."""
    keys = list(initial) + [k for k in final if k not in initial]
    return {
        k: initial.get(k, 0.0) + (final.get(k, 0.0) - initial.get(k, 0.0)) * fraction
        for k in keys
    }


def interpolate_nested(initial: Mapping[str, Mapping[str, float]],
                       final: Mapping[str, Mapping[str, float]],
                       fraction: float) -> Dict[str, Dict[str, float]]:
    """Blend of category -> {target: percent} maps, leaf by leaf."""
    keys = list(initial) + [k for k in final if k not in initial]
    return {k: interpolate_flat(initial.get(k, {}), final.get(k, {}), fraction) for k in keys}


def interpolate_allocation(initial, final, fraction: float):
    """Chooses nested or flat interpolation from the shape of the strategy."""
    nested = any(isinstance(v, Mapping) for v in list(initial.values()) + list(final.values()))
    if nested:
        return interpolate_nested(initial, final, fraction)
    return interpolate_flat(initial, final, fraction)


# ----------------------------------------------------------------------
# Per-year strategy snapshots
# ----------------------------------------------------------------------
def _last_active(scenario: Scenario, names: List[str], kind: EventType) -> Optional[Event]:
    chosen = None
    for name in names:
        event = scenario.event(name)
        if event is not None and event.type == kind:
            chosen = event
    return chosen


def _allocation_for_year(event: Event, spec, year: int, start_year: int, duration: int,
                         warned: set, warn: Callable[[int, str], None]):
    if not spec.glide_path:
        return spec.initial
    if not spec.final:
        if event.name not in warned:
            warn(year, f"Glide path for event '{event.name}' has no final allocation; using initial allocation")
            warned.add(event.name)
        return spec.initial
    fraction = glide_fraction(year - start_year, duration)
    return interpolate_allocation(spec.initial, spec.final, fraction)


def build_invest_snapshots(scenario: Scenario,
                           active_events: List[List[str]],
                           timings: Dict,
                           current_year: int,
                           warn: Callable[[int, str], None]) -> List[Optional[InvestSnapshot]]:
    """
    One invest strategy per year: the last active invest event wins. An event
    without allocation data carries the previous year's snapshot forward.
    """
    snapshots: List[Optional[InvestSnapshot]] = []
    previous: Optional[InvestSnapshot] = None
    warned: set = set()

    for idx, names in enumerate(active_events):
        year = current_year + idx
        event = _last_active(scenario, names, EventType.INVEST)
        snapshot = None
        if event is not None:
            spec = event.invest
            if spec is None or not spec.initial:
                snapshot = previous
            else:
                timing = timings[event.name]
                allocation = _allocation_for_year(event, spec, year, timing.start_year,
                                                  timing.duration, warned, warn)
                max_cash = spec.new_maximum_cash if spec.modify_maximum_cash else None
                snapshot = InvestSnapshot(event.name, allocation, max_cash)
        snapshots.append(snapshot)
        previous = snapshot if snapshot is not None else previous
    return snapshots


def build_rebalance_snapshots(scenario: Scenario,
                              active_events: List[List[str]],
                              timings: Dict,
                              current_year: int,
                              warn: Callable[[int, str], None]) -> List[Optional[RebalanceSnapshot]]:
    """Same selection rules as build_invest_snapshots, for flat rebalance strategies."""
    snapshots: List[Optional[RebalanceSnapshot]] = []
    previous: Optional[RebalanceSnapshot] = None
    warned: set = set()

    for idx, names in enumerate(active_events):
        year = current_year + idx
        event = _last_active(scenario, names, EventType.REBALANCE)
        snapshot = None
        if event is not None:
            spec = event.rebalance
            if spec is None or not spec.initial:
                snapshot = previous
            else:
                timing = timings[event.name]
                allocation = _allocation_for_year(event, spec, year, timing.start_year,
                                                  timing.duration, warned, warn)
                snapshot = RebalanceSnapshot(event.name, allocation)
        snapshots.append(snapshot)
        previous = snapshot if snapshot is not None else previous
    return snapshots
