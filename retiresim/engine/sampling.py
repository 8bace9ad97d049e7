# engine/sampling.py
#
# Draws from fixed / normal / uniform distributions using an injected
# numpy Generator, so every trial is reproducible from its seed.
#

import logging
import math
from typing import Callable, Optional

import numpy as np

from retiresim.config.simulation_defaults import fallback_rate
from retiresim.errors import DistributionError
from retiresim.models import Distribution, DistributionKind

logger = logging.getLogger(__name__)

Warn = Optional[Callable[[str], None]]


def round_half_up(x: float) -> int:
    """Rounds .5 away from the floor (numpy/Python round to even)."""
    return int(math.floor(x + 0.5))


def draw_normal(rng: np.random.Generator, mean: Optional[float], sd: Optional[float]) -> float:
    if mean is None or sd is None:
        raise DistributionError("Normal distribution needs both mean and sd")
    if sd < 0:
        raise DistributionError(f"Normal distribution has negative sd ({sd})")
    return float(rng.normal(mean, sd))


def draw_uniform(rng: np.random.Generator, lower: Optional[float], upper: Optional[float]) -> float:
    if lower is None or upper is None:
        raise DistributionError("Uniform distribution needs both lower and upper bounds")
    if lower > upper:
        raise DistributionError(f"Uniform distribution has lower bound {lower} > upper bound {upper}")
    return float(rng.uniform(lower, upper))


def sample(dist: Distribution, rng: np.random.Generator) -> float:
    """
    Draws one value from a fixed / normal / uniform distribution.

    Raises DistributionError for invalid parameters, referential kinds (those are
    resolved by the event timing resolver) and unknown methods.
    """
    if dist.kind == DistributionKind.FIXED:
        if dist.value is None:
            raise DistributionError("Fixed distribution has no value")
        return float(dist.value)
    if dist.kind == DistributionKind.NORMAL:
        return draw_normal(rng, dist.mean, dist.sd)
    if dist.kind == DistributionKind.UNIFORM:
        return draw_uniform(rng, dist.lower, dist.upper)
    raise DistributionError(f"Cannot sample distribution method '{dist.method or dist.kind.value}'")


def sample_change(
    dist: Optional[Distribution],
    base: float,
    rng: np.random.Generator,
    context: str,
    warn: Warn = None,
) -> float:
    """
    Returns the dollar change implied by `dist` for a quantity currently worth `base`.

    Percentage distributions are in percent of `base`; value distributions are
    dollars. A missing distribution means no change. On invalid or unknown
    distributions the context's fallback rate is applied to `base`.
    """
    if dist is None:
        return 0.0
    try:
        drawn = sample(dist, rng)
    except DistributionError as exc:
        rate = fallback_rate(context)
        msg = f"{exc}; using fallback {context} rate of {rate:.2%}"
        logger.warning(msg)
        if warn is not None:
            warn(msg)
        return base * rate
    if dist.is_percentage:
        return base * drawn / 100.0
    return drawn
