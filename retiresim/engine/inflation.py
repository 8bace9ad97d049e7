# engine/inflation.py
#
# Builds the per-trial array of cumulative inflation factors.
# factors[i] is the multiplier applied to a base (un-inflated) amount in
# year index i; it already includes year i's own inflation.
#

import logging
from typing import Callable, Optional

import numpy as np
from numpy.typing import NDArray

from retiresim.config import simulation_defaults as defaults
from retiresim.engine.sampling import draw_normal, draw_uniform
from retiresim.errors import DistributionError
from retiresim.models import Distribution, DistributionKind

logger = logging.getLogger(__name__)


def calculate_annual_inflation(rate: float, prior_index: float) -> float:
    """Compounds one year's rate onto the prior cumulative index."""
    return prior_index * (1.0 + rate)


def flat_inflation(num_years: int, rate: float) -> NDArray[np.float64]:
    """Cumulative factors for a constant rate: (1 + rate) ** (i + 1)."""
    return (1.0 + rate) ** np.arange(1, num_years + 1, dtype=float)


def project_inflation(
    dist: Optional[Distribution],
    num_years: int,
    rng: np.random.Generator,
    warn: Optional[Callable[[str], None]] = None,
) -> NDArray[np.float64]:
    """
    Samples one inflation rate per year and compounds them.

    Args:
        dist: Inflation assumption (percent units).
        num_years: Horizon length.
        rng: The trial's random generator.
        warn: Optional callback for the trial log.

    Returns:
        Array of length num_years of cumulative factors. If any draw fails the
        whole array is replaced by a flat fallback-rate projection.
    """
    def _warn(msg):
        logger.warning(msg)
        if warn is not None:
            warn(msg)

    fallback = defaults.fallback_rate("inflation")
    factors = np.empty(num_years, dtype=float)
    cumulative = 1.0
    warned_unknown = False

    try:
        for i in range(num_years):
            rate = _sample_rate(dist, rng)
            if rate is None:
                if not warned_unknown:
                    method = dist.method if dist is not None else "none"
                    _warn(f"Unknown inflation method '{method}'; using {fallback:.0%} per year")
                    warned_unknown = True
                rate = fallback
            cumulative = calculate_annual_inflation(rate, cumulative)
            factors[i] = cumulative
    except DistributionError as exc:
        _warn(f"Inflation sampling failed ({exc}); using flat {fallback:.0%} for the whole horizon")
        return flat_inflation(num_years, fallback)

    return factors


def _sample_rate(dist: Optional[Distribution], rng: np.random.Generator) -> Optional[float]:
    """One year's rate as a decimal, or None when the method is not understood."""
    if dist is None:
        return None
    if dist.kind == DistributionKind.FIXED:
        pct = dist.value if dist.value is not None else defaults.inflation_fixed_pct
    elif dist.kind == DistributionKind.NORMAL:
        mean = dist.mean if dist.mean is not None else defaults.inflation_normal_mean_pct
        sd = dist.sd if dist.sd is not None else defaults.inflation_normal_sd_pct
        pct = draw_normal(rng, mean, sd)
    elif dist.kind == DistributionKind.UNIFORM:
        lower = dist.lower if dist.lower is not None else defaults.inflation_uniform_lower_pct
        upper = dist.upper if dist.upper is not None else defaults.inflation_uniform_upper_pct
        pct = draw_uniform(rng, lower, upper)
    else:
        return None
    return pct / 100.0
