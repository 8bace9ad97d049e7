# engine/annual_change.py
#
# Year-over-year evolution of income and expense event amounts.
#

from typing import Callable, Optional

import numpy as np

from retiresim.engine.sampling import sample_change
from retiresim.models import Distribution


def next_base_amount(initial_amount: float,
                     previous_base: Optional[float],
                     annual_change: Optional[Distribution],
                     rng: np.random.Generator,
                     warn: Optional[Callable[[str], None]] = None) -> float:
    """
    Applies one year of expected annual change to last year's base (or the
    initial amount the first time the event is active). Never negative.
    """
    base = initial_amount if previous_base is None else previous_base
    base += sample_change(annual_change, base, rng, "annual_change", warn)
    return max(0.0, base)


def household_share(base: float,
                    inflation_adjusted: bool,
                    inflation_factor: float,
                    married_percentage: Optional[float],
                    marital_status: str) -> float:
    """
    This year's amount for the household: inflated when flagged, and reduced to
    the user's percentage once the household is single.
    """
    amount = base * inflation_factor if inflation_adjusted else base
    if marital_status == "single" and married_percentage is not None:
        amount *= married_percentage / 100.0
    return amount
