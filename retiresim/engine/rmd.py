# engine/rmd.py

"""
Required Minimum Distributions.

The RMD for a year is the prior year-end pre-tax balance divided by the
distribution period for the user's age (exact-age lookup in the Uniform
Lifetime table). Withdrawn amounts are moved in kind into a non-retirement
"<source> (RMD)" account rather than to cash, and count as ordinary income.
"""

import logging
from typing import Dict, Mapping, Optional, Tuple

from retiresim.config import simulation_defaults as defaults
from retiresim.engine.state import TrialContext, YearState
from retiresim.engine.withdrawal_engine import transfer_in_kind
from retiresim.models import AccountTaxStatus, SyntheticReason

logger = logging.getLogger(__name__)

RMD_INCOME_KEY = "Required Minimum Distribution"


def get_rmd_factor(age: int, rmd_tables: Mapping[str, Mapping[int, float]]) -> Optional[float]:
    """
    Returns the distribution period for `age`.

    Parameters
    ----------
    age : int
        Age in the distribution calendar year.
    rmd_tables : mapping
        Table name -> {age: period}; the Uniform Lifetime table is used.

    Returns
    -------
    float or None
        None when the table or the exact age is missing.
    """
    table = rmd_tables.get(defaults.rmd_table_name)
    if not table:
        return None
    period = table.get(int(age))
    if period is None or period <= 0:
        return None
    return float(period)


def pre_tax_balance(state: YearState) -> float:
    return sum(inv.value for inv in state.investments if inv.tax_status == AccountTaxStatus.PRE_TAX)


def process_rmds(ctx: TrialContext,
                 state: YearState,
                 previous_state: Optional[YearState] = None) -> Tuple[YearState, Dict[str, float]]:
    """
    Performs this year's RMD.

    Args:
        ctx: Trial context (scenario RMD order, tax tables, log).
        state: Current year state; mutated in place.
        previous_state: Last year's final state. In the first simulated year
            the current balances stand in for the prior year-end balances.

    Returns:
        (state, {"Required Minimum Distribution": amount}) with an empty map
        when no distribution was taken.
    """
    breakdown: Dict[str, float] = {}

    if state.user_age < defaults.rmd_start_age:
        return state, breakdown

    order = ctx.scenario.rmd_strategy
    if not order:
        logger.debug("Year %d: no RMD source order configured", state.year)
        return state, breakdown

    period = get_rmd_factor(state.user_age, ctx.tax_tables.rmd_tables)
    if period is None:
        logger.debug("Year %d: no distribution period for age %d", state.year, state.user_age)
        return state, breakdown

    prior_balance = pre_tax_balance(previous_state if previous_state is not None else state)
    if prior_balance <= 0:
        return state, breakdown

    required = prior_balance / period
    moved, transfers = transfer_in_kind(state, order, required,
                                        SyntheticReason.RMD, AccountTaxStatus.NON_RETIREMENT)

    for source, target, amt in transfers:
        ctx.log.add(state.year, "rmd", f"Withdrew ${amt:,.2f} from {source} into {target}")

    shortfall = required - moved
    if shortfall > defaults.money_epsilon:
        msg = f"RMD shortfall of ${shortfall:,.2f} (required ${required:,.2f})"
        logger.warning(msg)
        ctx.log.add(state.year, "warning", msg)

    if moved > 0:
        state.cur_year_income += moved
        breakdown[RMD_INCOME_KEY] = moved
    return state, breakdown
