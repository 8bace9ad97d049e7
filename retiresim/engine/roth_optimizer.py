# engine/roth_optimizer.py

import logging
from typing import Dict, List, Tuple

import numpy as np

from retiresim.config import simulation_defaults as defaults
from retiresim.engine.state import TrialContext, YearState
from retiresim.engine.tax_engine import adjust_tax_data, net_taxable_income
from retiresim.engine.withdrawal_engine import transfer_in_kind
from retiresim.models import AccountTaxStatus, Bracket, SyntheticReason

logger = logging.getLogger(__name__)

ROTH_INCOME_KEY = "Roth Conversion"


def optimal_roth_conversion(net_taxable: float, federal_brackets: List[Bracket]) -> float:
    """
    Room left in the current marginal federal bracket.

    Args:
        net_taxable: Taxable income BEFORE this conversion.
        federal_brackets: The year's indexed federal brackets.

    Returns:
        bracket ceiling - net_taxable, or 0 in the top (unbounded) bracket.
    """
    for low, high, _rate in federal_brackets:
        if low <= net_taxable < high:
            if not np.isfinite(high):
                return 0.0
            return max(0.0, high - net_taxable)
    return 0.0


def process_roth_conversion(ctx: TrialContext, state: YearState) -> Tuple[YearState, Dict[str, float]]:
    """
    Converts pre-tax balances into "<source> (Roth)" after-tax accounts, filling
    the current federal bracket. No-op unless the optimizer is enabled and the
    year falls inside its window.
    """
    breakdown: Dict[str, float] = {}
    scenario = ctx.scenario

    if not scenario.roth_optimizer.covers(state.year):
        return state, breakdown
    if not scenario.roth_conversion_strategy:
        logger.debug("Year %d: Roth optimizer enabled but no source order", state.year)
        return state, breakdown

    tax_data = adjust_tax_data(ctx.tax_tables, state.marital_status, state.year,
                               state.year_index, state.inflation_factor)
    net = net_taxable_income(state.cur_year_income, state.cur_year_ss, tax_data.deduction)
    target = optimal_roth_conversion(net, tax_data.federal)
    if target <= defaults.money_epsilon:
        return state, breakdown

    moved, transfers = transfer_in_kind(state, scenario.roth_conversion_strategy, target,
                                        SyntheticReason.ROTH, AccountTaxStatus.AFTER_TAX)
    for source, dest, amt in transfers:
        ctx.log.add(state.year, "roth", f"Converted ${amt:,.2f} from {source} into {dest}")

    if moved > 0:
        state.cur_year_income += moved
        breakdown[ROTH_INCOME_KEY] = moved
    return state, breakdown
