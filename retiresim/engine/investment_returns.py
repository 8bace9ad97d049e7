# engine/investment_returns.py

import logging
from typing import Dict, Tuple

from retiresim.engine.sampling import sample_change
from retiresim.engine.state import TrialContext, YearState
from retiresim.models import AccountTaxStatus

logger = logging.getLogger(__name__)

TAX_EXEMPT_INCOME = "tax-exempt-interest"


def process_investment_returns(ctx: TrialContext, state: YearState) -> Tuple[YearState, Dict[str, float]]:
    """
    Grows every investment and pays its income to cash.

    Growth and income are both drawn against the value at the start of this
    step. The expense ratio is charged on the average of the start and grown
    values. Income is taxable unless the account is tax-exempt or the income
    type is tax-exempt interest.

    Returns:
        (state, income breakdown keyed "Income - <type> (<name>)", with a
        " (Non-Taxable)" suffix for untaxed income)
    """
    breakdown: Dict[str, float] = {}
    warn = ctx.log.warner(state.year)

    for inv in state.investments:
        itype = inv.investment_type
        start_value = inv.value

        growth = sample_change(itype.expected_return, start_value, ctx.rng, "investment_return", warn)
        income = sample_change(itype.expected_income, start_value, ctx.rng, "investment_income", warn)

        inv.value = max(0.0, start_value + growth)
        if itype.expense_ratio:
            fee = (start_value + inv.value) / 2.0 * itype.expense_ratio / 100.0
            inv.value = max(0.0, inv.value - fee)

        if income <= 0:
            continue

        state.cash += income
        key = f"Income - {itype.income_type} ({inv.name})"
        taxable = inv.tax_status != AccountTaxStatus.TAX_EXEMPT and itype.income_type != TAX_EXEMPT_INCOME
        if taxable:
            state.cur_year_income += income
        else:
            key += " (Non-Taxable)"
        breakdown[key] = breakdown.get(key, 0.0) + income

    logger.debug("Year %d investment income: %s", state.year, breakdown)
    return state, breakdown
