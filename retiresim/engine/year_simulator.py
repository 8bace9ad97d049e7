# engine/year_simulator.py

"""
One simulated year: a strictly sequential pipeline in which every step mutates
the YearState consumed by the next.

    1. income events
    2. required minimum distributions
    3. investment returns
    4. Roth conversion
    5. previous-year taxes + non-discretionary expenses
    6. discretionary expenses
    7. invest events
    8. rebalance events
    9. financial goal check
"""

import logging
from typing import Dict, Optional

from retiresim.engine.expenses import (
    calculate_discretionary_expenses,
    calculate_non_discretionary_expenses,
    pay_discretionary_expenses,
    pay_non_discretionary_expenses,
)
from retiresim.engine.income_events import process_income_events
from retiresim.engine.invest_events import process_invest_events
from retiresim.engine.investment_returns import process_investment_returns
from retiresim.engine.rebalance_events import process_rebalance_events
from retiresim.engine.rmd import process_rmds
from retiresim.engine.roth_optimizer import process_roth_conversion
from retiresim.engine.state import TrialContext, YearState
from retiresim.engine.tax_engine import DeferredTaxes, adjust_tax_data, calculate_deferred_taxes

logger = logging.getLogger(__name__)


def initial_state(ctx: TrialContext, year_index: int = 0) -> YearState:
    """State at the start of the first simulated year, cloned from the scenario."""
    scenario = ctx.scenario
    year = ctx.current_year + year_index
    return YearState(
        year=year,
        year_index=year_index,
        user_age=year - scenario.birth_year,
        marital_status=ctx.marital_status[year_index],
        inflation_factor=float(ctx.inflation[year_index]),
        cash=scenario.initial_cash,
        investments=scenario.clone_investments(),
    )


def deferred_taxes_for(ctx: TrialContext, previous: Optional[YearState]) -> DeferredTaxes:
    """Previous year's bill, using the previous year's indexed tables and marital status."""
    if previous is None:
        return DeferredTaxes()
    prev_tax_data = adjust_tax_data(ctx.tax_tables, previous.marital_status, previous.year,
                                    previous.year_index, previous.inflation_factor)
    return calculate_deferred_taxes(
        income=previous.cur_year_income,
        social_security=previous.cur_year_ss,
        capital_gains=previous.cur_year_gains,
        early_withdrawals=previous.cur_year_early_withdrawals,
        tax_data=prev_tax_data,
    )


def _merge(target: Dict[str, float], part: Dict[str, float]):
    for key, amt in part.items():
        target[key] = target.get(key, 0.0) + amt


def simulate_year(ctx: TrialContext, year_index: int, previous: Optional[YearState]) -> YearState:
    """
    Runs the full pipeline for `year_index`.

    Args:
        ctx: Per-trial context (scenario, tax tables, derived arrays, rng, log).
        year_index: 0-based index into the trial horizon.
        previous: Final state of the previous year, or None for the first year.
            It is never mutated.

    Returns:
        The final YearState for this year.
    """
    year = ctx.current_year + year_index
    if previous is None:
        state = initial_state(ctx, year_index)
    else:
        state = previous.roll_forward(
            year=year,
            year_index=year_index,
            user_age=year - ctx.scenario.birth_year,
            marital_status=ctx.marital_status[year_index],
            inflation_factor=float(ctx.inflation[year_index]),
        )

    deferred = deferred_taxes_for(ctx, previous)
    for key, amt in deferred.as_breakdown().items():
        if amt > 0:
            ctx.log.add(year, "tax", f"{key}: ${amt:,.2f}")
    non_discretionary = calculate_non_discretionary_expenses(ctx, state)

    # -----------------------
    # STEP 1: Income events
    # -----------------------
    state, income = process_income_events(ctx, state)
    _merge(state.income_breakdown, income)

    # -----------------------
    # STEP 2: RMDs (before growth, on prior year-end balances)
    # -----------------------
    state, rmd_income = process_rmds(ctx, state, previous)
    _merge(state.income_breakdown, rmd_income)

    # -----------------------
    # STEP 3: Investment returns
    # -----------------------
    state, investment_income = process_investment_returns(ctx, state)
    _merge(state.income_breakdown, investment_income)

    # -----------------------
    # STEP 4: Roth conversion
    # -----------------------
    state, roth_income = process_roth_conversion(ctx, state)
    _merge(state.income_breakdown, roth_income)

    # -----------------------
    # STEP 5: Previous-year taxes + non-discretionary expenses
    # -----------------------
    state, mandatory = pay_non_discretionary_expenses(ctx, state, deferred, non_discretionary)
    _merge(state.expense_breakdown, mandatory)

    # -----------------------
    # STEP 6: Discretionary expenses
    # -----------------------
    desired = calculate_discretionary_expenses(ctx, state)
    state, discretionary = pay_discretionary_expenses(ctx, state, desired)
    _merge(state.expense_breakdown, discretionary)

    # -----------------------
    # STEP 7: Invest events
    # -----------------------
    state, _purchases = process_invest_events(ctx, state)

    # -----------------------
    # STEP 8: Rebalance events
    # -----------------------
    state, _changes = process_rebalance_events(ctx, state)

    # -----------------------
    # STEP 9: Financial goal
    # -----------------------
    state.financial_goal_met = state.total_assets >= ctx.scenario.financial_goal

    logger.debug("Year %d: assets %.2f, cash %.2f, goal met %s",
                 year, state.total_assets, state.cash, state.financial_goal_met)
    return state
