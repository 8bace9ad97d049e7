# engine/expenses.py

import logging
from typing import Dict, Tuple

from retiresim.config import simulation_defaults as defaults
from retiresim.engine.annual_change import household_share, next_base_amount
from retiresim.engine.state import TrialContext, YearState
from retiresim.engine.tax_engine import DeferredTaxes
from retiresim.engine.withdrawal_engine import settle_payment
from retiresim.models import EventType

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Amount calculation
# ----------------------------------------------------------------------
def _calculate_expenses(ctx: TrialContext, state: YearState, discretionary: bool) -> Dict[str, float]:
    amounts: Dict[str, float] = {}
    warn = ctx.log.warner(state.year)

    for name in ctx.active_events[state.year_index]:
        event = ctx.scenario.event(name)
        if event is None or event.type != EventType.EXPENSE or event.expense is None:
            continue
        spec = event.expense
        if spec.is_discretionary != discretionary:
            continue

        base = next_base_amount(spec.initial_amount, state.expense_event_states.get(name),
                                spec.annual_change, ctx.rng, warn)
        state.expense_event_states[name] = base
        amount = household_share(base, spec.inflation_adjusted, state.inflation_factor,
                                 spec.married_percentage, state.marital_status)
        if amount > 0:
            amounts[name] = amount
    return amounts


def calculate_non_discretionary_expenses(ctx: TrialContext, state: YearState) -> Dict[str, float]:
    """This year's amount of each active non-discretionary expense; carries bases forward."""
    return _calculate_expenses(ctx, state, discretionary=False)


def calculate_discretionary_expenses(ctx: TrialContext, state: YearState) -> Dict[str, float]:
    """This year's desired amount of each active discretionary expense."""
    return _calculate_expenses(ctx, state, discretionary=True)


# ----------------------------------------------------------------------
# Payment
# ----------------------------------------------------------------------
def pay_non_discretionary_expenses(ctx: TrialContext,
                                   state: YearState,
                                   deferred: DeferredTaxes,
                                   expenses: Dict[str, float]) -> Tuple[YearState, Dict[str, float]]:
    """
    Pays last year's deferred taxes plus this year's mandatory expenses through
    the expense withdrawal order.

    Returns:
        (state, expense breakdown of what was owed)
    """
    breakdown: Dict[str, float] = {}
    for key, amt in deferred.as_breakdown().items():
        if amt > 0:
            breakdown[key] = amt
    for name, amt in expenses.items():
        breakdown[name] = amt
        ctx.log.add(state.year, "expense", f"{name}: ${amt:,.2f} (non-discretionary)")

    total_due = sum(breakdown.values())
    state.cur_year_taxes = deferred.total
    if total_due <= 0:
        return state, breakdown

    paid = settle_payment(total_due, state, ctx.scenario.expense_withdrawal_strategy, state.user_age)
    state.cur_year_expenses += paid

    shortfall = total_due - paid
    if shortfall > defaults.money_epsilon:
        msg = f"Could not pay ${shortfall:,.2f} of ${total_due:,.2f} in taxes and mandatory expenses"
        logger.warning(msg)
        ctx.log.add(state.year, "warning", msg)
    return state, breakdown


def pay_discretionary_expenses(ctx: TrialContext,
                               state: YearState,
                               desired: Dict[str, float]) -> Tuple[YearState, Dict[str, float]]:
    """
    Pays discretionary expenses in spending-strategy order without letting total
    assets drop below the financial goal. Processing stops at the first payment
    that is capped or comes up short.

    Returns:
        (state, {event name: amount paid})
    """
    breakdown: Dict[str, float] = {}
    goal = ctx.scenario.financial_goal
    order = [name for name in ctx.scenario.spending_strategy if name in desired]

    for name in order:
        want = desired[name]
        max_affordable = max(0.0, state.total_assets - goal)
        pay = min(want, max_affordable)
        if pay <= defaults.money_epsilon:
            logger.debug("Year %d: no headroom above goal for %s", state.year, name)
            break

        paid = settle_payment(pay, state, ctx.scenario.expense_withdrawal_strategy, state.user_age)
        if paid > 0:
            state.cur_year_expenses += paid
            state.discretionary_paid += paid
            breakdown[name] = paid
            ctx.log.add(state.year, "expense", f"{name}: paid ${paid:,.2f} of ${want:,.2f} (discretionary)")

        short = paid < pay - defaults.money_epsilon
        capped = pay < want - defaults.money_epsilon
        if short or capped:
            break

    return state, breakdown
