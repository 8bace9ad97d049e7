# engine/income_events.py

import logging
from typing import Dict, Tuple

from retiresim.engine.annual_change import household_share, next_base_amount
from retiresim.engine.state import TrialContext, YearState
from retiresim.models import EventType

logger = logging.getLogger(__name__)


def process_income_events(ctx: TrialContext, state: YearState) -> Tuple[YearState, Dict[str, float]]:
    """
    Adds this year's amount of every active income event to cash and to taxable
    income. Social Security events also accumulate into cur_year_ss.

    Returns:
        (state, {event name: amount})
    """
    breakdown: Dict[str, float] = {}
    warn = ctx.log.warner(state.year)

    for name in ctx.active_events[state.year_index]:
        event = ctx.scenario.event(name)
        if event is None or event.type != EventType.INCOME or event.income is None:
            continue
        spec = event.income

        base = next_base_amount(spec.initial_amount, state.income_event_states.get(name),
                                spec.annual_change, ctx.rng, warn)
        state.income_event_states[name] = base

        amount = household_share(base, spec.inflation_adjusted, state.inflation_factor,
                                 spec.married_percentage, state.marital_status)
        if amount <= 0:
            continue

        state.cash += amount
        state.cur_year_income += amount
        if spec.is_social_security:
            state.cur_year_ss += amount
        breakdown[name] = breakdown.get(name, 0.0) + amount
        ctx.log.add(state.year, "income", f"{name}: received ${amount:,.2f}")

    logger.debug("Year %d income: %s", state.year, breakdown)
    return state, breakdown
