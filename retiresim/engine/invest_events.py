# engine/invest_events.py

import logging
from typing import Dict, Tuple

from retiresim.config import simulation_defaults as defaults
from retiresim.engine.state import TrialContext, YearState
from retiresim.models import TAX_STATUS_KEY, AccountTaxStatus

logger = logging.getLogger(__name__)

# Categories that can receive new money (pre-tax is contribution-only via payroll)
INVESTABLE_CATEGORIES = (
    AccountTaxStatus.AFTER_TAX.value,
    AccountTaxStatus.NON_RETIREMENT.value,
    AccountTaxStatus.TAX_EXEMPT.value,
)


def _plan_purchases(allocation: Dict[str, Dict[str, float]], excess: float) -> Dict[str, float]:
    """Splits `excess` across target accounts: tax-status split first, then per-account percents."""
    split = allocation.get(TAX_STATUS_KEY, {})
    weights = {cat: max(0.0, split.get(cat, 0.0)) for cat in INVESTABLE_CATEGORIES}
    weight_total = sum(weights.values())
    if weight_total <= 0:
        return {}

    plan: Dict[str, float] = {}
    for cat in INVESTABLE_CATEGORIES:
        cat_amount = excess * weights[cat] / weight_total
        targets = allocation.get(cat, {})
        if cat_amount <= 0 or not targets:
            continue
        sub_total = sum(max(0.0, p) for p in targets.values())
        for name, pct in targets.items():
            share = max(0.0, pct) / sub_total if sub_total > 0 else 1.0 / len(targets)
            plan[name] = plan.get(name, 0.0) + cat_amount * share

    planned = sum(plan.values())
    if planned > 0 and abs(planned - excess) > defaults.money_epsilon:
        # Categories without targets leave a gap; scale the rest up to the full excess
        scale = excess / planned
        plan = {name: amt * scale for name, amt in plan.items()}
    return plan


def process_invest_events(ctx: TrialContext, state: YearState) -> Tuple[YearState, Dict[str, float]]:
    """
    Sweeps cash above the year's maximum into the invest strategy's targets.

    After-tax targets are capped at their inflation-adjusted annual contribution
    limit. Anything trimmed (or aimed at pre-tax / unknown accounts) is spread
    over the strategy's non-retirement targets in proportion to their planned
    purchases, or left in cash when there are none.

    Returns:
        (state, {investment name: amount bought})
    """
    purchases: Dict[str, float] = {}
    snapshot = ctx.invest_snapshots[state.year_index]
    if snapshot is None:
        return state, purchases

    max_cash = snapshot.maximum_cash if snapshot.maximum_cash is not None else defaults.default_maximum_cash
    excess = state.cash - max_cash
    if excess <= defaults.money_epsilon:
        return state, purchases

    plan = _plan_purchases(snapshot.allocation, excess)
    if not plan:
        msg = f"Invest strategy '{snapshot.event_name}' has no investable targets; ${excess:,.2f} stays in cash"
        logger.warning(msg)
        ctx.log.add(state.year, "warning", msg)
        return state, purchases

    # --- Caps and invalid targets ---
    unallocated = 0.0
    for name in list(plan):
        inv = state.find(name)
        if inv is None or inv.tax_status == AccountTaxStatus.PRE_TAX:
            unallocated += plan[name]
            plan[name] = 0.0
            continue
        if inv.tax_status == AccountTaxStatus.AFTER_TAX:
            initial = ctx.scenario.investment(name)
            if initial is not None and initial.max_annual_contribution:
                limit = initial.max_annual_contribution * state.inflation_factor
                if plan[name] > limit:
                    unallocated += plan[name] - limit
                    plan[name] = limit

    # --- Redistribute trimmed money to non-retirement targets ---
    if unallocated > defaults.money_epsilon:
        receivers = {}
        for name, amt in plan.items():
            inv = state.find(name)
            if inv is not None and inv.tax_status == AccountTaxStatus.NON_RETIREMENT:
                receivers[name] = amt
        if receivers:
            base = sum(receivers.values())
            for name, amt in receivers.items():
                share = amt / base if base > 0 else 1.0 / len(receivers)
                plan[name] += unallocated * share
        else:
            msg = f"${unallocated:,.2f} could not be invested (no non-retirement targets); left in cash"
            logger.warning(msg)
            ctx.log.add(state.year, "warning", msg)

    # --- Apply ---
    for name, amt in plan.items():
        if amt <= defaults.money_epsilon:
            continue
        inv = state.find(name)
        inv.value += amt
        inv.cost_basis += amt
        state.cash -= amt
        purchases[name] = amt
        ctx.log.add(state.year, "invest", f"Invested ${amt:,.2f} in {name}")

    return state, purchases
