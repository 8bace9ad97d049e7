# engine/rebalance_events.py

import logging
from typing import Dict, List, Tuple

from retiresim.config import simulation_defaults as defaults
from retiresim.engine.state import TrialContext, YearState
from retiresim.engine.withdrawal_engine import reduce_holding
from retiresim.models import AccountTaxStatus, Investment

logger = logging.getLogger(__name__)


def process_rebalance_events(ctx: TrialContext, state: YearState) -> Tuple[YearState, Dict[str, float]]:
    """
    Re-allocates existing balances across the strategy's targets, separately
    within each tax-status category; no money enters or leaves the category.
    Sales from non-retirement accounts realize capital gains.

    Returns:
        (state, {investment name: signed change in value})
    """
    changes: Dict[str, float] = {}
    snapshot = ctx.rebalance_snapshots[state.year_index]
    if snapshot is None:
        return state, changes

    groups: Dict[AccountTaxStatus, List[Tuple[Investment, float]]] = {}
    for name, pct in snapshot.allocation.items():
        inv = state.find(name)
        if inv is None:
            logger.debug("Rebalance target %s does not exist", name)
            continue
        groups.setdefault(inv.tax_status, []).append((inv, max(0.0, pct)))

    for status, members in groups.items():
        total_value = sum(inv.value for inv, _ in members)
        pct_total = sum(pct for _, pct in members)
        if total_value <= 0 or pct_total <= 0:
            continue

        targets = {inv.name: total_value * pct / pct_total for inv, pct in members}

        # Sell first, then buy with the proceeds
        for inv, _ in members:
            excess = inv.value - targets[inv.name]
            if excess > defaults.money_epsilon:
                gain = reduce_holding(inv, excess)
                if status == AccountTaxStatus.NON_RETIREMENT:
                    state.cur_year_gains += gain
                changes[inv.name] = -excess
                ctx.log.add(state.year, "rebalance", f"Sold ${excess:,.2f} of {inv.name}")
        for inv, _ in members:
            shortfall = targets[inv.name] - inv.value
            if shortfall > defaults.money_epsilon:
                inv.value += shortfall
                inv.cost_basis += shortfall
                changes[inv.name] = changes.get(inv.name, 0.0) + shortfall
                ctx.log.add(state.year, "rebalance", f"Bought ${shortfall:,.2f} of {inv.name}")

    return state, changes
