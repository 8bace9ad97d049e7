# engine/withdrawal_engine.py
#
# Liquidates accounts in a caller-supplied priority order.
#

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from retiresim.config import simulation_defaults as defaults
from retiresim.models import AccountTaxStatus, Investment, SyntheticReason

logger = logging.getLogger(__name__)


@dataclass
class WithdrawalResult:
    total_paid: float = 0.0
    withdrawals: Dict[str, float] = field(default_factory=dict)
    early_withdrawals: float = 0.0
    realized_gains: float = 0.0


def reduce_holding(inv: Investment, amount: float) -> float:
    """
    Sells `amount` from `inv`, shrinking cost basis in proportion to value.

    Returns:
        The capital gain realized by the sale (0 when basis >= value).
    """
    old_value = inv.value
    if old_value <= 0 or amount <= 0:
        return 0.0
    gain_pct = max(0.0, (old_value - inv.cost_basis) / old_value)
    new_value = max(0.0, old_value - amount)
    inv.value = new_value
    inv.cost_basis = max(0.0, inv.cost_basis * (new_value / old_value))
    return amount * gain_pct


def perform_withdrawal(amount_needed: float, state, order: Iterable[str], user_age: float) -> WithdrawalResult:
    """
    The Core Engine: withdraws `amount_needed` from investments in `order`.

    Args:
        amount_needed: Dollars to raise.
        state: The YearState whose investments are mutated in place.
        order: Investment names in priority order; unknown names are skipped.
        user_age: Pre-tax withdrawals below the early-withdrawal age accrue
            into the year's early-withdrawal total (penalized next year).

    Returns:
        WithdrawalResult; total_paid may be less than requested when accounts
        run dry.
    """
    result = WithdrawalResult()
    remaining = amount_needed
    if remaining <= 0:
        return result

    for name in order:
        if remaining <= 0:
            break
        inv = state.find(name)
        if inv is None:
            logger.debug("Withdrawal order names unknown investment %s", name)
            continue
        if inv.value <= 0:
            continue

        amt = min(inv.value, remaining)
        gain = reduce_holding(inv, amt)
        remaining -= amt
        result.total_paid += amt
        result.withdrawals[name] = result.withdrawals.get(name, 0.0) + amt

        # Tax characterization
        if inv.tax_status == AccountTaxStatus.NON_RETIREMENT:
            result.realized_gains += gain
        elif inv.tax_status == AccountTaxStatus.PRE_TAX:
            state.cur_year_income += amt
            if user_age is not None and user_age < defaults.early_withdrawal_age:
                result.early_withdrawals += amt

    state.cur_year_gains += result.realized_gains
    state.cur_year_early_withdrawals += result.early_withdrawals

    if remaining > defaults.money_epsilon:
        logger.debug("Withdrawal shortfall of %.2f (requested %.2f)", remaining, amount_needed)
    return result


def settle_payment(amount: float, state, order: Iterable[str], user_age: float) -> float:
    """
    Pays `amount` from cash first, then through the withdrawal waterfall.

    Returns:
        The amount actually paid.
    """
    if amount <= 0:
        return 0.0
    from_cash = min(max(0.0, state.cash), amount)
    state.cash -= from_cash
    shortfall = amount - from_cash
    if shortfall <= 0:
        return from_cash
    # Sale proceeds are spent immediately; they never rest in cash.
    result = perform_withdrawal(shortfall, state, order, user_age)
    return from_cash + result.total_paid


def transfer_in_kind(state,
                     order: Iterable[str],
                     amount: float,
                     reason: SyntheticReason,
                     target_status: AccountTaxStatus) -> Tuple[float, List[Tuple[str, str, float]]]:
    """
    Moves up to `amount` out of pre-tax accounts (in `order`) into synthesized
    accounts, one per source, created on first use as "<source> (RMD)" or
    "<source> (Roth)". The targets keep a back-reference to their source.

    Returns:
        (total moved, [(source name, target name, amount), ...])
    """
    moved = 0.0
    transfers: List[Tuple[str, str, float]] = []
    remaining = amount

    for name in order:
        if remaining <= defaults.money_epsilon:
            break
        source = state.find(name)
        if source is None or source.tax_status != AccountTaxStatus.PRE_TAX or source.value <= 0:
            continue

        amt = min(source.value, remaining)
        reduce_holding(source, amt)

        target = state.find_synthetic(source.name, reason)
        if target is None:
            label = "RMD" if reason == SyntheticReason.RMD else "Roth"
            target = Investment(
                name=f"{source.name} ({label})",
                value=0.0,
                cost_basis=0.0,
                tax_status=target_status,
                investment_type=source.investment_type,
                source_name=source.name,
                synthesized_for=reason,
            )
            state.investments.append(target)
            logger.debug("Created %s account %s", reason.value, target.name)

        target.value += amt
        target.cost_basis += amt
        remaining -= amt
        moved += amt
        transfers.append((source.name, target.name, amt))

    return moved, transfers
