"""
Bracket-based U.S. style tax math for the yearly simulation.

Bracket boundaries and the standard deduction are indexed with the trial's
cumulative inflation factor; income tax is a progressive sum over brackets and
capital gains are stacked on top of ordinary income.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List

import numpy as np

from retiresim.config import simulation_defaults as defaults
from retiresim.models import Bracket, TaxTables

logger = logging.getLogger(__name__)

FEDERAL_TAX_KEY = "Federal Income Tax (Previous Year)"
STATE_TAX_KEY = "State Income Tax (Previous Year)"
CAPITAL_GAINS_TAX_KEY = "Capital Gains Tax (Previous Year)"
EARLY_WITHDRAWAL_PENALTY_KEY = "Early Withdrawal Penalty (Previous Year)"


# --- 1. Indexed constants ---

@dataclass(frozen=True)
class AdjustedTaxData:
    deduction: float
    federal: List[Bracket]
    state: List[Bracket]
    capital_gains: List[Bracket]


def _index_brackets(brackets: List[Bracket], factor: float) -> List[Bracket]:
    return [
        Bracket(low * factor, high * factor if np.isfinite(high) else np.inf, rate)
        for low, high, rate in brackets
    ]


def adjust_tax_data(
    tables: TaxTables,
    marital_status: str,
    year: int,
    year_index: int,
    inflation_factor: float,
) -> AdjustedTaxData:
    """
    Returns the deduction and bracket tables for one simulated year.

    Year index 0 uses the tables as given; later years scale every boundary and
    the deduction by the cumulative inflation factor for that year.
    """
    factor = 1.0 if year_index == 0 else float(inflation_factor)
    status = marital_status if marital_status in tables.standard_deduction else "single"
    deduction = tables.standard_deduction.get(status, 0.0) * factor

    logger.debug("Tax data for %d (%s): factor %.4f, deduction %.0f", year, status, factor, deduction)
    return AdjustedTaxData(
        deduction=deduction,
        federal=_index_brackets(tables.brackets_for(tables.federal, status), factor),
        state=_index_brackets(tables.brackets_for(tables.state, status), factor) if tables.state else [],
        capital_gains=_index_brackets(tables.brackets_for(tables.capital_gains, status), factor),
    )


# --- 2. Core formulas ---

def calculate_income_tax(taxable_income: float, brackets: List[Bracket]) -> float:
    """Progressive tax: each bracket taxes the slice of income inside [low, high)."""
    if taxable_income <= 0:
        return 0.0
    tax = 0.0
    for low, high, rate in brackets:
        if taxable_income <= low:
            break
        top = min(taxable_income, high) if np.isfinite(high) else taxable_income
        tax += (top - low) * rate
    return tax


def calculate_capital_gains_tax(gains: float, other_taxable_income: float, brackets: List[Bracket]) -> float:
    """
    Taxes `gains` stacked on top of ordinary taxable income: only the part of
    each bracket above the ordinary-income floor is filled by gains.
    """
    if gains <= 0:
        return 0.0
    floor = max(0.0, other_taxable_income)
    total = floor + gains
    tax = 0.0
    for low, high, rate in brackets:
        bracket_start = max(low, floor)
        bracket_end = min(high, total) if np.isfinite(high) else total
        tax += max(0.0, bracket_end - bracket_start) * rate
    return tax


def net_taxable_income(income: float, social_security: float, deduction: float) -> float:
    """
    Income after deduction, with Social Security counted at 85%
    (income - 0.15 * SS, a deliberate approximation of the tiered rule).
    """
    gross = income - defaults.ss_untaxed_fraction * social_security
    return max(0.0, gross - deduction)


# --- 3. Deferred (previous-year) bill ---

@dataclass(frozen=True)
class DeferredTaxes:
    federal: float = 0.0
    state: float = 0.0
    capital_gains: float = 0.0
    early_withdrawal_penalty: float = 0.0

    @property
    def total(self) -> float:
        return self.federal + self.state + self.capital_gains + self.early_withdrawal_penalty

    def as_breakdown(self) -> Dict[str, float]:
        return {
            FEDERAL_TAX_KEY: self.federal,
            STATE_TAX_KEY: self.state,
            CAPITAL_GAINS_TAX_KEY: self.capital_gains,
            EARLY_WITHDRAWAL_PENALTY_KEY: self.early_withdrawal_penalty,
        }


def calculate_deferred_taxes(
    income: float,
    social_security: float,
    capital_gains: float,
    early_withdrawals: float,
    tax_data: AdjustedTaxData,
) -> DeferredTaxes:
    """
    Previous year's bill, computed with the previous year's indexed tables.

    Args:
        income: Previous year's taxable income total (SS included).
        social_security: Previous year's Social Security benefits.
        capital_gains: Previous year's realized gains.
        early_withdrawals: Previous year's pre-tax withdrawals made before 59.5.
        tax_data: Output of adjust_tax_data for the previous year.
    """
    net = net_taxable_income(income, social_security, tax_data.deduction)
    return DeferredTaxes(
        federal=calculate_income_tax(net, tax_data.federal),
        state=calculate_income_tax(net, tax_data.state),
        capital_gains=calculate_capital_gains_tax(capital_gains, net, tax_data.capital_gains),
        early_withdrawal_penalty=defaults.early_withdrawal_penalty_rate * max(0.0, early_withdrawals),
    )
