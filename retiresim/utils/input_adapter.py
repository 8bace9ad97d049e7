# utils/input_adapter.py
#
# Builds Scenario / TaxTables objects from plain dicts (JSON exports of the
# scenario store). Keys are accepted in camelCase, as exported, or snake_case.
#

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np

from retiresim.errors import ScenarioError
from retiresim.models import (
    TAX_STATUS_KEY,
    AccountTaxStatus,
    Bracket,
    Distribution,
    DistributionKind,
    Event,
    EventType,
    ExpenseSpec,
    IncomeSpec,
    Investment,
    InvestmentType,
    InvestSpec,
    RebalanceSpec,
    RothOptimizerSettings,
    Scenario,
    TaxTables,
)
from retiresim.utils.currency import clean_currency, clean_percent

logger = logging.getLogger(__name__)

# Method string -> (kind, is_percentage). Resolved once here, never re-parsed.
METHOD_MAP: Dict[str, Tuple[DistributionKind, Optional[bool]]] = {
    "fixedValue": (DistributionKind.FIXED, False),
    "fixedPercentage": (DistributionKind.FIXED, True),
    "normalValue": (DistributionKind.NORMAL, False),
    "normalPercentage": (DistributionKind.NORMAL, True),
    "normalDistribution": (DistributionKind.NORMAL, None),
    "uniformValue": (DistributionKind.UNIFORM, False),
    "uniformPercentage": (DistributionKind.UNIFORM, True),
    "sameYearAsAnotherEvent": (DistributionKind.SAME_YEAR_AS, False),
    "yearAfterAnotherEventEnd": (DistributionKind.YEAR_AFTER_END_OF, False),
    "fixed": (DistributionKind.FIXED, None),
    "normal": (DistributionKind.NORMAL, None),
    "uniform": (DistributionKind.UNIFORM, None),
    "startWith": (DistributionKind.SAME_YEAR_AS, False),
    "startAfter": (DistributionKind.YEAR_AFTER_END_OF, False),
}

# Nested invest allocation keys -> category
ALLOCATION_KEYS = {
    "taxStatusAllocation": TAX_STATUS_KEY,
    "preTaxAllocation": AccountTaxStatus.PRE_TAX.value,
    "afterTaxAllocation": AccountTaxStatus.AFTER_TAX.value,
    "nonRetirementAllocation": AccountTaxStatus.NON_RETIREMENT.value,
    "taxExemptAllocation": AccountTaxStatus.TAX_EXEMPT.value,
}

MARITAL_ALIASES = {
    "single": "single",
    "individual": "single",
    "married": "married",
    "couple": "married",
    "married_filing_jointly": "married",
}


# =============================================================================
# Small helpers
# =============================================================================
def _get(d: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key wins (camelCase first, then snake_case aliases)."""
    for key in keys:
        if key in d and d[key] is not None:
            return d[key]
    return default


def _num(val: Any, percent: bool = False) -> Optional[float]:
    if val is None:
        return None
    return clean_percent(val) if percent else clean_currency(val)


def _int(val: Any, label: str) -> Optional[int]:
    if val is None:
        return None
    try:
        return int(val)
    except (TypeError, ValueError):
        raise ScenarioError(f"{label} must be an integer, got {val!r}") from None


def _marital(val: Any) -> str:
    status = MARITAL_ALIASES.get(str(val).strip().lower()) if val is not None else "single"
    if status is None:
        raise ScenarioError(f"Unknown marital status: {val!r}")
    return status


# =============================================================================
# Distributions
# =============================================================================
def get_distribution(raw: Any, percentage: bool = False) -> Optional[Distribution]:
    """
    Accepts {method: "normalValue", normalValue: {mean, sd}}, the flat form
    {type: "normal", mean, stdev}, or a bare number (fixed).

    Args:
        raw: The serialized distribution.
        percentage: Units for forms that do not say (short "fixed"/"normal"/...).
    """
    if raw is None:
        return None
    if isinstance(raw, (int, float, str)) and not isinstance(raw, bool):
        return Distribution.fixed(_num(raw, percentage), is_percentage=percentage)
    if not isinstance(raw, Mapping):
        raise ScenarioError(f"Cannot read distribution from {raw!r}")

    method = _get(raw, "method", "type", default="")
    kind, is_pct = METHOD_MAP.get(method, (DistributionKind.UNKNOWN, None))
    if is_pct is None:
        amt_or_pct = _get(raw, "amtOrPct", "amt_or_pct")
        is_pct = (amt_or_pct == "percent") if amt_or_pct is not None else percentage
    is_pct = bool(_get(raw, "isPercentage", "is_percentage", default=is_pct))

    inner = raw.get(method) if method else None
    payload = inner if isinstance(inner, Mapping) else raw

    if kind in (DistributionKind.SAME_YEAR_AS, DistributionKind.YEAR_AFTER_END_OF):
        ref = inner if isinstance(inner, str) else _get(raw, "eventSeries", "event")
        return Distribution(kind, event=str(ref) if ref else None, method=method)

    value = inner if (inner is not None and not isinstance(inner, Mapping)) else _get(payload, "value")
    return Distribution(
        kind,
        value=_num(value, is_pct),
        mean=_num(_get(payload, "mean"), is_pct),
        sd=_num(_get(payload, "sd", "stdev", "standardDeviation"), is_pct),
        lower=_num(_get(payload, "lowerBound", "lower"), is_pct),
        upper=_num(_get(payload, "upperBound", "upper"), is_pct),
        is_percentage=is_pct,
        method=method,
    )


# =============================================================================
# Investments
# =============================================================================
def get_investment_type(raw: Mapping[str, Any]) -> InvestmentType:
    name = _get(raw, "name")
    if not name:
        raise ScenarioError("Investment type without a name")
    income_type = _get(raw, "incomeType", "income_type", default="dividend")
    if _get(raw, "taxability") in ("tax-exempt", False):
        income_type = "tax-exempt-interest"
    return InvestmentType(
        name=str(name),
        expected_return=get_distribution(_get(raw, "expectedAnnualReturn", "expected_return",
                                              "returnDistribution"), percentage=True),
        expected_income=get_distribution(_get(raw, "expectedAnnualIncome", "expected_income",
                                              "incomeDistribution"), percentage=True),
        expense_ratio=_num(_get(raw, "expenseRatio", "expense_ratio", default=0.0), percent=True),
        income_type=str(income_type),
    )


def get_investment(raw: Mapping[str, Any], types: Mapping[str, InvestmentType]) -> Investment:
    name = _get(raw, "name")
    if not name:
        raise ScenarioError("Investment without a name")

    type_ref = _get(raw, "investmentType", "investment_type")
    if isinstance(type_ref, Mapping):
        itype = get_investment_type(type_ref)
    elif type_ref in types:
        itype = types[type_ref]
    else:
        raise ScenarioError(f"Investment {name!r} references unknown investment type {type_ref!r}")

    status_raw = _get(raw, "accountTaxStatus", "taxStatus", "tax_status")
    try:
        status = AccountTaxStatus(str(status_raw))
    except ValueError:
        raise ScenarioError(f"Investment {name!r} has unknown tax status {status_raw!r}") from None

    value = clean_currency(_get(raw, "value", default=0.0))
    if value < 0:
        raise ScenarioError(f"Investment {name!r} has a negative value")
    return Investment(
        name=str(name),
        value=value,
        cost_basis=clean_currency(_get(raw, "costBasis", "cost_basis", default=value)),
        tax_status=status,
        investment_type=itype,
        max_annual_contribution=_num(_get(raw, "maxAnnualContribution", "max_annual_contribution")),
    )


# =============================================================================
# Events
# =============================================================================
def _nested_allocation(raw: Mapping[str, Any], final: bool) -> Dict[str, Dict[str, float]]:
    explicit = _get(raw, "finalAllocation" if final else "initialAllocation", "final" if final else "initial")
    if isinstance(explicit, Mapping):
        return {cat: {k: clean_percent(v) for k, v in m.items()} for cat, m in explicit.items()}
    allocation: Dict[str, Dict[str, float]] = {}
    for key, cat in ALLOCATION_KEYS.items():
        if final:
            key = "final" + key[0].upper() + key[1:]
        sub = raw.get(key)
        if isinstance(sub, Mapping):
            allocation[cat] = {k: clean_percent(v) for k, v in sub.items()}
    return allocation


def _flat_allocation(raw: Mapping[str, Any], final: bool) -> Dict[str, float]:
    keys = ("finalAllocation", "final") if final else ("allocation", "initialAllocation", "initial")
    sub = _get(raw, *keys)
    if not isinstance(sub, Mapping):
        return {}
    return {k: clean_percent(v) for k, v in sub.items()}


def _is_glide(raw: Mapping[str, Any]) -> bool:
    method = str(_get(raw, "method", "executionType", default="fixed"))
    return bool(_get(raw, "glidePath", "glide_path", default=method.lower() in ("glidepath", "glide_path")))


def _income_or_expense(raw: Mapping[str, Any]) -> Dict[str, Any]:
    return dict(
        initial_amount=clean_currency(_get(raw, "initialAmount", "initial_amount", default=0.0)),
        annual_change=get_distribution(_get(raw, "expectedAnnualChange", "annual_change",
                                            "changeDistribution")),
        inflation_adjusted=bool(_get(raw, "inflationAdjustment", "inflationAdjusted",
                                     "inflation_adjusted", default=False)),
        married_percentage=_num(_get(raw, "marriedPercentage", "married_percentage"), percent=True),
    )


def get_event(raw: Mapping[str, Any]) -> Event:
    name = _get(raw, "name")
    if not name:
        raise ScenarioError("Event without a name")
    try:
        etype = EventType(str(_get(raw, "type")).lower())
    except ValueError:
        raise ScenarioError(f"Event {name!r} has unknown type {_get(raw, 'type')!r}") from None

    payload = _get(raw, etype.value, default=raw)
    if not isinstance(payload, Mapping):
        raise ScenarioError(f"Event {name!r} has no {etype.value} details")

    income = expense = invest = rebalance = None
    if etype == EventType.INCOME:
        income = IncomeSpec(is_social_security=bool(_get(payload, "isSocialSecurity", "socialSecurity",
                                                         "is_social_security", default=False)),
                            **_income_or_expense(payload))
    elif etype == EventType.EXPENSE:
        expense = ExpenseSpec(is_discretionary=bool(_get(payload, "isDiscretionary", "discretionary",
                                                         "is_discretionary", default=False)),
                              **_income_or_expense(payload))
    elif etype == EventType.INVEST:
        invest = InvestSpec(
            initial=_nested_allocation(payload, final=False),
            final=_nested_allocation(payload, final=True) or None,
            glide_path=_is_glide(payload),
            modify_maximum_cash=bool(_get(payload, "modifyMaximumCash", "modify_maximum_cash", default=False)),
            new_maximum_cash=_num(_get(payload, "newMaximumCash", "maxCash", "new_maximum_cash")),
        )
    else:
        rebalance = RebalanceSpec(
            initial=_flat_allocation(payload, final=False),
            final=_flat_allocation(payload, final=True) or None,
            glide_path=_is_glide(payload),
        )

    return Event(
        name=str(name),
        type=etype,
        start=get_distribution(_get(raw, "startYear", "start")),
        duration=get_distribution(_get(raw, "duration")),
        income=income,
        expense=expense,
        invest=invest,
        rebalance=rebalance,
    )


# =============================================================================
# Scenario
# =============================================================================
def _roth_settings(raw: Mapping[str, Any]) -> RothOptimizerSettings:
    sub = _get(raw, "rothOptimizer", "roth_optimizer", default={})
    return RothOptimizerSettings(
        enabled=bool(_get(sub, "enabled", default=_get(raw, "rothOptimizerEnable", default=False))),
        start_year=_int(_get(sub, "startYear", "start_year",
                             default=_get(raw, "rothOptimizerStartYear")), "Roth start year"),
        end_year=_int(_get(sub, "endYear", "end_year",
                           default=_get(raw, "rothOptimizerEndYear")), "Roth end year"),
    )


def get_scenario(raw: Mapping[str, Any]) -> Scenario:
    """
    Builds a validated Scenario from a dict.

    Raises:
        ScenarioError: missing required fields, duplicate names, or unreadable values.
    """
    if not isinstance(raw, Mapping):
        raise ScenarioError("Scenario must be a mapping")

    types: Dict[str, InvestmentType] = {}
    for raw_type in _get(raw, "investmentTypes", "investment_types", default=[]):
        itype = get_investment_type(raw_type)
        types[itype.name] = itype
    settings = _get(raw, "simulationSettings", "simulation_settings", default={})
    inflation_raw = _get(settings, "inflationAssumption", "inflation",
                         default=_get(raw, "inflationAssumption", "inflation"))

    birth_years = _get(raw, "birthYears", "birth_years")
    birth_year = _get(raw, "birthYear", "birth_year")
    spouse_birth_year = _get(raw, "spouseBirthYear", "spouse_birth_year")
    if isinstance(birth_years, list) and birth_years:
        birth_year = birth_year if birth_year is not None else birth_years[0]
        if len(birth_years) > 1 and spouse_birth_year is None:
            spouse_birth_year = birth_years[1]

    kwargs: Dict[str, Any] = {}
    current_year = _get(raw, "currentYear", "current_year")
    if current_year is not None:
        kwargs["current_year"] = _int(current_year, "Current year")

    scenario = Scenario(
        name=str(_get(raw, "name", default="scenario")),
        marital_status=_marital(_get(raw, "maritalStatus", "scenarioType", "marital_status")),
        birth_year=_int(birth_year, "Birth year"),
        life_expectancy=get_distribution(_get(raw, "lifeExpectancy", "life_expectancy")),
        inflation=get_distribution(inflation_raw, percentage=True),
        investments=[get_investment(i, types) for i in _get(raw, "investments", default=[])],
        events=[get_event(e) for e in _get(raw, "events", "eventSeries", default=[])],
        spending_strategy=list(_get(raw, "spendingStrategy", "spending_strategy", default=[])),
        expense_withdrawal_strategy=list(_get(raw, "expenseWithdrawalStrategy",
                                              "expense_withdrawal_strategy", default=[])),
        rmd_strategy=list(_get(raw, "rmdStrategy", "rmd_strategy", default=[])),
        roth_conversion_strategy=list(_get(raw, "rothConversionStrategy",
                                           "roth_conversion_strategy", default=[])),
        roth_optimizer=_roth_settings(raw),
        financial_goal=clean_currency(_get(raw, "financialGoal", "financial_goal", default=0.0)),
        initial_cash=clean_currency(_get(raw, "initialCash", "initial_cash", default=0.0)),
        spouse_birth_year=_int(spouse_birth_year, "Spouse birth year"),
        spouse_life_expectancy=get_distribution(_get(raw, "spouseLifeExpectancy", "spouse_life_expectancy")),
        seed=_int(_get(raw, "seed"), "Seed"),
        **kwargs,
    )
    return scenario.validate()


# =============================================================================
# Tax tables
# =============================================================================
def _bracket(raw: Union[Mapping[str, Any], List[Any]], scale: float = 1.0) -> Bracket:
    if isinstance(raw, Mapping):
        low, high, rate = _get(raw, "min", "low", default=0), _get(raw, "max", "high"), _get(raw, "rate")
    else:
        low, high, rate = raw
    high_val = np.inf if high in (None, "inf", "Infinity") else float(high)
    return Bracket(float(low), high_val, float(rate) / scale)


def _raw_rate(raw: Union[Mapping[str, Any], List[Any]]) -> float:
    return float(_get(raw, "rate") if isinstance(raw, Mapping) else raw[2])


def _per_status(raw: Mapping[str, Any], label: str) -> Dict[str, List[Bracket]]:
    if raw is None:
        return {}
    rows = {"single": raw, "married": raw} if isinstance(raw, list) else dict(raw)
    table: Dict[str, List[Bracket]] = {}
    for status, brackets in rows.items():
        # Units are decided once per bracket list: any rate above 1 means percent
        scale = 100.0 if any(_raw_rate(b) > 1 for b in brackets) else 1.0
        table[_marital(status)] = sorted((_bracket(b, scale) for b in brackets), key=lambda b: b.low)
    if not table:
        raise ScenarioError(f"Tax table {label!r} is empty")
    return table


def _rmd_table(raw: Any) -> Dict[int, float]:
    if isinstance(raw, list):
        return {int(_get(row, "age")): float(_get(row, "period", "distributionPeriod")) for row in raw}
    return {int(age): float(period) for age, period in raw.items()}


def get_tax_tables(raw: Mapping[str, Any]) -> TaxTables:
    federal = _per_status(_get(raw, "federal", "federalBrackets", "federal_brackets"), "federal")
    if not any(federal.values()):
        raise ScenarioError("Tax tables need federal brackets")
    capital_gains = _per_status(_get(raw, "capitalGains", "capital_gains", "capitalGainsBrackets"), "capital gains")
    if not any(capital_gains.values()):
        raise ScenarioError("Tax tables need capital gains brackets")
    deduction_raw = _get(raw, "standardDeduction", "standard_deduction", default={})
    return TaxTables(
        federal=federal,
        state=_per_status(_get(raw, "state", "stateBrackets", "state_brackets"), "state"),
        capital_gains=capital_gains,
        standard_deduction={_marital(k): clean_currency(v) for k, v in deduction_raw.items()},
        rmd_tables={name: _rmd_table(t) for name, t in _get(raw, "rmdTables", "rmd_tables", default={}).items()},
    )


# =============================================================================
# Files
# =============================================================================
def _read_json(path: Union[str, Path]) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ScenarioError(f"{path}: invalid JSON ({exc})") from exc


def load_scenario(path: Union[str, Path]) -> Scenario:
    logger.info("Loading scenario from %s", path)
    return get_scenario(_read_json(path))


def load_tax_tables(path: Union[str, Path]) -> TaxTables:
    logger.info("Loading tax tables from %s", path)
    return get_tax_tables(_read_json(path))
