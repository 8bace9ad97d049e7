import numpy as np
import pytest

from retiresim.engine.tax_engine import calculate_income_tax
from retiresim.errors import ScenarioError
from retiresim.models import TAX_STATUS_KEY, AccountTaxStatus, DistributionKind, EventType
from retiresim.utils.currency import clean_currency, clean_percent, format_currency
from retiresim.utils.input_adapter import (
    get_distribution,
    get_scenario,
    get_tax_tables,
    load_scenario,
    load_tax_tables,
)
from tests.helpers import write_json


# ----------------------------------------------------------------------
# Currency helpers
# ----------------------------------------------------------------------
def test_clean_currency_and_percent():
    assert clean_currency("$140,000.00") == 140_000.0
    assert clean_currency(12) == 12.0
    assert clean_currency(None) == 0.0
    assert clean_percent("5%") == 5.0
    assert clean_percent("") == 0.0
    with pytest.raises(ScenarioError):
        clean_currency("lots")


def test_format_currency():
    assert format_currency(1234.4) == "$1,234"
    assert format_currency(-50) == "-$50"


# ----------------------------------------------------------------------
# Distributions
# ----------------------------------------------------------------------
def test_distribution_shapes():
    nested = get_distribution({"method": "normalPercentage", "normalPercentage": {"mean": 6, "sd": 10}})
    assert nested.kind == DistributionKind.NORMAL
    assert nested.is_percentage
    assert (nested.mean, nested.sd) == (6.0, 10.0)

    flat = get_distribution({"type": "uniform", "lower": 1, "upper": 5}, percentage=True)
    assert flat.kind == DistributionKind.UNIFORM
    assert flat.is_percentage
    assert (flat.lower, flat.upper) == (1.0, 5.0)

    bare = get_distribution(2030)
    assert bare.kind == DistributionKind.FIXED
    assert bare.value == 2030.0

    ref = get_distribution({"method": "yearAfterAnotherEventEnd", "yearAfterAnotherEventEnd": "Work"})
    assert ref.kind == DistributionKind.YEAR_AFTER_END_OF
    assert ref.event == "Work"

    assert get_distribution(None) is None


def test_unknown_method_is_kept_for_the_engine_to_degrade():
    dist = get_distribution({"method": "lognormal", "lognormal": {"mean": 3}})
    assert dist.kind == DistributionKind.UNKNOWN
    assert dist.method == "lognormal"


def test_referential_method_without_event_keeps_empty_reference():
    dist = get_distribution({"method": "startWith"})
    assert dist.kind == DistributionKind.SAME_YEAR_AS
    assert dist.event is None


def test_scenario_with_unnamed_reference_runs_from_current_year(scenario_dict):
    from retiresim.engine.simulator import TrialOutcome, run_trial

    travel = next(e for e in scenario_dict["events"] if e["name"] == "Travel")
    travel["startYear"] = {"method": "sameYearAsAnotherEvent", "sameYearAsAnotherEvent": ""}
    result = run_trial(get_scenario(scenario_dict), seed=3)

    assert result.outcome != TrialOutcome.ERROR
    assert any(e.type == "warning" and "names no event" in e.details for e in result.log)


# ----------------------------------------------------------------------
# Scenario
# ----------------------------------------------------------------------
def test_get_scenario(scenario_dict):
    scenario = get_scenario(scenario_dict)

    assert scenario.name == "Sample household"
    assert scenario.current_year == 2025
    assert scenario.initial_cash == 10_000.0
    assert scenario.inflation.is_percentage
    assert scenario.life_expectancy.value == 90.0
    assert scenario.roth_optimizer.covers(2027)
    assert not scenario.roth_optimizer.covers(2031)

    brokerage = scenario.investment("Brokerage")
    assert brokerage.value == 250_000.0
    assert brokerage.cost_basis == 150_000.0
    assert brokerage.investment_type.expense_ratio == 0.05
    assert scenario.investment("IRA").cost_basis == 400_000.0
    assert scenario.investment("IRA").tax_status == AccountTaxStatus.PRE_TAX
    assert scenario.investment("Roth IRA").max_annual_contribution == 7_000.0
    assert scenario.investment("Munis").investment_type.income_type == "tax-exempt-interest"

    ss = scenario.event("Social Security")
    assert ss.type == EventType.INCOME
    assert ss.income.is_social_security
    assert ss.income.inflation_adjusted
    assert scenario.event("Travel").is_discretionary_expense
    assert scenario.event("Travel").start.event == "Living"

    invest = scenario.event("Allocation").invest
    assert invest.glide_path
    assert invest.modify_maximum_cash
    assert invest.new_maximum_cash == 15_000.0
    assert invest.initial[TAX_STATUS_KEY] == {"after-tax": 30.0, "non-retirement": 70.0}
    assert invest.final["non-retirement"] == {"Brokerage": 40.0, "Munis": 60.0}

    rebalance = scenario.event("Rebalance").rebalance
    assert rebalance.initial == {"Brokerage": 60.0, "Munis": 40.0}
    assert rebalance.final is None


def test_snake_case_keys(scenario_dict):
    scenario = get_scenario({
        "name": "snake",
        "marital_status": "married",
        "birth_year": 1970,
        "spouse_birth_year": 1972,
        "spouse_life_expectancy": {"type": "normal", "mean": 88, "stdev": 4},
        "life_expectancy": {"type": "fixed", "value": 92},
        "inflation": {"type": "fixed", "value": 2.5},
        "current_year": 2025,
        "investment_types": scenario_dict["investmentTypes"],
        "investments": [{"name": "IRA", "investment_type": "S&P 500", "value": 1000, "tax_status": "pre-tax"}],
        "expense_withdrawal_strategy": ["IRA"],
    })

    assert scenario.is_married
    assert scenario.spouse_birth_year == 1972
    assert scenario.spouse_life_expectancy.sd == 4.0
    assert scenario.inflation.value == 2.5
    assert scenario.inflation.is_percentage
    assert scenario.expense_withdrawal_strategy == ["IRA"]


@pytest.mark.parametrize("mutate, message", [
    (lambda d: d.pop("birthYear"), "birth year"),
    (lambda d: d.pop("lifeExpectancy"), "life expectancy"),
    (lambda d: d.pop("simulationSettings"), "inflation"),
    (lambda d: d["investments"][0].update(accountTaxStatus="offshore"), "tax status"),
    (lambda d: d["investments"][0].update(investmentType="Crypto"), "unknown investment type"),
    (lambda d: d["events"].append(dict(d["events"][0])), "Duplicate event name"),
    (lambda d: d.update(maritalStatus="complicated"), "marital status"),
])
def test_invalid_scenarios(scenario_dict, mutate, message):
    mutate(scenario_dict)
    with pytest.raises(ScenarioError, match=message):
        get_scenario(scenario_dict)


def test_loaded_scenario_runs(tmp_path, scenario_dict):
    from retiresim.engine.simulator import TrialOutcome, run_trial

    scenario = load_scenario(write_json(tmp_path, scenario_dict))
    result = run_trial(scenario)

    assert result.outcome in (TrialOutcome.COMPLETED, TrialOutcome.GOAL_FAILED)
    assert result.yearly_results


def test_invalid_json_file(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ScenarioError):
        load_scenario(path)


# ----------------------------------------------------------------------
# Tax tables
# ----------------------------------------------------------------------
def test_get_tax_tables(tmp_path):
    raw = {
        "federal": {
            "single": [{"min": 0, "max": 10000, "rate": 10}, {"min": 10000, "max": None, "rate": 20}],
            "married_filing_jointly": [[0, 20000, 0.1], [20000, "inf", 0.2]],
        },
        "state": [{"min": 0, "max": "inf", "rate": 0.05}],
        "capitalGains": {"single": [{"min": 0, "max": "inf", "rate": 0.15}]},
        "standardDeduction": {"single": "$15,000", "married": 30000},
        "rmdTables": {"Uniform Lifetime": [{"age": 73, "period": 26.5}, {"age": 74, "period": 25.5}]},
    }
    tables = load_tax_tables(write_json(tmp_path, raw, "tax.json"))

    assert tables.federal["single"][0].rate == pytest.approx(0.10)
    assert tables.federal["married"][0].rate == pytest.approx(0.10)
    assert tables.federal["single"][1].high == np.inf
    assert tables.federal["married"][1].high == np.inf
    assert tables.state["married"][0].rate == 0.05
    assert tables.standard_deduction == {"single": 15_000.0, "married": 30_000.0}
    assert tables.rmd_tables["Uniform Lifetime"][73] == 26.5
    assert tables.brackets_for(tables.capital_gains, "married") == tables.capital_gains["single"]


def test_tax_tables_need_federal_brackets():
    with pytest.raises(ScenarioError, match="federal"):
        get_tax_tables({"state": []})


def test_tax_tables_need_capital_gains_brackets():
    federal = [{"min": 0, "max": None, "rate": 0.1}]
    with pytest.raises(ScenarioError, match="capital gains"):
        get_tax_tables({"federal": federal})
    with pytest.raises(ScenarioError, match="capital gains"):
        get_tax_tables({"federal": federal, "capitalGains": {"single": []}})


def test_percent_units_are_read_per_table():
    raw = {
        "federal": [{"min": 0, "max": 10000, "rate": 1}, {"min": 10000, "max": None, "rate": 2}],
        "capitalGains": [{"min": 0, "max": None, "rate": 0.15}],
    }
    tables = get_tax_tables(raw)

    assert [b.rate for b in tables.federal["single"]] == [pytest.approx(0.01), pytest.approx(0.02)]
    assert tables.capital_gains["single"][0].rate == 0.15
    assert calculate_income_tax(20_000, tables.federal["single"]) == pytest.approx(300)
