import json
from pathlib import Path

import numpy as np

from retiresim.config.tax_tables import default_tax_tables
from retiresim.engine.simulator import prepare_trial
from retiresim.engine.state import EventLog, YearState
from retiresim.models import (
    AccountTaxStatus,
    Distribution,
    Event,
    EventType,
    ExpenseSpec,
    IncomeSpec,
    Investment,
    InvestmentType,
    Scenario,
)

CURRENT_YEAR = 2025


def flat_type(name: str = "Flat", ret: float = 0.0, income: float = 0.0,
              expense_ratio: float = 0.0, income_type: str = "dividend") -> InvestmentType:
    return InvestmentType(
        name=name,
        expected_return=Distribution.fixed(ret, is_percentage=True),
        expected_income=Distribution.fixed(income, is_percentage=True),
        expense_ratio=expense_ratio,
        income_type=income_type,
    )


def account(name: str, value: float, status: AccountTaxStatus = AccountTaxStatus.NON_RETIREMENT,
            basis: float = None, itype: InvestmentType = None, max_contribution: float = None) -> Investment:
    return Investment(
        name=name,
        value=value,
        cost_basis=value if basis is None else basis,
        tax_status=status,
        investment_type=itype or flat_type(),
        max_annual_contribution=max_contribution,
    )


def income_event(name: str, amount: float, start: int = CURRENT_YEAR, years: int = 40, **kwargs) -> Event:
    return Event(name, EventType.INCOME, start=Distribution.fixed(start), duration=Distribution.fixed(years),
                 income=IncomeSpec(amount, **kwargs))


def expense_event(name: str, amount: float, start: int = CURRENT_YEAR, years: int = 40, **kwargs) -> Event:
    return Event(name, EventType.EXPENSE, start=Distribution.fixed(start), duration=Distribution.fixed(years),
                 expense=ExpenseSpec(amount, **kwargs))


def make_scenario(**overrides) -> Scenario:
    """Single filer aged 65 in 2025 who lives to 90 (a 25 year horizon), 2% inflation."""
    fields = dict(
        name="test",
        marital_status="single",
        birth_year=1960,
        life_expectancy=Distribution.fixed(90),
        inflation=Distribution.fixed(2, is_percentage=True),
        current_year=CURRENT_YEAR,
    )
    fields.update(overrides)
    return Scenario(**fields)


def make_context(scenario: Scenario, tax_tables=None, seed: int = 0):
    return prepare_trial(scenario, tax_tables or default_tax_tables(), np.random.default_rng(seed), EventLog())


def make_state(investments=None, cash: float = 0.0, user_age: int = 65, year_index: int = 0,
               marital_status: str = "single", inflation_factor: float = 1.0) -> YearState:
    return YearState(
        year=CURRENT_YEAR + year_index,
        year_index=year_index,
        user_age=user_age,
        marital_status=marital_status,
        inflation_factor=inflation_factor,
        cash=cash,
        investments=list(investments or []),
    )


def write_json(tmp_path: Path, data: dict, filename: str = "scenario.json") -> Path:
    path = tmp_path / filename
    path.write_text(json.dumps(data), encoding="utf-8")
    return path
