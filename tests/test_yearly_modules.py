import numpy as np
import pytest

from retiresim.engine.annual_change import household_share, next_base_amount
from retiresim.engine.expenses import (
    calculate_discretionary_expenses,
    calculate_non_discretionary_expenses,
    pay_discretionary_expenses,
    pay_non_discretionary_expenses,
)
from retiresim.engine.glide_path import InvestSnapshot, RebalanceSnapshot
from retiresim.engine.income_events import process_income_events
from retiresim.engine.invest_events import process_invest_events
from retiresim.engine.investment_returns import process_investment_returns
from retiresim.engine.rebalance_events import process_rebalance_events
from retiresim.engine.tax_engine import DeferredTaxes, FEDERAL_TAX_KEY
from retiresim.models import TAX_STATUS_KEY, AccountTaxStatus, Distribution
from tests.helpers import (
    account,
    expense_event,
    flat_type,
    income_event,
    make_context,
    make_scenario,
    make_state,
)


# ----------------------------------------------------------------------
# Annual change
# ----------------------------------------------------------------------
def test_next_base_amount():
    rng = np.random.default_rng(0)
    assert next_base_amount(1_000, None, Distribution.fixed(10, is_percentage=True), rng) == pytest.approx(1_100)
    assert next_base_amount(1_000, 1_100, Distribution.fixed(10, is_percentage=True), rng) == pytest.approx(1_210)
    assert next_base_amount(1_000, None, Distribution.fixed(-5_000), rng) == 0.0


def test_household_share():
    assert household_share(1_000, True, 1.1, None, "married") == pytest.approx(1_100)
    assert household_share(1_000, False, 1.1, 60, "married") == 1_000
    assert household_share(1_000, False, 1.1, 60, "single") == pytest.approx(600)


# ----------------------------------------------------------------------
# Income and returns
# ----------------------------------------------------------------------
def test_income_events_add_to_cash_and_income():
    scenario = make_scenario(events=[
        income_event("Pension", 20_000),
        income_event("Social Security", 30_000, is_social_security=True, married_percentage=60),
        income_event("Later", 5_000, start=2030),
    ])
    ctx = make_context(scenario)
    state = make_state(cash=1_000.0)

    state, breakdown = process_income_events(ctx, state)

    assert breakdown == {"Pension": pytest.approx(20_000), "Social Security": pytest.approx(18_000)}
    assert state.cash == pytest.approx(39_000)
    assert state.cur_year_income == pytest.approx(38_000)
    assert state.cur_year_ss == pytest.approx(18_000)
    assert state.income_event_states["Pension"] == 20_000
    assert len(ctx.log.of_type("income")) == 2


def test_investment_returns_growth_income_and_taxability():
    stocks = flat_type("Stocks", ret=5, income=2)
    munis = flat_type("Munis", ret=0, income=3, income_type="tax-exempt-interest")
    ctx = make_context(make_scenario())
    state = make_state([
        account("Brokerage", 1_000.0, itype=stocks),
        account("Roth", 1_000.0, AccountTaxStatus.TAX_EXEMPT, itype=stocks),
        account("Bonds", 1_000.0, itype=munis),
    ])

    state, breakdown = process_investment_returns(ctx, state)

    assert state.find("Brokerage").value == pytest.approx(1_050)
    assert breakdown["Income - dividend (Brokerage)"] == pytest.approx(20)
    assert breakdown["Income - dividend (Roth) (Non-Taxable)"] == pytest.approx(20)
    assert breakdown["Income - tax-exempt-interest (Bonds) (Non-Taxable)"] == pytest.approx(30)
    assert state.cash == pytest.approx(70)
    assert state.cur_year_income == pytest.approx(20)


def test_expense_ratio_is_charged_on_average_value():
    itype = flat_type("Fund", ret=10, expense_ratio=1)
    ctx = make_context(make_scenario())
    state = make_state([account("Fund", 1_000.0, itype=itype)])

    process_investment_returns(ctx, state)

    assert state.find("Fund").value == pytest.approx(1_100 - 10.5)


# ----------------------------------------------------------------------
# Expenses
# ----------------------------------------------------------------------
def test_expense_amounts_split_by_discretionary_flag():
    scenario = make_scenario(events=[
        expense_event("Rent", 12_000, inflation_adjusted=True),
        expense_event("Travel", 5_000, is_discretionary=True),
    ])
    ctx = make_context(scenario)
    state = make_state(inflation_factor=1.02)

    assert calculate_non_discretionary_expenses(ctx, state) == {"Rent": pytest.approx(12_240)}
    assert calculate_discretionary_expenses(ctx, state) == {"Travel": pytest.approx(5_000)}


def test_non_discretionary_payment_includes_deferred_taxes():
    ctx = make_context(make_scenario(expense_withdrawal_strategy=["Savings"]))
    state = make_state([account("Savings", 10_000.0)], cash=1_000.0)

    state, breakdown = pay_non_discretionary_expenses(ctx, state, DeferredTaxes(federal=500.0),
                                                      {"Rent": 2_000.0})

    assert breakdown == {FEDERAL_TAX_KEY: 500.0, "Rent": 2_000.0}
    assert state.cash == 0.0
    assert state.find("Savings").value == pytest.approx(8_500)
    assert state.cur_year_taxes == 500.0
    assert state.cur_year_expenses == pytest.approx(2_500)


def test_non_discretionary_shortfall_is_logged():
    ctx = make_context(make_scenario())
    state = make_state(cash=100.0)

    pay_non_discretionary_expenses(ctx, state, DeferredTaxes(), {"Rent": 500.0})

    assert state.cash == 0.0
    assert any("Could not pay" in e.details for e in ctx.log.of_type("warning"))


def test_discretionary_spending_stops_at_financial_goal():
    scenario = make_scenario(financial_goal=5_000.0, spending_strategy=["Travel", "Dining"])
    ctx = make_context(scenario)
    state = make_state(cash=10_000.0)

    state, breakdown = pay_discretionary_expenses(ctx, state, {"Dining": 1_000.0, "Travel": 8_000.0})

    assert breakdown == {"Travel": pytest.approx(5_000)}
    assert state.total_assets == pytest.approx(5_000)
    assert state.discretionary_paid == pytest.approx(5_000)


def test_discretionary_spending_follows_strategy_order():
    scenario = make_scenario(spending_strategy=["Dining", "Travel"])
    ctx = make_context(scenario)
    state = make_state(cash=10_000.0)

    state, breakdown = pay_discretionary_expenses(ctx, state, {"Travel": 3_000.0, "Dining": 1_000.0,
                                                               "Unlisted": 500.0})

    assert list(breakdown) == ["Dining", "Travel"]
    assert state.cash == pytest.approx(6_000)


# ----------------------------------------------------------------------
# Invest and rebalance
# ----------------------------------------------------------------------
INVEST_ALLOCATION = {
    TAX_STATUS_KEY: {"after-tax": 50.0, "non-retirement": 50.0},
    "after-tax": {"Roth": 100.0},
    "non-retirement": {"Brokerage": 100.0},
}


def _invest_context(allocation, max_cash=1_000.0, investments=None):
    ctx = make_context(make_scenario(investments=investments or []))
    ctx.invest_snapshots = [InvestSnapshot("Sweep", allocation, max_cash)] * ctx.num_years
    return ctx


def test_invest_caps_after_tax_and_redistributes():
    roth = account("Roth", 0.0, AccountTaxStatus.AFTER_TAX, max_contribution=7_000.0)
    brokerage = account("Brokerage", 0.0)
    ctx = _invest_context(INVEST_ALLOCATION, investments=[roth, brokerage])
    state = make_state([roth.clone(), brokerage.clone()], cash=21_000.0)

    state, purchases = process_invest_events(ctx, state)

    assert purchases == {"Roth": pytest.approx(7_000), "Brokerage": pytest.approx(13_000)}
    assert state.cash == pytest.approx(1_000)
    assert state.find("Brokerage").cost_basis == pytest.approx(13_000)


def test_invest_cap_is_inflation_adjusted():
    roth = account("Roth", 0.0, AccountTaxStatus.AFTER_TAX, max_contribution=7_000.0)
    brokerage = account("Brokerage", 0.0)
    ctx = _invest_context(INVEST_ALLOCATION, investments=[roth, brokerage])
    state = make_state([roth.clone(), brokerage.clone()], cash=21_000.0, inflation_factor=1.1)

    _, purchases = process_invest_events(ctx, state)
    assert purchases["Roth"] == pytest.approx(7_700)


def test_invest_leaves_excess_in_cash_without_non_retirement_targets():
    allocation = {TAX_STATUS_KEY: {"after-tax": 100.0}, "after-tax": {"Roth": 100.0}}
    roth = account("Roth", 0.0, AccountTaxStatus.AFTER_TAX, max_contribution=7_000.0)
    ctx = _invest_context(allocation, investments=[roth])
    state = make_state([roth.clone()], cash=21_000.0)

    state, purchases = process_invest_events(ctx, state)

    assert purchases == {"Roth": pytest.approx(7_000)}
    assert state.cash == pytest.approx(14_000)
    assert ctx.log.of_type("warning")


def test_invest_does_nothing_below_maximum_cash():
    ctx = _invest_context(INVEST_ALLOCATION, max_cash=50_000.0)
    state = make_state([account("Brokerage", 0.0)], cash=21_000.0)

    _, purchases = process_invest_events(ctx, state)
    assert purchases == {}
    assert state.cash == 21_000.0


def test_rebalance_within_tax_status_realizes_gains():
    ctx = make_context(make_scenario())
    ctx.rebalance_snapshots = [RebalanceSnapshot("Mix", {"A": 50.0, "B": 50.0})] * ctx.num_years
    state = make_state([account("A", 300.0, basis=100.0), account("B", 100.0)])

    state, changes = process_rebalance_events(ctx, state)

    assert state.find("A").value == pytest.approx(200)
    assert state.find("B").value == pytest.approx(200)
    assert changes == {"A": pytest.approx(-100), "B": pytest.approx(100)}
    assert state.cur_year_gains == pytest.approx(200 / 3)
    assert state.find("A").cost_basis == pytest.approx(200 / 3)


def test_rebalance_never_moves_money_across_tax_status():
    ctx = make_context(make_scenario())
    ctx.rebalance_snapshots = [RebalanceSnapshot("Mix", {"IRA": 50.0, "Brokerage": 50.0})] * ctx.num_years
    state = make_state([account("IRA", 300.0, AccountTaxStatus.PRE_TAX), account("Brokerage", 100.0)])

    state, changes = process_rebalance_events(ctx, state)

    assert changes == {}
    assert state.find("IRA").value == 300.0
    assert state.cur_year_gains == 0.0
