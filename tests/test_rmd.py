import pytest

from retiresim.engine.rmd import RMD_INCOME_KEY, get_rmd_factor, process_rmds
from retiresim.engine.year_simulator import initial_state
from retiresim.models import AccountTaxStatus, Distribution, TaxTables
from tests.helpers import account, make_context, make_scenario, make_state


def _tables(base, periods):
    return TaxTables(
        federal=base.federal,
        state=base.state,
        capital_gains=base.capital_gains,
        standard_deduction=base.standard_deduction,
        rmd_tables={"Uniform Lifetime": periods},
    )


def test_get_rmd_factor(tax_tables):
    assert get_rmd_factor(73, tax_tables.rmd_tables) == 26.5
    assert get_rmd_factor(130, tax_tables.rmd_tables) is None
    assert get_rmd_factor(73, {}) is None


def test_no_rmd_before_age_73(tax_tables):
    scenario = make_scenario(
        birth_year=1955,
        life_expectancy=Distribution.fixed(95),
        investments=[account("IRA", 256_000.0, AccountTaxStatus.PRE_TAX)],
        rmd_strategy=["IRA"],
    )
    ctx = make_context(scenario, _tables(tax_tables, {72: 25.6, 73: 25.6}))
    state = initial_state(ctx, 0)
    assert state.user_age == 70

    state, breakdown = process_rmds(ctx, state, None)

    assert breakdown == {}
    assert [inv.name for inv in state.investments] == ["IRA"]
    assert state.find("IRA").value == 256_000.0


def test_rmd_moves_balance_over_period_into_linked_account(tax_tables):
    scenario = make_scenario(
        birth_year=1952,
        life_expectancy=Distribution.fixed(95),
        investments=[account("IRA", 256_000.0, AccountTaxStatus.PRE_TAX)],
        rmd_strategy=["IRA"],
    )
    ctx = make_context(scenario, _tables(tax_tables, {72: 25.6, 73: 25.6}))
    previous = make_state([account("IRA", 256_000.0, AccountTaxStatus.PRE_TAX)], user_age=72)
    state = make_state([account("IRA", 256_000.0, AccountTaxStatus.PRE_TAX)], user_age=73)

    state, breakdown = process_rmds(ctx, state, previous)

    assert breakdown[RMD_INCOME_KEY] == pytest.approx(10_000.0)
    assert state.cur_year_income == pytest.approx(10_000.0)
    rmd_account = state.find("IRA (RMD)")
    assert rmd_account.tax_status == AccountTaxStatus.NON_RETIREMENT
    assert rmd_account.value == pytest.approx(10_000.0)
    assert state.find("IRA").value == pytest.approx(246_000.0)
    assert ctx.log.of_type("rmd")


def test_rmd_uses_prior_year_balance(tax_tables):
    scenario = make_scenario(birth_year=1952, rmd_strategy=["IRA"])
    ctx = make_context(scenario, tax_tables)
    previous = make_state([account("IRA", 265_000.0, AccountTaxStatus.PRE_TAX)], user_age=72)
    state = make_state([account("IRA", 300_000.0, AccountTaxStatus.PRE_TAX)], user_age=73)

    _, breakdown = process_rmds(ctx, state, previous)
    assert breakdown[RMD_INCOME_KEY] == pytest.approx(265_000.0 / 26.5)


def test_rmd_zero_balance_and_missing_age(tax_tables):
    scenario = make_scenario(birth_year=1940, rmd_strategy=["IRA"])
    ctx = make_context(scenario, tax_tables)

    empty = make_state([account("IRA", 0.0, AccountTaxStatus.PRE_TAX)], user_age=85)
    assert process_rmds(ctx, empty, None)[1] == {}

    too_old = make_state([account("IRA", 1_000.0, AccountTaxStatus.PRE_TAX)], user_age=130)
    assert process_rmds(ctx, too_old, None)[1] == {}
