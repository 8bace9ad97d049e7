# =============================================================================
# Default policy table used by the simulation core
# =============================================================================
# Every silent fallback the engine applies is listed here so the rulebook can
# be read (and tested) in one place.

# Fallback rate (decimal) per sampling context, used when a distribution
# method is unknown or its parameters are invalid.
FALLBACK_RATES = {
    "inflation": 0.02,
    "investment_return": 0.0,
    "investment_income": 0.0,
    "annual_change": 0.0,
}

# Inflation method defaults, in percent
inflation_fixed_pct = 2.0
inflation_normal_mean_pct = 4.0
inflation_normal_sd_pct = 3.0
inflation_uniform_lower_pct = 1.0
inflation_uniform_upper_pct = 5.0

# Event timing defaults (offsets are relative to the trial's current year)
start_normal_mean_offset = 1
start_normal_sd = 1.0
start_uniform_lower_offset = 1
start_uniform_upper_offset = 5
duration_normal_mean = 1.0
duration_normal_sd = 0.5
duration_uniform_lower = 1
duration_uniform_upper = 5
default_duration = 1
minimum_duration = 1

# Life expectancy
life_expectancy_fallback_years = 30
life_expectancy_minimum_years = 1

# Distributions, penalties and taxes
rmd_start_age = 73
rmd_table_name = "Uniform Lifetime"
early_withdrawal_age = 59.5
early_withdrawal_penalty_rate = 0.10
# Social Security: income - 0.15 * SS approximates the 85%-taxable rule
ss_untaxed_fraction = 0.15

# Cash management
default_maximum_cash = 20_000.0
money_epsilon = 0.01


def fallback_rate(context: str) -> float:
    """Single lookup for the fallback rate of a sampling context (0 if unlisted)."""
    return FALLBACK_RATES.get(context, 0.0)
