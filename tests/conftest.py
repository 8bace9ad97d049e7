import numpy as np
import pytest

from retiresim.config.tax_tables import default_tax_tables


@pytest.fixture
def rng():
    return np.random.default_rng(1)


@pytest.fixture
def tax_tables():
    return default_tax_tables()


@pytest.fixture
def scenario_dict() -> dict:
    """A scenario as exported by the scenario store (camelCase keys)."""
    return {
        "name": "Sample household",
        "maritalStatus": "single",
        "birthYear": 1960,
        "currentYear": 2025,
        "lifeExpectancy": {"method": "fixed", "fixed": 90},
        "simulationSettings": {"inflationAssumption": {"method": "fixedPercentage", "fixedPercentage": 2}},
        "financialGoal": 0,
        "initialCash": "$10,000",
        "seed": 11,
        "investmentTypes": [
            {
                "name": "S&P 500",
                "expectedAnnualReturn": {"method": "normalPercentage", "normalPercentage": {"mean": 6, "sd": 10}},
                "expectedAnnualIncome": {"method": "fixedPercentage", "fixedPercentage": 1.5},
                "expenseRatio": "0.05%",
            },
            {
                "name": "Muni bonds",
                "expectedAnnualReturn": {"method": "fixedPercentage", "fixedPercentage": 1},
                "expectedAnnualIncome": {"method": "fixedPercentage", "fixedPercentage": 3},
                "taxability": False,
            },
        ],
        "investments": [
            {"name": "Brokerage", "investmentType": "S&P 500", "value": "250,000",
             "costBasis": 150000, "accountTaxStatus": "non-retirement"},
            {"name": "IRA", "investmentType": "S&P 500", "value": 400000, "accountTaxStatus": "pre-tax"},
            {"name": "Roth IRA", "investmentType": "S&P 500", "value": 80000,
             "accountTaxStatus": "after-tax", "maxAnnualContribution": 7000},
            {"name": "Munis", "investmentType": "Muni bonds", "value": 50000, "accountTaxStatus": "non-retirement"},
        ],
        "events": [
            {
                "name": "Social Security",
                "type": "income",
                "startYear": {"method": "fixed", "fixed": 2027},
                "duration": {"method": "fixed", "fixed": 40},
                "income": {"initialAmount": 30000, "inflationAdjustment": True, "isSocialSecurity": True,
                           "expectedAnnualChange": {"method": "fixedValue", "fixedValue": 0}},
            },
            {
                "name": "Living",
                "type": "expense",
                "startYear": {"method": "fixed", "fixed": 2025},
                "duration": {"method": "fixed", "fixed": 40},
                "expense": {"initialAmount": 40000, "inflationAdjustment": True, "isDiscretionary": False},
            },
            {
                "name": "Travel",
                "type": "expense",
                "startYear": {"method": "startWith", "startWith": "Living"},
                "duration": {"method": "uniform", "uniform": {"lowerBound": 5, "upperBound": 10}},
                "expense": {"initialAmount": 8000, "isDiscretionary": True,
                            "expectedAnnualChange": {"method": "fixedPercentage", "fixedPercentage": 3}},
            },
            {
                "name": "Allocation",
                "type": "invest",
                "startYear": {"method": "fixed", "fixed": 2025},
                "duration": {"method": "fixed", "fixed": 40},
                "invest": {
                    "method": "glidePath",
                    "maxCash": 15000,
                    "modifyMaximumCash": True,
                    "taxStatusAllocation": {"after-tax": 30, "non-retirement": 70},
                    "afterTaxAllocation": {"Roth IRA": 100},
                    "nonRetirementAllocation": {"Brokerage": 80, "Munis": 20},
                    "finalTaxStatusAllocation": {"after-tax": 30, "non-retirement": 70},
                    "finalAfterTaxAllocation": {"Roth IRA": 100},
                    "finalNonRetirementAllocation": {"Brokerage": 40, "Munis": 60},
                },
            },
            {
                "name": "Rebalance",
                "type": "rebalance",
                "startYear": {"method": "yearAfterAnotherEventEnd", "yearAfterAnotherEventEnd": "Travel"},
                "duration": {"method": "fixed", "fixed": 10},
                "rebalance": {"allocation": {"Brokerage": 60, "Munis": 40}},
            },
        ],
        "spendingStrategy": ["Travel"],
        "expenseWithdrawalStrategy": ["Brokerage", "Munis", "IRA", "Roth IRA"],
        "rmdStrategy": ["IRA"],
        "rothConversionStrategy": ["IRA"],
        "rothOptimizer": {"enabled": True, "startYear": 2025, "endYear": 2030},
    }
