# engine/__init__.py

# The trial driver and batch runner are the entry points; the yearly modules
# are imported from their own modules by tests and by the year simulator.
from .simulator import BatchSummary, RetirementSimulator, TrialOutcome, TrialResult, run_trial
from .tax_engine import calculate_capital_gains_tax, calculate_income_tax

__all__ = [
    "BatchSummary",
    "RetirementSimulator",
    "TrialOutcome",
    "TrialResult",
    "run_trial",
    "calculate_income_tax",
    "calculate_capital_gains_tax",
]
