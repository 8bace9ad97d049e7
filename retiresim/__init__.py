# retiresim/__init__.py
"""Monte-Carlo retirement projection core."""

__version__ = "0.1.0"

from retiresim.engine import RetirementSimulator, run_trial
from retiresim.utils.input_adapter import get_scenario, get_tax_tables, load_scenario, load_tax_tables

__all__ = [
    "RetirementSimulator",
    "run_trial",
    "get_scenario",
    "get_tax_tables",
    "load_scenario",
    "load_tax_tables",
]
