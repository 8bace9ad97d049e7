# engine/state.py

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

import numpy as np
from numpy.typing import NDArray

from retiresim.engine.event_timing import EventTiming
from retiresim.engine.glide_path import InvestSnapshot, RebalanceSnapshot
from retiresim.models import Investment, Scenario, SyntheticReason, TaxTables

logger = logging.getLogger(__name__)

# =============================================================================
# Event log
# =============================================================================
LOG_TYPES = ("setting", "tax", "income", "expense", "invest", "rebalance", "rmd", "roth", "warning", "error")


@dataclass(frozen=True)
class LogEntry:
    year: int
    type: str
    details: str


class EventLog:
    """Chronological per-trial audit log of {year, type, details} entries."""

    def __init__(self):
        self.entries: List[LogEntry] = []

    def add(self, year: int, kind: str, details: str):
        if kind not in LOG_TYPES:
            raise ValueError(f"Unknown log entry type: {kind}")
        self.entries.append(LogEntry(year, kind, details))

    def warner(self, year: int) -> Callable[[str], None]:
        """Callback that records degradation messages as 'warning' entries for `year`."""
        def _warn(msg: str):
            self.add(year, "warning", msg)
        return _warn

    def of_type(self, kind: str) -> List[LogEntry]:
        return [e for e in self.entries if e.type == kind]

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


# =============================================================================
# Year state
# =============================================================================
@dataclass
class YearState:
    """
    Mutable accumulator for one simulated year. Investments are owned by the
    state; roll_forward() clones them so no two years alias an account.
    """
    year: int
    year_index: int
    user_age: int
    marital_status: str
    inflation_factor: float
    cash: float
    investments: List[Investment]

    # Carry-forward base amounts keyed by event name
    income_event_states: Dict[str, float] = field(default_factory=dict)
    expense_event_states: Dict[str, float] = field(default_factory=dict)

    # Yearly totals
    cur_year_income: float = 0.0
    cur_year_ss: float = 0.0
    cur_year_gains: float = 0.0
    cur_year_early_withdrawals: float = 0.0
    cur_year_expenses: float = 0.0
    cur_year_taxes: float = 0.0
    discretionary_paid: float = 0.0

    income_breakdown: Dict[str, float] = field(default_factory=dict)
    expense_breakdown: Dict[str, float] = field(default_factory=dict)
    financial_goal_met: bool = True

    # ----------------------------------------------------------------------
    # Lookups
    # ----------------------------------------------------------------------
    @property
    def total_assets(self) -> float:
        return self.cash + sum(inv.value for inv in self.investments)

    def find(self, name: str) -> Optional[Investment]:
        for inv in self.investments:
            if inv.name == name:
                return inv
        return None

    def find_synthetic(self, source_name: str, reason: SyntheticReason) -> Optional[Investment]:
        """Account created from `source_name` for `reason`, matched by relation, not display name."""
        for inv in self.investments:
            if inv.source_name == source_name and inv.synthesized_for == reason:
                return inv
        return None

    def investment_values(self) -> Dict[str, float]:
        values = {inv.name: inv.value for inv in self.investments}
        values["Cash"] = self.cash
        return values

    # ----------------------------------------------------------------------
    # Breakdown helpers
    # ----------------------------------------------------------------------
    def add_income(self, key: str, amount: float):
        self.income_breakdown[key] = self.income_breakdown.get(key, 0.0) + amount

    def add_expense(self, key: str, amount: float):
        self.expense_breakdown[key] = self.expense_breakdown.get(key, 0.0) + amount

    # ----------------------------------------------------------------------
    # Year transition
    # ----------------------------------------------------------------------
    def roll_forward(self, year: int, year_index: int, user_age: int,
                     marital_status: str, inflation_factor: float) -> "YearState":
        """Next year's starting state: balances and event bases carried, totals reset."""
        return YearState(
            year=year,
            year_index=year_index,
            user_age=user_age,
            marital_status=marital_status,
            inflation_factor=inflation_factor,
            cash=self.cash,
            investments=[inv.clone() for inv in self.investments],
            income_event_states=dict(self.income_event_states),
            expense_event_states=dict(self.expense_event_states),
        )


# =============================================================================
# Per-trial context
# =============================================================================
@dataclass
class TrialContext:
    """Read-only inputs and derived arrays shared by every year of one trial."""
    scenario: Scenario
    tax_tables: TaxTables
    rng: np.random.Generator
    log: EventLog
    current_year: int
    num_years: int
    inflation: NDArray[np.float64]
    marital_status: List[str]
    active_events: List[List[str]]
    invest_snapshots: List[Optional[InvestSnapshot]]
    rebalance_snapshots: List[Optional[RebalanceSnapshot]]
    timings: Dict[str, EventTiming] = field(default_factory=dict)
