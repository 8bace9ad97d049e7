# models.py
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Dict, List, NamedTuple, Optional

from retiresim.errors import ScenarioError

MARITAL_STATUSES = ("single", "married")

# Key of the tax-status split inside a nested invest allocation
TAX_STATUS_KEY = "tax_status"


# =============================================================================
# Distributions
# =============================================================================
class DistributionKind(str, Enum):
    FIXED = "fixed"
    NORMAL = "normal"
    UNIFORM = "uniform"
    SAME_YEAR_AS = "same_year_as"
    YEAR_AFTER_END_OF = "year_after_end_of"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Distribution:
    """
    A tagged distribution spec. Which fields are meaningful depends on `kind`:
    FIXED -> value, NORMAL -> mean/sd, UNIFORM -> lower/upper, and the two
    referential kinds -> event.
    """
    kind: DistributionKind
    value: Optional[float] = None
    mean: Optional[float] = None
    sd: Optional[float] = None
    lower: Optional[float] = None
    upper: Optional[float] = None
    event: Optional[str] = None
    is_percentage: bool = False
    method: str = ""

    @classmethod
    def fixed(cls, value: float, is_percentage: bool = False) -> "Distribution":
        return cls(DistributionKind.FIXED, value=value, is_percentage=is_percentage)

    @classmethod
    def normal(cls, mean: float, sd: float, is_percentage: bool = False) -> "Distribution":
        return cls(DistributionKind.NORMAL, mean=mean, sd=sd, is_percentage=is_percentage)

    @classmethod
    def uniform(cls, lower: float, upper: float, is_percentage: bool = False) -> "Distribution":
        return cls(DistributionKind.UNIFORM, lower=lower, upper=upper, is_percentage=is_percentage)

    @classmethod
    def same_year_as(cls, event: str) -> "Distribution":
        return cls(DistributionKind.SAME_YEAR_AS, event=event)

    @classmethod
    def year_after_end_of(cls, event: str) -> "Distribution":
        return cls(DistributionKind.YEAR_AFTER_END_OF, event=event)

    @property
    def is_referential(self) -> bool:
        return self.kind in (DistributionKind.SAME_YEAR_AS, DistributionKind.YEAR_AFTER_END_OF)


# =============================================================================
# Investments
# =============================================================================
class AccountTaxStatus(str, Enum):
    PRE_TAX = "pre-tax"
    AFTER_TAX = "after-tax"
    NON_RETIREMENT = "non-retirement"
    TAX_EXEMPT = "tax-exempt"


class SyntheticReason(str, Enum):
    RMD = "rmd"
    ROTH = "roth"


@dataclass(frozen=True)
class InvestmentType:
    name: str
    expected_return: Optional[Distribution] = None
    expected_income: Optional[Distribution] = None
    expense_ratio: float = 0.0  # percent per year
    income_type: str = "dividend"


@dataclass
class Investment:
    name: str
    value: float
    cost_basis: float
    tax_status: AccountTaxStatus
    investment_type: InvestmentType
    max_annual_contribution: Optional[float] = None

    # Back-reference for accounts created by RMD / Roth transfers
    source_name: Optional[str] = None
    synthesized_for: Optional[SyntheticReason] = None

    def clone(self) -> "Investment":
        # InvestmentType is frozen and shared between clones
        return replace(self)

    @property
    def is_synthetic(self) -> bool:
        return self.synthesized_for is not None


# =============================================================================
# Events
# =============================================================================
class EventType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    INVEST = "invest"
    REBALANCE = "rebalance"


@dataclass(frozen=True)
class IncomeSpec:
    initial_amount: float
    annual_change: Optional[Distribution] = None
    inflation_adjusted: bool = False
    married_percentage: Optional[float] = None
    is_social_security: bool = False


@dataclass(frozen=True)
class ExpenseSpec:
    initial_amount: float
    annual_change: Optional[Distribution] = None
    inflation_adjusted: bool = False
    married_percentage: Optional[float] = None
    is_discretionary: bool = False


@dataclass(frozen=True)
class InvestSpec:
    # {TAX_STATUS_KEY: {category: pct}, category: {investment name: pct}, ...}
    initial: Dict[str, Dict[str, float]]
    final: Optional[Dict[str, Dict[str, float]]] = None
    glide_path: bool = False
    modify_maximum_cash: bool = False
    new_maximum_cash: Optional[float] = None


@dataclass(frozen=True)
class RebalanceSpec:
    # {investment name: pct}
    initial: Dict[str, float]
    final: Optional[Dict[str, float]] = None
    glide_path: bool = False


@dataclass(frozen=True)
class Event:
    name: str
    type: EventType
    start: Optional[Distribution] = None
    duration: Optional[Distribution] = None
    income: Optional[IncomeSpec] = None
    expense: Optional[ExpenseSpec] = None
    invest: Optional[InvestSpec] = None
    rebalance: Optional[RebalanceSpec] = None

    @property
    def is_discretionary_expense(self) -> bool:
        return self.type == EventType.EXPENSE and self.expense is not None and self.expense.is_discretionary


# =============================================================================
# Scenario
# =============================================================================
@dataclass(frozen=True)
class RothOptimizerSettings:
    enabled: bool = False
    start_year: Optional[int] = None
    end_year: Optional[int] = None

    def covers(self, year: int) -> bool:
        if not self.enabled:
            return False
        if self.start_year is not None and year < self.start_year:
            return False
        if self.end_year is not None and year > self.end_year:
            return False
        return True


@dataclass
class Scenario:
    name: str
    marital_status: str
    birth_year: Optional[int]
    life_expectancy: Optional[Distribution]
    inflation: Optional[Distribution]
    investments: List[Investment] = field(default_factory=list)
    events: List[Event] = field(default_factory=list)

    # Strategies (ordered investment / event names)
    spending_strategy: List[str] = field(default_factory=list)
    expense_withdrawal_strategy: List[str] = field(default_factory=list)
    rmd_strategy: List[str] = field(default_factory=list)
    roth_conversion_strategy: List[str] = field(default_factory=list)
    roth_optimizer: RothOptimizerSettings = field(default_factory=RothOptimizerSettings)

    financial_goal: float = 0.0
    initial_cash: float = 0.0
    spouse_birth_year: Optional[int] = None
    spouse_life_expectancy: Optional[Distribution] = None
    seed: Optional[int] = None
    current_year: int = field(default_factory=lambda: date.today().year)

    @property
    def is_married(self) -> bool:
        return self.marital_status == "married"

    def event(self, name: str) -> Optional[Event]:
        for ev in self.events:
            if ev.name == name:
                return ev
        return None

    def investment(self, name: str) -> Optional[Investment]:
        for inv in self.investments:
            if inv.name == name:
                return inv
        return None

    def clone_investments(self) -> List[Investment]:
        return [inv.clone() for inv in self.investments]

    def validate(self) -> "Scenario":
        """Raises ScenarioError on structurally invalid data; returns self for chaining."""
        if self.birth_year is None:
            raise ScenarioError("Scenario is missing birth year")
        if self.life_expectancy is None:
            raise ScenarioError("Scenario is missing life expectancy")
        if self.inflation is None:
            raise ScenarioError("Scenario is missing simulation settings / inflation assumption")
        if self.marital_status not in MARITAL_STATUSES:
            raise ScenarioError(f"Unknown marital status: {self.marital_status!r}")

        for label, names in (("event", [e.name for e in self.events]),
                             ("investment", [i.name for i in self.investments])):
            seen = set()
            for name in names:
                if name in seen:
                    raise ScenarioError(f"Duplicate {label} name: {name}")
                seen.add(name)
        return self


# =============================================================================
# Tax tables
# =============================================================================
class Bracket(NamedTuple):
    low: float
    high: float  # np.inf for the top bracket
    rate: float


@dataclass(frozen=True)
class TaxTables:
    """Read-only tax inputs. Keys of every per-status map are 'single' / 'married'."""
    federal: Dict[str, List[Bracket]]
    state: Dict[str, List[Bracket]]
    capital_gains: Dict[str, List[Bracket]]
    standard_deduction: Dict[str, float]
    rmd_tables: Dict[str, Dict[int, float]] = field(default_factory=dict)

    def brackets_for(self, table: Dict[str, List[Bracket]], marital_status: str) -> List[Bracket]:
        if marital_status in table:
            return table[marital_status]
        if "single" in table:
            return table["single"]
        raise ScenarioError(f"No tax brackets for marital status {marital_status!r}")
