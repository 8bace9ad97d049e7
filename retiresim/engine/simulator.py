# engine/simulator.py

import logging
import math
import multiprocessing as mp
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd

from retiresim.config import simulation_defaults as defaults
from retiresim.config.tax_tables import default_tax_tables
from retiresim.engine.event_timing import EventTimingResolver, build_active_events
from retiresim.engine.glide_path import build_invest_snapshots, build_rebalance_snapshots
from retiresim.engine.inflation import project_inflation
from retiresim.engine.sampling import round_half_up, sample
from retiresim.engine.state import EventLog, LogEntry, TrialContext, YearState
from retiresim.engine.year_simulator import initial_state, simulate_year
from retiresim.errors import DistributionError, ScenarioError, SimulationError
from retiresim.models import Distribution, Scenario, TaxTables

logger = logging.getLogger(__name__)

Seed = Union[int, np.random.SeedSequence, None]


# =========================================================================
# Results
# =========================================================================
class TrialOutcome(str, Enum):
    COMPLETED = "completed"
    GOAL_FAILED = "goal_failed"
    ERROR = "error"


@dataclass(frozen=True)
class YearResult:
    year: int
    net_worth: float
    meeting_financial_goal: bool


@dataclass
class TrialResult:
    """Everything one trial produces; all per-year lists are parallel."""
    trial_id: int = 0
    outcome: TrialOutcome = TrialOutcome.COMPLETED
    horizon: int = 0
    yearly_results: List[YearResult] = field(default_factory=list)
    cash: List[float] = field(default_factory=list)
    investment_values: List[Dict[str, float]] = field(default_factory=list)
    expenses: List[Dict[str, float]] = field(default_factory=list)
    early_withdrawals: List[float] = field(default_factory=list)
    incomes: List[Dict[str, float]] = field(default_factory=list)
    discretionary_ratios: List[float] = field(default_factory=list)
    log: List[LogEntry] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def years(self) -> List[int]:
        return [r.year for r in self.yearly_results]

    def to_frame(self) -> pd.DataFrame:
        """Per-year summary with one column per investment (plus Cash), indexed by year."""
        index = pd.Index(self.years, name="year")
        summary = pd.DataFrame({
            "net_worth": [r.net_worth for r in self.yearly_results],
            "meeting_financial_goal": [r.meeting_financial_goal for r in self.yearly_results],
            "cash": self.cash,
            "total_income": [sum(d.values()) for d in self.incomes],
            "total_expenses": [sum(d.values()) for d in self.expenses],
            "early_withdrawals": self.early_withdrawals,
            "discretionary_ratio": self.discretionary_ratios,
        }, index=index)
        values = pd.DataFrame(self.investment_values, index=index).fillna(0.0)
        values.columns = [f"value: {c}" for c in values.columns]
        return pd.concat([summary, values], axis=1)


# =========================================================================
# Horizon and derived arrays
# =========================================================================
def sample_target_age(dist: Optional[Distribution], current_age: int,
                      rng: np.random.Generator, warn=None) -> int:
    """Sampled age at death, floored at current_age + 1; falls back to current_age + 30."""
    try:
        if dist is None:
            raise DistributionError("no life expectancy distribution")
        target = round_half_up(sample(dist, rng))
    except DistributionError as exc:
        target = current_age + defaults.life_expectancy_fallback_years
        msg = f"Life expectancy: {exc}; using age {target}"
        logger.warning(msg)
        if warn is not None:
            warn(msg)
    return max(target, current_age + defaults.life_expectancy_minimum_years)


def build_marital_status(scenario: Scenario, num_years: int, rng: np.random.Generator, warn=None) -> List[str]:
    """'married' until the spouse's sampled death, 'single' from then on."""
    if not scenario.is_married:
        return ["single"] * num_years
    if scenario.spouse_birth_year is None or scenario.spouse_life_expectancy is None:
        return ["married"] * num_years

    spouse_age = scenario.current_year - scenario.spouse_birth_year
    spouse_target = sample_target_age(scenario.spouse_life_expectancy, spouse_age, rng, warn)
    flip = max(0, math.ceil(spouse_target - spouse_age))
    return ["married" if i < flip else "single" for i in range(num_years)]


def prepare_trial(scenario: Scenario, tax_tables: TaxTables,
                  rng: np.random.Generator, log: EventLog) -> TrialContext:
    """
    Samples the horizon and builds every per-trial derived array once.

    Raises:
        ScenarioError: required scenario fields are missing.
        EventTimingError: an event reference is unknown or circular.
    """
    scenario.validate()
    cur = scenario.current_year
    warn = log.warner(cur)

    # -----------------------
    # STEP 1: Horizon
    # -----------------------
    current_age = cur - scenario.birth_year
    target_age = sample_target_age(scenario.life_expectancy, current_age, rng, warn)
    num_years = target_age - current_age
    log.add(cur, "setting", f"Horizon: {num_years} years (age {current_age} to {target_age})")
    if not scenario.roth_optimizer.enabled:
        log.add(cur, "setting", "Roth Optimizer is DISABLED")

    # -----------------------
    # STEP 2: Marital status and inflation
    # -----------------------
    marital = build_marital_status(scenario, num_years, rng, warn)
    inflation = project_inflation(scenario.inflation, num_years, rng, warn)

    # -----------------------
    # STEP 3: Event timing and strategy snapshots
    # -----------------------
    resolver = EventTimingResolver(scenario.events, cur, rng, warn)
    timings = resolver.resolve_all()
    active = build_active_events(scenario.events, timings, cur, num_years)

    def warn_in_year(year: int, msg: str):
        logger.warning(msg)
        log.add(year, "warning", msg)

    invest = build_invest_snapshots(scenario, active, timings, cur, warn_in_year)
    rebalance = build_rebalance_snapshots(scenario, active, timings, cur, warn_in_year)

    return TrialContext(
        scenario=scenario,
        tax_tables=tax_tables,
        rng=rng,
        log=log,
        current_year=cur,
        num_years=num_years,
        inflation=inflation,
        marital_status=marital,
        active_events=active,
        invest_snapshots=invest,
        rebalance_snapshots=rebalance,
        timings=timings,
    )


# =========================================================================
# Single trial
# =========================================================================
def _record(result: TrialResult, year: int, state: YearState, goal_met: bool):
    result.yearly_results.append(YearResult(year, state.total_assets, goal_met))
    result.cash.append(state.cash)
    result.investment_values.append(state.investment_values())
    result.expenses.append(dict(state.expense_breakdown))
    result.early_withdrawals.append(state.cur_year_early_withdrawals)
    result.incomes.append(dict(state.income_breakdown))

    # Paid amounts, not amounts owed
    paid = state.cur_year_expenses
    result.discretionary_ratios.append(state.discretionary_paid / paid if paid > 0 else 0.0)


def run_trial(scenario: Scenario, tax_tables: Optional[TaxTables] = None,
              seed: Seed = None, trial_id: int = 0) -> TrialResult:
    """
    Runs one Monte-Carlo trial. Never raises for scenario or runtime problems:
    they come back as an `error` outcome with an 'error' log entry.

    Args:
        scenario: Validated scenario; never mutated.
        tax_tables: Tax inputs (baseline tables when omitted).
        seed: Seed or SeedSequence; defaults to the scenario's seed.
        trial_id: Label carried into the result.
    """
    tax_tables = tax_tables if tax_tables is not None else default_tax_tables()
    rng = np.random.default_rng(seed if seed is not None else scenario.seed)
    log = EventLog()
    result = TrialResult(trial_id=trial_id)

    try:
        ctx = prepare_trial(scenario, tax_tables, rng, log)
    except SimulationError as exc:
        logger.error("Trial %d aborted: %s", trial_id, exc)
        log.add(scenario.current_year, "error", str(exc))
        result.outcome = TrialOutcome.ERROR
        result.error = str(exc)
        result.log = list(log)
        return result

    result.horizon = ctx.num_years
    previous: Optional[YearState] = None

    for i in range(ctx.num_years):
        year = ctx.current_year + i
        try:
            state = simulate_year(ctx, i, previous)
        except Exception as exc:
            logger.exception("Trial %d failed in year %d", trial_id, year)
            log.add(year, "error", f"Simulation failed: {exc}")
            # Back-fill with the last known-good state
            last_good = previous if previous is not None else initial_state(ctx, 0)
            _record(result, year, last_good, False)
            result.outcome = TrialOutcome.ERROR
            result.error = str(exc)
            break

        _record(result, year, state, state.financial_goal_met)
        previous = state
        if not state.financial_goal_met:
            result.outcome = TrialOutcome.GOAL_FAILED
            break

    result.log = list(log)
    return result


# =========================================================================
# Batch (parallel)
# =========================================================================
@dataclass
class BatchSummary:
    trials: List[TrialResult]

    def count(self, outcome: TrialOutcome) -> int:
        return sum(1 for t in self.trials if t.outcome == outcome)

    @property
    def completed(self) -> int:
        return self.count(TrialOutcome.COMPLETED)

    @property
    def goal_failed(self) -> int:
        return self.count(TrialOutcome.GOAL_FAILED)

    @property
    def errors(self) -> int:
        return self.count(TrialOutcome.ERROR)

    def outcome_counts(self) -> Dict[str, int]:
        return {o.value: self.count(o) for o in TrialOutcome}

    def net_worth_frame(self) -> pd.DataFrame:
        """Year x trial table of net worth; trials that stopped early have NaN tails."""
        series = [
            pd.Series([r.net_worth for r in t.yearly_results], index=t.years, name=f"trial.{t.trial_id}")
            for t in self.trials
        ]
        if not series:
            return pd.DataFrame()
        return pd.concat(series, axis=1)


def _run_trial_job(job):
    scenario, tax_tables, seed, trial_id = job
    return run_trial(scenario, tax_tables, seed=seed, trial_id=trial_id)


class RetirementSimulator:
    """
    Runs independent trials of one scenario, in parallel across a worker pool.

    Args:
        scenario: The household scenario.
        tax_tables: Tax inputs (baseline tables when omitted).
        num_trials: Number of trials.
        processes: Pool size; defaults to cpu_count() - 1. 1 runs serially.
        seed: Batch seed; per-trial seeds are spawned from it. Defaults to the
            scenario's seed (fresh entropy when neither is set).
    """

    def __init__(self, scenario: Scenario, tax_tables: Optional[TaxTables] = None,
                 num_trials: int = 1, processes: Optional[int] = None, seed: Optional[int] = None):
        if num_trials < 1:
            raise ScenarioError("num_trials must be at least 1")
        self.scenario = scenario
        self.tax_tables = tax_tables if tax_tables is not None else default_tax_tables()
        self.num_trials = num_trials
        self.processes = processes if processes is not None else max(1, mp.cpu_count() - 1)
        self.seed = seed if seed is not None else scenario.seed

    def trial_seeds(self) -> List[np.random.SeedSequence]:
        return np.random.SeedSequence(self.seed).spawn(self.num_trials)

    def run(self) -> BatchSummary:
        jobs = [(self.scenario, self.tax_tables, s, i) for i, s in enumerate(self.trial_seeds())]

        if self.processes == 1 or self.num_trials == 1:
            trials = [_run_trial_job(job) for job in jobs]
        else:
            with mp.Pool(min(self.processes, self.num_trials)) as pool:
                trials = pool.map(_run_trial_job, jobs)

        summary = BatchSummary(trials)
        logger.info("Batch finished: %s", summary.outcome_counts())
        return summary
