"""Command-line entry point: run a batch of trials for one scenario file."""

import argparse
import logging
import sys
from typing import List, Optional

from retiresim.engine.simulator import RetirementSimulator
from retiresim.errors import ScenarioError
from retiresim.utils.currency import format_currency
from retiresim.utils.input_adapter import load_scenario, load_tax_tables

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="retiresim", description="Monte-Carlo retirement projection")
    parser.add_argument("scenario", help="Path to scenario JSON file")
    parser.add_argument("--tax-tables", help="Path to tax tables JSON file (baseline tables when omitted)")
    parser.add_argument("--trials", type=int, default=100, help="Number of trials (default: 100)")
    parser.add_argument("--seed", type=int, help="Batch seed for reproducibility")
    parser.add_argument("--processes", type=int, help="Worker processes (default: cpu_count - 1)")
    parser.add_argument("--csv", help="Write the first trial's yearly table to this CSV path")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        scenario = load_scenario(args.scenario)
        tax_tables = load_tax_tables(args.tax_tables) if args.tax_tables else None
    except (ScenarioError, OSError) as exc:
        print(f"Failed to load inputs: {exc}", file=sys.stderr)
        return 2

    try:
        simulator = RetirementSimulator(scenario, tax_tables, num_trials=args.trials,
                                        processes=args.processes, seed=args.seed)
    except ScenarioError as exc:
        print(f"Invalid run settings: {exc}", file=sys.stderr)
        return 2

    summary = simulator.run()
    total = len(summary.trials)
    print(f"Scenario: {scenario.name}")
    print(f"Trials: {total}")
    for outcome, count in summary.outcome_counts().items():
        print(f"  {outcome}: {count} ({count / total:.1%})")

    first = summary.trials[0]
    if first.yearly_results:
        print(f"Trial 0 final net worth: {format_currency(first.yearly_results[-1].net_worth)}")
    if first.error:
        print(f"Trial 0 error: {first.error}", file=sys.stderr)

    if args.csv:
        first.to_frame().to_csv(args.csv)
        print(f"Wrote {args.csv}")

    return 1 if summary.errors == total else 0


if __name__ == "__main__":
    sys.exit(main())
