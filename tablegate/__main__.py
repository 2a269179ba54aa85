"""CLI entry point for running validation plans.

Usage:
    python -m tablegate orders_plan.yaml
    python -m tablegate orders_plan.yaml --data ./orders_2025-01-15.parquet
    python -m tablegate orders_plan.yaml --workers 4 --step-timeout 30
    python -m tablegate orders_plan.yaml --check

Exit codes:
    0  every step passed
    1  a step had failing test units or a captured error
    2  a step met its stop threshold
    3  the plan or data could not be loaded
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from tablegate.lib.agent import Agent
from tablegate.lib.errors import ConfigurationError, StopThresholdError
from tablegate.lib.observability import setup_logging
from tablegate.lib.plan_loader import PlanConfig, build_agent, load_plan, read_table
from tablegate.lib.settings import get_settings
from tablegate.lib.validation_set import ValidationSet

logger = logging.getLogger(__name__)

EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_STOPPED = 2
EXIT_CONFIG_ERROR = 3


def print_plan(plan: PlanConfig) -> None:
    """Print the steps a plan would queue."""
    print()
    print("=" * 60)
    print(f"Plan: {plan.name or '(unnamed)'}")
    print("=" * 60)
    print(f"Data: {plan.data or '(from --data)'}")
    for n, step in enumerate(plan.steps, start=1):
        state = "" if step.active else "  [inactive]"
        print(f"  {n:>3}. {step.validation} on {step.columns}{state}")
    print("=" * 60)


def print_result(validation_set: ValidationSet, agent: Agent) -> None:
    """Print one line per step of an interrogation."""
    print()
    print("=" * 60)
    print(f"Agent: {agent.name}")
    print("=" * 60)

    for step, result in validation_set:
        if result is None or not result.active:
            print(f"{step.i:>3}. {step.assertion_type.value}({step.column}): skipped")
            continue

        flags = [tier for tier in ("notify", "warn", "stop") if getattr(result, tier)]
        line = (
            f"{step.i:>3}. {step.assertion_type.value}({step.column}): "
            f"{result.n_failed}/{result.n} failed ({result.f_failed:.1%})"
        )
        if flags:
            line += f"  [{', '.join(flags).upper()}]"
        print(line)
        if result.captured_error:
            print(f"     error: {result.captured_error}")
        if result.captured_warning:
            print(f"     warning: {result.captured_warning}")

    print("=" * 60)


def _exit_code(validation_set: ValidationSet) -> int:
    if validation_set.any_tier("stop"):
        return EXIT_STOPPED
    if validation_set.all_passed() and not validation_set.any_tier("warn"):
        return EXIT_PASSED
    return EXIT_FAILED


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="tablegate",
        description="Interrogate a table with a YAML validation plan",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Validate the data file named in the plan
    python -m tablegate orders_plan.yaml

    # Validate another file with the same plan
    python -m tablegate orders_plan.yaml --data ./orders.parquet

    # Evaluate steps on 4 threads, giving each step at most 30 seconds
    python -m tablegate orders_plan.yaml --workers 4 --step-timeout 30

    # Check the plan without reading any data
    python -m tablegate orders_plan.yaml --check
        """,
    )
    parser.add_argument("plan", help="Path to the YAML validation plan")
    parser.add_argument("--data", help="CSV or Parquet file to validate (overrides the plan's data)")
    parser.add_argument("--workers", type=int, help="Threads for step evaluation")
    parser.add_argument("--step-timeout", type=float, help="Seconds allowed per step")
    parser.add_argument("--check", action="store_true", help="Validate the plan file only")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--json-log",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument("--log-file", help="Write logs to a file in addition to the console")

    args = parser.parse_args(argv)

    load_dotenv()
    settings = get_settings(reload=True)
    setup_logging(
        verbose=args.verbose,
        json_format=args.json_log or settings.log_format == "json",
        log_file=args.log_file or settings.log_file,
        level=settings.log_level,
    )

    try:
        plan = load_plan(args.plan)
        if args.check:
            print_plan(plan)
            return EXIT_PASSED

        data_path = args.data or plan.data
        if not data_path:
            raise ConfigurationError(
                "No data to validate",
                field="data",
                suggestion="Set 'data' in the plan or pass --data.",
            )
        agent = build_agent(plan, read_table(data_path))
    except (ConfigurationError, FileNotFoundError) as e:
        logger.error("Could not load plan: %s", e)
        print(f"\nError: {e}")
        return EXIT_CONFIG_ERROR

    try:
        agent.interrogate(max_workers=args.workers, step_timeout=args.step_timeout)
    except StopThresholdError as e:
        logger.error("%s", e.message)
        print_result(e.validation_set or agent.validation_set, agent)
        return EXIT_STOPPED
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130

    print_result(agent.validation_set, agent)
    return _exit_code(agent.validation_set)


if __name__ == "__main__":
    sys.exit(main())
