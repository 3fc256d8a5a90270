#!/usr/bin/env python3
"""
run_harness.py - Timebase Integration Test Execution

Runs the JACK Timebase integration test: launches the reference engine and
the dedicated test binary, drives them through every scenario via OSC and
reports whether all of them exited cleanly.

Usage:
    python3 tbharness/harness/run_harness.py
    python3 tbharness/harness/run_harness.py --config harness.yaml
    python3 tbharness/harness/run_harness.py --reference build/src/cli/h2cli --verbose

Exit codes:
    0  every scenario passed
    1  a process failed (or the harness itself crashed)
    2  precondition failure (missing executable, bad settings file)
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path for imports
_project_root = Path(__file__).parent.parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import yaml

from tbharness.config.settings import HarnessSettings, load_settings
from tbharness.harness.context import RETURN_FAILURE, RETURN_PRECONDITION
from tbharness.harness.launcher import HarnessLauncher, PreconditionError
from tbharness.harness.scenarios import SCENARIOS, describe

LOG_FORMAT = '[%(name)s] %(levelname)s: %(message)s'


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Run the JACK Timebase integration test.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with the default build tree layout
  python3 tbharness/harness/run_harness.py

  # Point the harness at other binaries and collect logs elsewhere
  python3 tbharness/harness/run_harness.py --reference /opt/h2/h2cli \\
      --test-binary /opt/h2/h2JackTimebase --log-dir /tmp/timebase

  # Only check that both executables can be found
  python3 tbharness/harness/run_harness.py --dry-run
        """
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML settings file (default: built-in settings)"
    )

    parser.add_argument(
        "--reference",
        default=None,
        help="Reference engine executable (overrides settings)"
    )

    parser.add_argument(
        "--test-binary",
        default=None,
        help="Dedicated test binary executable (overrides settings)"
    )

    parser.add_argument(
        "--log-dir",
        default=None,
        help="Directory for all log files (overrides settings)"
    )

    parser.add_argument(
        "--list",
        action="store_true",
        help="List the scenarios and exit"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate preconditions without launching anything"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output (debug logging)"
    )

    return parser.parse_args(argv)


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr
    )


def print_summary(result):
    print("\n" + "="*60)
    print("Execution Complete")
    print("="*60)

    for outcome in result.outcomes:
        mark = {"passed": "✓", "failed": "✗"}.get(outcome.status, "-")
        print(f"  {mark} [{outcome.index}] {outcome.label:<22} {outcome.status:<8} "
              f"{outcome.duration_sec:6.1f}s")

    print(f"\n  Wall time: {result.duration_sec:.1f}s")
    print("\n✓ SUCCESS" if result.success else "\n✗ FAILED")


def main(argv=None) -> int:
    """
    Main entry point.

    Returns:
        0 on success, 1 on failure, 2 on precondition failure
    """
    args = parse_args(argv)
    configure_logging(args.verbose)

    if args.list:
        print(f"{len(SCENARIOS)} scenario(s):")
        print(describe())
        return 0

    try:
        settings = load_settings(str(args.config)) if args.config else HarnessSettings()
        settings = settings.with_overrides(
            reference=args.reference,
            test_binary=args.test_binary,
            log_dir=args.log_dir,
        )
    except FileNotFoundError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return RETURN_PRECONDITION
    except (ValueError, yaml.YAMLError) as e:
        print(f"ERROR: Invalid settings:", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        return RETURN_PRECONDITION

    launcher = HarnessLauncher(settings)

    if args.dry_run:
        print("\n" + "="*60)
        print("DRY RUN MODE - Validation Only")
        print("="*60)

        errors = launcher.validate()
        if errors:
            print("\n✗ Precondition check FAILED:")
            for error in errors:
                print(f"  - {error}")
            return RETURN_PRECONDITION

        print("\n✓ Precondition check PASSED")
        print(f"  Reference:   {settings.binaries.reference}")
        print(f"  Test binary: {settings.binaries.test_binary}")
        print(f"  Log dir:     {settings.log_dir}")
        return 0

    print("\n" + "="*60)
    print("JACK Timebase Integration Test")
    print("="*60)

    try:
        result = launcher.run()
    except PreconditionError as e:
        logging.getLogger("tbharness").critical("%s", e)
        return RETURN_PRECONDITION
    except Exception as e:
        print(f"\nERROR: Unexpected error:", file=sys.stderr)
        print(f"  {type(e).__name__}: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return RETURN_FAILURE

    print_summary(result)
    return result.return_code


if __name__ == "__main__":
    sys.exit(main())
