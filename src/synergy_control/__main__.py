"""Command-line entry point for extracting muscle synergies and building synergy controllers."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path

from rich.logging import RichHandler

from .analysis import AnalysisArtifacts, SynergyAnalysis, model_from_table
from .config import FactorizationConfig
from .data_io import read_table
from .exceptions import SynergyControlError
from .synthetic_data import make_gait_excitations, make_gait_model


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {seconds % 60:.1f}s"


def print_header(text: str, width: int = 70) -> None:
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width)


def configure_logging(verbosity: int) -> None:
    level = {0: logging.ERROR, 1: logging.WARNING}.get(verbosity, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbosity >= 2)],
        force=True,
    )


def print_summary(artifacts: AnalysisArtifacts, elapsed: float, verbose: bool) -> None:
    print_header("Synergy Extraction Summary")
    print(f"\nRuntime: {format_duration(elapsed)}")
    print(f"Synergies per group: {artifacts.config.n_synergies}")

    print("\n--- Groups ---")
    for group, labels in artifacts.groups.items():
        result = artifacts.results[group]
        controller = artifacts.controllers[group]
        print(f"  {group}: {len(labels)} actuators -> {controller.path}")
        print(f"    final error {result.final_error:.6e} after {result.iterations} iterations")
        if verbose:
            for k in range(controller.num_synergies):
                print(f"    input {controller.input_path(k)}")

    print(f"\nRMS error of re-expanded controls: {artifacts.controls_error:.6f}")
    print("\n" + artifacts.tables)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Extract muscle synergies by non-negative matrix factorization and "
        "build one synergy controller per group of actuators.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                   # Synthetic gait data
  %(prog)s --excitations solution.sto -k 5   # Measured or solved excitations
  %(prog)s --output-dir results/ --verbose
        """,
    )
    parser.add_argument(
        "--excitations",
        type=Path,
        default=None,
        help="Time-series file (.sto, .mot or .csv) with a time column and one column per "
        "actuator. Defaults to synthetic gait excitations.",
    )
    parser.add_argument("-k", "--num-synergies", type=int, default=4, help="Synergies per group (default: 4).")
    parser.add_argument("--max-iterations", type=int, default=1000, help="Iteration cap (default: 1000).")
    parser.add_argument("--tolerance", type=float, default=1.0e-6, help="Relative error-decrease tolerance (default: 1e-6).")
    parser.add_argument("--seed", type=int, default=0, help="Seed for the initial factors (default: 0).")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("artifacts"),
        help="Directory where plots, controls and metrics are written (default: artifacts).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show detailed progress information.")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress all output except errors.")
    args = parser.parse_args()

    if args.output_dir.exists() and not args.output_dir.is_dir():
        print(f"Error: Output path exists but is not a directory: {args.output_dir}", file=sys.stderr)
        sys.exit(1)

    verbosity = 0 if args.quiet else 2 if args.verbose else 1
    os.environ["SYNERGY_VERBOSITY"] = str(verbosity)
    configure_logging(verbosity)

    start_time = time.time()
    try:
        config = FactorizationConfig(
            n_synergies=args.num_synergies,
            max_iterations=args.max_iterations,
            tolerance=args.tolerance,
            seed=args.seed,
        )
        if args.excitations is None:
            model = make_gait_model()
            table = make_gait_excitations(model, seed=args.seed)
        else:
            table = read_table(args.excitations)
            model = model_from_table(table)
        if not args.quiet:
            print_header("Synergy Extraction")
            print(f"\nSource: {args.excitations or 'synthetic gait excitations'}")
            print(f"Output directory: {args.output_dir.resolve()}")

        artifacts = SynergyAnalysis(model, config).run(table, output_dir=args.output_dir)
        elapsed = time.time() - start_time

        if args.quiet:
            print(f"{artifacts.controls_error:.6f}")
        else:
            print_summary(artifacts, elapsed, args.verbose)
            print_header("Extraction Complete")
            print(f"Results written to: {args.output_dir.resolve()}\n")

    except FileNotFoundError as e:
        print(f"\nError: File not found: {e}", file=sys.stderr)
        sys.exit(1)
    except (SynergyControlError, ValueError) as e:
        elapsed = time.time() - start_time
        print(f"\nError after {format_duration(elapsed)}:\nInvalid input: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
