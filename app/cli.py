"""Command line runner: solve one coax cross-section and write the text exports."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from config import configure_logging, settings
from schemas import CoaxGeometry, SolverOptions
from services.compute_coax import dimensions_from_geometry, solve_coax
from services.geometry import GeometryError
from services.relaxation import ConvergenceError, DEFAULT_TOLERANCE
from services.result_sink import format_summary, write_text_exports

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    defaults = CoaxGeometry()
    parser = argparse.ArgumentParser(
        description="Relax Laplace's equation in a square coax cross-section."
    )
    parser.add_argument("--resolution", type=int, default=defaults.resolution, help="cells per unit length")
    parser.add_argument("--bar", type=int, default=defaults.bar_thickness, help="inner bar thickness")
    parser.add_argument("--vacuum", type=int, default=defaults.vacuum_thickness, help="vacuum thickness")
    parser.add_argument("--tube", type=int, default=defaults.tube_thickness, help="outer tube thickness")
    parser.add_argument("--voltage", type=float, default=10.0, help="inner bar voltage")
    parser.add_argument(
        "--mode",
        default="gauss_seidel",
        help="update rule: jacobi (A, 1) or gauss_seidel (B, 2)",
    )
    parser.add_argument("--tolerance", type=float, default=DEFAULT_TOLERANCE)
    parser.add_argument("--max-sweeps", type=int, default=None)
    parser.add_argument("--output-dir", default=".", help="directory for the text exports")
    parser.add_argument("--no-export", action="store_true", help="only print the summary")
    parser.add_argument(
        "--verify-direct",
        action="store_true",
        help="compare against a sparse direct solve",
    )
    parser.add_argument("--log-level", default=settings.log_level)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        geometry = CoaxGeometry(
            resolution=args.resolution,
            bar_thickness=args.bar,
            vacuum_thickness=args.vacuum,
            tube_thickness=args.tube,
        )
        solver = SolverOptions(
            update_mode=args.mode,
            tolerance=args.tolerance,
            max_sweeps=args.max_sweeps,
            verify_direct=args.verify_direct,
        )
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    try:
        solution = solve_coax(
            dimensions_from_geometry(geometry),
            args.voltage,
            mode=solver.update_mode,
            tolerance=solver.tolerance,
            max_sweeps=solver.max_sweeps,
            verify_direct=solver.verify_direct,
        )
    except (GeometryError, ConvergenceError) as exc:
        logger.error("Solve failed: %s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if not args.no_export:
        write_text_exports(solution, args.output_dir)

    print(format_summary(solution))
    if solution.direct_error is not None:
        print(f"Max deviation from direct solve = {solution.direct_error:g}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
