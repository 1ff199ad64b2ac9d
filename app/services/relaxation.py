"""Finite-difference relaxation of Laplace's equation over the free cells of a coax grid."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import logging
import math
from typing import Dict, List, Optional, Type, Union

import numpy as np

from services.grid import CoaxGrid

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 1e-14


class ConvergenceError(RuntimeError):
    """Raised when ``max_sweeps`` runs out before the convergence test passes."""


@dataclass(frozen=True)
class IterationRecord:
    sweep: int
    s_before: float
    s_after: float
    relative_diff: float

    @property
    def diff(self) -> float:
        return abs(self.s_after - self.s_before)


@dataclass
class RelaxationReport:
    """Outcome of :func:`relax`."""

    iterations: int
    mode: str
    tolerance: float
    history: List[IterationRecord] = field(default_factory=list)

    @property
    def final_relative_diff(self) -> Optional[float]:
        if not self.history:
            return None
        return self.history[-1].relative_diff


class UpdateRule(ABC):
    """One sweep of the 5-point average over every free cell."""

    name: str = ""

    def prepare(self, grid: CoaxGrid) -> None:
        """Hook run once before the first sweep."""

    @abstractmethod
    def sweep(self, grid: CoaxGrid) -> None:
        raise NotImplementedError


class JacobiUpdate(UpdateRule):
    """Synchronous update: neighbours come from the previous sweep's snapshot.

    Every free cell reads only ``grid.previous``, so the result of a sweep does
    not depend on visiting order. The snapshot is refreshed after the sweep.
    """

    name = "jacobi"

    def prepare(self, grid: CoaxGrid) -> None:
        np.copyto(grid.previous, grid.potential)

    def sweep(self, grid: CoaxGrid) -> None:
        prev = grid.previous
        averaged = 0.25 * (prev[2:, 1:-1] + prev[:-2, 1:-1] + prev[1:-1, 2:] + prev[1:-1, :-2])
        inner_mask = grid.free_mask[1:-1, 1:-1]
        grid.potential[1:-1, 1:-1][inner_mask] = averaged[inner_mask]
        np.copyto(grid.previous, grid.potential)


class GaussSeidelUpdate(UpdateRule):
    """In-place update in row-major order.

    Cells above and to the left have already been updated in the current sweep
    when a cell is visited, so the trajectory depends on the visiting order.
    """

    name = "gauss_seidel"

    def __init__(self) -> None:
        self._cells: List[tuple] = []

    def prepare(self, grid: CoaxGrid) -> None:
        self._cells = grid.free_cells()

    def sweep(self, grid: CoaxGrid) -> None:
        values = grid.potential.tolist()
        for i, j in self._cells:
            above = values[i - 1]
            below = values[i + 1]
            row = values[i]
            row[j] = 0.25 * (below[j] + above[j] + row[j + 1] + row[j - 1])
        grid.potential[:, :] = values


_RULES: Dict[str, Type[UpdateRule]] = {
    "jacobi": JacobiUpdate,
    "gauss_seidel": GaussSeidelUpdate,
}

_MODE_ALIASES: Dict[str, str] = {
    "a": "jacobi",
    "1": "jacobi",
    "jacobi": "jacobi",
    "synchronous": "jacobi",
    "b": "gauss_seidel",
    "2": "gauss_seidel",
    "gauss_seidel": "gauss_seidel",
    "gauss-seidel": "gauss_seidel",
    "gaussseidel": "gauss_seidel",
    "in_place": "gauss_seidel",
}


def normalize_mode(mode: Union[str, int]) -> str:
    """Map ``A``/``B``, ``1``/``2`` and spelled-out names to a rule name."""
    key = str(mode).strip().lower()
    try:
        return _MODE_ALIASES[key]
    except KeyError:
        raise ValueError(f"unknown update mode {mode!r}; expected one of {sorted(_RULES)}") from None


def build_update_rule(mode: Union[str, int]) -> UpdateRule:
    return _RULES[normalize_mode(mode)]()


def free_cell_sum(grid: CoaxGrid) -> float:
    """Sum of absolute potential over the free cells."""
    return float(np.abs(grid.potential[grid.free_mask]).sum())


def _relative(diff: float, s_before: float) -> float:
    if s_before != 0.0:
        return diff / s_before
    return math.inf if diff > 0.0 else math.nan


def relax(
    grid: CoaxGrid,
    mode: Union[str, int, UpdateRule] = "gauss_seidel",
    tolerance: float = DEFAULT_TOLERANCE,
    max_sweeps: Optional[int] = None,
) -> RelaxationReport:
    """Sweep until the free-cell sum stops changing.

    Each iteration records ``S_before``, sweeps, records ``S_after`` and stops
    once ``|S_after - S_before| <= tolerance * |S_before|`` with both sums
    nonzero. The zero guard keeps the untouched all-zero start from passing
    the relative test. Returns the 1-based count of sweeps executed together
    with the per-sweep history.
    """
    rule = mode if isinstance(mode, UpdateRule) else build_update_rule(mode)
    report = RelaxationReport(iterations=0, mode=rule.name, tolerance=tolerance)

    if grid.free_cell_count() == 0:
        logger.warning("Grid has no free cells; nothing to relax")
        return report

    rule.prepare(grid)
    debug = logger.isEnabledFor(logging.DEBUG)

    while True:
        s_before = free_cell_sum(grid)
        rule.sweep(grid)
        s_after = free_cell_sum(grid)
        diff = abs(s_after - s_before)
        report.iterations += 1

        record = IterationRecord(
            sweep=report.iterations,
            s_before=s_before,
            s_after=s_after,
            relative_diff=_relative(diff, s_before),
        )
        report.history.append(record)
        if debug:
            logger.debug(
                "sweep %d: S_before=%.17g S_after=%.17g rel=%.3e",
                record.sweep,
                s_before,
                s_after,
                record.relative_diff,
            )

        if s_before != 0.0 and s_after != 0.0 and diff <= abs(tolerance * s_before):
            break
        if max_sweeps is not None and report.iterations >= max_sweeps:
            raise ConvergenceError(
                f"{rule.name} did not converge within {max_sweeps} sweeps "
                f"(last relative change {record.relative_diff:.3e}, tolerance {tolerance:.1e})"
            )

    logger.info(
        "%s relaxation converged after %d sweeps (relative change %.3e)",
        rule.name,
        report.iterations,
        report.final_relative_diff,
    )
    return report
