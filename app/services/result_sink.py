"""Tab-separated text exports and the console summary for a coax solve."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from pathlib import Path
from typing import Dict, Iterable, TextIO

import numpy as np

from services.compute_coax import CoaxSolution
from services.relaxation import IterationRecord

logger = logging.getLogger(__name__)

MASK_FILE = "Bool matrix.txt"
HISTORY_FILE = "Iteration steps.txt"
POTENTIAL_FILE = "Potential matrix.txt"
CROSS_SECTION_FILE = "1D cross-section.txt"
EFIELD_FILE = "E-field matrix.txt"

_NUMBER_FORMAT = "%g"


@dataclass(frozen=True)
class ExportPaths:
    mask: Path
    history: Path
    potential: Path
    cross_section: Path
    efield: Path

    def as_dict(self) -> Dict[str, str]:
        return {name: str(path) for name, path in self.__dict__.items()}


def _format_number(value: float) -> str:
    if math.isnan(value):
        return "nan"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return _NUMBER_FORMAT % value


def _write_matrix(path: Path, matrix: np.ndarray, fmt: str) -> None:
    np.savetxt(path, matrix, fmt=fmt, delimiter="\t")


def _write_history(handle: TextIO, history: Iterable[IterationRecord]) -> None:
    for record in history:
        handle.write(
            f"{record.sweep}\t{_format_number(record.s_before)}\t"
            f"{_format_number(record.s_after)}\t{_format_number(record.relative_diff)}\n"
        )


def write_text_exports(solution: CoaxSolution, directory: str | Path) -> ExportPaths:
    """Write mask, iteration history, potential, cross-section and |E| files."""
    base = Path(directory)
    base.mkdir(parents=True, exist_ok=True)
    paths = ExportPaths(
        mask=base / MASK_FILE,
        history=base / HISTORY_FILE,
        potential=base / POTENTIAL_FILE,
        cross_section=base / CROSS_SECTION_FILE,
        efield=base / EFIELD_FILE,
    )
    grid = solution.grid

    _write_matrix(paths.mask, grid.free_mask.astype(int), "%d")
    with paths.history.open("w", encoding="utf-8") as handle:
        _write_history(handle, solution.report.history)
    _write_matrix(paths.potential, grid.potential, _NUMBER_FORMAT)
    paths.cross_section.write_text(
        "".join(f"{_format_number(value)}\n" for value in solution.cross_section),
        encoding="utf-8",
    )
    _write_matrix(paths.efield, grid.e_mag, _NUMBER_FORMAT)

    logger.info("Wrote text exports to %s", base)
    return paths


def format_summary(solution: CoaxSolution) -> str:
    return (
        f"Resolution = {solution.grid.resolution}\n"
        f"No. of iterations to converge = {solution.report.iterations}"
    )
