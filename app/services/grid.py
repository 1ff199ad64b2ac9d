"""Grid containers for the coax cross-section."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, NamedTuple, Tuple

import numpy as np


class CoaxDimensions(NamedTuple):
    """Cells per unit length and the three region thicknesses in unit lengths."""

    resolution: int
    bar_thickness: int
    vacuum_thickness: int
    tube_thickness: int

    @property
    def side(self) -> int:
        return self.resolution * (
            self.bar_thickness + 2 * self.vacuum_thickness + 2 * self.tube_thickness
        )

    def margin_cells(self, margin: int) -> int:
        return margin * self.resolution

    def cross_section_column(self) -> int:
        """Column through the vertical midline of the inner bar."""
        return self.resolution * (
            self.tube_thickness + self.vacuum_thickness + self.bar_thickness // 2
        )


def _zeros(side: int, dtype=float) -> np.ndarray:
    return np.zeros((side, side), dtype=dtype)


@dataclass
class CoaxGrid:
    """All arrays of one solve, allocated once and never resized.

    ``potential`` is the live matrix, ``previous`` the snapshot read by the
    Jacobi update. ``free_mask`` marks vacuum cells; everything else keeps its
    initial potential. ``e_x``, ``e_y`` and ``e_mag`` are written only at free
    cells by the field pass.
    """

    dimensions: CoaxDimensions
    potential: np.ndarray
    previous: np.ndarray
    free_mask: np.ndarray
    e_x: np.ndarray
    e_y: np.ndarray
    e_mag: np.ndarray
    conductor_voltage: float = field(default=0.0)

    @property
    def side(self) -> int:
        return self.dimensions.side

    @property
    def resolution(self) -> int:
        return self.dimensions.resolution

    def free_cell_count(self) -> int:
        return int(np.count_nonzero(self.free_mask))

    def free_cells(self) -> List[Tuple[int, int]]:
        """Free cell indices in row-major order."""
        rows, cols = np.nonzero(self.free_mask)
        return list(zip(rows.tolist(), cols.tolist()))


def allocate_grid(dimensions: CoaxDimensions) -> CoaxGrid:
    """Allocate zeroed arrays sized from the dimensions."""
    side = dimensions.side
    if side <= 0:
        raise ValueError(f"grid side must be positive, got {side}")
    return CoaxGrid(
        dimensions=dimensions,
        potential=_zeros(side),
        previous=_zeros(side),
        free_mask=_zeros(side, dtype=bool),
        e_x=_zeros(side),
        e_y=_zeros(side),
        e_mag=_zeros(side),
    )
