"""Electric field from the converged potential."""

from __future__ import annotations

from typing import List

import numpy as np

from services.grid import CoaxGrid


def derive_field(grid: CoaxGrid) -> CoaxGrid:
    """Centered differences at free cells; fixed cells keep a zero field.

    ``E_x`` differences along the row index and ``E_y`` along the column
    index, both scaled by ``resolution / 2`` (cell spacing is ``1/resolution``).
    """
    phi = grid.potential
    res = grid.resolution
    inner_mask = grid.free_mask[1:-1, 1:-1]

    e_x = (phi[:-2, 1:-1] - phi[2:, 1:-1]) * res / 2
    e_y = (phi[1:-1, :-2] - phi[1:-1, 2:]) * res / 2

    grid.e_x[1:-1, 1:-1][inner_mask] = e_x[inner_mask]
    grid.e_y[1:-1, 1:-1][inner_mask] = e_y[inner_mask]
    free = grid.free_mask
    grid.e_mag[free] = np.sqrt(grid.e_x[free] * grid.e_x[free] + grid.e_y[free] * grid.e_y[free])
    return grid


def extract_cross_section(grid: CoaxGrid) -> List[float]:
    """Potential down the column through the middle of the inner bar, one value per row."""
    column = grid.dimensions.cross_section_column()
    return grid.potential[:, column].tolist()
