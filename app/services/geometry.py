"""Stamp the bar/vacuum/tube regions onto a coax grid and validate the result."""

from __future__ import annotations

import logging
import math

import numpy as np

from services.grid import CoaxGrid

logger = logging.getLogger(__name__)


class GeometryError(ValueError):
    """Configuration that cannot be relaxed."""


class DegenerateGeometryError(GeometryError):
    """Empty or wrongly nested regions, or nothing to drive the solution."""


class BoundaryViolationError(GeometryError):
    """A free cell without four in-bounds neighbours."""


def _window(grid: CoaxGrid, margin: int) -> slice:
    side = grid.side
    start = grid.dimensions.margin_cells(margin)
    return slice(start, max(start, side - start))


def set_voltage(grid: CoaxGrid, matrix: np.ndarray, potential: float, margin: int) -> None:
    """Set every cell inside the square window ``margin`` unit lengths in from the edge."""
    window = _window(grid, margin)
    matrix[window, window] = potential


def set_free(grid: CoaxGrid, value: bool, margin: int) -> None:
    """Mark the square window ``margin`` unit lengths in from the edge as free or fixed."""
    window = _window(grid, margin)
    grid.free_mask[window, window] = value


def _check_dimensions(grid: CoaxGrid) -> None:
    dims = grid.dimensions
    if dims.resolution < 1:
        raise DegenerateGeometryError(f"resolution must be >= 1, got {dims.resolution}")
    for name in ("bar_thickness", "vacuum_thickness", "tube_thickness"):
        value = getattr(dims, name)
        if value < 0:
            raise DegenerateGeometryError(f"{name} must be >= 0, got {value}")
    if dims.bar_thickness == 0:
        raise DegenerateGeometryError("bar_thickness must be >= 1: the inner conductor is empty")


def validate_grid(grid: CoaxGrid) -> None:
    """Reject grids the relaxation loop cannot handle.

    Raises ``BoundaryViolationError`` when a free cell touches the outer ring
    and ``DegenerateGeometryError`` for an empty vacuum region, a conductor
    that is not enclosed by vacuum, or an all-zero boundary.
    """
    _check_dimensions(grid)
    mask = grid.free_mask

    edge = np.concatenate((mask[0, :], mask[-1, :], mask[:, 0], mask[:, -1]))
    if edge.any():
        raise BoundaryViolationError(
            "free cells reach the outer ring; tube_thickness * resolution must be >= 1"
        )

    if not mask.any():
        raise DegenerateGeometryError(
            "no free cells; vacuum_thickness * resolution must be >= 1"
        )

    bar = _window(grid, grid.dimensions.tube_thickness + grid.dimensions.vacuum_thickness)
    if mask[bar, bar].any():
        raise DegenerateGeometryError("inner conductor overlaps the vacuum region")

    # Vacuum must surround the bar on all four sides.
    start, stop = bar.start, bar.stop
    if not (
        mask[start - 1, start:stop].all()
        and mask[stop, start:stop].all()
        and mask[start:stop, start - 1].all()
        and mask[start:stop, stop].all()
    ):
        raise DegenerateGeometryError("vacuum region does not enclose the inner conductor")

    if not np.isfinite(grid.potential).all():
        raise DegenerateGeometryError("potential contains non-finite values")
    if not grid.potential[~mask].any():
        raise DegenerateGeometryError(
            "all fixed potentials are zero; conductor_voltage must be nonzero"
        )


def initialize_grid(grid: CoaxGrid, conductor_voltage: float) -> CoaxGrid:
    """Apply conductor voltage and free/fixed mask, then validate."""
    if not math.isfinite(conductor_voltage):
        raise DegenerateGeometryError(f"conductor_voltage must be finite, got {conductor_voltage}")

    dims = grid.dimensions
    _check_dimensions(grid)
    inner = dims.tube_thickness + dims.vacuum_thickness

    grid.conductor_voltage = float(conductor_voltage)
    set_voltage(grid, grid.potential, conductor_voltage, inner)
    set_voltage(grid, grid.previous, conductor_voltage, inner)

    # Grow the free square first, then carve the conductor back out.
    set_free(grid, True, dims.tube_thickness)
    set_free(grid, False, inner)

    validate_grid(grid)
    logger.debug(
        "Initialized %dx%d grid with %d free cells (V=%g)",
        grid.side,
        grid.side,
        grid.free_cell_count(),
        grid.conductor_voltage,
    )
    return grid
