"""Direct sparse solve of the same discrete problem, used to check relaxation results."""

from __future__ import annotations

from typing import List, Tuple

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from services.grid import CoaxGrid


def assemble_laplace_system(grid: CoaxGrid) -> Tuple[sp.csr_matrix, np.ndarray, List[Tuple[int, int]]]:
    """Assemble ``4 phi_ij - sum(free neighbours) = sum(fixed neighbours)`` over free cells."""
    cells = grid.free_cells()
    index = {cell: n for n, cell in enumerate(cells)}
    phi = grid.potential

    data: List[float] = []
    row_idx: List[int] = []
    col_idx: List[int] = []
    b = np.zeros(len(cells), dtype=float)

    for n, (i, j) in enumerate(cells):
        row_idx.append(n)
        col_idx.append(n)
        data.append(4.0)
        for k, l in ((i + 1, j), (i - 1, j), (i, j + 1), (i, j - 1)):
            neighbor = index.get((k, l))
            if neighbor is None:
                b[n] += phi[k, l]
            else:
                row_idx.append(n)
                col_idx.append(neighbor)
                data.append(-1.0)

    total = len(cells)
    matrix = sp.csr_matrix((data, (row_idx, col_idx)), shape=(total, total))
    return matrix, b, cells


def solve_direct(grid: CoaxGrid) -> np.ndarray:
    """Return a full potential matrix with free cells solved exactly; ``grid`` is not modified."""
    solution = grid.potential.copy()
    if grid.free_cell_count() == 0:
        return solution

    matrix, b, cells = assemble_laplace_system(grid)
    values = spla.spsolve(matrix.tocsc(), b)
    rows, cols = zip(*cells)
    solution[list(rows), list(cols)] = values
    return solution


def max_abs_error(grid: CoaxGrid, reference: np.ndarray) -> float:
    """Largest deviation from ``reference`` over the free cells."""
    if grid.free_cell_count() == 0:
        return 0.0
    return float(np.max(np.abs(grid.potential[grid.free_mask] - reference[grid.free_mask])))
