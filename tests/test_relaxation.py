"""Relaxation engine tests."""

from __future__ import annotations

import math

import numpy as np
import pytest

from services.direct import max_abs_error, solve_direct
from services.geometry import initialize_grid
from services.grid import CoaxDimensions, allocate_grid
from services.relaxation import (
    DEFAULT_TOLERANCE,
    ConvergenceError,
    GaussSeidelUpdate,
    JacobiUpdate,
    build_update_rule,
    free_cell_sum,
    normalize_mode,
    relax,
)

# Exact discrete solution of the res=1, bar=2, vacuum=2, tube=1 cross-section, in units of V/61.
_GOLDEN = {
    (1, 1): 5.0,
    (1, 2): 10.0,
    (1, 3): 14.0,
    (2, 2): 21.0,
    (2, 3): 32.0,
}


def _grid(dims: CoaxDimensions, voltage: float = 10.0):
    return initialize_grid(allocate_grid(dims), voltage)


def _small_grid(voltage: float = 10.0):
    return _grid(CoaxDimensions(1, 2, 2, 1), voltage)


@pytest.mark.parametrize("mode", ["jacobi", "gauss_seidel"])
def test_small_scenario_matches_exact_solution(mode: str) -> None:
    grid = _small_grid()
    report = relax(grid, mode=mode)

    assert 1 <= report.iterations < 1000
    side = grid.side
    for (i, j), weight in _GOLDEN.items():
        expected = weight * 10.0 / 61.0
        # Every symmetry image of the cell carries the same value.
        for a, b in {(i, j), (j, i), (side - 1 - i, j), (i, side - 1 - j), (side - 1 - i, side - 1 - j)}:
            assert grid.potential[a, b] == pytest.approx(expected, abs=1e-9)


@pytest.mark.parametrize("mode", ["jacobi", "gauss_seidel"])
def test_fixed_cells_are_never_written(mode: str) -> None:
    grid = _grid(CoaxDimensions(2, 2, 1, 1), 4.0)
    before = grid.potential.copy()
    relax(grid, mode=mode)

    fixed = ~grid.free_mask
    assert np.array_equal(grid.potential[fixed], before[fixed])
    assert np.all(grid.potential[grid.free_mask] > 0.0)
    assert np.all(grid.potential[grid.free_mask] < 4.0)


def test_jacobi_and_gauss_seidel_agree() -> None:
    dims = CoaxDimensions(2, 2, 2, 1)
    jacobi = _grid(dims)
    gauss = _grid(dims)

    relax(jacobi, mode="jacobi")
    relax(gauss, mode="gauss_seidel")

    diff = np.abs(jacobi.potential - gauss.potential)[jacobi.free_mask]
    assert diff.max() < 1e-6


def test_gauss_seidel_needs_fewer_sweeps() -> None:
    jacobi = relax(_small_grid(), mode="jacobi")
    gauss = relax(_small_grid(), mode="gauss_seidel")
    assert gauss.iterations < jacobi.iterations


def test_jacobi_keeps_snapshot_in_sync() -> None:
    grid = _small_grid()
    relax(grid, mode="jacobi")
    assert np.array_equal(grid.potential, grid.previous)


def test_gauss_seidel_leaves_snapshot_alone() -> None:
    grid = _small_grid()
    snapshot = grid.previous.copy()
    relax(grid, mode="gauss_seidel")
    assert np.array_equal(grid.previous, snapshot)


@pytest.mark.parametrize("mode", ["jacobi", "gauss_seidel"])
def test_solution_has_fourfold_symmetry(mode: str) -> None:
    grid = _grid(CoaxDimensions(2, 2, 2, 1))
    relax(grid, mode=mode)

    phi = grid.potential
    side = grid.side
    for i in range(side):
        for j in range(side):
            assert phi[i, j] == pytest.approx(phi[j, side - 1 - i], abs=1e-9)
            assert phi[i, j] == pytest.approx(phi[side - 1 - i, side - 1 - j], abs=1e-9)


@pytest.mark.parametrize("mode", ["jacobi", "gauss_seidel"])
def test_history_records_every_sweep_and_stops_at_first_pass(mode: str) -> None:
    grid = _grid(CoaxDimensions(2, 1, 1, 1))
    report = relax(grid, mode=mode)

    assert len(report.history) == report.iterations
    assert [record.sweep for record in report.history] == list(range(1, report.iterations + 1))

    first = report.history[0]
    assert first.s_before == 0.0
    assert first.s_after > 0.0
    assert math.isinf(first.relative_diff)

    def passes(record) -> bool:
        return (
            record.s_before != 0.0
            and record.s_after != 0.0
            and record.diff <= DEFAULT_TOLERANCE * abs(record.s_before)
        )

    assert passes(report.history[-1])
    assert not any(passes(record) for record in report.history[:-1])
    assert report.final_relative_diff == report.history[-1].relative_diff

    for previous, current in zip(report.history, report.history[1:]):
        assert current.s_before == previous.s_after


def test_diff_shrinks_as_the_solve_proceeds() -> None:
    report = relax(_grid(CoaxDimensions(2, 2, 2, 1)), mode="gauss_seidel")
    history = report.history
    assert len(history) > 4
    middle = history[len(history) // 2]
    assert history[-1].diff <= middle.diff
    assert middle.diff < history[1].diff


def test_negative_voltage_mirrors_positive() -> None:
    positive = _small_grid(10.0)
    negative = _small_grid(-10.0)
    pos_report = relax(positive)
    neg_report = relax(negative)

    assert pos_report.iterations == neg_report.iterations
    assert np.allclose(positive.potential, -negative.potential, atol=1e-12)


def test_no_free_cells_returns_zero_iterations() -> None:
    grid = allocate_grid(CoaxDimensions(1, 2, 2, 1))
    report = relax(grid)
    assert report.iterations == 0
    assert report.history == []
    assert report.final_relative_diff is None


def test_max_sweeps_raises_convergence_error() -> None:
    with pytest.raises(ConvergenceError):
        relax(_small_grid(), mode="jacobi", max_sweeps=2)


def test_free_cell_sum_ignores_fixed_cells() -> None:
    grid = _small_grid()
    assert free_cell_sum(grid) == 0.0
    grid.potential[1, 1] = -2.5
    grid.potential[2, 2] = 1.0
    assert free_cell_sum(grid) == pytest.approx(3.5)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("A", "jacobi"),
        ("jacobi", "jacobi"),
        (1, "jacobi"),
        ("B", "gauss_seidel"),
        ("Gauss-Seidel", "gauss_seidel"),
        (2, "gauss_seidel"),
    ],
)
def test_normalize_mode(raw, expected: str) -> None:
    assert normalize_mode(raw) == expected


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_update_rule("sor")


def test_build_update_rule_types() -> None:
    assert isinstance(build_update_rule("A"), JacobiUpdate)
    assert isinstance(build_update_rule("B"), GaussSeidelUpdate)


def test_relax_accepts_rule_instance() -> None:
    report = relax(_small_grid(), mode=JacobiUpdate())
    assert report.mode == "jacobi"


@pytest.mark.parametrize("mode", ["jacobi", "gauss_seidel"])
def test_relaxation_matches_direct_solve(mode: str) -> None:
    grid = _grid(CoaxDimensions(3, 1, 1, 1), 7.0)
    reference = solve_direct(grid)
    relax(grid, mode=mode)
    assert max_abs_error(grid, reference) < 1e-9


def test_direct_solve_small_scenario() -> None:
    grid = _small_grid()
    reference = solve_direct(grid)
    assert reference[2, 3] == pytest.approx(320.0 / 61.0, abs=1e-12)
    assert reference[1, 1] == pytest.approx(50.0 / 61.0, abs=1e-12)
    # Input grid stays untouched.
    assert not grid.potential[grid.free_mask].any()
