"""Coax cable cross-section solve: geometry, relaxation, field and payload assembly."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import List, Optional

from schemas import (
    CoaxGeometry,
    CrossSection,
    FieldGrid,
    IterationRecordOut,
    SimulationMetadata,
    SimulationRequest,
    SimulationResult,
    SolverMetadata,
)
from services.direct import max_abs_error, solve_direct
from services.field import derive_field, extract_cross_section
from services.geometry import initialize_grid
from services.grid import CoaxDimensions, CoaxGrid, allocate_grid
from services.relaxation import DEFAULT_TOLERANCE, IterationRecord, RelaxationReport, relax

logger = logging.getLogger(__name__)


@dataclass
class CoaxSolution:
    """Arrays and report of one run, before conversion to the API payload."""

    grid: CoaxGrid
    report: RelaxationReport
    cross_section: List[float]
    direct_error: Optional[float] = None


def dimensions_from_geometry(geometry: CoaxGeometry) -> CoaxDimensions:
    return CoaxDimensions(
        resolution=geometry.resolution,
        bar_thickness=geometry.bar_thickness,
        vacuum_thickness=geometry.vacuum_thickness,
        tube_thickness=geometry.tube_thickness,
    )


def solve_coax(
    dimensions: CoaxDimensions,
    conductor_voltage: float,
    mode: str = "gauss_seidel",
    tolerance: float = DEFAULT_TOLERANCE,
    max_sweeps: Optional[int] = None,
    verify_direct: bool = False,
) -> CoaxSolution:
    """Allocate, initialize, relax and differentiate one cross-section."""
    grid = allocate_grid(dimensions)
    initialize_grid(grid, conductor_voltage)
    logger.info(
        "Solving %dx%d coax grid (res=%d, mode=%s, %d free cells)",
        grid.side,
        grid.side,
        dimensions.resolution,
        mode,
        grid.free_cell_count(),
    )

    report = relax(grid, mode=mode, tolerance=tolerance, max_sweeps=max_sweeps)
    derive_field(grid)
    solution = CoaxSolution(grid=grid, report=report, cross_section=extract_cross_section(grid))

    if verify_direct:
        solution.direct_error = max_abs_error(grid, solve_direct(grid))
        logger.info("Max deviation from direct solve: %.3e", solution.direct_error)

    return solution


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return value


def _record_out(record: IterationRecord) -> IterationRecordOut:
    return IterationRecordOut(
        sweep=record.sweep,
        s_before=record.s_before,
        s_after=record.s_after,
        relative_diff=_finite_or_none(record.relative_diff),
    )


def build_result(request: SimulationRequest, request_id: str, solution: CoaxSolution) -> SimulationResult:
    grid = solution.grid
    report = solution.report
    outputs = request.outputs

    enable_mask = outputs.mask if outputs is not None else True
    enable_potential = outputs.potential if outputs is not None else True
    enable_efield = outputs.efield if outputs is not None else True
    enable_components = outputs.efield_components if outputs is not None else False
    enable_history = outputs.history if outputs is not None else True
    enable_cross_section = outputs.cross_section if outputs is not None else True

    warnings: List[str] = []
    if report.iterations == 0:
        warnings.append("no free cells were relaxed")

    solver_meta = SolverMetadata(
        update_mode=report.mode,
        tolerance=report.tolerance,
        iterations=report.iterations,
        converged=report.iterations > 0,
        final_relative_diff=_finite_or_none(report.final_relative_diff),
        max_abs_error_vs_direct=solution.direct_error,
        warnings=warnings,
    )
    metadata = SimulationMetadata(
        request_id=request_id,
        geometry=request.geometry,
        conductor_voltage=request.conductor_voltage,
        side_length=grid.side,
        free_cell_count=grid.free_cell_count(),
        solver=solver_meta,
    )

    has_any_field = enable_mask or enable_potential or enable_efield or enable_components
    fields = (
        FieldGrid(
            free_mask=grid.free_mask.tolist() if enable_mask else None,
            potential=grid.potential.tolist() if enable_potential else None,
            E_mag=grid.e_mag.tolist() if enable_efield else None,
            E_x=grid.e_x.tolist() if enable_components else None,
            E_y=grid.e_y.tolist() if enable_components else None,
        )
        if has_any_field
        else None
    )

    history = [_record_out(record) for record in report.history] if enable_history else None
    cross_section = (
        CrossSection(column=grid.dimensions.cross_section_column(), values=solution.cross_section)
        if enable_cross_section
        else None
    )

    return SimulationResult(
        metadata=metadata,
        fields=fields,
        history=history,
        cross_section=cross_section,
    )


def run_simulation_coax(request: SimulationRequest, request_id: str) -> SimulationResult:
    """Run a coax relaxation and return a simulation result payload."""
    solution = run_solution(request)
    return build_result(request, request_id, solution)


def run_solution(request: SimulationRequest) -> CoaxSolution:
    solver = request.solver
    return solve_coax(
        dimensions_from_geometry(request.geometry),
        request.conductor_voltage,
        mode=solver.update_mode,
        tolerance=solver.tolerance,
        max_sweeps=solver.max_sweeps,
        verify_direct=solver.verify_direct,
    )
