"""Pydantic models for the coax relaxation API."""

from __future__ import annotations

import math
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from services.relaxation import DEFAULT_TOLERANCE, normalize_mode


class AppBaseModel(BaseModel):
    """Base model with strict field handling."""

    model_config = ConfigDict(extra="forbid")


REQUEST_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$"


class Meta(AppBaseModel):
    """Client metadata for the request.

    ``request_id`` names the export directory and the storage key, so it is
    limited to a single file-name token.
    """

    request_id: Optional[str] = Field(default=None, pattern=REQUEST_ID_PATTERN)
    user_id: Optional[str] = Field(default=None)
    note: Optional[str] = Field(default=None)


class CoaxGeometry(AppBaseModel):
    """Concentric square bar / vacuum / tube cross-section.

    Thicknesses are in unit lengths; ``resolution`` is cells per unit length.
    """

    resolution: int = Field(default=10, ge=1, le=200)
    bar_thickness: int = Field(default=2, ge=1)
    vacuum_thickness: int = Field(default=2, ge=1)
    tube_thickness: int = Field(default=1, ge=1)

    @property
    def side_length(self) -> int:
        return self.resolution * (
            self.bar_thickness + 2 * self.vacuum_thickness + 2 * self.tube_thickness
        )

    @model_validator(mode="after")
    def validate_side(self) -> "CoaxGeometry":
        if self.side_length > 2000:
            raise ValueError(
                f"geometry side length {self.side_length} exceeds 2000 cells; reduce resolution"
            )
        return self


UpdateMode = Literal["jacobi", "gauss_seidel"]


class SolverOptions(AppBaseModel):
    """Relaxation settings."""

    update_mode: UpdateMode = Field(default="gauss_seidel")
    tolerance: float = Field(default=DEFAULT_TOLERANCE, gt=0, lt=1)
    max_sweeps: Optional[int] = Field(default=None, ge=1)
    verify_direct: bool = Field(default=False)

    @field_validator("update_mode", mode="before")
    @classmethod
    def validate_update_mode(cls, value: object) -> object:
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            return normalize_mode(value)
        return value


class OutputSelection(AppBaseModel):
    """Which arrays to include in the result payload."""

    mask: bool = Field(default=True)
    potential: bool = Field(default=True)
    efield: bool = Field(default=True)
    efield_components: bool = Field(default=False)
    history: bool = Field(default=True)
    cross_section: bool = Field(default=True)


class SimulationRequest(AppBaseModel):
    """Full request payload for a coax relaxation run."""

    meta: Meta = Field(default_factory=Meta)
    geometry: CoaxGeometry = Field(default_factory=CoaxGeometry)
    conductor_voltage: float = Field(default=10.0)
    solver: SolverOptions = Field(default_factory=SolverOptions)
    outputs: Optional[OutputSelection] = Field(default=None)

    @field_validator("conductor_voltage")
    @classmethod
    def validate_conductor_voltage(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("conductor_voltage must be finite")
        if value == 0.0:
            raise ValueError("conductor_voltage must be nonzero")
        return value


class IterationRecordOut(AppBaseModel):
    """One sweep of the relaxation loop."""

    sweep: int
    s_before: float
    s_after: float
    relative_diff: Optional[float] = Field(
        default=None,
        description="|S_after - S_before| / S_before; null when S_before is zero.",
    )


class SolverMetadata(AppBaseModel):
    """How the relaxation went."""

    update_mode: UpdateMode
    tolerance: float
    iterations: int
    converged: bool
    final_relative_diff: Optional[float] = Field(default=None)
    max_abs_error_vs_direct: Optional[float] = Field(default=None)
    warnings: List[str] = Field(default_factory=list)


class SimulationMetadata(AppBaseModel):
    """Echoed inputs and derived metadata."""

    request_id: str
    geometry: CoaxGeometry
    conductor_voltage: float
    side_length: int
    free_cell_count: int
    solver: SolverMetadata


class FieldGrid(AppBaseModel):
    """Row-major matrices of size side_length x side_length."""

    free_mask: Optional[List[List[bool]]] = Field(default=None)
    potential: Optional[List[List[float]]] = Field(default=None)
    E_mag: Optional[List[List[float]]] = Field(default=None)
    E_x: Optional[List[List[float]]] = Field(default=None)
    E_y: Optional[List[List[float]]] = Field(default=None)


class CrossSection(AppBaseModel):
    """Potential along the column through the middle of the inner bar."""

    column: int
    values: List[float]


class SimulationResult(AppBaseModel):
    """Full simulation output payload."""

    metadata: SimulationMetadata
    fields: Optional[FieldGrid] = Field(default=None)
    history: Optional[List[IterationRecordOut]] = Field(default=None)
    cross_section: Optional[CrossSection] = Field(default=None)


class StorageInfo(AppBaseModel):
    """Storage information for large results."""

    backend: str
    url: Optional[str] = Field(default=None)
    bucket: Optional[str] = Field(default=None)
    key: Optional[str] = Field(default=None)
    local_path: Optional[str] = Field(default=None)
    expires_in: Optional[int] = Field(default=None)


class SimulationResponse(AppBaseModel):
    """API response for simulation requests."""

    request_id: str
    stored: bool
    size_bytes: int
    result: Optional[SimulationResult] = Field(default=None)
    result_url: Optional[str] = Field(default=None)
    storage: StorageInfo
