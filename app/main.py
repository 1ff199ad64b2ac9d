"""FastAPI entrypoint for the coax relaxation API.

Run locally with:
    uvicorn main:app --app-dir app --reload
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from uuid import uuid4

from fastapi import FastAPI, HTTPException
from fastapi.responses import FileResponse

from config import configure_logging, settings
from schemas import SimulationRequest, SimulationResponse, SimulationResult, StorageInfo
from services.compute_coax import build_result, run_solution
from services.relaxation import ConvergenceError
from services.result_sink import write_text_exports
from services.result_store import build_store

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Coax Relaxation API", version="0.1.0")
store = build_store()


def _estimate_json_size(payload: dict) -> tuple[int, bytes]:
    """Estimate JSON payload size in bytes and return the encoded payload."""
    json_bytes = json.dumps(payload, separators=(",", ":"), ensure_ascii=True).encode("utf-8")
    return len(json_bytes), json_bytes


SIM_MAX_CONCURRENCY = max(1, int(os.getenv("SIM_MAX_CONCURRENCY", "2")))
SIM_QUEUE_WAIT_SECONDS = max(0.1, float(os.getenv("SIM_QUEUE_WAIT_SECONDS", "8")))
SIM_SEMAPHORE = asyncio.Semaphore(SIM_MAX_CONCURRENCY)
SIM_TIMEOUT_SECONDS = float(os.getenv("SIM_TIMEOUT_SECONDS", "90"))


def _solve_and_export(request: SimulationRequest, request_id: str) -> SimulationResult:
    solution = run_solution(request)
    if settings.export_text:
        write_text_exports(solution, Path(settings.export_dir) / request_id)
    return build_result(request, request_id, solution)


@app.get("/health")
@app.get("/api/health")
def health() -> dict:
    return {"ok": True}


@app.post("/simulate", response_model=SimulationResponse)
@app.post("/api/simulate", response_model=SimulationResponse)
async def simulate(request: SimulationRequest) -> SimulationResponse:
    """Relax the coax cross-section described by the request and return the fields."""
    try:
        await asyncio.wait_for(SIM_SEMAPHORE.acquire(), timeout=SIM_QUEUE_WAIT_SECONDS)
    except asyncio.TimeoutError:
        raise HTTPException(
            status_code=429,
            detail=(
                "Server busy. "
                f"Max concurrency={SIM_MAX_CONCURRENCY}, queue wait>{SIM_QUEUE_WAIT_SECONDS:.0f}s. "
                "Try again in a moment."
            ),
        )

    try:
        request_id = request.meta.request_id or str(uuid4())

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(_solve_and_export, request, request_id),
                timeout=SIM_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            raise HTTPException(
                status_code=504,
                detail=f"Simulation timeout (>{SIM_TIMEOUT_SECONDS:.0f}s). Reduce resolution.",
            )
        except ConvergenceError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc

        payload = result.model_dump(mode="json", exclude_none=True)
        size_bytes, json_bytes = _estimate_json_size(payload)

        if size_bytes > settings.inline_max_bytes:
            stored = store.store_result(result, json_bytes)
            return SimulationResponse(
                request_id=request_id,
                stored=True,
                size_bytes=size_bytes,
                result=None,
                result_url=stored.url,
                storage=stored.storage_info(),
            )

        storage = StorageInfo(backend="inline", url=None, bucket=None, key=None, local_path=None, expires_in=None)
        return SimulationResponse(
            request_id=request_id,
            stored=False,
            size_bytes=size_bytes,
            result=result,
            result_url=None,
            storage=storage,
        )
    finally:
        SIM_SEMAPHORE.release()


def _resolve_result_path(result_path: str) -> Path:
    base_dir = Path(settings.local_storage_dir).resolve()
    candidate = (base_dir / result_path).resolve()
    try:
        candidate.relative_to(base_dir)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid result path.")
    if not candidate.is_file():
        raise HTTPException(status_code=404, detail="Result not found.")
    return candidate


@app.get("/results/{result_path:path}")
@app.get("/api/results/{result_path:path}")
def get_result(result_path: str) -> FileResponse:
    file_path = _resolve_result_path(result_path)
    return FileResponse(file_path, media_type="application/json", filename=file_path.name)
