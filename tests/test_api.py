"""HTTP API tests."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

import main
from services.result_sink import MASK_FILE
from services.result_store import build_store


def _payload(**solver) -> dict:
    return {
        "meta": {"request_id": "api-test"},
        "geometry": {"resolution": 1, "bar_thickness": 2, "vacuum_thickness": 2, "tube_thickness": 1},
        "conductor_voltage": 10.0,
        "solver": solver or {"update_mode": "gauss_seidel"},
    }


@pytest.fixture()
def client() -> TestClient:
    return TestClient(main.app)


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_simulate_inline(client: TestClient) -> None:
    response = client.post("/simulate", json=_payload(update_mode="B"))
    assert response.status_code == 200

    body = response.json()
    assert body["request_id"] == "api-test"
    assert body["stored"] is False
    assert body["storage"]["backend"] == "inline"

    result = body["result"]
    assert result["metadata"]["side_length"] == 8
    assert result["metadata"]["solver"]["update_mode"] == "gauss_seidel"
    assert result["metadata"]["solver"]["iterations"] >= 1
    assert len(result["fields"]["potential"]) == 8
    assert len(result["cross_section"]["values"]) == 8
    assert result["cross_section"]["values"][3] == 10.0


def test_simulate_api_prefix_and_generated_id(client: TestClient) -> None:
    payload = _payload(update_mode="jacobi")
    payload["meta"] = {}
    response = client.post("/api/simulate", json=payload)
    assert response.status_code == 200
    assert response.json()["request_id"]


def test_simulate_rejects_degenerate_geometry(client: TestClient) -> None:
    payload = _payload()
    payload["geometry"]["vacuum_thickness"] = 0
    response = client.post("/simulate", json=payload)
    assert response.status_code == 422


def test_simulate_reports_non_convergence(client: TestClient) -> None:
    response = client.post("/simulate", json=_payload(update_mode="jacobi", max_sweeps=1))
    assert response.status_code == 422
    assert "did not converge" in response.json()["detail"]


def test_large_result_is_stored_locally(client: TestClient, tmp_path: Path, monkeypatch) -> None:
    patched = dataclasses.replace(
        main.settings,
        s3_bucket="",
        s3_prefix="coax-results/",
        inline_max_bytes=100,
        local_storage_dir=str(tmp_path),
    )
    monkeypatch.setattr(main, "settings", patched)
    monkeypatch.setattr(main, "store", build_store(patched))

    response = client.post("/simulate", json=_payload())
    assert response.status_code == 200
    body = response.json()
    assert body["stored"] is True
    assert body["storage"]["backend"] == "local"
    assert body["storage"]["key"].startswith("coax-results/api-test/n8-gauss_seidel-")
    assert body["result"] is None
    assert Path(body["storage"]["local_path"]).is_file()

    fetched = client.get(body["result_url"])
    assert fetched.status_code == 200
    assert fetched.json()["metadata"]["request_id"] == "api-test"


def _enable_exports(monkeypatch, export_dir: Path) -> None:
    patched = dataclasses.replace(main.settings, export_text=True, export_dir=str(export_dir))
    monkeypatch.setattr(main, "settings", patched)


@pytest.mark.parametrize("escape", ["../escape", "absolute"])
def test_export_request_id_cannot_leave_export_dir(
    client: TestClient, tmp_path: Path, monkeypatch, escape: str
) -> None:
    export_dir = tmp_path / "exports"
    outside = tmp_path / "outside"
    _enable_exports(monkeypatch, export_dir)

    payload = _payload()
    payload["meta"]["request_id"] = str(outside) if escape == "absolute" else escape
    response = client.post("/simulate", json=payload)

    assert response.status_code == 422
    assert not outside.exists()
    assert not (tmp_path / "escape").exists()
    assert not export_dir.exists()


def test_exports_written_under_request_directory(client: TestClient, tmp_path: Path, monkeypatch) -> None:
    export_dir = tmp_path / "exports"
    _enable_exports(monkeypatch, export_dir)

    response = client.post("/simulate", json=_payload())
    assert response.status_code == 200
    assert (export_dir / "api-test" / MASK_FILE).is_file()


def test_result_path_outside_storage_is_rejected(client: TestClient) -> None:
    response = client.get("/results/..%2F..%2Fetc%2Fpasswd")
    assert response.status_code in {400, 404}
