from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.local_store import LocalReadingTable
from models.records import Identity
from providers.local_auth import LocalTokenVerifier
from services.errors import StorageError
from services.ingestion import IngestionService
from settings import get_settings

AUTH = {"Authorization": "Bearer good-token"}


class _Harness:
    def __init__(self, service: IngestionService) -> None:
        self.service = service
        self.builds = 0

    def build(self) -> IngestionService:
        self.builds += 1
        return self.service

    def cache_clear(self) -> None:
        pass


def _install(monkeypatch, service: IngestionService) -> _Harness:
    harness = _Harness(service)

    def build_test_service() -> IngestionService:
        return harness.build()

    build_test_service.cache_clear = harness.cache_clear  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_service", build_test_service)
    monkeypatch.setattr("app.api.build_default_service", build_test_service)
    return harness


@pytest.fixture
def recording_client(monkeypatch, verifier, writer) -> Iterator[TestClient]:
    service = IngestionService(verifier=verifier, writer=writer, table_name="sensor_readings")
    _install(monkeypatch, service)
    with TestClient(create_app()) as client:
        yield client


@pytest.fixture
def local_table() -> LocalReadingTable:
    return LocalReadingTable(name="sensor_readings", known_assets={"A1"})


@pytest.fixture
def local_client(monkeypatch, local_table) -> Iterator[TestClient]:
    verifier = LocalTokenVerifier(
        {
            "good-token": Identity(user_id="u-eng", access_token="good-token", role="engineer"),
            "operator-token": Identity(
                user_id="u-op", access_token="operator-token", role="operator"
            ),
        }
    )
    service = IngestionService(verifier=verifier, writer=local_table, table_name="sensor_readings")
    _install(monkeypatch, service)
    with TestClient(create_app()) as client:
        yield client


def test_ingest_success(recording_client: TestClient, writer, valid_body) -> None:
    before = datetime.now(timezone.utc)
    response = recording_client.post("/api/ingest-sensor", json=valid_body, headers=AUTH)
    after = datetime.now(timezone.utc)

    assert response.status_code == 200
    assert response.json() == {"message": "Sensor reading stored successfully"}

    assert len(writer.inserts) == 1
    row = writer.inserts[0][1]
    assert row["asset_id"] == "A1"
    assert row["temperature"] == 25
    stored_at = datetime.fromisoformat(row["timestamp"].replace("Z", "+00:00"))
    assert before.replace(microsecond=0) <= stored_at.replace(microsecond=0)
    assert stored_at <= after


def test_ingest_with_path_identifier_and_timestamp(
    recording_client: TestClient, writer, valid_body
) -> None:
    response = recording_client.post(
        "/api/ingest-sensor/pump-7",
        params={"timestamp": "2024-02-03T04:05:06Z"},
        json=valid_body,
        headers=AUTH,
    )

    assert response.status_code == 200
    row = writer.inserts[0][1]
    assert row["timestamp"] == "2024-02-03T04:05:06Z"
    assert row["asset_id"] == "A1"


def test_out_of_range_temperature(recording_client: TestClient, writer, valid_body) -> None:
    response = recording_client.post(
        "/api/ingest-sensor", json={**valid_body, "temperature": 200}, headers=AUTH
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Temperature must be between -50 and 150"}
    assert writer.inserts == []


def test_missing_authorization_header(recording_client: TestClient, verifier, writer, valid_body) -> None:
    response = recording_client.post("/api/ingest-sensor", json=valid_body)

    assert response.status_code == 401
    assert response.json() == {"error": "Missing or invalid Authorization header"}
    assert verifier.calls == []
    assert writer.inserts == []


def test_non_bearer_scheme(recording_client: TestClient, verifier, valid_body) -> None:
    response = recording_client.post(
        "/api/ingest-sensor", json=valid_body, headers={"Authorization": "Basic dXNlcjpwYXNz"}
    )

    assert response.status_code == 401
    assert verifier.calls == []


def test_rejected_token(recording_client: TestClient, writer, valid_body) -> None:
    response = recording_client.post(
        "/api/ingest-sensor", json=valid_body, headers={"Authorization": "Bearer expired"}
    )

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid token"}
    assert writer.inserts == []


def test_malformed_json_body(recording_client: TestClient) -> None:
    response = recording_client.post(
        "/api/ingest-sensor",
        content=b"{oops",
        headers={**AUTH, "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON body"}


def test_storage_failure_hides_detail(monkeypatch, verifier, failing_writer, valid_body) -> None:
    service = IngestionService(verifier=verifier, writer=failing_writer)
    _install(monkeypatch, service)

    with TestClient(create_app()) as client:
        response = client.post("/api/ingest-sensor", json=valid_body, headers=AUTH)

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to store sensor reading"}
    assert "foreign key" not in response.text


def test_unexpected_failure_maps_to_internal_error(monkeypatch, verifier, valid_body) -> None:
    class ExplodingWriter:
        async def insert(self, table, row, identity) -> None:
            raise RuntimeError("connection pool exhausted")

    service = IngestionService(verifier=verifier, writer=ExplodingWriter())
    _install(monkeypatch, service)

    with TestClient(create_app()) as client:
        response = client.post("/api/ingest-sensor", json=valid_body, headers=AUTH)

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}
    assert "pool" not in response.text


def test_local_backend_stores_row(local_client: TestClient, local_table, valid_body) -> None:
    response = local_client.post("/api/ingest-sensor", json=valid_body, headers=AUTH)

    assert response.status_code == 200
    rows = local_table.scan()
    assert len(rows) == 1
    assert rows[0]["asset_id"] == "A1"
    assert rows[0]["id"]


def test_local_backend_enforces_writer_role(
    local_client: TestClient, local_table, valid_body
) -> None:
    response = local_client.post(
        "/api/ingest-sensor",
        json=valid_body,
        headers={"Authorization": "Bearer operator-token"},
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to store sensor reading"}
    assert local_table.scan() == []


def test_local_backend_enforces_asset_reference(
    local_client: TestClient, local_table, valid_body
) -> None:
    response = local_client.post(
        "/api/ingest-sensor", json={**valid_body, "asset_id": "ghost"}, headers=AUTH
    )

    assert response.status_code == 500
    assert local_table.scan() == []


def test_health_reports_backend(recording_client: TestClient) -> None:
    response = recording_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "backend": "local"}


def test_lifespan_closes_service(monkeypatch, verifier, writer) -> None:
    closed = []

    async def close() -> None:
        closed.append(True)

    service = IngestionService(verifier=verifier, writer=writer, on_close=close)
    harness = _install(monkeypatch, service)

    with TestClient(create_app()):
        assert harness.builds == 1

    assert closed == [True]


def test_storage_error_keeps_provider_status() -> None:
    exc = StorageError("denied", provider_status=403)
    assert exc.status_code == 500
    assert exc.provider_status == 403


def test_non_json_content_type_is_treated_as_missing_body(
    recording_client: TestClient, writer
) -> None:
    response = recording_client.post(
        "/api/ingest-sensor",
        content=b'{"asset_id": "A1", "temperature": 25, "pressure": 1, "vibration": 1, "energy_consumption": 1}',
        headers={**AUTH, "Content-Type": "text/plain"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid asset_id"}
    assert writer.inserts == []


def test_json_content_type_with_charset_is_accepted(
    recording_client: TestClient, writer, valid_body
) -> None:
    response = recording_client.post(
        "/api/ingest-sensor",
        content=json.dumps(valid_body).encode("utf-8"),
        headers={**AUTH, "Content-Type": "application/json; charset=utf-8"},
    )

    assert response.status_code == 200
    assert len(writer.inserts) == 1


@pytest.fixture
def cors_client(monkeypatch, verifier, writer) -> Iterator[TestClient]:
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://dashboard.plant.test")
    get_settings.cache_clear()
    _install(monkeypatch, IngestionService(verifier=verifier, writer=writer))
    try:
        with TestClient(create_app()) as client:
            yield client
    finally:
        get_settings.cache_clear()


def test_cors_allows_configured_origin(cors_client: TestClient) -> None:
    response = cors_client.get("/health", headers={"Origin": "https://dashboard.plant.test"})

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "https://dashboard.plant.test"


def test_cors_ignores_unlisted_origin(cors_client: TestClient) -> None:
    response = cors_client.get("/health", headers={"Origin": "https://evil.test"})

    assert response.status_code == 200
    assert "access-control-allow-origin" not in response.headers


def test_cors_preflight_for_ingest(cors_client: TestClient) -> None:
    response = cors_client.options(
        "/api/ingest-sensor",
        headers={
            "Origin": "https://dashboard.plant.test",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "authorization,content-type",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "https://dashboard.plant.test"
