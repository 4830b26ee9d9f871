from __future__ import annotations

import logging

import pytest
from backoffice.enrichment import DEFAULT_LOOKUP_CONCURRENCY
from backoffice.main import create_app, parse_lookup_concurrency
from fastapi.testclient import TestClient

pytestmark = pytest.mark.integration


def test_request_id_header_and_metrics_snapshot(client: TestClient) -> None:
    first = client.get("/health")
    second = client.get("/health")
    wrong_method = client.get("/api/delete-job/abc")
    metrics = client.get("/metrics")

    assert first.status_code == 200
    assert wrong_method.status_code == 405
    assert first.headers.get("x-request-id")
    assert first.headers["x-request-id"] != second.headers["x-request-id"]

    body = metrics.json()
    assert body["totals"]["requests"] >= 3
    assert body["endpoints"]["GET /health"]["count"] >= 2


def test_incoming_request_id_is_preserved(client: TestClient) -> None:
    response = client.get("/health", headers={"x-request-id": "manual-request-id"})
    assert response.headers.get("x-request-id") == "manual-request-id"


def test_cors_allows_configured_origin(make_client) -> None:
    client = make_client(cors_origins="http://portal.test")

    response = client.options(
        "/api/get-jobs",
        headers={
            "origin": "http://portal.test",
            "access-control-request-method": "GET",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://portal.test"


def test_startup_logs_selected_database_key(
    make_client, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="hired.backoffice"):
        make_client(service_role_key="", anon_key="anon-public")

    messages = [record.getMessage() for record in caplog.records]
    assert any('"key_type": "anon"' in message for message in messages)


def test_job_deletion_outcomes_are_counted(make_client, seed) -> None:
    jobs = seed(["user_rec_1", "user_rec_2"])
    privileged = make_client()
    anonymous = make_client(service_role_key="")

    privileged.delete(f"/api/delete-job/{jobs[0].id}")
    privileged.delete("/api/delete-job/4040")
    anonymous.delete(f"/api/delete-job/{jobs[1].id}")

    assert privileged.get("/metrics").json()["outcomes"]["delete_job"] == {
        "deleted": 1,
        "not_found": 1,
    }
    assert anonymous.get("/metrics").json()["outcomes"]["delete_job"] == {"no_rows": 1}


@pytest.mark.parametrize("raw", ["many", "2.5", "0", "-3"])
def test_invalid_lookup_concurrency_fails_with_clear_error(
    database_path, identity, monkeypatch: pytest.MonkeyPatch, raw: str
) -> None:
    monkeypatch.setenv("RECRUITER_LOOKUP_CONCURRENCY", raw)

    with pytest.raises(RuntimeError, match="Invalid RECRUITER_LOOKUP_CONCURRENCY"):
        create_app(database_path=str(database_path), identity_client=identity)


def test_lookup_concurrency_is_read_from_environment() -> None:
    assert parse_lookup_concurrency(" 3 ") == 3
    assert parse_lookup_concurrency("") == DEFAULT_LOOKUP_CONCURRENCY
