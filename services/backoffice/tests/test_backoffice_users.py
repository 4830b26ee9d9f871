from __future__ import annotations

import pytest
from common.identity import IdentityAPIError, IdentityUnavailableError
from fastapi.testclient import TestClient

pytestmark = pytest.mark.integration


def test_get_users_returns_provider_list(client: TestClient, identity) -> None:
    identity.add_user("user_1", "ada@example.com", "Ada")

    response = client.get("/api/get-clerk-users")

    assert response.status_code == 200
    assert [user["id"] for user in response.json()] == ["user_1"]


def test_get_users_failure_is_reported(client: TestClient, identity) -> None:
    identity.failure = IdentityUnavailableError("Identity provider is unavailable")

    response = client.get("/api/get-clerk-users")

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to fetch users"


def test_delete_user_success(client: TestClient, identity) -> None:
    identity.add_user("user_1", "ada@example.com", "Ada")

    response = client.delete("/api/delete-user/user_1")

    assert response.status_code == 200
    assert response.json() == {"message": "User deleted successfully"}
    assert ("delete_user", "user_1") in identity.calls
    assert "user_1" not in identity.users


def test_delete_user_provider_rejection_carries_details(client: TestClient, identity) -> None:
    payload = {"errors": [{"code": "resource_not_found"}]}
    identity.failure = IdentityAPIError(404, payload)

    response = client.delete("/api/delete-user/user_missing")

    assert response.status_code == 500
    assert response.json() == {"error": "Identity provider deletion failed", "details": payload}


def test_delete_user_transport_failure(client: TestClient, identity) -> None:
    identity.failure = IdentityUnavailableError("Identity provider is unavailable")

    response = client.delete("/api/delete-user/user_1")

    assert response.status_code == 500
    assert response.json() == {"error": "Server error deleting user"}


def test_ban_and_unban_user(client: TestClient, identity) -> None:
    banned = client.post("/api/ban-user/user_1")
    unbanned = client.post("/api/unban-user/user_1")

    assert banned.json() == {"message": "User banned successfully"}
    assert unbanned.json() == {"message": "User unbanned successfully"}
    assert ("ban_user", "user_1") in identity.calls
    assert ("unban_user", "user_1") in identity.calls


def test_ban_failure_is_reported(client: TestClient, identity) -> None:
    identity.failure = IdentityAPIError(422, {"errors": [{"code": "invalid"}]})

    response = client.post("/api/ban-user/user_1")

    assert response.status_code == 500
    assert response.json()["error"] == "Identity provider ban failed"


def test_api_key_is_enforced_when_configured(make_client, identity) -> None:
    client = make_client(api_key="admin-secret")

    missing = client.get("/api/get-clerk-users")
    wrong = client.get("/api/get-clerk-users", headers={"x-api-key": "nope"})
    allowed = client.get("/api/get-clerk-users", headers={"x-api-key": "admin-secret"})
    health = client.get("/health")

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert allowed.status_code == 200
    assert health.status_code == 200
