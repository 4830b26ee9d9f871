from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from backoffice.main import create_app
from common.identity import IdentityAPIError
from common.models import CompanyCreate, JobCreate, JobRecord
from common.repository import JobBoardRepository
from fastapi.testclient import TestClient


class FakeIdentity:
    """Records admin calls and serves users from a dict."""

    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, Any]] = []
        self.failure: Exception | None = None
        self.batch_failure: Exception | None = None

    def add_user(self, user_id: str, email: str | None, first_name: str | None) -> None:
        addresses = [{"email_address": email}] if email else []
        self.users[user_id] = {
            "id": user_id,
            "first_name": first_name,
            "email_addresses": addresses,
        }

    def _check(self, name: str, argument: Any) -> None:
        self.calls.append((name, argument))
        if self.failure is not None:
            raise self.failure

    async def list_users(self, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        self._check("list_users", limit)
        return list(self.users.values())

    async def get_users(self, user_ids: list[str]) -> list[dict[str, Any]]:
        self.calls.append(("get_users", list(user_ids)))
        if self.batch_failure is not None:
            raise self.batch_failure
        return [self.users[user_id] for user_id in user_ids if user_id in self.users]

    async def get_user(self, user_id: str) -> dict[str, Any]:
        self._check("get_user", user_id)
        if user_id not in self.users:
            raise IdentityAPIError(404, {"errors": [{"code": "resource_not_found"}]})
        return self.users[user_id]

    async def delete_user(self, user_id: str) -> dict[str, Any]:
        self._check("delete_user", user_id)
        self.users.pop(user_id, None)
        return {"id": user_id, "deleted": True}

    async def ban_user(self, user_id: str) -> dict[str, Any]:
        self._check("ban_user", user_id)
        return {"id": user_id, "banned": True}

    async def unban_user(self, user_id: str) -> dict[str, Any]:
        self._check("unban_user", user_id)
        return {"id": user_id, "banned": False}


def seed_jobs(database_path: Path, recruiters: list[str]) -> list[JobRecord]:
    repository = JobBoardRepository(database_path=str(database_path))
    repository.connect()
    try:
        company = repository.session(recruiters[0]).create_company(CompanyCreate(name="Acme"))
        return [
            repository.session(recruiter).create_job(
                JobCreate(
                    title=f"Engineer {index}",
                    description="Build the job board.",
                    location="Remote",
                    company_id=company.id,
                    requirements="Python",
                )
            )
            for index, recruiter in enumerate(recruiters, start=1)
        ]
    finally:
        repository.close()


@pytest.fixture
def seed(database_path: Path):
    def factory(recruiters: list[str]) -> list[JobRecord]:
        return seed_jobs(database_path, recruiters)

    return factory


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture
def database_path(tmp_path: Path) -> Path:
    return tmp_path / "backoffice.sqlite3"


@pytest.fixture
def make_client(database_path: Path, identity: FakeIdentity, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("HIRED_DB_SERVICE_ROLE_KEY", raising=False)
    monkeypatch.delenv("BACKOFFICE_API_KEY", raising=False)
    clients: list[TestClient] = []

    def factory(**overrides: Any) -> TestClient:
        options: dict[str, Any] = {
            "database_path": str(database_path),
            "service_role_key": "service-role-secret",
            "identity_client": identity,
        }
        options.update(overrides)
        test_client = TestClient(create_app(**options))
        test_client.__enter__()
        clients.append(test_client)
        return test_client

    yield factory
    for test_client in clients:
        test_client.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()

