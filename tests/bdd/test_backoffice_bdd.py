from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from backoffice.main import create_app
from common.identity import IdentityAPIError
from common.models import CompanyCreate, JobCreate
from common.repository import JobBoardRepository
from fastapi.testclient import TestClient
from pytest_bdd import given, scenario, then, when

pytestmark = pytest.mark.bdd


class EmptyDirectory:
    async def list_users(self, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        return []

    async def get_users(self, user_ids: list[str]) -> list[dict[str, Any]]:
        return []

    async def get_user(self, user_id: str) -> dict[str, Any]:
        raise IdentityAPIError(404, {})

    async def delete_user(self, user_id: str) -> dict[str, Any]:
        raise IdentityAPIError(404, {})

    async def ban_user(self, user_id: str) -> dict[str, Any]:
        raise IdentityAPIError(404, {})

    async def unban_user(self, user_id: str) -> dict[str, Any]:
        raise IdentityAPIError(404, {})


@scenario("features/backoffice.feature", "Job from a deleted recruiter shows placeholders")
def test_placeholder_recruiter_details() -> None:
    pass


@scenario("features/backoffice.feature", "Admin deletes a job posted by someone else")
def test_privileged_job_delete() -> None:
    pass


@pytest.fixture
def context(tmp_path: Path) -> dict[str, Any]:
    return {"database_path": tmp_path / "backoffice_bdd.sqlite3"}


@given("a job posted by a recruiter who no longer exists")
def given_orphaned_job(context: dict[str, Any]) -> None:
    repository = JobBoardRepository(database_path=str(context["database_path"]))
    repository.connect()
    try:
        session = repository.session("user_deleted")
        company = session.create_company(CompanyCreate(name="Ghost Corp"))
        context["job"] = session.create_job(
            JobCreate(
                title="Vanished Role",
                description="Posted before the account was removed.",
                location="Remote",
                company_id=company.id,
                requirements="Patience",
            )
        )
    finally:
        repository.close()


def backoffice_client(context: dict[str, Any]) -> TestClient:
    app = create_app(
        database_path=str(context["database_path"]),
        service_role_key="service-role-secret",
        identity_client=EmptyDirectory(),
    )
    return TestClient(app)


@when("the admin lists all jobs", target_fixture="response")
def when_admin_lists_jobs(context: dict[str, Any]):
    with backoffice_client(context) as client:
        return client.get("/api/get-jobs")


@when("the admin deletes that job", target_fixture="response")
def when_admin_deletes_job(context: dict[str, Any]):
    with backoffice_client(context) as client:
        return client.delete(f"/api/delete-job/{context['job'].id}")


@then("the job shows placeholder recruiter details")
def then_job_shows_placeholders(response) -> None:
    assert response.status_code == 200
    job = response.json()[0]
    assert job["recruiter_email"] == "N/A"
    assert job["recruiter_name"] == "N/A"
    assert job["companies"] == {"name": "Ghost Corp"}


@then("the deleted job is returned with one affected row")
def then_deleted_job_returned(context: dict[str, Any], response) -> None:
    assert response.status_code == 200
    body = response.json()
    assert body["rows_affected"] == 1
    assert body["deleted_job"]["id"] == context["job"].id
