from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import pytest
from common.models import CompanyCreate, JobCreate
from common.repository import JobBoardRepository
from common.result import FailureReason
from portal import data_access

pytestmark = pytest.mark.unit


@pytest.fixture
def repository(tmp_path: Path):
    repo = JobBoardRepository(database_path=str(tmp_path / "data_access.sqlite3"))
    repo.connect()
    yield repo
    repo.close()


@pytest.fixture
def job_id(repository: JobBoardRepository) -> int:
    recruiter = repository.session("user_rec")
    company = data_access.add_new_company(recruiter, CompanyCreate(name="Acme")).unwrap()
    job = data_access.add_new_job(
        recruiter,
        JobCreate(
            title="Data Engineer",
            description="Pipelines",
            location="Remote",
            company_id=company.id,
            requirements="SQL",
        ),
    ).unwrap()
    return job.id


def test_save_job_is_its_own_inverse(repository: JobBoardRepository, job_id: int) -> None:
    session = repository.session("user_cand")

    first = data_access.save_job(session, job_id)
    second = data_access.save_job(session, job_id)

    assert first.unwrap().status == "saved"
    assert second.unwrap().status == "unsaved"
    assert data_access.get_saved_jobs(session).unwrap() == []


def test_empty_listing_is_success_not_failure(repository: JobBoardRepository) -> None:
    result = data_access.get_jobs(repository.session("user_cand"), search_query="nothing")
    assert result.ok
    assert result.value == []


def test_get_single_job_reports_missing_rows(repository: JobBoardRepository) -> None:
    result = data_access.get_single_job(repository.session("user_cand"), 404)
    assert result.failure.reason is FailureReason.NOT_FOUND


def test_delete_job_distinguishes_missing_and_disallowed(
    repository: JobBoardRepository, job_id: int
) -> None:
    missing = data_access.delete_job(repository.session("user_rec"), 999)
    disallowed = data_access.delete_job(repository.session("user_cand"), job_id)
    deleted = data_access.delete_job(repository.session("user_rec"), job_id)

    assert missing.failure.reason is FailureReason.NOT_FOUND
    assert disallowed.failure.reason is FailureReason.NO_EFFECT
    assert [job.id for job in deleted.unwrap()] == [job_id]


def test_hiring_status_by_non_owner_is_forbidden(
    repository: JobBoardRepository, job_id: int
) -> None:
    result = data_access.update_hiring_status(repository.session("user_cand"), job_id, False)
    assert result.failure.reason is FailureReason.FORBIDDEN


def test_storage_errors_become_unavailable_and_are_logged(
    caplog: pytest.LogCaptureFixture,
) -> None:
    def broken() -> list[int]:
        raise sqlite3.OperationalError("database is locked")

    with caplog.at_level(logging.WARNING, logger="hired.portal.data_access"):
        result = data_access.capture("get_jobs", broken)

    assert result.failure.reason is FailureReason.UNAVAILABLE
    assert "database is locked" in result.failure.message
    assert any("data_access_failed" in record.getMessage() for record in caplog.records)
