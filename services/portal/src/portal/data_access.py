"""Per-entity data-access calls used by the portal.

Every call takes a caller-scoped ``DataSession`` and returns a ``Result``;
storage errors never escape as exceptions, ``None`` or empty lists.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable
from typing import TypeVar

from common.models import (
    ApplicationCreate,
    ApplicationRecord,
    ApplicationStatus,
    CandidateApplication,
    Company,
    CompanyCreate,
    JobCreate,
    JobRecord,
    SavedJobRecord,
    SaveToggleResult,
)
from common.repository import (
    DataSession,
    PermissionDeniedError,
    RecordConflictError,
    RecordNotFoundError,
)
from common.result import FailureReason, Result

T = TypeVar("T")
LOGGER = logging.getLogger("hired.portal.data_access")


def capture(action: str, operation: Callable[[], T]) -> Result[T]:
    try:
        return Result.success(operation())
    except RecordNotFoundError as exc:
        result: Result[T] = Result.fail(FailureReason.NOT_FOUND, str(exc))
    except PermissionDeniedError as exc:
        result = Result.fail(FailureReason.FORBIDDEN, str(exc))
    except RecordConflictError as exc:
        result = Result.fail(FailureReason.CONFLICT, str(exc))
    except sqlite3.Error as exc:
        result = Result.fail(FailureReason.UNAVAILABLE, f"Database error: {exc}")

    failure = result.failure
    LOGGER.warning(
        json.dumps(
            {
                "event": "data_access_failed",
                "action": action,
                "reason": failure.reason.value,
                "message": failure.message,
            }
        )
    )
    return result


def get_jobs(
    session: DataSession,
    *,
    location: str | None = None,
    company_id: int | None = None,
    search_query: str | None = None,
) -> Result[list[JobRecord]]:
    return capture(
        "get_jobs",
        lambda: session.list_jobs(
            location=location,
            company_id=company_id,
            search_query=search_query,
        ),
    )


def get_saved_jobs(session: DataSession) -> Result[list[SavedJobRecord]]:
    return capture("get_saved_jobs", session.list_saved_jobs)


def get_single_job(session: DataSession, job_id: int) -> Result[JobRecord]:
    def load() -> JobRecord:
        job = session.get_job(job_id, with_applications=True)
        if job is None:
            raise RecordNotFoundError(f"Unknown job_id: {job_id}")
        return job

    return capture("get_single_job", load)


def save_job(session: DataSession, job_id: int) -> Result[SaveToggleResult]:
    return capture("save_job", lambda: session.toggle_saved_job(job_id))


def update_hiring_status(session: DataSession, job_id: int, is_open: bool) -> Result[JobRecord]:
    return capture("update_hiring_status", lambda: session.set_hiring_status(job_id, is_open))


def get_my_jobs(session: DataSession, recruiter_id: str) -> Result[list[JobRecord]]:
    return capture("get_my_jobs", lambda: session.list_jobs_by_recruiter(recruiter_id))


def delete_job(session: DataSession, job_id: int) -> Result[list[JobRecord]]:
    def remove() -> list[JobRecord]:
        if session.get_job(job_id) is None:
            raise RecordNotFoundError(f"Job not found: {job_id}")
        return session.delete_job(job_id)

    result = capture("delete_job", remove)
    if result.ok and not result.value:
        LOGGER.warning(json.dumps({"event": "job_delete_no_effect", "job_id": job_id}))
        return Result.fail(FailureReason.NO_EFFECT, "Job was not deleted - check permissions")
    return result


def add_new_job(session: DataSession, payload: JobCreate) -> Result[JobRecord]:
    return capture("add_new_job", lambda: session.create_job(payload))


def apply_to_job(
    session: DataSession,
    job_id: int,
    payload: ApplicationCreate,
) -> Result[ApplicationRecord]:
    return capture("apply_to_job", lambda: session.create_application(job_id, payload))


def update_application_status(
    session: DataSession,
    application_id: int,
    status: ApplicationStatus,
) -> Result[ApplicationRecord]:
    return capture(
        "update_application_status",
        lambda: session.update_application_status(application_id, status),
    )


def get_applications(session: DataSession, user_id: str) -> Result[list[CandidateApplication]]:
    return capture("get_applications", lambda: session.list_applications(user_id))


def get_companies(session: DataSession) -> Result[list[Company]]:
    return capture("get_companies", session.list_companies)


def add_new_company(session: DataSession, payload: CompanyCreate) -> Result[Company]:
    return capture("add_new_company", lambda: session.create_company(payload))
