"""Administrative server for the job board.

Proxies user management to the identity provider's REST API and runs job
management against the database, bypassing row policies when the privileged
("service role") key is configured.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, Protocol

from common.identity import (
    DEFAULT_CLERK_API_URL,
    DEFAULT_TIMEOUT_SECONDS,
    ClerkClient,
    IdentityAPIError,
    IdentityError,
)
from common.observability import MetricsSnapshot, MetricsStore, install_request_observability
from common.repository import DEFAULT_DB_PATH, DataSession, JobBoardRepository
from common.utils import parse_csv
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backoffice.enrichment import (
    DEFAULT_LOOKUP_CONCURRENCY,
    RecruiterDirectory,
    enrich_jobs_with_recruiters,
)

LOGGER = logging.getLogger("hired.backoffice")


class UserDirectory(RecruiterDirectory, Protocol):
    async def list_users(self, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]: ...

    async def delete_user(self, user_id: str) -> dict[str, Any]: ...

    async def ban_user(self, user_id: str) -> dict[str, Any]: ...

    async def unban_user(self, user_id: str) -> dict[str, Any]: ...


def error_response(status_code: int, error: str, details: Any = None) -> JSONResponse:
    content: dict[str, Any] = {"error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def identity_error_details(exc: IdentityError) -> Any:
    if isinstance(exc, IdentityAPIError):
        return exc.payload
    return str(exc)


def log_failure(event: str, **fields: Any) -> None:
    LOGGER.error(json.dumps({"event": event, **fields}, default=str))


def parse_lookup_concurrency(raw: str) -> int:
    if not raw.strip():
        return DEFAULT_LOOKUP_CONCURRENCY
    message = f"Invalid RECRUITER_LOOKUP_CONCURRENCY: {raw!r} (expected a positive integer)"
    try:
        value = int(raw.strip())
    except ValueError:
        raise RuntimeError(message) from None
    if value < 1:
        raise RuntimeError(message)
    return value


def create_app(
    *,
    database_path: str | None = None,
    secret_key: str | None = None,
    identity_api_url: str | None = None,
    identity_timeout: float | None = None,
    service_role_key: str | None = None,
    anon_key: str | None = None,
    api_key: str | None = None,
    cors_origins: str | None = None,
    lookup_concurrency: int | None = None,
    identity_client: UserDirectory | None = None,
) -> FastAPI:
    resolved_path = database_path or os.getenv("HIRED_DB_PATH", DEFAULT_DB_PATH)
    resolved_service_role_key = (
        service_role_key or os.getenv("HIRED_DB_SERVICE_ROLE_KEY", "")
    ).strip() or None
    resolved_anon_key = (anon_key or os.getenv("HIRED_DB_ANON_KEY", "")).strip() or None
    resolved_api_key = (api_key or os.getenv("BACKOFFICE_API_KEY", "")).strip() or None
    resolved_cors_origins = parse_csv(
        cors_origins if cors_origins is not None else os.getenv("BACKOFFICE_CORS_ORIGINS", "*")
    )
    resolved_concurrency = lookup_concurrency or parse_lookup_concurrency(
        os.getenv("RECRUITER_LOOKUP_CONCURRENCY", str(DEFAULT_LOOKUP_CONCURRENCY))
    )
    privileged = resolved_service_role_key is not None

    identity = identity_client or ClerkClient(
        (secret_key or os.getenv("CLERK_SECRET_KEY", "")).strip(),
        base_url=identity_api_url or os.getenv("CLERK_API_URL", DEFAULT_CLERK_API_URL),
        timeout=identity_timeout or DEFAULT_TIMEOUT_SECONDS,
    )
    repository = JobBoardRepository(database_path=resolved_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await run_in_threadpool(repository.connect)
        app.state.repository = repository
        app.state.identity = identity
        app.state.privileged = privileged
        app.state.metrics = MetricsStore()
        LOGGER.info(
            json.dumps(
                {
                    "event": "database_key_selected",
                    "key_type": "service_role" if privileged else "anon",
                }
            )
        )
        if not privileged and resolved_anon_key is None:
            LOGGER.warning(
                json.dumps({"event": "database_key_missing", "detail": "no anon key configured"})
            )
        try:
            yield
        finally:
            await run_in_threadpool(repository.close)

    app = FastAPI(title="Hired Backoffice", version="0.2.0", lifespan=lifespan)
    install_request_observability(app, LOGGER)
    if resolved_cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=resolved_cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    async def require_api_key(request: Request) -> None:
        if resolved_api_key is None:
            return
        if request.headers.get("x-api-key", "") != resolved_api_key:
            raise HTTPException(status_code=401, detail="Unauthorized")

    def db_session(request: Request) -> DataSession:
        return request.app.state.repository.session(privileged=request.app.state.privileged)

    router = APIRouter(prefix="/api", dependencies=[Depends(require_api_key)])

    @router.get("/get-clerk-users")
    async def get_clerk_users(request: Request) -> Any:
        try:
            return await request.app.state.identity.list_users()
        except IdentityError as exc:
            log_failure("list_users_failed", error=str(exc))
            return error_response(500, "Failed to fetch users", identity_error_details(exc))

    @router.delete("/delete-user/{user_id}")
    async def delete_user(user_id: str, request: Request) -> Any:
        try:
            await request.app.state.identity.delete_user(user_id)
        except IdentityAPIError as exc:
            log_failure("delete_user_failed", user_id=user_id, details=exc.payload)
            return error_response(500, "Identity provider deletion failed", exc.payload)
        except IdentityError as exc:
            log_failure("delete_user_failed", user_id=user_id, error=str(exc))
            return error_response(500, "Server error deleting user")
        return {"message": "User deleted successfully"}

    @router.post("/ban-user/{user_id}")
    async def ban_user(user_id: str, request: Request) -> Any:
        try:
            await request.app.state.identity.ban_user(user_id)
        except IdentityAPIError as exc:
            log_failure("ban_user_failed", user_id=user_id, details=exc.payload)
            return error_response(500, "Identity provider ban failed", exc.payload)
        except IdentityError as exc:
            log_failure("ban_user_failed", user_id=user_id, error=str(exc))
            return error_response(500, "Server error banning user")
        return {"message": "User banned successfully"}

    @router.post("/unban-user/{user_id}")
    async def unban_user(user_id: str, request: Request) -> Any:
        try:
            await request.app.state.identity.unban_user(user_id)
        except IdentityAPIError as exc:
            log_failure("unban_user_failed", user_id=user_id, details=exc.payload)
            return error_response(500, "Identity provider unban failed", exc.payload)
        except IdentityError as exc:
            log_failure("unban_user_failed", user_id=user_id, error=str(exc))
            return error_response(500, "Server error unbanning user")
        return {"message": "User unbanned successfully"}

    @router.get("/get-jobs")
    async def get_jobs(request: Request) -> Any:
        try:
            jobs = await run_in_threadpool(db_session(request).list_jobs)
        except sqlite3.Error as exc:
            log_failure("list_jobs_failed", error=str(exc))
            return error_response(500, "Failed to fetch jobs", str(exc))

        if not jobs:
            return []
        return await enrich_jobs_with_recruiters(
            jobs,
            request.app.state.identity,
            max_concurrency=resolved_concurrency,
        )

    @router.get("/test-supabase")
    async def test_database(request: Request) -> Any:
        try:
            count = await run_in_threadpool(db_session(request).count_jobs)
        except sqlite3.Error as exc:
            log_failure("database_check_failed", error=str(exc))
            return error_response(500, "Database connection failed", str(exc))
        return {"message": "Database connected successfully", "count": count}

    @router.delete("/delete-job/{job_id}")
    async def delete_job(job_id: int, request: Request) -> Any:
        session = db_session(request)
        try:
            existing = await run_in_threadpool(session.get_job, job_id)
        except sqlite3.Error as exc:
            log_failure("delete_job_failed", job_id=job_id, error=str(exc))
            return error_response(500, "Server error deleting job")
        if existing is None:
            request.app.state.metrics.record_outcome("delete_job", "not_found")
            return error_response(404, "Job not found")

        try:
            deleted = await run_in_threadpool(session.delete_job, job_id)
        except sqlite3.Error as exc:
            log_failure("delete_job_failed", job_id=job_id, error=str(exc))
            return error_response(500, "Failed to delete job")

        if not deleted:
            request.app.state.metrics.record_outcome("delete_job", "no_rows")
            LOGGER.warning(json.dumps({"event": "delete_job_no_rows", "job_id": job_id}))
            return error_response(500, "Job deletion failed - no rows affected")

        request.app.state.metrics.record_outcome("delete_job", "deleted")
        LOGGER.info(
            json.dumps({"event": "job_deleted", "job_id": job_id, "rows_affected": len(deleted)})
        )
        return {
            "message": "Job deleted successfully",
            "deleted_job": deleted[0].model_dump(),
            "rows_affected": len(deleted),
        }

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "backoffice"}

    @app.get("/metrics", response_model=MetricsSnapshot)
    async def metrics(request: Request) -> MetricsSnapshot:
        return request.app.state.metrics.snapshot()

    app.include_router(router)
    return app


app = create_app()
