from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Literal, TypeVar

from common.identity import DEFAULT_CLERK_API_URL, ClerkClient
from common.models import (
    ApplicationCreate,
    ApplicationRecord,
    ApplicationStatusUpdate,
    CandidateApplication,
    Company,
    CompanyCreate,
    HiringStatusUpdate,
    JobCreate,
    JobRecord,
    SavedJobRecord,
    SaveToggleResult,
)
from common.observability import MetricsSnapshot, MetricsStore, install_request_observability
from common.repository import DEFAULT_DB_PATH, DataSession, JobBoardRepository
from common.result import FailureReason, Result
from common.roles import Role, landing_path_for
from common.utils import parse_csv
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from pydantic import BaseModel

from portal import data_access, pages
from portal.guard import GuardDecision, GuardOutcome, evaluate
from portal.onboarding import assign_role
from portal.session import (
    ClerkSessionProvider,
    SessionProvider,
    SessionState,
    SessionTokenVerifier,
)

T = TypeVar("T")
DEFAULT_BACKOFFICE_BASE_URL = "http://localhost:3001"
LOGGER = logging.getLogger("hired.portal")

FAILURE_STATUS_CODES = {
    FailureReason.NOT_FOUND: 404,
    FailureReason.FORBIDDEN: 403,
    FailureReason.CONFLICT: 409,
    FailureReason.INVALID: 422,
    FailureReason.NO_EFFECT: 409,
    FailureReason.UNAVAILABLE: 503,
}


class GuardInterrupt(Exception):
    def __init__(self, decision: GuardDecision) -> None:
        super().__init__(decision.outcome.value)
        self.decision = decision


class RoleSelection(BaseModel):
    role: Literal["candidate", "recruiter"]


def unwrap_or_raise(result: Result[T]) -> T:
    if result.ok:
        return result.value  # type: ignore[return-value]
    failure = result.failure
    raise HTTPException(status_code=FAILURE_STATUS_CODES[failure.reason], detail=failure.message)


def data_session(request: Request, session: SessionState) -> DataSession:
    return request.app.state.repository.session(session.user_id)


def enforce_guard(
    request: Request, session: SessionState, required_role: Role | None = None
) -> None:
    decision = evaluate(session, request.url.path, required_role)
    outcome = decision.outcome.value
    if decision.location is not None:
        outcome = f"{outcome} {decision.location}"
    request.app.state.metrics.record_outcome("guard", outcome)
    if decision.outcome is not GuardOutcome.RENDER:
        raise GuardInterrupt(decision)


def guarded(required_role: Role | None = None):
    async def dependency(request: Request) -> SessionState:
        session = await request.app.state.sessions.resolve(request)
        enforce_guard(request, session, required_role)
        return session

    return dependency


async def require_principal(request: Request) -> SessionState:
    session = await request.app.state.sessions.resolve(request)
    if not session.loaded:
        raise HTTPException(status_code=503, detail="Session could not be established")
    if not session.signed_in:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return session


def require_recruiter(session: SessionState) -> None:
    if session.role is not Role.RECRUITER:
        raise HTTPException(status_code=403, detail="Recruiter access required")


def create_app(
    *,
    database_path: str | None = None,
    publishable_key: str | None = None,
    secret_key: str | None = None,
    identity_api_url: str | None = None,
    jwt_key: str | None = None,
    authorized_parties: str | None = None,
    backoffice_base_url: str | None = None,
    session_provider: SessionProvider | None = None,
) -> FastAPI:
    resolved_path = database_path or os.getenv("HIRED_DB_PATH", DEFAULT_DB_PATH)
    resolved_publishable_key = (
        publishable_key or os.getenv("CLERK_PUBLISHABLE_KEY", "")
    ).strip()
    resolved_backoffice_url = (
        backoffice_base_url
        or os.getenv("BACKOFFICE_BASE_URL", DEFAULT_BACKOFFICE_BASE_URL)
    )
    if session_provider is None:
        identity = ClerkClient(
            (secret_key or os.getenv("CLERK_SECRET_KEY", "")).strip(),
            base_url=identity_api_url or os.getenv("CLERK_API_URL", DEFAULT_CLERK_API_URL),
        )
        # Env files store PEM newlines as literal "\n".
        resolved_jwt_key = (
            (jwt_key or os.getenv("CLERK_JWT_KEY", "")).replace("\\n", "\n").strip()
        )
        session_provider = ClerkSessionProvider(
            identity,
            SessionTokenVerifier(
                identity,
                public_key=resolved_jwt_key or None,
                authorized_parties=parse_csv(
                    authorized_parties
                    if authorized_parties is not None
                    else os.getenv("CLERK_AUTHORIZED_PARTIES", "")
                ),
            ),
        )

    repository = JobBoardRepository(database_path=resolved_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not resolved_publishable_key:
            raise RuntimeError("Missing publishable key: set CLERK_PUBLISHABLE_KEY")
        await run_in_threadpool(repository.connect)
        app.state.repository = repository
        app.state.sessions = session_provider
        app.state.metrics = MetricsStore()
        try:
            yield
        finally:
            await run_in_threadpool(repository.close)

    app = FastAPI(title="Hired Portal", version="0.3.0", lifespan=lifespan)
    install_request_observability(app, LOGGER)

    @app.exception_handler(GuardInterrupt)
    async def guard_interrupt_handler(request: Request, exc: GuardInterrupt) -> Response:
        if exc.decision.outcome is GuardOutcome.SUSPEND:
            return Response(status_code=503, headers={"retry-after": "1"})
        return RedirectResponse(exc.decision.location, status_code=302)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "portal"}

    @app.get("/metrics", response_model=MetricsSnapshot)
    async def metrics(request: Request) -> MetricsSnapshot:
        return request.app.state.metrics.snapshot()

    # Pages

    @app.get("/", response_class=HTMLResponse)
    async def landing(
        request: Request,
        sign_in: str | None = Query(default=None, alias="sign-in"),
    ) -> str:
        session = await request.app.state.sessions.resolve(request)
        if sign_in == "true" and session.loaded and not session.signed_in:
            return pages.sign_in_page(resolved_publishable_key)
        enforce_guard(request, session)
        return pages.landing_page(session.first_name)

    @app.get("/onboarding", response_class=HTMLResponse)
    async def onboarding(session: SessionState = Depends(guarded())) -> Response:
        if session.role is not Role.UNSET:
            return RedirectResponse(landing_path_for(session.role), status_code=302)
        return HTMLResponse(pages.onboarding_page())

    @app.post("/onboarding")
    async def choose_role(
        payload: RoleSelection,
        request: Request,
        session: SessionState = Depends(guarded()),
    ) -> Response:
        if session.role is not Role.UNSET:
            return RedirectResponse(landing_path_for(session.role), status_code=303)
        destination = await assign_role(
            request.app.state.sessions,
            session,
            Role(payload.role),
        )
        if destination is None:
            return HTMLResponse(pages.onboarding_page())
        return RedirectResponse(destination, status_code=303)

    @app.get("/admin", response_class=HTMLResponse)
    async def admin(session: SessionState = Depends(guarded(Role.ADMIN))) -> str:
        return pages.admin_page(resolved_backoffice_url)

    @app.get("/jobs", response_class=HTMLResponse)
    async def job_listing(
        request: Request,
        search: str | None = None,
        location: str | None = None,
        company_id: int | None = None,
        session: SessionState = Depends(guarded()),
    ) -> str:
        jobs = unwrap_or_raise(
            await run_in_threadpool(
                data_access.get_jobs,
                data_session(request, session),
                location=location or None,
                company_id=company_id,
                search_query=search,
            )
        )
        return pages.job_listing_page(jobs, search)

    @app.get("/post-job", response_class=HTMLResponse)
    async def post_job(request: Request, session: SessionState = Depends(guarded())) -> Response:
        if session.role is not Role.RECRUITER:
            return RedirectResponse("/jobs", status_code=302)
        companies = unwrap_or_raise(
            await run_in_threadpool(data_access.get_companies, data_session(request, session))
        )
        return HTMLResponse(pages.post_job_page(companies))

    @app.get("/my-jobs", response_class=HTMLResponse)
    async def my_jobs(request: Request, session: SessionState = Depends(guarded())) -> str:
        scoped = data_session(request, session)
        if session.role is Role.CANDIDATE:
            applications = unwrap_or_raise(
                await run_in_threadpool(data_access.get_applications, scoped, session.user_id)
            )
            return pages.my_applications_page(applications)
        jobs = unwrap_or_raise(
            await run_in_threadpool(data_access.get_my_jobs, scoped, session.user_id)
        )
        return pages.my_jobs_page(jobs)

    @app.get("/saved-jobs", response_class=HTMLResponse)
    async def saved_jobs(request: Request, session: SessionState = Depends(guarded())) -> str:
        saved = unwrap_or_raise(
            await run_in_threadpool(data_access.get_saved_jobs, data_session(request, session))
        )
        return pages.saved_jobs_page(saved)

    @app.get("/job/{job_id}", response_class=HTMLResponse)
    async def job_detail(
        job_id: int,
        request: Request,
        session: SessionState = Depends(guarded()),
    ) -> str:
        job = unwrap_or_raise(
            await run_in_threadpool(
                data_access.get_single_job,
                data_session(request, session),
                job_id,
            )
        )
        return pages.job_detail_page(job, session.user_id)

    # JSON API

    @app.get("/api/jobs", response_model=list[JobRecord])
    async def api_list_jobs(
        request: Request,
        search: str | None = None,
        location: str | None = None,
        company_id: int | None = None,
        session: SessionState = Depends(require_principal),
    ) -> list[JobRecord]:
        return unwrap_or_raise(
            await run_in_threadpool(
                data_access.get_jobs,
                data_session(request, session),
                location=location or None,
                company_id=company_id,
                search_query=search,
            )
        )

    @app.post("/api/jobs", response_model=JobRecord, status_code=201)
    async def api_create_job(
        payload: JobCreate,
        request: Request,
        session: SessionState = Depends(require_principal),
    ) -> JobRecord:
        require_recruiter(session)
        return unwrap_or_raise(
            await run_in_threadpool(
                data_access.add_new_job,
                data_session(request, session),
                payload,
            )
        )

    @app.get("/api/jobs/{job_id}", response_model=JobRecord)
    async def api_get_job(
        job_id: int,
        request: Request,
        session: SessionState = Depends(require_principal),
    ) -> JobRecord:
        return unwrap_or_raise(
            await run_in_threadpool(
                data_access.get_single_job,
                data_session(request, session),
                job_id,
            )
        )

    @app.patch("/api/jobs/{job_id}/hiring-status", response_model=JobRecord)
    async def api_update_hiring_status(
        job_id: int,
        payload: HiringStatusUpdate,
        request: Request,
        session: SessionState = Depends(require_principal),
    ) -> JobRecord:
        return unwrap_or_raise(
            await run_in_threadpool(
                data_access.update_hiring_status,
                data_session(request, session),
                job_id,
                payload.is_open,
            )
        )

    @app.delete("/api/jobs/{job_id}", response_model=list[JobRecord])
    async def api_delete_job(
        job_id: int,
        request: Request,
        session: SessionState = Depends(require_principal),
    ) -> list[JobRecord]:
        return unwrap_or_raise(
            await run_in_threadpool(
                data_access.delete_job,
                data_session(request, session),
                job_id,
            )
        )

    @app.get("/api/my-jobs", response_model=list[JobRecord])
    async def api_my_jobs(
        request: Request,
        session: SessionState = Depends(require_principal),
    ) -> list[JobRecord]:
        return unwrap_or_raise(
            await run_in_threadpool(
                data_access.get_my_jobs,
                data_session(request, session),
                session.user_id,
            )
        )

    @app.get("/api/saved-jobs", response_model=list[SavedJobRecord])
    async def api_saved_jobs(
        request: Request,
        session: SessionState = Depends(require_principal),
    ) -> list[SavedJobRecord]:
        return unwrap_or_raise(
            await run_in_threadpool(data_access.get_saved_jobs, data_session(request, session))
        )

    @app.post("/api/saved-jobs/{job_id}/toggle", response_model=SaveToggleResult)
    async def api_toggle_saved_job(
        job_id: int,
        request: Request,
        session: SessionState = Depends(require_principal),
    ) -> SaveToggleResult:
        return unwrap_or_raise(
            await run_in_threadpool(data_access.save_job, data_session(request, session), job_id)
        )

    @app.post(
        "/api/jobs/{job_id}/applications",
        response_model=ApplicationRecord,
        status_code=201,
    )
    async def api_apply_to_job(
        job_id: int,
        payload: ApplicationCreate,
        request: Request,
        session: SessionState = Depends(require_principal),
    ) -> ApplicationRecord:
        if session.role is not Role.CANDIDATE:
            raise HTTPException(status_code=403, detail="Candidate access required")
        return unwrap_or_raise(
            await run_in_threadpool(
                data_access.apply_to_job,
                data_session(request, session),
                job_id,
                payload,
            )
        )

    @app.patch("/api/applications/{application_id}/status", response_model=ApplicationRecord)
    async def api_update_application_status(
        application_id: int,
        payload: ApplicationStatusUpdate,
        request: Request,
        session: SessionState = Depends(require_principal),
    ) -> ApplicationRecord:
        return unwrap_or_raise(
            await run_in_threadpool(
                data_access.update_application_status,
                data_session(request, session),
                application_id,
                payload.status,
            )
        )

    @app.get("/api/applications", response_model=list[CandidateApplication])
    async def api_applications(
        request: Request,
        session: SessionState = Depends(require_principal),
    ) -> list[CandidateApplication]:
        return unwrap_or_raise(
            await run_in_threadpool(
                data_access.get_applications,
                data_session(request, session),
                session.user_id,
            )
        )

    @app.get("/api/companies", response_model=list[Company])
    async def api_companies(
        request: Request,
        session: SessionState = Depends(require_principal),
    ) -> list[Company]:
        return unwrap_or_raise(
            await run_in_threadpool(data_access.get_companies, data_session(request, session))
        )

    @app.post("/api/companies", response_model=Company, status_code=201)
    async def api_create_company(
        payload: CompanyCreate,
        request: Request,
        session: SessionState = Depends(require_principal),
    ) -> Company:
        require_recruiter(session)
        return unwrap_or_raise(
            await run_in_threadpool(
                data_access.add_new_company,
                data_session(request, session),
                payload,
            )
        )

    return app


app = create_app()
