from __future__ import annotations

import os
import sqlite3
import tempfile
import threading
from pathlib import Path
from typing import Any

from common.models import (
    ApplicationCreate,
    ApplicationRecord,
    ApplicationStatus,
    CandidateApplication,
    Company,
    CompanyCreate,
    CompanySummary,
    JobCreate,
    JobRecord,
    JobSummary,
    SavedJobRecord,
    SavedMarker,
    SaveToggleResult,
)
from common.utils import normalize_whitespace, now_utc_iso

DEFAULT_DB_PATH = os.path.join(tempfile.gettempdir(), "hired", "jobboard.sqlite3")

JOB_COLUMNS = """
    j.id AS id,
    j.title AS title,
    j.description AS description,
    j.location AS location,
    j.requirements AS requirements,
    j.company_id AS company_id,
    j.recruiter_id AS recruiter_id,
    j.is_open AS is_open,
    j.created_at AS created_at,
    c.name AS company_name,
    c.logo_url AS company_logo_url
"""

APPLICATION_COLUMNS = """
    a.id AS id,
    a.job_id AS job_id,
    a.candidate_id AS candidate_id,
    a.name AS name,
    a.status AS status,
    a.resume AS resume,
    a.experience AS experience,
    a.skills AS skills,
    a.education AS education,
    a.created_at AS created_at
"""


class RepositoryError(Exception):
    """Base repository error."""


class RecordNotFoundError(RepositoryError):
    """Raised when the requested row does not exist."""


class PermissionDeniedError(RepositoryError):
    """Raised when a row policy does not allow the caller to act."""


class RecordConflictError(RepositoryError):
    """Raised when a write violates a uniqueness or state rule."""


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class JobBoardRepository:
    def __init__(self, database_path: str) -> None:
        self.database_path = Path(database_path)
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        if self._connection is None:
            raise RuntimeError("Database connection is not initialized")
        return self._connection

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def connect(self) -> None:
        with self._lock:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(self.database_path, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys=ON")
            self._connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS companies (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    logo_url TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS jobs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    location TEXT NOT NULL,
                    requirements TEXT NOT NULL,
                    company_id INTEGER REFERENCES companies(id) ON DELETE SET NULL,
                    recruiter_id TEXT NOT NULL,
                    is_open INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS applications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    job_id INTEGER NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
                    candidate_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'applied',
                    resume TEXT NOT NULL,
                    experience INTEGER,
                    skills TEXT,
                    education TEXT,
                    created_at TEXT NOT NULL,
                    UNIQUE (job_id, candidate_id)
                );

                CREATE TABLE IF NOT EXISTS saved_jobs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    job_id INTEGER NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
                    created_at TEXT NOT NULL,
                    UNIQUE (user_id, job_id)
                );

                CREATE INDEX IF NOT EXISTS idx_jobs_recruiter ON jobs(recruiter_id);
                CREATE INDEX IF NOT EXISTS idx_applications_candidate ON applications(candidate_id);
                """
            )
            self._connection.commit()

    def close(self) -> None:
        with self._lock:
            if self._connection is None:
                return
            self._connection.close()
            self._connection = None

    def session(self, user_id: str | None = None, *, privileged: bool = False) -> DataSession:
        return DataSession(self, user_id=user_id, privileged=privileged)


class DataSession:
    """Caller-scoped view of the repository.

    Ordinary sessions see and change only what the row policies allow for
    ``user_id``; privileged sessions bypass the policies entirely.
    """

    def __init__(
        self,
        repository: JobBoardRepository,
        *,
        user_id: str | None,
        privileged: bool,
    ) -> None:
        self.repository = repository
        self.user_id = user_id
        self.privileged = privileged

    @property
    def connection(self) -> sqlite3.Connection:
        return self.repository.connection

    def _require_user(self) -> str:
        if not self.user_id:
            raise PermissionDeniedError("An authenticated user is required")
        return self.user_id

    def _to_job(self, row: sqlite3.Row, saved: list[SavedMarker] | None = None) -> JobRecord:
        company = None
        if row["company_name"] is not None:
            company = CompanySummary(name=row["company_name"], logo_url=row["company_logo_url"])
        return JobRecord(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            location=row["location"],
            requirements=row["requirements"],
            company_id=row["company_id"],
            recruiter_id=row["recruiter_id"],
            is_open=bool(row["is_open"]),
            created_at=row["created_at"],
            company=company,
            saved=saved or [],
        )

    def _saved_markers(self, job_ids: list[int]) -> dict[int, list[SavedMarker]]:
        if not job_ids or not self.user_id:
            return {}
        placeholders = ",".join("?" for _ in job_ids)
        cursor = self.connection.execute(
            f"""
            SELECT id, job_id
            FROM saved_jobs
            WHERE user_id = ? AND job_id IN ({placeholders})
            """,
            (self.user_id, *job_ids),
        )
        markers: dict[int, list[SavedMarker]] = {}
        for row in cursor.fetchall():
            markers.setdefault(row["job_id"], []).append(SavedMarker(id=row["id"]))
        return markers

    def _jobs_from_rows(self, rows: list[sqlite3.Row]) -> list[JobRecord]:
        markers = self._saved_markers([row["id"] for row in rows])
        return [self._to_job(row, markers.get(row["id"])) for row in rows]

    def list_jobs(
        self,
        *,
        location: str | None = None,
        company_id: int | None = None,
        search_query: str | None = None,
    ) -> list[JobRecord]:
        with self.repository.lock:
            query = f"""
                SELECT {JOB_COLUMNS}
                FROM jobs j
                LEFT JOIN companies c ON c.id = j.company_id
            """
            filters: list[str] = []
            params: list[Any] = []
            if location:
                filters.append("j.location = ?")
                params.append(location)
            if company_id is not None:
                filters.append("j.company_id = ?")
                params.append(company_id)
            if search_query and search_query.strip():
                filters.append("j.title LIKE ? ESCAPE '\\'")
                params.append(f"%{escape_like(normalize_whitespace(search_query))}%")
            if filters:
                query += " WHERE " + " AND ".join(filters)
            query += " ORDER BY j.created_at DESC, j.id DESC"
            rows = self.connection.execute(query, tuple(params)).fetchall()
            return self._jobs_from_rows(rows)

    def list_jobs_by_recruiter(self, recruiter_id: str) -> list[JobRecord]:
        with self.repository.lock:
            rows = self.connection.execute(
                f"""
                SELECT {JOB_COLUMNS}
                FROM jobs j
                LEFT JOIN companies c ON c.id = j.company_id
                WHERE j.recruiter_id = ?
                ORDER BY j.created_at DESC, j.id DESC
                """,
                (recruiter_id,),
            ).fetchall()
            return self._jobs_from_rows(rows)

    def get_job(self, job_id: int, *, with_applications: bool = False) -> JobRecord | None:
        with self.repository.lock:
            row = self.connection.execute(
                f"""
                SELECT {JOB_COLUMNS}
                FROM jobs j
                LEFT JOIN companies c ON c.id = j.company_id
                WHERE j.id = ?
                """,
                (job_id,),
            ).fetchone()
            if row is None:
                return None
            job = self._jobs_from_rows([row])[0]
            if with_applications:
                job.applications = self._visible_applications(job)
            return job

    def _visible_applications(self, job: JobRecord) -> list[ApplicationRecord]:
        if self.privileged or (self.user_id and self.user_id == job.recruiter_id):
            cursor = self.connection.execute(
                f"""
                SELECT {APPLICATION_COLUMNS}
                FROM applications a
                WHERE a.job_id = ?
                ORDER BY a.created_at, a.id
                """,
                (job.id,),
            )
        elif self.user_id:
            cursor = self.connection.execute(
                f"""
                SELECT {APPLICATION_COLUMNS}
                FROM applications a
                WHERE a.job_id = ? AND a.candidate_id = ?
                ORDER BY a.created_at, a.id
                """,
                (job.id, self.user_id),
            )
        else:
            return []
        return [ApplicationRecord(**dict(row)) for row in cursor.fetchall()]

    def create_job(self, payload: JobCreate) -> JobRecord:
        recruiter_id = self._require_user()
        with self.repository.lock:
            if self._get_company_row(payload.company_id) is None:
                raise RecordNotFoundError(f"Unknown company_id: {payload.company_id}")
            cursor = self.connection.execute(
                """
                INSERT INTO jobs (
                    title,
                    description,
                    location,
                    requirements,
                    company_id,
                    recruiter_id,
                    is_open,
                    created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, 1, ?)
                """,
                (
                    normalize_whitespace(payload.title),
                    payload.description.strip(),
                    normalize_whitespace(payload.location),
                    payload.requirements.strip(),
                    payload.company_id,
                    recruiter_id,
                    now_utc_iso(),
                ),
            )
            self.connection.commit()
            job = self.get_job(int(cursor.lastrowid))
            if job is None:
                raise RecordNotFoundError("Inserted job could not be read back")
            return job

    def set_hiring_status(self, job_id: int, is_open: bool) -> JobRecord:
        with self.repository.lock:
            cursor = self.connection.execute(
                """
                UPDATE jobs
                SET is_open = ?
                WHERE id = ? AND (? OR recruiter_id = ?)
                """,
                (int(is_open), job_id, int(self.privileged), self.user_id),
            )
            self.connection.commit()
            job = self.get_job(job_id)
            if job is None:
                raise RecordNotFoundError(f"Unknown job_id: {job_id}")
            if cursor.rowcount == 0:
                raise PermissionDeniedError("Only the job's recruiter may change hiring status")
            return job

    def delete_job(self, job_id: int) -> list[JobRecord]:
        """Delete the job if the row policy allows it and return the deleted rows."""
        with self.repository.lock:
            rows = self.connection.execute(
                f"""
                SELECT {JOB_COLUMNS}
                FROM jobs j
                LEFT JOIN companies c ON c.id = j.company_id
                WHERE j.id = ? AND (? OR j.recruiter_id = ?)
                """,
                (job_id, int(self.privileged), self.user_id),
            ).fetchall()
            if not rows:
                return []
            cursor = self.connection.execute(
                "DELETE FROM jobs WHERE id = ? AND (? OR recruiter_id = ?)",
                (job_id, int(self.privileged), self.user_id),
            )
            self.connection.commit()
            if cursor.rowcount == 0:
                return []
            return [self._to_job(row) for row in rows]

    def count_jobs(self) -> int:
        with self.repository.lock:
            row = self.connection.execute("SELECT COUNT(1) AS c FROM jobs").fetchone()
            return int(row["c"])

    def toggle_saved_job(self, job_id: int) -> SaveToggleResult:
        user_id = self._require_user()
        with self.repository.lock:
            removed = self.connection.execute(
                "DELETE FROM saved_jobs WHERE user_id = ? AND job_id = ?",
                (user_id, job_id),
            )
            if removed.rowcount > 0:
                self.connection.commit()
                return SaveToggleResult(job_id=job_id, status="unsaved")

            if self.connection.execute(
                "SELECT 1 FROM jobs WHERE id = ?", (job_id,)
            ).fetchone() is None:
                self.connection.rollback()
                raise RecordNotFoundError(f"Unknown job_id: {job_id}")
            try:
                self.connection.execute(
                    """
                    INSERT INTO saved_jobs (user_id, job_id, created_at)
                    VALUES (?, ?, ?)
                    """,
                    (user_id, job_id, now_utc_iso()),
                )
            except sqlite3.IntegrityError:
                # Saved by a concurrent request between our delete and insert.
                self.connection.rollback()
                return SaveToggleResult(job_id=job_id, status="saved")
            self.connection.commit()
            return SaveToggleResult(job_id=job_id, status="saved")

    def list_saved_jobs(self) -> list[SavedJobRecord]:
        with self.repository.lock:
            if self.privileged:
                cursor = self.connection.execute(
                    """
                    SELECT id, user_id, job_id, created_at
                    FROM saved_jobs
                    ORDER BY created_at DESC, id DESC
                    """
                )
            elif self.user_id:
                cursor = self.connection.execute(
                    """
                    SELECT id, user_id, job_id, created_at
                    FROM saved_jobs
                    WHERE user_id = ?
                    ORDER BY created_at DESC, id DESC
                    """,
                    (self.user_id,),
                )
            else:
                return []

            saved: list[SavedJobRecord] = []
            for row in cursor.fetchall():
                job = self.get_job(row["job_id"])
                if job is None:
                    continue
                saved.append(SavedJobRecord(**dict(row), job=job))
            return saved

    def create_application(self, job_id: int, payload: ApplicationCreate) -> ApplicationRecord:
        candidate_id = self._require_user()
        with self.repository.lock:
            job = self.get_job(job_id)
            if job is None:
                raise RecordNotFoundError(f"Unknown job_id: {job_id}")
            if not job.is_open:
                raise RecordConflictError("Job is not accepting applications")
            try:
                cursor = self.connection.execute(
                    """
                    INSERT INTO applications (
                        job_id,
                        candidate_id,
                        name,
                        status,
                        resume,
                        experience,
                        skills,
                        education,
                        created_at
                    )
                    VALUES (?, ?, ?, 'applied', ?, ?, ?, ?, ?)
                    """,
                    (
                        job_id,
                        candidate_id,
                        normalize_whitespace(payload.name),
                        payload.resume.strip(),
                        payload.experience,
                        payload.skills,
                        payload.education,
                        now_utc_iso(),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                self.connection.rollback()
                raise RecordConflictError("Candidate has already applied to this job") from exc
            self.connection.commit()
            return self._get_application(int(cursor.lastrowid))

    def _get_application(self, application_id: int) -> ApplicationRecord:
        row = self.connection.execute(
            f"SELECT {APPLICATION_COLUMNS} FROM applications a WHERE a.id = ?",
            (application_id,),
        ).fetchone()
        if row is None:
            raise RecordNotFoundError(f"Unknown application_id: {application_id}")
        return ApplicationRecord(**dict(row))

    def update_application_status(
        self,
        application_id: int,
        status: ApplicationStatus,
    ) -> ApplicationRecord:
        with self.repository.lock:
            cursor = self.connection.execute(
                """
                UPDATE applications
                SET status = ?
                WHERE id = ?
                  AND (? OR job_id IN (SELECT id FROM jobs WHERE recruiter_id = ?))
                """,
                (status, application_id, int(self.privileged), self.user_id),
            )
            self.connection.commit()
            application = self._get_application(application_id)
            if cursor.rowcount == 0:
                raise PermissionDeniedError("Only the job's recruiter may change application status")
            return application

    def list_applications(self, candidate_id: str) -> list[CandidateApplication]:
        with self.repository.lock:
            cursor = self.connection.execute(
                f"""
                SELECT
                    {APPLICATION_COLUMNS},
                    j.title AS job_title,
                    c.name AS company_name,
                    c.logo_url AS company_logo_url
                FROM applications a
                JOIN jobs j ON j.id = a.job_id
                LEFT JOIN companies c ON c.id = j.company_id
                WHERE a.candidate_id = ?
                  AND (? OR a.candidate_id = ? OR j.recruiter_id = ?)
                ORDER BY a.created_at DESC, a.id DESC
                """,
                (candidate_id, int(self.privileged), self.user_id, self.user_id),
            )
            applications: list[CandidateApplication] = []
            for row in cursor.fetchall():
                values = dict(row)
                job_title = values.pop("job_title")
                company_name = values.pop("company_name")
                company_logo_url = values.pop("company_logo_url")
                company = None
                if company_name is not None:
                    company = CompanySummary(name=company_name, logo_url=company_logo_url)
                applications.append(
                    CandidateApplication(**values, job=JobSummary(title=job_title, company=company))
                )
            return applications

    def _get_company_row(self, company_id: int) -> sqlite3.Row | None:
        return self.connection.execute(
            "SELECT id, name, logo_url, created_at FROM companies WHERE id = ?",
            (company_id,),
        ).fetchone()

    def list_companies(self) -> list[Company]:
        with self.repository.lock:
            cursor = self.connection.execute(
                "SELECT id, name, logo_url, created_at FROM companies ORDER BY name, id"
            )
            return [Company(**dict(row)) for row in cursor.fetchall()]

    def create_company(self, payload: CompanyCreate) -> Company:
        self._require_user()
        with self.repository.lock:
            cursor = self.connection.execute(
                """
                INSERT INTO companies (name, logo_url, created_at)
                VALUES (?, ?, ?)
                """,
                (
                    normalize_whitespace(payload.name),
                    (payload.logo_url or "").strip() or None,
                    now_utc_iso(),
                ),
            )
            self.connection.commit()
            row = self._get_company_row(int(cursor.lastrowid))
            return Company(**dict(row))
