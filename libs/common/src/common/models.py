from __future__ import annotations

from typing import Annotated, Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, StringConstraints, field_validator

ApplicationStatus = Literal["applied", "interviewing", "hired", "rejected"]
LINK_SCHEMES = frozenset({"http", "https"})

RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
OptionalText = Annotated[str, StringConstraints(strip_whitespace=True)]


def is_web_link(value: str) -> bool:
    parts = urlsplit(value.strip())
    return parts.scheme.lower() in LINK_SCHEMES and bool(parts.netloc)


class CompanySummary(BaseModel):
    name: str
    logo_url: str | None = None


class Company(BaseModel):
    id: int
    name: str
    logo_url: str | None = None
    created_at: str


class CompanyCreate(BaseModel):
    name: RequiredText = Field(..., max_length=120)
    logo_url: OptionalText | None = Field(default=None, max_length=500)


class SavedMarker(BaseModel):
    id: int


class ApplicationRecord(BaseModel):
    id: int
    job_id: int
    candidate_id: str
    name: str
    status: ApplicationStatus
    resume: str
    experience: int | None = None
    skills: str | None = None
    education: str | None = None
    created_at: str


class ApplicationCreate(BaseModel):
    name: RequiredText = Field(..., max_length=120)
    resume: RequiredText = Field(..., max_length=500, description="http(s) link to the resume")
    experience: int | None = Field(default=None, ge=0, le=80)
    skills: OptionalText | None = Field(default=None, max_length=1000)
    education: OptionalText | None = Field(default=None, max_length=120)

    @field_validator("resume")
    @classmethod
    def resume_must_be_web_link(cls, value: str) -> str:
        if not is_web_link(value):
            raise ValueError("resume must be an http or https URL")
        return value


class ApplicationStatusUpdate(BaseModel):
    status: ApplicationStatus


class JobRecord(BaseModel):
    id: int
    title: str
    description: str
    location: str
    requirements: str
    company_id: int | None = None
    recruiter_id: str
    is_open: bool
    created_at: str
    company: CompanySummary | None = None
    saved: list[SavedMarker] = Field(default_factory=list)
    applications: list[ApplicationRecord] | None = None


class JobCreate(BaseModel):
    title: RequiredText = Field(..., max_length=200)
    description: RequiredText
    location: RequiredText = Field(..., max_length=120)
    company_id: int = Field(..., ge=1)
    requirements: RequiredText


class HiringStatusUpdate(BaseModel):
    is_open: bool


class JobSummary(BaseModel):
    title: str
    company: CompanySummary | None = None


class CandidateApplication(ApplicationRecord):
    job: JobSummary


class SavedJobRecord(BaseModel):
    id: int
    user_id: str
    job_id: int
    created_at: str
    job: JobRecord


class SaveToggleResult(BaseModel):
    job_id: int
    status: Literal["saved", "unsaved"]
