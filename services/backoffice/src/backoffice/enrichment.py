from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

from common.identity import IdentityError, primary_email
from common.models import JobRecord

FALLBACK_VALUE = "N/A"
DEFAULT_LOOKUP_CONCURRENCY = 8
LOGGER = logging.getLogger("hired.backoffice.enrichment")


class RecruiterDirectory(Protocol):
    async def get_users(self, user_ids: list[str]) -> list[dict[str, Any]]: ...

    async def get_user(self, user_id: str) -> dict[str, Any]: ...


async def lookup_individually(
    directory: RecruiterDirectory,
    recruiter_ids: list[str],
    *,
    max_concurrency: int = DEFAULT_LOOKUP_CONCURRENCY,
) -> dict[str, dict[str, Any]]:
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def lookup(recruiter_id: str) -> tuple[str, dict[str, Any] | None]:
        async with semaphore:
            try:
                return recruiter_id, await directory.get_user(recruiter_id)
            except IdentityError as exc:
                LOGGER.warning(
                    json.dumps(
                        {
                            "event": "recruiter_lookup_failed",
                            "recruiter_id": recruiter_id,
                            "error": str(exc),
                        }
                    )
                )
                return recruiter_id, None

    results = await asyncio.gather(*(lookup(recruiter_id) for recruiter_id in recruiter_ids))
    return {recruiter_id: user for recruiter_id, user in results if user is not None}


async def resolve_recruiters(
    directory: RecruiterDirectory,
    recruiter_ids: list[str],
    *,
    max_concurrency: int = DEFAULT_LOOKUP_CONCURRENCY,
) -> dict[str, dict[str, Any]]:
    """Map recruiter ids to identity-provider users.

    One batched lookup is tried first; if it fails, ids are looked up one by one
    with at most ``max_concurrency`` calls in flight. Ids that cannot be resolved
    are simply absent from the result.
    """
    if not recruiter_ids:
        return {}
    try:
        users = await directory.get_users(recruiter_ids)
    except IdentityError as exc:
        LOGGER.warning(
            json.dumps(
                {
                    "event": "recruiter_batch_lookup_failed",
                    "recruiters": len(recruiter_ids),
                    "error": str(exc),
                }
            )
        )
        return await lookup_individually(
            directory,
            recruiter_ids,
            max_concurrency=max_concurrency,
        )
    wanted = set(recruiter_ids)
    return {user["id"]: user for user in users if user.get("id") in wanted}


def enrich_job(job: JobRecord, recruiter: dict[str, Any] | None) -> dict[str, Any]:
    payload = job.model_dump()
    recruiter_email = primary_email(recruiter) if recruiter else None
    recruiter_name = recruiter.get("first_name") if recruiter else None
    payload["recruiter_email"] = recruiter_email or FALLBACK_VALUE
    payload["recruiter_name"] = recruiter_name or FALLBACK_VALUE
    payload["companies"] = {"name": job.company.name if job.company else FALLBACK_VALUE}
    return payload


async def enrich_jobs_with_recruiters(
    jobs: list[JobRecord],
    directory: RecruiterDirectory,
    *,
    max_concurrency: int = DEFAULT_LOOKUP_CONCURRENCY,
) -> list[dict[str, Any]]:
    recruiter_ids = sorted({job.recruiter_id for job in jobs if job.recruiter_id})
    recruiters = await resolve_recruiters(
        directory,
        recruiter_ids,
        max_concurrency=max_concurrency,
    )
    return [enrich_job(job, recruiters.get(job.recruiter_id)) for job in jobs]
