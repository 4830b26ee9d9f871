from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

LOGGER = logging.getLogger("hired.common.roles")

JOB_LISTING_PATH = "/jobs"
POST_JOB_PATH = "/post-job"


class Role(str, Enum):
    UNSET = "unset"
    CANDIDATE = "candidate"
    RECRUITER = "recruiter"
    ADMIN = "admin"


ASSIGNABLE_ROLES = frozenset({Role.CANDIDATE, Role.RECRUITER})


def parse_role(value: Any) -> Role:
    """Read the profile's free-form role attribute into the closed enum.

    Missing or unrecognised values become ``Role.UNSET``; the latter are logged
    so a bad profile can be found and corrected.
    """
    if value is None:
        return Role.UNSET
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        LOGGER.warning(json.dumps({"event": "role_unrecognized", "value": repr(value)}))
        return Role.UNSET

    normalized = value.strip().lower()
    if not normalized:
        return Role.UNSET
    try:
        return Role(normalized)
    except ValueError:
        LOGGER.warning(json.dumps({"event": "role_unrecognized", "value": value}))
        return Role.UNSET


def landing_path_for(role: Role) -> str:
    if role is Role.RECRUITER:
        return POST_JOB_PATH
    return JOB_LISTING_PATH
