from __future__ import annotations

import json
import logging

from common.identity import IdentityError
from common.roles import ASSIGNABLE_ROLES, Role, landing_path_for

from portal.session import SessionProvider, SessionState

LOGGER = logging.getLogger("hired.portal.onboarding")


async def assign_role(
    sessions: SessionProvider,
    session: SessionState,
    role: Role,
) -> str | None:
    """Write the chosen role onto the principal's profile.

    Returns the role's landing path, or ``None`` when the profile update failed;
    the failure is logged and the visitor stays on the onboarding screen.
    """
    if role not in ASSIGNABLE_ROLES:
        raise ValueError(f"Role {role.value!r} cannot be self-assigned")
    if not session.signed_in or not session.user_id:
        raise ValueError("A signed-in principal is required")

    try:
        await sessions.update_role(session.user_id, role)
    except IdentityError as exc:
        LOGGER.error(
            json.dumps(
                {
                    "event": "role_update_failed",
                    "user_id": session.user_id,
                    "role": role.value,
                    "error": str(exc),
                }
            )
        )
        return None

    LOGGER.info(
        json.dumps({"event": "role_updated", "user_id": session.user_id, "role": role.value})
    )
    return landing_path_for(role)
