"""Navigation guard for the portal's pages.

``evaluate`` decides, for one navigation attempt, whether the requested page
renders, the visitor is redirected, or nothing is served until the session is
established. Rules are checked in order and the first match wins:

1. session still loading            -> suspend
2. not signed in                    -> sign-in entry
3. page requires another role       -> default page
4. admin outside the admin page     -> admin page
5. non-admin on the admin page      -> default page
6. no role outside onboarding       -> onboarding
7. otherwise                        -> render
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from common.roles import Role

from portal.session import SessionState

ENTRY_PATH = "/"
SIGN_IN_PATH = "/?sign-in=true"
DEFAULT_PATH = "/"
ADMIN_PATH = "/admin"
ONBOARDING_PATH = "/onboarding"


class GuardOutcome(str, Enum):
    RENDER = "render"
    REDIRECT = "redirect"
    SUSPEND = "suspend"


@dataclass(frozen=True)
class GuardDecision:
    outcome: GuardOutcome
    location: str | None = None

    @classmethod
    def render(cls) -> GuardDecision:
        return cls(outcome=GuardOutcome.RENDER)

    @classmethod
    def redirect(cls, location: str) -> GuardDecision:
        return cls(outcome=GuardOutcome.REDIRECT, location=location)

    @classmethod
    def suspend(cls) -> GuardDecision:
        return cls(outcome=GuardOutcome.SUSPEND)


def evaluate(
    session: SessionState,
    path: str,
    required_role: Role | None = None,
) -> GuardDecision:
    if not session.loaded:
        return GuardDecision.suspend()

    if not session.signed_in:
        return GuardDecision.redirect(SIGN_IN_PATH)

    role = session.role
    if required_role is not None and role is not required_role:
        return GuardDecision.redirect(DEFAULT_PATH)

    if role is Role.ADMIN and path != ADMIN_PATH:
        return GuardDecision.redirect(ADMIN_PATH)

    if role is not Role.ADMIN and path == ADMIN_PATH:
        return GuardDecision.redirect(DEFAULT_PATH)

    if role is Role.UNSET and path != ONBOARDING_PATH:
        return GuardDecision.redirect(ONBOARDING_PATH)

    return GuardDecision.render()
