from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest
from common.identity import IdentityAPIError
from common.roles import Role
from fastapi import Request
from fastapi.testclient import TestClient
from portal.main import create_app
from portal.session import SessionState, session_token_from_request


class FakeSessionProvider:
    """In-memory stand-in for the identity provider, keyed by session token."""

    def __init__(self) -> None:
        self.sessions: dict[str, SessionState] = {}
        self.loading = False
        self.fail_updates = False
        self.updates: list[tuple[str, Role]] = []

    def sign_in(
        self,
        token: str,
        user_id: str,
        role: Role = Role.UNSET,
        *,
        first_name: str | None = None,
    ) -> dict[str, str]:
        self.sessions[token] = SessionState.for_user(
            user_id,
            role,
            email=f"{user_id}@example.com",
            first_name=first_name,
        )
        return {"authorization": f"Bearer {token}"}

    async def resolve(self, request: Request) -> SessionState:
        if self.loading:
            return SessionState.loading()
        token = session_token_from_request(request)
        if token is None or token not in self.sessions:
            return SessionState.signed_out()
        return self.sessions[token]

    async def update_role(self, user_id: str, role: Role) -> None:
        if self.fail_updates:
            raise IdentityAPIError(500, {"errors": [{"code": "internal"}]})
        self.updates.append((user_id, role))
        for token, state in self.sessions.items():
            if state.user_id == user_id:
                self.sessions[token] = replace(state, role=role)


@pytest.fixture
def sessions() -> FakeSessionProvider:
    return FakeSessionProvider()


@pytest.fixture
def client(tmp_path: Path, sessions: FakeSessionProvider):
    app = create_app(
        database_path=str(tmp_path / "portal.sqlite3"),
        publishable_key="pk_test_portal",
        backoffice_base_url="http://backoffice.test",
        session_provider=sessions,
    )
    with TestClient(app) as test_client:
        yield test_client
