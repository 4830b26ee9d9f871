from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol

import jwt
from common.identity import (
    ClerkClient,
    IdentityAPIError,
    IdentityUnavailableError,
    primary_email,
    user_role,
)
from common.roles import Role
from fastapi import Request

SESSION_COOKIE = "__session"
TOKEN_ALGORITHMS = ["RS256"]
REQUIRED_CLAIMS = ["exp", "iat", "sub", "sid"]
DEFAULT_CLOCK_SKEW_SECONDS = 5
LOGGER = logging.getLogger("hired.portal.session")


@dataclass(frozen=True)
class SessionState:
    loaded: bool
    signed_in: bool
    user_id: str | None = None
    role: Role = Role.UNSET
    email: str | None = None
    first_name: str | None = None

    @classmethod
    def loading(cls) -> SessionState:
        return cls(loaded=False, signed_in=False)

    @classmethod
    def signed_out(cls) -> SessionState:
        return cls(loaded=True, signed_in=False)

    @classmethod
    def for_user(
        cls,
        user_id: str,
        role: Role = Role.UNSET,
        *,
        email: str | None = None,
        first_name: str | None = None,
    ) -> SessionState:
        return cls(
            loaded=True,
            signed_in=True,
            user_id=user_id,
            role=role,
            email=email,
            first_name=first_name,
        )


class SessionProvider(Protocol):
    async def resolve(self, request: Request) -> SessionState: ...

    async def update_role(self, user_id: str, role: Role) -> None: ...


class SessionTokenError(Exception):
    """Raised when a session token fails signature or claim checks."""


def session_token_from_request(request: Request) -> str | None:
    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    token = request.cookies.get(SESSION_COOKIE, "")
    return token.strip() or None


class SessionTokenVerifier:
    """Verifies the identity provider's RS256 session tokens.

    Signing keys come from ``public_key`` (PEM) when configured, otherwise from
    the provider's JWKS, fetched once per unknown ``kid`` and cached.
    """

    def __init__(
        self,
        client: ClerkClient,
        *,
        public_key: str | None = None,
        authorized_parties: Iterable[str] = (),
        leeway: int = DEFAULT_CLOCK_SKEW_SECONDS,
    ) -> None:
        self.client = client
        self.public_key = public_key
        self.authorized_parties = frozenset(authorized_parties)
        self.leeway = leeway
        self._keys: dict[str, Any] = {}

    async def signing_key(self, kid: str | None) -> Any:
        if self.public_key:
            return self.public_key
        if not kid:
            raise SessionTokenError("Session token has no key id")
        if kid not in self._keys:
            jwks = await self.client.get_jwks()
            for entry in jwks.get("keys", []):
                if entry.get("kid"):
                    self._keys[entry["kid"]] = jwt.PyJWK(entry).key
        if kid not in self._keys:
            raise SessionTokenError(f"Unknown signing key: {kid}")
        return self._keys[kid]

    async def verify(self, token: str) -> dict[str, Any]:
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as exc:
            raise SessionTokenError("Malformed session token") from exc

        key = await self.signing_key(header.get("kid"))
        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=TOKEN_ALGORITHMS,
                leeway=self.leeway,
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.InvalidTokenError as exc:
            raise SessionTokenError(str(exc)) from exc

        if self.authorized_parties and claims.get("azp") not in self.authorized_parties:
            raise SessionTokenError("Session token issued for another origin")
        return claims


class ClerkSessionProvider:
    """Resolves the visitor from a verified session token, then loads the profile."""

    def __init__(self, client: ClerkClient, verifier: SessionTokenVerifier | None = None) -> None:
        self.client = client
        self.verifier = verifier or SessionTokenVerifier(client)

    async def resolve(self, request: Request) -> SessionState:
        token = session_token_from_request(request)
        if token is None:
            return SessionState.signed_out()

        try:
            claims = await self.verifier.verify(token)
            user = await self.client.get_user(claims["sub"])
        except SessionTokenError as exc:
            LOGGER.info(json.dumps({"event": "session_token_rejected", "reason": str(exc)}))
            return SessionState.signed_out()
        except IdentityUnavailableError:
            return SessionState.loading()
        except IdentityAPIError as exc:
            if exc.status_code >= 500:
                LOGGER.warning(
                    json.dumps(
                        {
                            "event": "session_resolve_failed",
                            "status_code": exc.status_code,
                        }
                    )
                )
                return SessionState.loading()
            return SessionState.signed_out()

        return SessionState.for_user(
            user["id"],
            user_role(user),
            email=primary_email(user),
            first_name=user.get("first_name"),
        )

    async def update_role(self, user_id: str, role: Role) -> None:
        await self.client.update_role(user_id, role)
