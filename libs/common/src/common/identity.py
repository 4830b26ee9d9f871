from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from common.roles import Role, parse_role

DEFAULT_CLERK_API_URL = "https://api.clerk.com/v1"
DEFAULT_TIMEOUT_SECONDS = 10.0
LOGGER = logging.getLogger("hired.common.identity")


class IdentityError(Exception):
    pass


class IdentityUnavailableError(IdentityError):
    pass


class IdentityAPIError(IdentityError):
    def __init__(self, status_code: int, payload: Any) -> None:
        super().__init__(f"identity provider returned {status_code}")
        self.status_code = status_code
        self.payload = payload


def primary_email(user: dict[str, Any]) -> str | None:
    addresses = user.get("email_addresses") or []
    if not addresses:
        return None
    first = addresses[0]
    if not isinstance(first, dict):
        return None
    return first.get("email_address") or None


def user_role(user: dict[str, Any]) -> Role:
    metadata = user.get("unsafe_metadata") or {}
    if not isinstance(metadata, dict):
        return Role.UNSET
    return parse_role(metadata.get("role"))


class ClerkClient:
    """Thin async client for the identity provider's backend REST API."""

    def __init__(
        self,
        secret_key: str,
        *,
        base_url: str = DEFAULT_CLERK_API_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    async def request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        params: list[tuple[str, str]] | None = None,
    ) -> Any:
        request_kwargs: dict[str, Any] = {"headers": self.headers()}
        if payload is not None:
            request_kwargs["json"] = payload
        if params:
            request_kwargs["params"] = params

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method=method,
                    url=f"{self.base_url}{path}",
                    **request_kwargs,
                )
        except httpx.RequestError as exc:
            LOGGER.error(
                json.dumps(
                    {
                        "event": "identity_unavailable",
                        "method": method,
                        "path": path,
                        "error": str(exc),
                    }
                )
            )
            raise IdentityUnavailableError("Identity provider is unavailable") from exc

        try:
            response_payload = response.json()
        except ValueError:
            response_payload = {}

        if response.status_code >= 400:
            raise IdentityAPIError(response.status_code, response_payload)
        return response_payload

    async def list_users(self, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        payload = await self.request(
            "GET",
            "/users",
            params=[("limit", str(limit)), ("offset", str(offset))],
        )
        return list(payload) if isinstance(payload, list) else []

    async def get_users(self, user_ids: list[str]) -> list[dict[str, Any]]:
        if not user_ids:
            return []
        params = [("user_id", user_id) for user_id in user_ids]
        params.append(("limit", str(len(user_ids))))
        payload = await self.request("GET", "/users", params=params)
        return list(payload) if isinstance(payload, list) else []

    async def get_user(self, user_id: str) -> dict[str, Any]:
        return await self.request("GET", f"/users/{user_id}")

    async def delete_user(self, user_id: str) -> dict[str, Any]:
        return await self.request("DELETE", f"/users/{user_id}")

    async def ban_user(self, user_id: str) -> dict[str, Any]:
        return await self.request("POST", f"/users/{user_id}/ban")

    async def unban_user(self, user_id: str) -> dict[str, Any]:
        return await self.request("POST", f"/users/{user_id}/unban")

    async def get_jwks(self) -> dict[str, Any]:
        return await self.request("GET", "/jwks")

    async def update_role(self, user_id: str, role: Role) -> dict[str, Any]:
        return await self.request(
            "PATCH",
            f"/users/{user_id}/metadata",
            {"unsafe_metadata": {"role": role.value}},
        )
