"""
Identity provider — who signs users up and checks their passwords.

The gateway never stores passwords. It asks the identity provider, gets back
a durable identity id, and links that id to its own user record.

SupabaseIdentityProvider speaks the GoTrue REST API:
    POST {SUPABASE_URL}/auth/v1/signup                     {email, password}
    POST {SUPABASE_URL}/auth/v1/token?grant_type=password  {email, password}
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from medichat.errors import AuthError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    identity_id: str
    email: str


class IdentityProvider(ABC):
    @abstractmethod
    async def sign_up(self, email: str, password: str) -> Identity:
        ...

    @abstractmethod
    async def authenticate(self, email: str, password: str) -> Identity:
        ...

    async def close(self) -> None:
        return None


def _provider_error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("msg", "error_description", "message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return f"HTTP {response.status_code}"


class SupabaseIdentityProvider(IdentityProvider):
    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        if not url or not anon_key:
            logger.warning("SUPABASE_URL / SUPABASE_ANON_KEY not set — sign-up and login will fail")
        self._client = client or httpx.AsyncClient(
            base_url=f"{url.rstrip('/')}/auth/v1",
            timeout=timeout,
            headers={"apikey": anon_key, "Authorization": f"Bearer {anon_key}"},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def sign_up(self, email: str, password: str) -> Identity:
        body = await self._post("/signup", {"email": email, "password": password})
        # Depending on the project's email-confirmation setting, the user is
        # either the top-level object or nested under "user".
        user = body.get("user") if isinstance(body.get("user"), dict) else body
        return self._identity_from(user, email)

    async def authenticate(self, email: str, password: str) -> Identity:
        body = await self._post(
            "/token",
            {"email": email, "password": password},
            params={"grant_type": "password"},
        )
        return self._identity_from(body.get("user") or {}, email)

    async def _post(self, path: str, payload: dict, params: dict | None = None) -> dict:
        try:
            response = await self._client.post(path, json=payload, params=params)
        except httpx.HTTPError as e:
            logger.error("Identity provider unreachable: %s", e)
            raise AuthError("Identity provider unavailable", detail=str(e)) from e

        if response.status_code >= 400:
            message = _provider_error_message(response)
            logger.info("Identity provider rejected %s: %s", path, message)
            raise AuthError(message)

        try:
            body = response.json()
        except ValueError as e:
            raise AuthError("Identity provider returned an invalid response") from e
        if not isinstance(body, dict):
            raise AuthError("Identity provider returned an invalid response")
        return body

    @staticmethod
    def _identity_from(user: dict, email: str) -> Identity:
        identity_id = user.get("id")
        if not identity_id:
            raise AuthError("Identity provider returned no user id")
        return Identity(identity_id=str(identity_id), email=str(user.get("email") or email))
