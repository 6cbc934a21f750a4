"""Auth token providers.

The engine only needs ``await provider.get_token()``: a bearer token, or
None meaning "not authenticated".  Providers never raise; failures to obtain
a token are logged and reported as None so the caller fails fast.

Available providers:
    StaticTokenProvider   - fixed token (CI, local development)
    FirebaseTokenProvider - exchanges a Firebase refresh token for an ID token
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Protocol, runtime_checkable

import httpx
import jwt as pyjwt

logger = logging.getLogger("fitglue.auth")

_FIREBASE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"

# Refresh this many seconds before the ID token actually expires
_EXPIRY_BUFFER_SECONDS = 60


@runtime_checkable
class AuthProvider(Protocol):
    async def get_token(self) -> str | None: ...

    def is_authenticated(self) -> bool: ...


class StaticTokenProvider:
    """Returns the same token on every call (empty string = signed out)."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token or None

    async def get_token(self) -> str | None:
        if not self._token:
            logger.warning("No authenticated user")
        return self._token

    def is_authenticated(self) -> bool:
        return self._token is not None

    def sign_out(self) -> None:
        self._token = None


class FirebaseTokenProvider:
    """Firebase Auth ID tokens from a long-lived refresh token.

    The ID token is cached until shortly before the ``exp`` claim.  The claim
    is read without verifying the signature: the backend verifies the token,
    the client only needs to know when to refresh it.
    """

    def __init__(
        self,
        api_key: str,
        refresh_token: str | None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._refresh_token = refresh_token or None
        self._http_client = http_client
        self._timeout = timeout
        self._id_token: str | None = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    def is_authenticated(self) -> bool:
        return self._refresh_token is not None

    def sign_out(self) -> None:
        self._refresh_token = None
        self._id_token = None
        self._expires_at = 0.0

    async def get_token(self) -> str | None:
        if self._refresh_token is None:
            logger.warning("No authenticated user")
            return None

        async with self._lock:
            if self._id_token and time.time() < self._expires_at - _EXPIRY_BUFFER_SECONDS:
                return self._id_token
            try:
                await self._refresh()
            except (httpx.HTTPError, KeyError, ValueError, pyjwt.InvalidTokenError) as exc:
                logger.error("Failed to get auth token: %s", exc)
                return None
            return self._id_token

    async def _refresh(self) -> None:
        data = {"grant_type": "refresh_token", "refresh_token": self._refresh_token}
        params = {"key": self._api_key}

        if self._http_client:
            response = await self._http_client.post(_FIREBASE_TOKEN_URL, params=params, data=data)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(_FIREBASE_TOKEN_URL, params=params, data=data)

        response.raise_for_status()
        body = response.json()

        id_token = body["id_token"]
        claims = pyjwt.decode(id_token, options={"verify_signature": False})
        expires_at = claims.get("exp")
        if expires_at is None:
            expires_at = time.time() + int(body.get("expires_in", 3600))

        self._id_token = id_token
        self._expires_at = float(expires_at)
        # Firebase may rotate the refresh token
        self._refresh_token = body.get("refresh_token", self._refresh_token)
        logger.info("Refreshed Firebase ID token")
