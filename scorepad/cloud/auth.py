"""
Drive Authorization.

Holds the bearer credential for the remote store and its expiry. The
actual identity exchange is delegated to a TokenFlow, so the same client
works with a browser-driven consent screen, a refresh token, or a token
handed in through the environment.

There is no silent refresh: callers sign in again after a 401/403.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Identity flow failed or was cancelled by the user."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


@dataclass
class TokenResponse:
    """Credential issued by a token flow."""
    access_token: str
    expires_in: int = 3600


@runtime_checkable
class TokenFlow(Protocol):
    """Protocol for obtaining a fresh bearer credential."""

    async def request_token(self, prompt: str = "") -> TokenResponse:
        """Run the identity flow. ``prompt`` is "", "none" or "select_account"."""
        ...


class StaticTokenFlow:
    """Hands out a pre-issued access token (e.g. from SCOREPAD_DRIVE_TOKEN)."""

    def __init__(self, access_token: Optional[str], expires_in: int = 3600):
        self._access_token = access_token
        self._expires_in = expires_in

    async def request_token(self, prompt: str = "") -> TokenResponse:
        if not self._access_token:
            raise AuthError("No access token configured", code="no_token")
        return TokenResponse(access_token=self._access_token, expires_in=self._expires_in)


class RefreshTokenFlow:
    """OAuth2 refresh-token grant against Google's token endpoint."""

    def __init__(
        self,
        client_id: str,
        refresh_token: str,
        client_secret: Optional[str] = None,
        token_url: str = "https://oauth2.googleapis.com/token",
        http_client: Optional[httpx.AsyncClient] = None,
        scopes: Optional[str] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.token_url = token_url
        self.scopes = scopes
        self._http = http_client

    async def request_token(self, prompt: str = "") -> TokenResponse:
        data = {
            "grant_type": "refresh_token",
            "client_id": self.client_id,
            "refresh_token": self.refresh_token,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret
        # Narrows the grant to the configured scopes
        if self.scopes:
            data["scope"] = self.scopes

        if self._http is not None:
            response = await self._http.post(self.token_url, data=data)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(self.token_url, data=data)

        if response.status_code != 200:
            try:
                body = response.json()
            except ValueError:
                body = {}
            code = body.get("error") if isinstance(body, dict) else None
            raise AuthError(
                f"Token refresh failed: HTTP {response.status_code}", code=code
            )

        payload = response.json()
        return TokenResponse(
            access_token=payload["access_token"],
            expires_in=int(payload.get("expires_in", 3600)),
        )


class GoogleAuth:
    """Caches the bearer credential and exposes authorization status."""

    def __init__(
        self,
        flow: TokenFlow,
        revoke_url: str = "https://oauth2.googleapis.com/revoke",
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.flow = flow
        self.revoke_url = revoke_url
        self._http = http_client
        self._clock = clock
        self._access_token: Optional[str] = None
        self._expires_at: float = 0.0

    @property
    def is_authorized(self) -> bool:
        return bool(self._access_token) and self._clock() < self._expires_at

    @property
    def token(self) -> Optional[str]:
        return self._access_token

    async def sign_in(self, prompt: str = "") -> str:
        """Run the identity flow and cache the resulting credential."""
        try:
            response = await self.flow.request_token(prompt=prompt)
        except httpx.HTTPError as e:
            raise AuthError(f"Sign-in failed: {e}", code="network_error") from e

        self._access_token = response.access_token
        self._expires_at = self._clock() + response.expires_in
        logger.info("[Auth] Signed in, token valid for %ds", response.expires_in)
        return response.access_token

    async def sign_out(self) -> None:
        """Best-effort revoke, then always forget the local credential."""
        token = self._access_token
        self._access_token = None
        self._expires_at = 0.0
        if not token:
            return

        # Any revoke failure is logged only; the credential is already gone.
        try:
            if self._http is not None:
                await self._http.post(self.revoke_url, params={"token": token})
            else:
                async with httpx.AsyncClient() as client:
                    await client.post(self.revoke_url, params={"token": token})
            logger.info("[Auth] Access token revoked")
        except Exception as e:
            logger.warning("[Auth] Revoke failed: %s", e)
