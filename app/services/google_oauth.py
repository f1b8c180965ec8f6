"""
Google OAuth client: authorization code exchange and userinfo lookup
"""

from __future__ import annotations

from typing import Any, Mapping, Optional
from urllib.parse import urlencode

import httpx
import structlog

from app.core.config import settings
from app.core.exceptions import InvalidCredentials, ProviderError
from app.services.account import ProviderAssertion

logger = structlog.get_logger()

GOOGLE_PROVIDER = "google"


class GoogleOAuthClient:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        # Tests inject an httpx.MockTransport here
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=settings.OAUTH_HTTP_TIMEOUT_SECONDS, transport=self._transport)

    @staticmethod
    def default_redirect_uri() -> str:
        return f"{settings.APP_BASE_URL.rstrip('/')}/api/auth/callback/google"

    def authorization_url(self, *, state: str, redirect_uri: Optional[str] = None) -> str:
        """Consent screen URL; offline access so Google hands out a refresh token."""
        query = urlencode(
            {
                "client_id": settings.GOOGLE_CLIENT_ID,
                "redirect_uri": redirect_uri or self.default_redirect_uri(),
                "response_type": "code",
                "scope": " ".join(settings.GOOGLE_OAUTH_SCOPES),
                "access_type": "offline",
                "prompt": "consent",
                "state": state,
            }
        )
        return f"{settings.GOOGLE_AUTH_URL}?{query}"

    async def exchange_code(self, *, code: str, redirect_uri: Optional[str] = None) -> Mapping[str, Any]:
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri or self.default_redirect_uri(),
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
        }
        try:
            async with self._client() as client:
                response = await client.post(
                    settings.GOOGLE_TOKEN_URL,
                    data=payload,
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.info("Google code exchange rejected", status_code=exc.response.status_code)
            if exc.response.status_code < 500:
                raise InvalidCredentials() from exc
            raise ProviderError(detail=f"token endpoint returned {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("Unable to contact Google token endpoint", error=str(exc))
            raise ProviderError(detail="token endpoint unreachable") from exc

        return response.json()

    async def fetch_userinfo(self, access_token: str) -> Mapping[str, Any]:
        try:
            async with self._client() as client:
                response = await client.get(
                    settings.GOOGLE_USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("Google userinfo request failed", status_code=exc.response.status_code)
            raise ProviderError(detail=f"userinfo returned {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("Unable to contact Google userinfo endpoint", error=str(exc))
            raise ProviderError(detail="userinfo endpoint unreachable") from exc

        return response.json()

    async def sign_in(self, *, code: str, redirect_uri: Optional[str] = None) -> ProviderAssertion:
        """
        Turn an authorization code into a provider assertion.

        Raises:
            InvalidCredentials: the code was rejected, or Google did not vouch
                for the email address
            ProviderError: Google was unreachable or answered with a server error
        """
        tokens = await self.exchange_code(code=code, redirect_uri=redirect_uri)
        access_token = tokens.get("access_token")
        if not access_token:
            raise ProviderError(detail="token response without access_token")

        userinfo = await self.fetch_userinfo(access_token)
        subject = userinfo.get("sub")
        email = userinfo.get("email")
        if not subject or not email:
            logger.warning("Google userinfo missing subject or email")
            raise InvalidCredentials()
        if userinfo.get("email_verified") is False:
            logger.warning("Google account email not verified", email=email)
            raise InvalidCredentials()

        return ProviderAssertion(
            provider=GOOGLE_PROVIDER,
            subject=str(subject),
            email=email,
            name=userinfo.get("name"),
            image=userinfo.get("picture"),
            access_token=access_token,
            refresh_token=tokens.get("refresh_token"),
        )


google_oauth_client = GoogleOAuthClient()
