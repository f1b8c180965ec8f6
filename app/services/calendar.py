"""
Google Calendar client for the signed-in user's primary calendar
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import structlog

from app.core.config import settings
from app.core.exceptions import AuthenticationRequired, ProviderError

logger = structlog.get_logger()


class CalendarService:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._transport = transport

    async def list_upcoming_events(
        self,
        access_token: Optional[str],
        *,
        time_min: Optional[datetime] = None,
        max_results: int = 50,
    ) -> list[dict[str, Any]]:
        """
        Upcoming events of the primary calendar, ordered by start time.

        Raises:
            AuthenticationRequired: no Google token in the session, or Google
                rejected it
            ProviderError: Google was unreachable or failed
        """
        if not access_token:
            raise AuthenticationRequired("Google Calendar access has not been granted")

        params = {
            "timeMin": (time_min or datetime.now(timezone.utc)).isoformat(),
            "maxResults": max_results,
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        url = f"{settings.GOOGLE_CALENDAR_API_URL.rstrip('/')}/calendars/primary/events"
        try:
            async with httpx.AsyncClient(
                timeout=settings.OAUTH_HTTP_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                response = await client.get(
                    url,
                    params=params,
                    headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 401:
                raise AuthenticationRequired("Google Calendar access has expired") from exc
            logger.error("Calendar request failed", status_code=exc.response.status_code)
            raise ProviderError(detail=f"calendar returned {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("Unable to contact Google Calendar", error=str(exc))
            raise ProviderError(detail="calendar unreachable") from exc

        return list(response.json().get("items", []))


calendar_service = CalendarService()
