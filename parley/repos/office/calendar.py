"""
Microsoft Graph (Office 365) implementation of the CalendarBackend
protocol.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import zoneinfo

import httpx

from parley.domain import Event
from parley.exceptions import AuthError, NetworkError
from parley.repositories import CalendarBackend

logger = logging.getLogger(__name__)

GRAPH_URL = "https://graph.microsoft.com/v1.0"


def _graph_time(t: datetime) -> str:
    return t.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def _parse_graph_time(data: Dict[str, str]) -> datetime:
    """Parses Graph's ``{dateTime, timeZone}`` pairs."""
    text = data["dateTime"]
    # Graph returns up to seven fractional digits.
    if "." in text:
        head, frac = text.split(".", 1)
        text = f"{head}.{frac[:6]}"
    parsed = datetime.fromisoformat(text)
    tz_name = data.get("timeZone", "UTC")
    try:
        tz = zoneinfo.ZoneInfo(tz_name)
    except zoneinfo.ZoneInfoNotFoundError:
        logger.warning(f"Unknown Graph time zone {tz_name!r}; assuming UTC")
        tz = zoneinfo.ZoneInfo("UTC")
    return parsed.replace(tzinfo=tz)


def _graph_event_to_domain_event(item: Dict[str, Any]) -> Event:
    return Event(
        title=item.get("subject") or "No Title",
        start=_parse_graph_time(item["start"]),
        end=_parse_graph_time(item["end"]),
    )


class OfficeCalendarBackend(CalendarBackend):
    """The signed-in user's default Office 365 calendar."""

    def __init__(
        self,
        access_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.access_token = access_token
        self._http_client = http_client

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Prefer": 'outlook.timezone="UTC"',
        }

    async def _send(
        self, client: httpx.AsyncClient, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        try:
            response = await client.request(
                method, url, headers=self._headers(), **kwargs
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"could not reach Microsoft Graph: {e}") from e
        if response.status_code in (401, 403):
            raise AuthError("Microsoft Graph rejected the access token")
        return response

    async def fetch_remote_events(
        self, start: datetime, end: datetime
    ) -> List[Event]:
        client = self._http_client or httpx.AsyncClient(timeout=30.0)
        events: List[Event] = []
        url: Optional[str] = f"{GRAPH_URL}/me/calendarView"
        params: Optional[Dict[str, str]] = {
            "startDateTime": _graph_time(start),
            "endDateTime": _graph_time(end),
            "$select": "subject,start,end",
        }
        try:
            while url:
                response = await self._send(client, "GET", url, params=params)
                if not response.is_success:
                    raise NetworkError(
                        f"Microsoft Graph answered {response.status_code}"
                    )
                try:
                    data = response.json()
                    events.extend(
                        _graph_event_to_domain_event(item)
                        for item in data.get("value", [])
                    )
                except (ValueError, KeyError, TypeError, AttributeError) as e:
                    logger.error(
                        "Unreadable Microsoft Graph response",
                        extra={"url": url, "error": str(e)},
                    )
                    raise NetworkError(
                        f"unreadable Microsoft Graph response: {e}"
                    ) from e
                # nextLink already carries the query string.
                url = data.get("@odata.nextLink")
                params = None
        finally:
            if self._http_client is None:
                await client.aclose()

        logger.debug(
            "Fetched Office events", extra={"event_count": len(events)}
        )
        return events

    async def write_remote_event(self, event: Event) -> bool:
        client = self._http_client or httpx.AsyncClient(timeout=30.0)
        body = {
            "subject": event.title,
            "start": {"dateTime": _graph_time(event.start), "timeZone": "UTC"},
            "end": {"dateTime": _graph_time(event.end), "timeZone": "UTC"},
        }
        try:
            response = await self._send(
                client, "POST", f"{GRAPH_URL}/me/events", json=body
            )
        finally:
            if self._http_client is None:
                await client.aclose()

        logger.info(
            "Office write finished",
            extra={"status_code": response.status_code},
        )
        return response.is_success
