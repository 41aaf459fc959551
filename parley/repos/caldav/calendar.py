"""
CalDAV implementation of the CalendarBackend protocol, including iCloud.
"""

import logging
import uuid
import xml.etree.ElementTree as ET
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, List, Optional
import zoneinfo

import httpx
import icalendar
from dateutil.rrule import rrule, rruleset, rrulestr

from parley.domain import Event
from parley.exceptions import AuthError, NetworkError
from parley.repositories import CalendarBackend

logger = logging.getLogger(__name__)

USER_AGENT = "parley/0.1.0"
NAMESPACES = {"D": "DAV:", "C": "urn:ietf:params:xml:ns:caldav"}


def davtime(t: datetime) -> str:
    """Formats a time in the ISO 8601 basic UTC form CalDAV expects."""
    return t.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def range_query(start: datetime, end: datetime) -> str:
    """A calendar-query REPORT body for the events between two times."""
    return f"""<?xml version="1.0" encoding="utf-8" ?>
<C:calendar-query xmlns:D="DAV:" xmlns:C="urn:ietf:params:xml:ns:caldav">
  <D:prop>
    <C:calendar-data/>
  </D:prop>
  <C:filter>
    <C:comp-filter name="VCALENDAR">
      <C:comp-filter name="VEVENT">
        <C:time-range start="{davtime(start)}" end="{davtime(end)}"/>
      </C:comp-filter>
    </C:comp-filter>
  </C:filter>
</C:calendar-query>"""


def _as_datetime(
    value: Any, tzid: Optional[str], default: tzinfo = timezone.utc
) -> datetime:
    """
    Turns a decoded iCalendar DATE or DATE-TIME into an aware datetime.

    Floating times take ``default``; a TZID that icalendar could not
    resolve is looked up in the system zone database.
    """
    if isinstance(value, tuple):
        # PERIOD values: (start, end or duration)
        value = value[0]
    if not isinstance(value, datetime):
        assert isinstance(value, date)
        return datetime(value.year, value.month, value.day, tzinfo=default)
    if value.tzinfo is not None:
        return value
    if tzid:
        try:
            return value.replace(tzinfo=zoneinfo.ZoneInfo(tzid))
        except (zoneinfo.ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown TZID {tzid!r}; assuming UTC")
            return value.replace(tzinfo=timezone.utc)
    return value.replace(tzinfo=default)


def _tzid(prop: Any) -> Optional[str]:
    params = getattr(prop, "params", None) or {}
    return params.get("TZID")


def _listed(prop: Any) -> List[Any]:
    if prop is None:
        return []
    return prop if isinstance(prop, list) else [prop]


def _dates(prop: Any, default: tzinfo) -> List[datetime]:
    """All the datetimes of a (possibly repeated) RDATE or EXDATE."""
    return [
        _as_datetime(d.dt, _tzid(p), default)
        for p in _listed(prop)
        for d in p.dts
    ]


def _recurrence(rule: icalendar.vRecur, dtstart: datetime) -> rrule:
    text = rule.to_ical().decode("utf-8")
    until = rule.get("UNTIL")
    if not until:
        return rrulestr(text, dtstart=dtstart)
    # dateutil insists UNTIL and DTSTART agree on awareness
    text = ";".join(
        part for part in text.split(";") if not part.startswith("UNTIL=")
    )
    return rrulestr(text, dtstart=dtstart).replace(
        until=_as_datetime(until[0], None, dtstart.tzinfo or timezone.utc)
    )


def _first_event(component: icalendar.Event) -> Event:
    dtstart = component.get("DTSTART")
    if dtstart is None:
        raise ValueError("VEVENT without DTSTART")
    start = _as_datetime(dtstart.dt, _tzid(dtstart))

    dtend = component.get("DTEND")
    duration = component.get("DURATION")
    if dtend is not None:
        end = _as_datetime(dtend.dt, _tzid(dtend))
    elif duration is not None:
        end = start + duration.dt
    elif not isinstance(dtstart.dt, datetime):
        # an all-day event without DTEND lasts the day
        end = start + timedelta(days=1)
    else:
        end = start
    return Event(
        title=str(component.get("SUMMARY", "")), start=start, end=end
    )


def _occurrences(
    component: icalendar.Event,
    first: Event,
    start: datetime,
    end: datetime,
    overridden: List[datetime],
) -> List[Event]:
    """Expands a recurring VEVENT into the instances overlapping a range."""
    zone = first.start.tzinfo or timezone.utc
    instants = rruleset()
    # DTSTART is always the first instance
    instants.rdate(first.start)
    for rule in _listed(component.get("RRULE")):
        instants.rrule(_recurrence(rule, first.start))
    for rdate in _dates(component.get("RDATE"), zone):
        instants.rdate(rdate)
    for exdate in _dates(component.get("EXDATE"), zone) + overridden:
        instants.exdate(exdate)

    length = first.end - first.start
    events = []
    for instant in instants.between(start - length, end, inc=True):
        event = Event(title=first.title, start=instant, end=instant + length)
        if event.overlaps(start, end):
            events.append(event)
    return events


def parse_events(ics: str, start: datetime, end: datetime) -> List[Event]:
    """
    Parses the events of a calendar document.

    CalDAV gives us one calendar object per resource: a single VEVENT,
    or a recurring master plus its overridden instances. Recurring
    events are expanded to their instances overlapping [start, end).
    """
    calendar = icalendar.Calendar.from_ical(ics)
    components = calendar.walk("VEVENT")

    overridden: List[datetime] = []
    for component in components:
        recurrence_id = component.get("RECURRENCE-ID")
        if recurrence_id is not None:
            overridden.append(
                _as_datetime(recurrence_id.dt, _tzid(recurrence_id))
            )

    events: List[Event] = []
    for component in components:
        first = _first_event(component)
        recurring = component.get("RRULE") or component.get("RDATE")
        if recurring and component.get("RECURRENCE-ID") is None:
            events.extend(
                _occurrences(component, first, start, end, overridden)
            )
        else:
            events.append(first)
    return events


def build_ics(event: Event, uid: str) -> str:
    """A calendar document holding just ``event``."""
    component = icalendar.Event()
    component.add("uid", uid)
    component.add("dtstamp", datetime.now(timezone.utc))
    component.add("summary", event.title)
    component.add("dtstart", event.start.astimezone(timezone.utc))
    component.add("dtend", event.end.astimezone(timezone.utc))

    calendar = icalendar.Calendar()
    calendar.add("prodid", "-//parley//EN")
    calendar.add("version", "2.0")
    calendar.add_component(component)
    return calendar.to_ical().decode("utf-8")


def parse_multistatus(
    body: str, start: datetime, end: datetime
) -> List[Event]:
    """Extracts the events from a REPORT multistatus response."""
    root = ET.fromstring(body)
    events = []
    for node in root.iterfind(".//C:calendar-data", NAMESPACES):
        if node.text and node.text.strip():
            events.extend(parse_events(node.text, start, end))
    return events


class CalDAVCalendarBackend(CalendarBackend):
    """A client for a specific CalDAV calendar collection."""

    def __init__(
        self,
        url: str,
        username: str,
        password: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.username = username
        self.password = password
        self._http_client = http_client

    def _client(self) -> httpx.AsyncClient:
        return self._http_client or httpx.AsyncClient(timeout=30.0)

    async def _request(
        self, method: str, url: str, content: str, content_type: str
    ) -> httpx.Response:
        client = self._client()
        try:
            return await client.request(
                method,
                url,
                content=content.encode("utf-8"),
                auth=(self.username, self.password),
                headers={
                    "Content-Type": content_type,
                    "Depth": "1",
                    "User-Agent": USER_AGENT,
                },
            )
        except httpx.HTTPError as e:
            logger.error(
                "Error communicating with CalDAV server",
                extra={"url": url, "error": str(e)},
            )
            raise NetworkError(f"could not reach CalDAV server: {e}") from e
        finally:
            if self._http_client is None:
                await client.aclose()

    async def fetch_remote_events(
        self, start: datetime, end: datetime
    ) -> List[Event]:
        response = await self._request(
            "REPORT", self.url, range_query(start, end), "text/xml"
        )
        if response.status_code in (401, 403):
            raise AuthError("CalDAV server rejected the credentials")
        if not response.is_success:
            raise NetworkError(
                f"CalDAV server answered {response.status_code}"
            )

        try:
            events = parse_multistatus(response.text, start, end)
        except (ET.ParseError, ValueError) as e:
            raise NetworkError(f"unreadable CalDAV response: {e}") from e

        logger.debug(
            "Fetched CalDAV events",
            extra={"url": self.url, "event_count": len(events)},
        )
        return events

    async def write_remote_event(self, event: Event) -> bool:
        uid = uuid.uuid4().hex
        # We must PUT to .../calendars/CALNAME/UID.ics
        event_url = self.url.rstrip("/") + f"/{uid}.ics"
        response = await self._request(
            "PUT", event_url, build_ics(event, uid), "text/calendar"
        )
        if response.status_code in (401, 403):
            raise AuthError("CalDAV server rejected the credentials")
        logger.info(
            "CalDAV write finished",
            extra={"url": event_url, "status_code": response.status_code},
        )
        return response.is_success
