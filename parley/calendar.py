"""
Calendars with a local write buffer.

A Calendar wraps one CalendarBackend and remembers the events it has
scheduled, so reads issued right after a write see that write even
before the backend reflects it.
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from .domain import CalendarService, Event, Settings
from .repositories import CalendarBackend

logger = logging.getLogger(__name__)


class Calendar:
    """
    A set of calendar events backed by one CalendarBackend.

    The event buffer holds events scheduled through this Calendar that
    have not yet been seen in a remote read. It is only added to by
    ``schedule_event`` and only pruned by ``get_events``.
    """

    def __init__(
        self, backend: CalendarBackend, name: Optional[str] = None
    ) -> None:
        self.backend = backend
        self.name = name or type(backend).__name__
        self._buffer: List[Event] = []

    @property
    def buffered_events(self) -> Sequence[Event]:
        return tuple(self._buffer)

    async def get_events(self, start: datetime, end: datetime) -> List[Event]:
        """
        Returns the remote events in range merged with buffered events
        that overlap [start, end), deduplicated and ordered by start.
        """
        remote_events = await self.backend.fetch_remote_events(start, end)

        # Buffered events the backend now reports are reconciled.
        remote_set = set(remote_events)
        reconciled = [e for e in self._buffer if e in remote_set]
        if reconciled:
            logger.debug(
                "Reconciled buffered events with remote read",
                extra={"calendar": self.name, "count": len(reconciled)},
            )
            self._buffer = [e for e in self._buffer if e not in remote_set]

        merged = set(remote_events)
        merged.update(e for e in self._buffer if e.overlaps(start, end))
        events = sorted(merged, key=Event.sort_key)

        logger.info(
            "Fetched calendar events",
            extra={
                "calendar": self.name,
                "remote_count": len(remote_events),
                "buffered_count": len(self._buffer),
                "event_count": len(events),
            },
        )
        return events

    async def schedule_event(self, event: Event) -> bool:
        """
        Buffers ``event`` and writes it to the backend.

        The event stays buffered even if the write fails, so a read right
        after a failed write still shows it.
        """
        if event not in self._buffer:
            self._buffer.append(event)

        logger.info(
            "Scheduling event",
            extra={
                "calendar": self.name,
                "title": event.title,
                "start": event.start.isoformat(),
            },
        )
        accepted = await self.backend.write_remote_event(event)
        if not accepted:
            logger.warning(
                "Backend did not accept event",
                extra={"calendar": self.name, "title": event.title},
            )
        return accepted


async def create_calendar(
    settings: Optional[Settings], name: Optional[str] = None
) -> Optional[Calendar]:
    """
    Builds the Calendar described by a user's settings, or returns None
    if no service is configured.
    """
    if settings is None or settings.service is None:
        return None

    backend: CalendarBackend
    if settings.service == CalendarService.CALDAV:
        from .repos.caldav.calendar import CalDAVCalendarBackend

        assert settings.caldav is not None
        backend = CalDAVCalendarBackend(
            settings.caldav.url,
            settings.caldav.username,
            settings.caldav.password,
        )
    elif settings.service == CalendarService.OFFICE:
        from .repos.office.calendar import OfficeCalendarBackend

        assert settings.office is not None
        backend = OfficeCalendarBackend(settings.office.access_token)
    elif settings.service == CalendarService.REMOTE:
        from .repos.temporal.client_proxies import RemoteCalendarBackend

        assert settings.remote is not None
        backend = RemoteCalendarBackend(
            settings.remote.address, settings.remote.task_queue
        )
    else:
        raise ValueError(f"Unsupported calendar service: {settings.service}")

    logger.debug(
        "Created calendar from settings",
        extra={"service": settings.service.value, "calendar": name},
    )
    return Calendar(backend, name=name)
