"""
In-memory calendar backend for demos and tests.
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from parley.domain import Event
from parley.exceptions import NetworkError
from parley.repositories import CalendarBackend

logger = logging.getLogger(__name__)


class MockCalendarBackend(CalendarBackend):
    """
    Keeps events in a list. Writes succeed unless told otherwise with
    ``write_outcomes`` (consumed one per write) or ``fail_writes``.
    """

    def __init__(
        self,
        events: Optional[Sequence[Event]] = None,
        write_outcomes: Optional[Sequence[bool]] = None,
        fail_reads: bool = False,
        fail_writes: bool = False,
    ) -> None:
        self.events: List[Event] = list(events or [])
        self.written: List[Event] = []
        self._write_outcomes = list(write_outcomes or [])
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    async def fetch_remote_events(
        self, start: datetime, end: datetime
    ) -> List[Event]:
        if self.fail_reads:
            raise NetworkError("mock calendar is unreachable")
        # Event overlaps if: event_start < range_end AND
        # event_end > range_start
        events = [e for e in self.events if e.overlaps(start, end)]
        logger.info(
            f"MockCalendarBackend: Returning {len(events)} events in date "
            f"range {start} to {end}"
        )
        return events

    async def write_remote_event(self, event: Event) -> bool:
        if self.fail_writes:
            raise NetworkError("mock calendar is unreachable")
        ok = self._write_outcomes.pop(0) if self._write_outcomes else True
        if ok:
            self.events.append(event)
            self.written.append(event)
        logger.info(
            f"MockCalendarBackend: write of '{event.title}' "
            f"{'accepted' if ok else 'rejected'}"
        )
        return ok
