"""
Temporal activity implementation of the CalendarBackend protocol.
Delegates calls to the concrete backend a remote calendar node fronts.
"""

import logging
from datetime import datetime
from typing import List

from temporalio import activity
from temporalio.exceptions import ApplicationError

from parley.domain import Event
from parley.exceptions import AuthError
from parley.repositories import CalendarBackend

logger = logging.getLogger(__name__)

ACTIVITY_PREFIX = "parley.remote_calendar"
AUTH_ERROR_TYPE = "AuthError"


class RemoteCalendarActivities(CalendarBackend):
    """
    Temporal Activity implementation of CalendarBackend.

    This follows the three-layer repository pattern:
    1. Pure Backend (CalDAV, Office, ...)
    2. Temporal Activity (RemoteCalendarActivities) - this class
    3. Workflow Proxy (WorkflowRemoteCalendarProxy)

    Rejected credentials are raised as non-retryable application errors
    so callers can tell them apart from an unreachable backend.
    """

    def __init__(self, backend: CalendarBackend):
        self._backend = backend
        logger.info(
            "RemoteCalendarActivities initialized with %s",
            backend.__class__.__name__,
        )

    @activity.defn(name=f"{ACTIVITY_PREFIX}.fetch_remote_events")
    async def fetch_remote_events(
        self, start: datetime, end: datetime
    ) -> List[Event]:
        logger.info(
            "Activity: Fetching events",
            extra={"start": start.isoformat(), "end": end.isoformat()},
        )
        try:
            return await self._backend.fetch_remote_events(start, end)
        except AuthError as e:
            raise ApplicationError(
                str(e), type=AUTH_ERROR_TYPE, non_retryable=True
            ) from e

    @activity.defn(name=f"{ACTIVITY_PREFIX}.write_remote_event")
    async def write_remote_event(self, event: Event) -> bool:
        logger.info("Activity: Writing event", extra={"title": event.title})
        try:
            return await self._backend.write_remote_event(event)
        except AuthError as e:
            raise ApplicationError(
                str(e), type=AUTH_ERROR_TYPE, non_retryable=True
            ) from e
