"""
Workflow-specific proxy for a remote CalendarBackend.
This class is used *inside* Temporal workflows to call activities.
"""

import logging
from datetime import datetime, timedelta
from typing import List

from temporalio import workflow
from temporalio.common import RetryPolicy

from parley.domain import Event
from parley.repositories import CalendarBackend

from .activities import ACTIVITY_PREFIX, AUTH_ERROR_TYPE

logger = logging.getLogger(__name__)


class WorkflowRemoteCalendarProxy(CalendarBackend):
    """
    Workflow implementation of CalendarBackend that calls the node's
    activities. Writes are attempted once; a retried write could create
    the same event twice.
    """

    def __init__(self) -> None:
        self.activity_timeout = timedelta(seconds=30)
        self.read_retry_policy = RetryPolicy(
            initial_interval=timedelta(seconds=1),
            maximum_attempts=3,
            non_retryable_error_types=[AUTH_ERROR_TYPE],
        )
        self.write_retry_policy = RetryPolicy(maximum_attempts=1)

    async def fetch_remote_events(
        self, start: datetime, end: datetime
    ) -> List[Event]:
        logger.debug("Workflow: Calling fetch_remote_events activity")
        raw_result = await workflow.execute_activity(
            f"{ACTIVITY_PREFIX}.fetch_remote_events",
            args=[start, end],
            start_to_close_timeout=self.activity_timeout,
            retry_policy=self.read_retry_policy,
        )
        result = [Event.model_validate(e) for e in raw_result]
        logger.debug(
            "Workflow: fetch_remote_events activity completed",
            extra={"event_count": len(result)},
        )
        return result

    async def write_remote_event(self, event: Event) -> bool:
        logger.debug("Workflow: Calling write_remote_event activity")
        result = await workflow.execute_activity(
            f"{ACTIVITY_PREFIX}.write_remote_event",
            event,
            start_to_close_timeout=self.activity_timeout,
            retry_policy=self.write_retry_policy,
        )
        return bool(result)
