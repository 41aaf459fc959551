"""
Temporal workflows run by a remote calendar node.

Each workflow is one calendar operation; the node's task queue
identifies which backend serves it.
"""

import logging
from datetime import datetime
from typing import List

from temporalio import workflow

with workflow.unsafe.imports_passed_through():
    from parley.domain import Event
    from .proxies import WorkflowRemoteCalendarProxy

logger = logging.getLogger(__name__)


@workflow.defn
class FetchRemoteEventsWorkflow:
    """Reads the events between two times from the node's calendar."""

    @workflow.run
    async def run(self, start: datetime, end: datetime) -> List[Event]:
        logger.info(
            "Starting FetchRemoteEventsWorkflow",
            extra={"start": start.isoformat(), "end": end.isoformat()},
        )
        calendar = WorkflowRemoteCalendarProxy()
        return await calendar.fetch_remote_events(start, end)


@workflow.defn
class WriteRemoteEventWorkflow:
    """Writes one event to the node's calendar."""

    @workflow.run
    async def run(self, event: Event) -> bool:
        logger.info(
            "Starting WriteRemoteEventWorkflow", extra={"title": event.title}
        )
        calendar = WorkflowRemoteCalendarProxy()
        return await calendar.write_remote_event(event)
