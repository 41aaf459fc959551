"""
Client-side CalendarBackend that dispatches Temporal workflows to a
remote calendar node.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, List, Optional

from temporalio.client import Client, WorkflowFailureError
from temporalio.contrib.pydantic import pydantic_data_converter
from temporalio.exceptions import ApplicationError
from temporalio.service import RPCError

from parley.domain import Event
from parley.exceptions import AuthError, NetworkError
from parley.repositories import CalendarBackend

from .activities import AUTH_ERROR_TYPE
from .workflows import FetchRemoteEventsWorkflow, WriteRemoteEventWorkflow

logger = logging.getLogger(__name__)


def _is_auth_failure(error: BaseException) -> bool:
    cause: Optional[BaseException] = error
    while cause is not None:
        if isinstance(cause, ApplicationError) and (
            cause.type == AUTH_ERROR_TYPE
        ):
            return True
        cause = cause.__cause__
    return False


class RemoteCalendarBackend(CalendarBackend):
    """
    A calendar served by a remote calendar node. The Temporal client is
    connected on first use.
    """

    def __init__(
        self,
        address: str,
        task_queue: str,
        client: Optional[Client] = None,
    ) -> None:
        self.address = address
        self.task_queue = task_queue
        self.client = client
        self.workflow_timeout = timedelta(seconds=60)

    async def _get_client(self) -> Client:
        if self.client is None:
            try:
                self.client = await Client.connect(
                    self.address, data_converter=pydantic_data_converter
                )
            except (RPCError, RuntimeError) as e:
                raise NetworkError(
                    f"could not reach calendar node at {self.address}: {e}"
                ) from e
        return self.client

    async def _execute(self, run: Any, *args: Any, kind: str) -> Any:
        client = await self._get_client()
        workflow_id = f"parley-{kind}-{uuid.uuid4().hex}"
        logger.debug(
            "Dispatching remote calendar workflow",
            extra={"workflow_id": workflow_id, "task_queue": self.task_queue},
        )
        try:
            return await client.execute_workflow(
                run,
                args=list(args),
                id=workflow_id,
                task_queue=self.task_queue,
                execution_timeout=self.workflow_timeout,
            )
        except WorkflowFailureError as e:
            if _is_auth_failure(e):
                raise AuthError(
                    "the remote calendar rejected its credentials"
                ) from e
            logger.error(
                "Remote calendar workflow failed",
                extra={"workflow_id": workflow_id, "error": str(e)},
            )
            raise NetworkError(f"remote calendar {kind} failed") from e
        except RPCError as e:
            raise NetworkError(
                f"could not reach calendar node at {self.address}: {e}"
            ) from e

    async def fetch_remote_events(
        self, start: datetime, end: datetime
    ) -> List[Event]:
        events = await self._execute(
            FetchRemoteEventsWorkflow.run, start, end, kind="fetch"
        )
        return [Event.model_validate(e) for e in events]

    async def write_remote_event(self, event: Event) -> bool:
        return bool(
            await self._execute(
                WriteRemoteEventWorkflow.run, event, kind="write"
            )
        )
