"""
Temporal worker for a remote calendar node.

A node fronts one concrete calendar backend and serves the fetch and
write workflows on its own task queue, so bots elsewhere can reach that
calendar through a RemoteCalendarBackend.
"""

import asyncio
import logging
import os
from typing import Optional

from temporalio.client import Client
from temporalio.contrib.pydantic import pydantic_data_converter
from temporalio.service import RPCError
from temporalio.worker import Worker

from .repos.temporal.activities import RemoteCalendarActivities
from .repos.temporal.workflows import (
    FetchRemoteEventsWorkflow,
    WriteRemoteEventWorkflow,
)
from .repositories import CalendarBackend

logger = logging.getLogger(__name__)

DEFAULT_TASK_QUEUE = "parley-remote-calendar"


def setup_logging() -> None:
    """Configure logging based on environment variables"""
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    numeric_level = getattr(logging, log_level, None)
    if not isinstance(numeric_level, int):
        print(f"Invalid log level: {log_level}, defaulting to INFO")
        numeric_level = logging.INFO

    log_format = os.environ.get(
        "LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    logging.basicConfig(
        level=numeric_level,
        format=log_format,
        force=True,
    )
    logger.info(
        "Logging configured",
        extra={"log_level": log_level, "numeric_level": numeric_level},
    )


async def get_temporal_client_with_retries(
    endpoint: str, attempts: int = 10, delay: int = 5
) -> Client:
    """Attempt to connect to Temporal with retries."""
    for attempt in range(attempts):
        try:
            client = await Client.connect(
                endpoint,
                namespace="default",
                data_converter=pydantic_data_converter,
            )
            logger.info(
                "Successfully connected to Temporal",
                extra={"endpoint": endpoint, "attempt": attempt + 1},
            )
            return client
        except (RPCError, RuntimeError) as e:
            logger.warning(
                "Failed to connect to Temporal",
                extra={
                    "endpoint": endpoint,
                    "attempt": attempt + 1,
                    "max_attempts": attempts,
                    "error": str(e),
                    "retry_in_seconds": delay,
                },
            )
            if attempt == attempts - 1:
                logger.error(
                    "All connection attempts to Temporal failed",
                    extra={"endpoint": endpoint, "attempts": attempts},
                )
                raise
            await asyncio.sleep(delay)

    raise RuntimeError("Unexpected exit from retry loop")


def build_worker(
    client: Client,
    backend: CalendarBackend,
    task_queue: str = DEFAULT_TASK_QUEUE,
) -> Worker:
    """A worker serving ``backend`` on ``task_queue``."""
    activities = RemoteCalendarActivities(backend)
    return Worker(
        client,
        task_queue=task_queue,
        workflows=[FetchRemoteEventsWorkflow, WriteRemoteEventWorkflow],
        activities=[
            activities.fetch_remote_events,
            activities.write_remote_event,
        ],
    )


async def run_worker(
    backend: CalendarBackend,
    temporal_address: Optional[str] = None,
    task_queue: str = DEFAULT_TASK_QUEUE,
) -> None:
    """Runs a remote calendar node until cancelled."""
    if temporal_address is None:
        temporal_address = os.environ.get(
            "TEMPORAL_ADDRESS", "localhost:7233"
        )

    logger.info(
        "Starting remote calendar node",
        extra={
            "temporal_address": temporal_address,
            "task_queue": task_queue,
            "backend": type(backend).__name__,
        },
    )
    client = await get_temporal_client_with_retries(temporal_address)
    worker = build_worker(client, backend, task_queue)
    await worker.run()
