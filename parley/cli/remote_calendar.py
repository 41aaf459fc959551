"""
CLI that runs a remote calendar node in front of one calendar backend.

    parley-remote-calendar caldav https://dav.example.com/cal/ alice secret
    parley-remote-calendar --task-queue bob-office office
"""

import asyncio
import logging

import click

from parley.repos.caldav.calendar import CalDAVCalendarBackend
from parley.repos.office.calendar import OfficeCalendarBackend
from parley.repos.temporal.client_proxies import RemoteCalendarBackend
from parley.repositories import CalendarBackend
from parley.worker import DEFAULT_TASK_QUEUE, run_worker, setup_logging

logger = logging.getLogger(__name__)


def _serve(ctx: click.Context, backend: CalendarBackend) -> None:
    click.echo(
        f"Serving {type(backend).__name__} on task queue "
        f"'{ctx.obj['task_queue']}'"
    )
    asyncio.run(
        run_worker(
            backend,
            temporal_address=ctx.obj["temporal_address"],
            task_queue=ctx.obj["task_queue"],
        )
    )


@click.group()
@click.option(
    "--temporal-address",
    envvar="TEMPORAL_ADDRESS",
    default="localhost:7233",
    show_default=True,
    help="Temporal frontend to serve on.",
)
@click.option(
    "--task-queue",
    default=DEFAULT_TASK_QUEUE,
    show_default=True,
    help="Task queue bots address this node by.",
)
@click.pass_context
def main(ctx: click.Context, temporal_address: str, task_queue: str) -> None:
    """Serve a calendar to parley bots over Temporal."""
    setup_logging()
    ctx.ensure_object(dict)
    ctx.obj["temporal_address"] = temporal_address
    ctx.obj["task_queue"] = task_queue


@main.command()
@click.argument("url")
@click.argument("username")
@click.argument("password")
@click.pass_context
def caldav(ctx: click.Context, url: str, username: str, password: str) -> None:
    """Serve a CalDAV calendar collection."""
    _serve(ctx, CalDAVCalendarBackend(url, username, password))


@main.command()
@click.option(
    "--access-token",
    envvar="OFFICE_ACCESS_TOKEN",
    required=True,
    help="Microsoft Graph access token.",
)
@click.pass_context
def office(ctx: click.Context, access_token: str) -> None:
    """Serve the signed-in user's Office 365 calendar."""
    _serve(ctx, OfficeCalendarBackend(access_token))


@main.command()
@click.argument("address")
@click.argument("task_queue")
@click.pass_context
def remote(ctx: click.Context, address: str, task_queue: str) -> None:
    """Relay another remote calendar node."""
    _serve(ctx, RemoteCalendarBackend(address, task_queue))


if __name__ == "__main__":
    main()
