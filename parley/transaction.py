"""
Speculative scheduling across several calendars.

Third-party calendars offer no cross-service transactions, so the best
we can promise is: report failure whenever any participant failed, and
never report success unless every participant succeeded. A participant
that already accepted the event is NOT retracted when a sibling fails;
that calendar may keep the tentative event. Callers are told which
participants succeeded through the raised ``PartialScheduleFailure``.

Usage::

    async def body(world: TransactionWorld) -> None:
        mine = world.schedule_event(my_calendar, event)
        theirs = world.schedule_event(their_calendar, event)
        results = await world.wait(mine, theirs)
        world.publish("succeeded", all(results))

    world = await run_speculative(body)
    if world.get(ResultHandle("succeeded")):
        await world.commit()
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .calendar import Calendar
from .domain import Event
from .exceptions import (
    CalendarBackendError,
    PartialScheduleFailure,
    TotalScheduleFailure,
)

logger = logging.getLogger(__name__)


class ResultHandle(BaseModel):
    """Names a value computed inside a speculative body."""

    model_config = ConfigDict(frozen=True)

    name: str


class ScheduleOutcome(BaseModel):
    """The outcome of a committed scheduling transaction."""

    succeeded: bool
    outcomes: Dict[str, bool] = Field(default_factory=dict)


class TransactionWorld:
    """
    The results of one speculative run.

    Participant writes are started as soon as they are issued and run
    concurrently; ``run_speculative`` joins all of them before handing
    the world back.
    """

    def __init__(self) -> None:
        self._participants: Dict[str, "asyncio.Task[bool]"] = {}
        self._values: Dict[str, Any] = {}
        self._committed: Optional[ScheduleOutcome] = None

    def schedule_event(
        self, calendar: Calendar, event: Event, name: Optional[str] = None
    ) -> ResultHandle:
        """Starts writing ``event`` to ``calendar``."""
        if name is None:
            name = calendar.name
            suffix = 2
            while name in self._participants or name in self._values:
                name = f"{calendar.name}#{suffix}"
                suffix += 1
        if name in self._participants or name in self._values:
            raise ValueError(f"Result name already in use: {name}")

        task = asyncio.ensure_future(self._write(calendar, event, name))
        self._participants[name] = task
        return ResultHandle(name=name)

    async def _write(self, calendar: Calendar, event: Event, name: str) -> bool:
        try:
            ok = await calendar.schedule_event(event)
        except CalendarBackendError as e:
            logger.warning(
                "Participant write failed",
                extra={
                    "participant": name,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            ok = False
        self._values[name] = ok
        return ok

    async def wait(self, *handles: ResultHandle) -> List[Any]:
        """Waits for the given participant results and returns them."""
        tasks = []
        for handle in handles:
            if handle.name not in self._participants:
                raise KeyError(handle.name)
            tasks.append(self._participants[handle.name])
        return list(await asyncio.gather(*tasks))

    def publish(self, name: str, value: Any) -> ResultHandle:
        """Records a value computed inside the body under ``name``."""
        if name in self._participants:
            raise ValueError(f"Result name already in use: {name}")
        self._values[name] = value
        return ResultHandle(name=name)

    def get(self, handle: ResultHandle) -> Any:
        """Returns the value a result resolved to."""
        if handle.name not in self._values:
            raise KeyError(handle.name)
        return self._values[handle.name]

    @property
    def outcomes(self) -> Dict[str, bool]:
        return {
            name: bool(self._values.get(name, False))
            for name in self._participants
        }

    @property
    def succeeded(self) -> bool:
        return all(self.outcomes.values())

    async def join(self) -> None:
        """Waits for every participant write issued so far."""
        if not self._participants:
            return
        results = await asyncio.gather(
            *self._participants.values(), return_exceptions=True
        )
        for name, result in zip(self._participants, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Participant write raised unexpectedly",
                    exc_info=result,
                    extra={"participant": name},
                )

    async def commit(self) -> ScheduleOutcome:
        """
        Finalizes the transaction.

        Raises:
            PartialScheduleFailure: some participants succeeded
            TotalScheduleFailure: no participant succeeded
        """
        if self._committed is not None:
            return self._committed

        await self.join()
        outcomes = self.outcomes
        if self.succeeded:
            self._committed = ScheduleOutcome(
                succeeded=True, outcomes=outcomes
            )
            logger.info(
                "Committed scheduling transaction",
                extra={"outcomes": outcomes},
            )
            return self._committed

        succeeded = [name for name, ok in outcomes.items() if ok]
        if succeeded:
            # Retraction is not attempted; see the module docstring.
            logger.warning(
                "Partial scheduling failure; successful participants "
                "keep the tentative event",
                extra={"outcomes": outcomes, "tentative": succeeded},
            )
            raise PartialScheduleFailure(outcomes)

        logger.error(
            "Scheduling failed on every calendar",
            extra={"outcomes": outcomes},
        )
        raise TotalScheduleFailure(outcomes)


async def run_speculative(
    body: Callable[[TransactionWorld], Awaitable[None]],
) -> TransactionWorld:
    """
    Runs ``body`` against a fresh world and joins every write it issued.

    An exception raised by ``body`` is re-raised after the writes that
    were already started have finished.
    """
    world = TransactionWorld()
    try:
        await body(world)
    except BaseException:
        logger.error(
            "Speculative body raised; joining issued writes",
            extra={"issued": list(world._participants)},
        )
        await world.join()
        raise
    await world.join()
    logger.debug(
        "Speculative run complete", extra={"outcomes": world.outcomes}
    )
    return world
