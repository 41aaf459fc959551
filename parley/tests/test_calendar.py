"""
Tests for the buffered Calendar and backend selection.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from parley.calendar import Calendar, create_calendar
from parley.domain import (
    CalDAVSettings,
    CalendarService,
    Event,
    OfficeSettings,
    RemoteSettings,
    Settings,
)
from parley.exceptions import NetworkError
from parley.repos.caldav.calendar import CalDAVCalendarBackend
from parley.repos.mock.calendar import MockCalendarBackend
from parley.repos.office.calendar import OfficeCalendarBackend
from parley.repos.temporal.client_proxies import RemoteCalendarBackend
from parley.repositories import CalendarBackend
from parley.tests.factories import BASE_TIME, EventFactory

WEEK = (BASE_TIME, BASE_TIME + timedelta(days=7))


class TestGetEvents:
    @pytest.mark.asyncio
    async def test_returns_remote_events_in_start_order(self) -> None:
        later = EventFactory(start=BASE_TIME + timedelta(days=2))
        earlier = EventFactory(start=BASE_TIME + timedelta(days=1))
        calendar = Calendar(MockCalendarBackend([later, earlier]))

        assert await calendar.get_events(*WEEK) == [earlier, later]

    @pytest.mark.asyncio
    async def test_scheduled_event_visible_before_backend_reflects_it(
        self,
    ) -> None:
        backend = AsyncMock(spec=CalendarBackend)
        backend.fetch_remote_events.return_value = []
        backend.write_remote_event.return_value = True
        calendar = Calendar(backend)
        event = EventFactory()

        await calendar.schedule_event(event)

        assert await calendar.get_events(*WEEK) == [event]
        assert calendar.buffered_events == (event,)

    @pytest.mark.asyncio
    async def test_buffer_reconciled_once_remote_reports_event(self) -> None:
        calendar = Calendar(MockCalendarBackend())
        event = EventFactory()

        await calendar.schedule_event(event)
        events = await calendar.get_events(*WEEK)

        assert events == [event]
        assert calendar.buffered_events == ()

    @pytest.mark.asyncio
    async def test_buffered_events_outside_range_are_not_returned(
        self,
    ) -> None:
        calendar = Calendar(MockCalendarBackend(write_outcomes=[False]))
        far_away = EventFactory(start=BASE_TIME + timedelta(days=30))
        await calendar.schedule_event(far_away)

        assert await calendar.get_events(*WEEK) == []
        # Not seen remotely, so it stays buffered.
        assert calendar.buffered_events == (far_away,)

    @pytest.mark.asyncio
    async def test_duplicates_are_merged(self) -> None:
        event = EventFactory()
        backend = AsyncMock(spec=CalendarBackend)
        backend.fetch_remote_events.return_value = [event, event]
        calendar = Calendar(backend)

        assert await calendar.get_events(*WEEK) == [event]

    @pytest.mark.asyncio
    async def test_backend_errors_propagate(self) -> None:
        calendar = Calendar(MockCalendarBackend(fail_reads=True))

        with pytest.raises(NetworkError):
            await calendar.get_events(*WEEK)


class TestScheduleEvent:
    @pytest.mark.asyncio
    async def test_failed_write_keeps_event_buffered(self) -> None:
        calendar = Calendar(MockCalendarBackend(write_outcomes=[False]))
        event = EventFactory()

        assert await calendar.schedule_event(event) is False
        assert calendar.buffered_events == (event,)
        assert await calendar.get_events(*WEEK) == [event]

    @pytest.mark.asyncio
    async def test_scheduling_twice_buffers_once(self) -> None:
        backend = AsyncMock(spec=CalendarBackend)
        backend.write_remote_event.return_value = True
        calendar = Calendar(backend)
        event = EventFactory()

        await calendar.schedule_event(event)
        await calendar.schedule_event(event)

        assert calendar.buffered_events == (event,)
        assert backend.write_remote_event.await_count == 2

    @pytest.mark.asyncio
    async def test_write_error_propagates_after_buffering(self) -> None:
        calendar = Calendar(MockCalendarBackend(fail_writes=True))
        event = EventFactory()

        with pytest.raises(NetworkError):
            await calendar.schedule_event(event)
        assert calendar.buffered_events == (event,)


class TestCreateCalendar:
    @pytest.mark.asyncio
    async def test_no_settings_means_no_calendar(self) -> None:
        assert await create_calendar(None) is None
        assert await create_calendar(Settings()) is None

    @pytest.mark.asyncio
    async def test_caldav(self) -> None:
        settings = Settings(
            service=CalendarService.CALDAV,
            caldav=CalDAVSettings(
                url="https://dav.example.com/cal/",
                username="alice",
                password="secret",
            ),
        )
        calendar = await create_calendar(settings, "terminal:alice")

        assert calendar is not None
        assert isinstance(calendar.backend, CalDAVCalendarBackend)
        assert calendar.backend.url == "https://dav.example.com/cal/"
        assert calendar.name == "terminal:alice"

    @pytest.mark.asyncio
    async def test_office(self) -> None:
        settings = Settings(
            service=CalendarService.OFFICE,
            office=OfficeSettings(access_token="token"),
        )
        calendar = await create_calendar(settings)

        assert calendar is not None
        assert isinstance(calendar.backend, OfficeCalendarBackend)

    @pytest.mark.asyncio
    async def test_remote(self) -> None:
        settings = Settings(
            service=CalendarService.REMOTE,
            remote=RemoteSettings(address="temporal:7233", task_queue="bob"),
        )
        calendar = await create_calendar(settings)

        assert calendar is not None
        assert isinstance(calendar.backend, RemoteCalendarBackend)
        assert calendar.backend.task_queue == "bob"


def test_zero_length_event_overlaps_range_it_sits_in() -> None:
    event = Event(title="Reminder", start=BASE_TIME, end=BASE_TIME)

    assert event.overlaps(BASE_TIME, BASE_TIME + timedelta(hours=1))
    assert not event.overlaps(BASE_TIME - timedelta(hours=1), BASE_TIME)
