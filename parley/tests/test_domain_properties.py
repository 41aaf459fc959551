"""
Property-based tests for the domain models and the calendar merge.

These use Hypothesis to generate events and check the invariants the
bot relies on when it shows a calendar.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, strategies as st
from hypothesis.strategies import composite
from pydantic import ValidationError

from parley.calendar import Calendar
from parley.domain import ConversantIdentity, Event, entity_to_timedelta
from parley.domain import Entity
from parley.repos.mock.calendar import MockCalendarBackend

RANGE_START = datetime(2017, 4, 3, tzinfo=timezone.utc)
RANGE_END = RANGE_START + timedelta(days=7)


@composite
def timezone_aware_datetime(draw):
    return draw(
        st.datetimes(
            min_value=datetime(2017, 3, 20),
            max_value=datetime(2017, 4, 20),
            timezones=st.just(timezone.utc),
        )
    )


@composite
def event_strategy(draw):
    start = draw(timezone_aware_datetime())
    minutes = draw(st.integers(min_value=0, max_value=3 * 24 * 60))
    title = draw(st.sampled_from(["Standup", "Lunch", "1:1", "Review"]))
    return Event(title=title, start=start, end=start + timedelta(minutes=minutes))


def _run(coro):
    return asyncio.run(coro)


@given(
    remote=st.lists(event_strategy(), max_size=8),
    scheduled=st.lists(event_strategy(), max_size=8),
    accept=st.booleans(),
)
def test_get_events_is_sorted_deduplicated_union(remote, scheduled, accept):
    """
    What a read returns is exactly the remote events plus the buffered
    events overlapping the range, once each, ordered by start.
    """

    async def scenario():
        backend = MockCalendarBackend(
            remote, write_outcomes=[accept] * len(scheduled)
        )
        calendar = Calendar(backend)
        for event in scheduled:
            await calendar.schedule_event(event)
        buffered = list(calendar.buffered_events)
        remote_now = await backend.fetch_remote_events(RANGE_START, RANGE_END)
        result = await calendar.get_events(RANGE_START, RANGE_END)
        return buffered, remote_now, result, calendar

    buffered, remote_now, result, calendar = _run(scenario())

    expected = set(remote_now) | {
        e for e in buffered if e.overlaps(RANGE_START, RANGE_END)
    }
    assert set(result) == expected
    assert len(result) == len(expected)
    assert [e.start for e in result] == sorted(e.start for e in result)
    # Nothing reported by the backend stays buffered.
    assert not set(calendar.buffered_events) & set(remote_now)


@given(event=event_strategy())
def test_events_compare_by_value(event):
    copy = Event(title=event.title, start=event.start, end=event.end)

    assert copy == event
    assert hash(copy) == hash(event)


@given(start=timezone_aware_datetime(), minutes=st.integers(1, 10_000))
def test_end_before_start_is_rejected(start, minutes):
    with pytest.raises(ValidationError):
        Event(title="Bad", start=start, end=start - timedelta(minutes=minutes))


def test_naive_datetimes_are_taken_as_utc():
    event = Event(
        title="Naive", start=datetime(2017, 4, 3, 9), end=datetime(2017, 4, 3, 10)
    )

    assert event.start.utcoffset() == timedelta(0)


@given(
    namespace=st.sampled_from(["slack", "facebook", "terminal", "web"]),
    user=st.text(min_size=1, max_size=30),
)
def test_identity_key_round_trips(namespace, user):
    identity = ConversantIdentity(namespace=namespace, user=user)

    assert ConversantIdentity.from_key(identity.key) == identity


@pytest.mark.parametrize(
    "value,unit,expected",
    [
        (30, None, timedelta(minutes=30)),
        (2, "hour", timedelta(hours=2)),
        (90, "minutes", timedelta(minutes=90)),
        (1, "day", timedelta(days=1)),
    ],
)
def test_duration_entities(value, unit, expected):
    assert entity_to_timedelta(Entity(value=value, unit=unit)) == expected


def test_unknown_duration_unit_is_an_error():
    with pytest.raises(ValueError):
        entity_to_timedelta(Entity(value=3, unit="fortnight"))
