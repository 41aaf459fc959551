import pytest

from parley.dialogue import ParleyBot
from parley.repos.mock.settings import MockSettingsRepository
from parley.tests.factories import (
    BASE_TIME,
    CalendarDirectory,
    ScriptedNLU,
)


@pytest.fixture
def nlu() -> ScriptedNLU:
    return ScriptedNLU()


@pytest.fixture
def settings_repo() -> MockSettingsRepository:
    return MockSettingsRepository()


@pytest.fixture
def directory() -> CalendarDirectory:
    return CalendarDirectory()


@pytest.fixture
def parley(
    nlu: ScriptedNLU,
    settings_repo: MockSettingsRepository,
    directory: CalendarDirectory,
) -> ParleyBot:
    """A bot wired to scripted NLU, in-memory settings and mock calendars."""
    return ParleyBot(
        nlu, settings_repo, calendar_factory=directory, now=lambda: BASE_TIME
    )
