"""
Defines the repository protocols the bot depends on.

Each protocol is a narrow interface over an external collaborator: a
calendar backend, the NLU classifier, and the user settings store.
"""

from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

from .domain import Classification, ConversantIdentity, Event, Settings


@runtime_checkable
class CalendarBackend(Protocol):
    """
    Protocol for a calendar service the bot can read from and write to.

    Implementations exist for CalDAV servers, the Microsoft Graph API and
    remote calendar nodes reached over Temporal.
    """

    async def fetch_remote_events(
        self, start: datetime, end: datetime
    ) -> List[Event]:
        """
        Fetches the events between ``start`` and ``end``.

        Raises:
            NetworkError: the backend could not be reached
            AuthError: the backend rejected the credentials
        """
        ...

    async def write_remote_event(self, event: Event) -> bool:
        """Writes ``event``; returns True iff the backend accepted it."""
        ...


@runtime_checkable
class NLURepository(Protocol):
    """Protocol for the intent/entity classifier."""

    async def classify(self, text: str) -> Classification:
        """
        Classifies a message.

        Raises:
            NLUError: the classifier call failed
        """
        ...


@runtime_checkable
class SettingsRepository(Protocol):
    """
    Protocol for the per-user settings store.

    A repository is opened once at process start and closed at shutdown.
    Concurrent writes for the same user are last-write-wins.
    """

    async def open(self) -> None:
        """Prepares the store for use."""
        ...

    async def close(self) -> None:
        """Flushes and releases the store."""
        ...

    async def get(self, identity: ConversantIdentity) -> Optional[Settings]:
        """Returns the stored settings for a user, or None if unknown."""
        ...

    async def put(
        self, identity: ConversantIdentity, settings: Settings
    ) -> None:
        """Stores settings for a user, creating the user if needed."""
        ...

    async def list_users(self) -> List[ConversantIdentity]:
        """Lists every known user."""
        ...
