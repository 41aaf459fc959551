"""
Domain models for the parley chat bot.

These models describe calendar events, the people the bot talks to, the
calendar settings each of them has stored, and the output of the NLU
classifier. They follow the Pydantic v2 patterns used across the
project.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional
import logging
import zoneinfo

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import model_validator

logger = logging.getLogger(__name__)

UTC = zoneinfo.ZoneInfo("UTC")


def ensure_aware(value: datetime) -> datetime:
    """Return ``value`` as a timezone-aware datetime, assuming UTC."""
    if value.tzinfo is None:
        logger.warning(f"Converting naive datetime {value} to UTC")
        return value.replace(tzinfo=UTC)
    return value


# --- Calendar events ---


class Event(BaseModel):
    """
    A calendar event as the bot sees it, independent of the backend that
    stores it. Events are values: two events with the same title, start
    and end are the same event.
    """

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., description="Event title/summary")
    start: datetime = Field(..., description="Event start time")
    end: datetime = Field(..., description="Event end time")

    @field_validator("start", "end")
    @classmethod
    def ensure_timezone_aware(cls, v: datetime) -> datetime:
        return ensure_aware(v)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def end_not_before_start(self) -> "Event":
        if self.end < self.start:
            raise ValueError(
                f"Event end {self.end} is before its start {self.start}"
            )
        return self

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Whether the event intersects the half-open range [start, end)."""
        if self.start == self.end:
            return start <= self.start < end
        return self.start < end and self.end > start

    def sort_key(self) -> tuple[datetime, datetime, str]:
        return (self.start, self.end, self.title)


# --- People and their settings ---


class ConversantIdentity(BaseModel):
    """
    A person the bot talks to. User ids are only unique within a
    namespace (the chat service the user is logged in to).
    """

    model_config = ConfigDict(frozen=True)

    namespace: str
    user: str

    @property
    def key(self) -> str:
        return f"{self.namespace}:{self.user}"

    @classmethod
    def from_key(cls, key: str) -> "ConversantIdentity":
        namespace, _, user = key.partition(":")
        if not user:
            raise ValueError(f"Malformed conversant key: {key!r}")
        return cls(namespace=namespace, user=user)

    def __str__(self) -> str:
        return self.user


class CalendarService(str, Enum):
    """Which kind of calendar backend a user has configured."""

    CALDAV = "caldav"
    OFFICE = "office"
    REMOTE = "remote"


class CalDAVSettings(BaseModel):
    url: str
    username: str
    password: str


class OfficeSettings(BaseModel):
    access_token: str


class RemoteSettings(BaseModel):
    """Where to reach a remote calendar node."""

    address: str = Field(
        ..., description="Temporal frontend address, e.g. 'localhost:7233'"
    )
    task_queue: str = Field(
        ..., description="Task queue the remote calendar node polls"
    )


class Settings(BaseModel):
    """
    Calendar settings a user has configured. ``service`` is the tag that
    selects which of the backend records is in use.
    """

    service: Optional[CalendarService] = None
    caldav: Optional[CalDAVSettings] = None
    office: Optional[OfficeSettings] = None
    remote: Optional[RemoteSettings] = None

    @model_validator(mode="after")
    def service_record_present(self) -> "Settings":
        if self.service is not None and getattr(
            self, self.service.value
        ) is None:
            raise ValueError(
                f"Settings for service '{self.service.value}' are missing"
            )
        return self

    @property
    def configured(self) -> bool:
        return self.service is not None


class UserRecord(BaseModel):
    """A stored user and their settings."""

    identity: ConversantIdentity
    settings: Settings = Field(default_factory=Settings)


# --- NLU output ---


class NormalizedValue(BaseModel):
    value: Any
    unit: Optional[str] = None


class Entity(BaseModel):
    """One entity extracted from a message by the NLU classifier."""

    value: Any = None
    unit: Optional[str] = None
    confidence: Optional[float] = None
    normalized: Optional[NormalizedValue] = None


class Classification(BaseModel):
    """The result of classifying one message."""

    intent: Optional[str] = None
    entities: Dict[str, Entity] = Field(default_factory=dict)

    def entity(self, tag: str) -> Optional[Entity]:
        if tag == "intent" and self.intent is not None:
            return Entity(value=self.intent)
        return self.entities.get(tag)

    def has(self, tag: str) -> bool:
        return self.entity(tag) is not None


_UNIT_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 60 * 60,
    "day": 24 * 60 * 60,
    "week": 7 * 24 * 60 * 60,
}


def _unit_seconds(unit: Optional[str]) -> int:
    if unit is None:
        return _UNIT_SECONDS["minute"]
    unit = unit.lower().rstrip("s")
    if unit not in _UNIT_SECONDS:
        raise ValueError(f"Unknown duration unit: {unit!r}")
    return _UNIT_SECONDS[unit]


def entity_to_timedelta(entity: Entity) -> timedelta:
    """Convert a duration entity into a timedelta."""
    if entity.normalized is not None:
        value, unit = entity.normalized.value, entity.normalized.unit
    else:
        value, unit = entity.value, entity.unit
    try:
        amount = float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Not a duration: {value!r}") from e
    return timedelta(seconds=amount * _unit_seconds(unit))


def entity_to_datetime(entity: Entity) -> datetime:
    """Parse a datetime entity's ISO-8601 value."""
    value = entity.value
    if isinstance(value, datetime):
        return ensure_aware(value)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(text))
