"""
parley: a chat bot that shows calendars and books meetings between its
users across CalDAV, Office 365 and remote calendar backends.
"""

from .calendar import Calendar, create_calendar
from .dialogue import ParleyBot
from .domain import (
    Classification,
    ConversantIdentity,
    Entity,
    Event,
    Settings,
)
from .exceptions import (
    AuthError,
    CalendarBackendError,
    MissingCalendarConfig,
    NetworkError,
    NLUError,
    ParleyError,
    PartialScheduleFailure,
    ScheduleFailure,
    TotalScheduleFailure,
    UserCancelled,
)
from .transaction import ResultHandle, TransactionWorld, run_speculative

__version__ = "0.1.0"

__all__ = [
    "AuthError",
    "Calendar",
    "CalendarBackendError",
    "Classification",
    "ConversantIdentity",
    "Entity",
    "Event",
    "MissingCalendarConfig",
    "NLUError",
    "NetworkError",
    "ParleyBot",
    "ParleyError",
    "PartialScheduleFailure",
    "ResultHandle",
    "ScheduleFailure",
    "Settings",
    "TotalScheduleFailure",
    "TransactionWorld",
    "UserCancelled",
    "create_calendar",
    "run_speculative",
]
