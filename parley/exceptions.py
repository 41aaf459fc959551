"""
Errors raised by the parley bot and its adapters.
"""

from typing import Dict, List, Optional

from .domain import ConversantIdentity


class ParleyError(Exception):
    """Base class for all parley errors."""


class CalendarBackendError(ParleyError):
    """A calendar backend call failed."""


class NetworkError(CalendarBackendError):
    """The backend was unreachable or answered with a non-2xx status."""


class AuthError(CalendarBackendError):
    """The backend rejected our credentials."""


class NLUError(ParleyError):
    """The NLU classifier call failed."""


class SettingsError(ParleyError):
    """The settings store could not be read or written."""


class UserCancelled(ParleyError):
    """The user asked to cancel while the bot was filling a slot."""


class MissingCalendarConfig(ParleyError):
    """A participant in a dialogue has no calendar configured."""

    def __init__(
        self, identity: ConversantIdentity, is_caller: bool = True
    ) -> None:
        self.identity = identity
        self.is_caller = is_caller
        if is_caller:
            message = "You don't have any calendars set up!"
        else:
            message = f"{identity.user} doesn't have any calendars set up!"
        super().__init__(message)

    @property
    def user_message(self) -> str:
        return str(self)


class ScheduleFailure(ParleyError):
    """A scheduling transaction did not succeed on every calendar."""

    def __init__(
        self, outcomes: Dict[str, bool], message: Optional[str] = None
    ) -> None:
        self.outcomes = dict(outcomes)
        super().__init__(message or self._describe())

    @property
    def succeeded(self) -> List[str]:
        return [name for name, ok in self.outcomes.items() if ok]

    @property
    def failed(self) -> List[str]:
        return [name for name, ok in self.outcomes.items() if not ok]

    def _describe(self) -> str:
        return (
            f"scheduling failed on {', '.join(self.failed) or 'nothing'}"
        )


class PartialScheduleFailure(ScheduleFailure):
    """
    Some but not all calendar writes succeeded. The calendars listed in
    ``succeeded`` may already hold the tentative event.
    """


class TotalScheduleFailure(ScheduleFailure):
    """No calendar write succeeded."""
