"""
The core dialogue logic for the parley bot.

Each new conversation is classified once by the NLU classifier and
handed to the handler for its intent. Handlers that need more
information from the user ask for it with ``query_loop``.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional

from .calendar import Calendar, create_calendar
from .channels.base import ChatBot, Conversation, identity_of
from .domain import (
    CalDAVSettings,
    CalendarService,
    Classification,
    ConversantIdentity,
    Entity,
    Event,
    OfficeSettings,
    RemoteSettings,
    Settings,
    entity_to_datetime,
    entity_to_timedelta,
)
from .exceptions import (
    AuthError,
    CalendarBackendError,
    MissingCalendarConfig,
    NLUError,
    ParleyError,
    PartialScheduleFailure,
    ScheduleFailure,
    UserCancelled,
)
from .repositories import NLURepository, SettingsRepository
from .transaction import ResultHandle, TransactionWorld, run_speculative

logger = logging.getLogger(__name__)

CalendarFactory = Callable[
    [Optional[Settings], Optional[str]], Awaitable[Optional[Calendar]]
]

DEFAULT_RESPONSE = ":confused: :grey_question:"
CANCEL_HINT = '("cancel" to quit)'
SHOW_CALENDAR_DAYS = 7
SUCCEEDED = ResultHandle(name="succeeded")


def format_events(events: List[Event]) -> str:
    """A quick text summary of calendar events, one per line."""
    if not events:
        return "Nothing on your calendar for the next week."
    return "\n".join(f"{e.start.isoformat()}: {e.title}" for e in events)


def _names(keys: List[str]) -> str:
    return ", ".join(ConversantIdentity.from_key(k).user for k in keys)


def format_duration(duration: timedelta) -> str:
    minutes = int(duration.total_seconds() // 60)
    if minutes >= 60 and minutes % 60 == 0:
        return f"{minutes // 60}-hour"
    return f"{minutes}-minute"


class ParleyBot:
    """
    Dispatches conversations to intent handlers.

    Calendars are built from stored settings on every turn; nothing
    about a user's calendar is cached between messages.
    """

    default_response = DEFAULT_RESPONSE

    def __init__(
        self,
        nlu: NLURepository,
        settings_repo: SettingsRepository,
        calendar_factory: CalendarFactory = create_calendar,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.nlu = nlu
        self.settings_repo = settings_repo
        self.calendar_factory = calendar_factory
        self.now = now

    def register(self, bot: ChatBot) -> None:  # type: ignore[type-arg]
        """Registers this bot's handler with a chat backend."""
        bot.on_converse = self.interact
        logger.info(
            "Registered dialogue handler", extra={"namespace": bot.namespace}
        )

    # --- calendars ---

    async def calendar_for(
        self, identity: ConversantIdentity, is_caller: bool = True
    ) -> Calendar:
        """
        Returns the Calendar for a user.

        Raises:
            MissingCalendarConfig: the user has no calendar configured
        """
        settings = await self.settings_repo.get(identity)
        calendar = await self.calendar_factory(settings, identity.key)
        if calendar is None:
            raise MissingCalendarConfig(identity, is_caller=is_caller)
        return calendar

    async def ensure_user(self, identity: ConversantIdentity) -> None:
        """Records a user the first time they talk to the bot."""
        if await self.settings_repo.get(identity) is None:
            await self.settings_repo.put(identity, Settings())
            logger.info("Registered new user", extra={"user": identity.key})

    # --- dispatch ---

    async def interact(self, text: str, conv: Conversation) -> None:
        """Handles a new conversation by dispatching on intent."""
        text = text.strip()
        if not text:
            return
        if text == self.default_response:
            # Don't answer another bot being confused.
            return

        try:
            res = await self.nlu.classify(text)
        except NLUError as e:
            logger.error(
                "Classification failed", extra={"error": str(e)}
            )
            await conv.send(f"Sorry, I couldn't understand that: {e}")
            return

        logger.info(
            "Classified message",
            extra={
                "namespace": conv.namespace,
                "user": conv.user,
                "intent": res.intent,
                "entities": sorted(res.entities),
            },
        )

        try:
            await self.ensure_user(identity_of(conv))
            await self.dispatch(res, conv)
        except UserCancelled:
            logger.info(
                "Dialogue cancelled by user",
                extra={"namespace": conv.namespace, "user": conv.user},
            )
        except MissingCalendarConfig as e:
            await conv.send(e.user_message)
        except AuthError as e:
            await conv.send(f"Your calendar rejected my credentials: {e}")
        except CalendarBackendError as e:
            await conv.send(f"I couldn't reach a calendar: {e}")
        except ParleyError as e:
            logger.error(
                "Dialogue failed",
                extra={"user": conv.user, "error": str(e)},
            )
            await conv.send(f"Sorry, something went wrong: {e}")

    async def dispatch(self, res: Classification, conv: Conversation) -> None:
        if res.has("greetings"):
            await self.handle_greeting(conv)
        elif res.has("bye"):
            await self.handle_bye(conv)
        elif res.has("thanks"):
            await self.handle_thanks(conv)
        elif res.intent == "show_calendar":
            await self.handle_show_calendar(conv)
        elif res.intent == "schedule_meeting":
            await self.handle_schedule_meeting(
                conv,
                res.entity("datetime"),
                res.entity("contact"),
                res.entity("duration"),
            )
        elif res.intent == "setup_calendar":
            await self.handle_setup_calendar(conv)
        elif res.intent == "help":
            await self.handle_help(conv)
        elif res.intent == "who":
            await self.handle_who(conv)
        else:
            await self.handle_default(conv)

    # --- slot filling ---

    async def query_loop(
        self,
        conv: Conversation,
        value: Optional[Entity],
        prompt: str,
        slot: str,
    ) -> Entity:
        """
        Asks the user for a missing piece of information until they give
        it or cancel.

        Raises:
            UserCancelled: the user asked to cancel
        """
        while value is None:
            await conv.send(f"{prompt}\n{CANCEL_HINT}")
            response = await conv.recv()

            try:
                res = await self.nlu.classify(response)
            except NLUError as e:
                logger.warning(
                    "Classification failed while filling slot",
                    extra={"slot": slot, "error": str(e)},
                )
                await conv.send(f"Got an unexpected error: {e}")
                continue

            if res.intent == "cancel":
                await conv.send("Alright, giving up")
                raise UserCancelled(slot)
            value = res.entity(slot)
        return value

    async def ask(self, conv: Conversation, prompt: str) -> str:
        """Asks a free-text question; ``cancel`` aborts the dialogue."""
        await conv.send(f"{prompt}\n{CANCEL_HINT}")
        answer = (await conv.recv()).strip()
        if answer.lower() == "cancel":
            await conv.send("Alright, giving up")
            raise UserCancelled(prompt)
        return answer

    # --- handlers ---

    async def handle_greeting(self, conv: Conversation) -> None:
        await conv.send(f"hi, {conv.user}!")

    async def handle_bye(self, conv: Conversation) -> None:
        await conv.send(":wave: I'll be right here")

    async def handle_thanks(self, conv: Conversation) -> None:
        await conv.send("any time!")

    async def handle_help(self, conv: Conversation) -> None:
        await conv.send(
            "I can schedule a meeting, show your calendar, or set up "
            "your calendar"
        )

    async def handle_default(self, conv: Conversation) -> None:
        await conv.send(self.default_response)

    async def handle_who(self, conv: Conversation) -> None:
        # Only people in the same namespace can be named as a contact.
        users = [
            identity.user
            for identity in await self.settings_repo.list_users()
            if identity.namespace == conv.namespace
        ]
        if not users:
            await conv.send("No users set up!")
            return
        await conv.send("Here are all the users I know about:")
        await conv.send(", ".join(users))

    async def handle_show_calendar(self, conv: Conversation) -> None:
        """Shows the next week of the user's calendar."""
        await conv.send("let's get your calendar!")
        me = identity_of(conv)
        settings = await self.settings_repo.get(me)
        if settings is None or not settings.configured:
            await self.handle_setup_calendar(conv)

        calendar = await self.calendar_for(me)
        start = self.now()
        events = await calendar.get_events(
            start, start + timedelta(days=SHOW_CALENDAR_DAYS)
        )
        await conv.send(format_events(events))

    async def handle_setup_calendar(self, conv: Conversation) -> None:
        """Asks the user which calendar to use and stores the answer."""
        me = identity_of(conv)
        choices = ", ".join(s.value for s in CalendarService)
        answer = await self.ask(
            conv, f"Which calendar service do you use? ({choices})"
        )
        try:
            service = CalendarService(answer.lower())
        except ValueError:
            await conv.send(f"Sorry, I don't know the service '{answer}'.")
            return

        if service == CalendarService.CALDAV:
            settings = Settings(
                service=service,
                caldav=CalDAVSettings(
                    url=await self.ask(conv, "What's your CalDAV URL?"),
                    username=await self.ask(conv, "Your CalDAV username?"),
                    password=await self.ask(conv, "Your CalDAV password?"),
                ),
            )
        elif service == CalendarService.OFFICE:
            settings = Settings(
                service=service,
                office=OfficeSettings(
                    access_token=await self.ask(
                        conv, "Paste an Office 365 access token:"
                    )
                ),
            )
        else:
            settings = Settings(
                service=service,
                remote=RemoteSettings(
                    address=await self.ask(
                        conv, "What's the remote calendar's address?"
                    ),
                    task_queue=await self.ask(
                        conv, "Which task queue does it listen on?"
                    ),
                ),
            )

        await self.settings_repo.put(me, settings)
        logger.info(
            "Stored calendar settings",
            extra={"user": me.key, "service": service.value},
        )
        await conv.send("ok, all set!")

    async def handle_schedule_meeting(
        self,
        conv: Conversation,
        datetime_ent: Optional[Entity],
        contact_ent: Optional[Entity],
        duration_ent: Optional[Entity],
    ) -> None:
        """Books one meeting on both the caller's and a contact's calendar."""
        me = identity_of(conv)
        my_calendar = await self.calendar_for(me)

        contact_ent = await self.query_loop(
            conv,
            contact_ent,
            "Who did you want to schedule that meeting with?",
            "contact",
        )
        target = ConversantIdentity(
            namespace=me.namespace, user=str(contact_ent.value)
        )
        if target == me:
            await conv.send("I can only schedule meetings with someone else!")
            return
        if await self.settings_repo.get(target) is None:
            await conv.send(f"I couldn't find any users named {target.user}!")
            return
        target_calendar = await self.calendar_for(target, is_caller=False)

        datetime_ent = await self.query_loop(
            conv,
            datetime_ent,
            "When did you want to schedule that meeting?",
            "datetime",
        )
        duration_ent = await self.query_loop(
            conv,
            duration_ent,
            "How long should the meeting be?",
            "duration",
        )

        try:
            start = entity_to_datetime(datetime_ent)
            duration = entity_to_timedelta(duration_ent)
            if duration <= timedelta(0):
                raise ValueError(f"{duration} is not a positive duration")
            event = Event(
                title=f"Meeting with {me.user} and {target.user}",
                start=start,
                end=start + duration,
            )
        except (ValueError, OverflowError) as e:
            logger.warning(
                "Unusable meeting time",
                extra={"user": me.key, "error": str(e)},
            )
            await conv.send(f"Sorry, I couldn't make sense of that time: {e}")
            return
        await conv.send(
            f"Scheduling a {format_duration(duration)} meeting at "
            f"{start.isoformat()} with {target.user}"
        )

        async def body(world: TransactionWorld) -> None:
            mine = world.schedule_event(my_calendar, event, name=me.key)
            theirs = world.schedule_event(
                target_calendar, event, name=target.key
            )
            results = await world.wait(mine, theirs)
            world.publish(SUCCEEDED.name, all(results))

        world = await run_speculative(body)
        logger.info(
            "Speculative scheduling finished",
            extra={
                "succeeded": world.get(SUCCEEDED),
                "outcomes": world.outcomes,
            },
        )

        try:
            await world.commit()
        except PartialScheduleFailure as e:
            logger.warning(
                "Meeting only partially scheduled",
                extra={"succeeded": e.succeeded, "failed": e.failed},
            )
            await conv.send(
                "Could not confirm the meeting on both calendars. "
                "It may still show up on "
                f"{_names(e.succeeded)}'s calendar."
            )
            return
        except ScheduleFailure:
            await conv.send("Could not schedule a meeting on either calendar.")
            return

        await conv.send("Got it.")
