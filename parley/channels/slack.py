"""
Slack backend for the bot, connected through Socket Mode.

Only direct messages are handled. Each IM channel is one conversation
key, so a dialogue waiting in ``recv()`` gets the next message the user
types in that IM.
"""

import logging
from typing import Any, Dict, Optional

from slack_bolt.adapter.socket_mode.async_handler import (
    AsyncSocketModeHandler,
)
from slack_bolt.async_app import AsyncApp

from .base import ChatBot

logger = logging.getLogger(__name__)


class SlackConversation:
    """A conversation with one user in one Slack channel."""

    # TODO: scope the namespace by team id once multi-team installs exist.
    namespace = "slack"

    def __init__(self, bot: "SlackBot", channel_id: str, user: str) -> None:
        self.bot = bot
        self.channel_id = channel_id
        self.user = user

    async def send(self, text: str) -> None:
        await self.bot.send(text, self.channel_id)

    async def recv(self) -> str:
        message = await self.bot.spool.wait(self.channel_id)
        return str(message.get("text", ""))


class SlackBot(ChatBot[str, Dict[str, Any]]):
    """Wraps a Slack Bolt app for bot-like interactions."""

    namespace = "slack"

    def __init__(
        self,
        bot_token: str,
        app_token: str,
        status_channel: Optional[str] = None,
        app: Optional[AsyncApp] = None,
    ) -> None:
        super().__init__()
        self.bot_token = bot_token
        self.app_token = app_token
        self.status_channel = status_channel
        self.app = app or AsyncApp(token=bot_token)
        self.handler: Optional[AsyncSocketModeHandler] = None
        self._user_names: Dict[str, str] = {}

        @self.app.event("message")
        async def handle_message(event: Dict[str, Any]) -> None:
            await self.on_message(event)

    async def on_message(self, event: Dict[str, Any]) -> None:
        """Routes a Slack message event into the spool."""
        if event.get("channel_type") != "im":
            return
        if event.get("bot_id") or event.get("subtype"):
            return

        channel_id = event["channel"]
        user_id = event.get("user", "")
        text = event.get("text", "")
        logger.debug(
            "Slack message received",
            extra={"channel": channel_id, "user": user_id},
        )
        user_name = await self.resolve_user(user_id)
        self.receive(
            channel_id,
            event,
            text,
            lambda: SlackConversation(self, channel_id, user_name),
        )

    async def resolve_user(self, user_id: str) -> str:
        """Returns the Slack user name for an id, or the id itself."""
        if user_id in self._user_names:
            return self._user_names[user_id]
        try:
            response = await self.app.client.users_info(user=user_id)
            name = response["user"]["name"]
        except Exception as e:
            logger.warning(
                "Could not resolve Slack user",
                extra={"user": user_id, "error": str(e)},
            )
            return user_id
        self._user_names[user_id] = name
        return name

    async def send(self, text: str, channel_id: str) -> None:
        await self.app.client.chat_postMessage(channel=channel_id, text=text)

    async def start(self) -> None:
        """Connects to Slack and announces the bot in the status channel."""
        self.handler = AsyncSocketModeHandler(self.app, self.app_token)
        await self.handler.connect_async()
        logger.info("Slack bot connected")
        if self.status_channel:
            await self.send(":wave: parley is online", self.status_channel)

    async def stop(self) -> None:
        if self.handler is not None:
            await self.handler.close_async()
        await self.shutdown()
