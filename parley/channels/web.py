"""
Web chat backend for the bot.

A browser session posts messages to ``/chat/{session_id}/messages`` and
either polls the same path or subscribes to ``/chat/{session_id}/events``
(server-sent events) for the bot's replies.
"""

import asyncio
import json
import logging
from typing import AsyncIterator, Dict, List

from fastapi import APIRouter
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from .base import ChatBot

logger = logging.getLogger(__name__)


class ChatMessageRequest(BaseModel):
    text: str
    user: str = "web-user"


class ChatMessagesResponse(BaseModel):
    messages: List[str]


class WebConversation:
    """A conversation with one browser session."""

    namespace = "web"

    def __init__(self, bot: "WebBot", session_id: str, user: str) -> None:
        self.bot = bot
        self.session_id = session_id
        self.user = user

    async def send(self, text: str) -> None:
        self.bot.outbox(self.session_id).put_nowait(text)

    async def recv(self) -> str:
        return await self.bot.spool.wait(self.session_id)


class WebBot(ChatBot[str, str]):
    """Serves the bot to browsers."""

    namespace = "web"

    def __init__(self) -> None:
        super().__init__()
        self._outboxes: Dict[str, "asyncio.Queue[str]"] = {}

    def outbox(self, session_id: str) -> "asyncio.Queue[str]":
        if session_id not in self._outboxes:
            self._outboxes[session_id] = asyncio.Queue()
        return self._outboxes[session_id]

    def drain_outbox(self, session_id: str) -> List[str]:
        queue = self.outbox(session_id)
        messages = []
        while not queue.empty():
            messages.append(queue.get_nowait())
        return messages

    async def _events(self, session_id: str) -> AsyncIterator[str]:
        queue = self.outbox(session_id)
        while True:
            text = await queue.get()
            yield f"data: {json.dumps({'text': text})}\n\n"

    def router(self, prefix: str = "/chat") -> APIRouter:
        router = APIRouter(prefix=prefix, tags=["chat"])

        @router.post("/{session_id}/messages", status_code=202)
        async def post_message(
            session_id: str, request: ChatMessageRequest
        ) -> Dict[str, str]:
            text = request.text.strip()
            user = request.user
            logger.debug(
                "Web chat message received",
                extra={"session_id": session_id, "user": user},
            )
            task = self.receive(
                session_id,
                text,
                text,
                lambda: WebConversation(self, session_id, user),
            )
            # Run the dialogue up to its first suspension point so simple
            # replies are ready for the next poll.
            for _ in range(10):
                if task.done():
                    break
                await asyncio.sleep(0)
            return {"status": "accepted"}

        @router.get("/{session_id}/messages")
        async def get_messages(session_id: str) -> ChatMessagesResponse:
            return ChatMessagesResponse(
                messages=self.drain_outbox(session_id)
            )

        @router.get("/{session_id}/events")
        async def stream_events(session_id: str) -> StreamingResponse:
            return StreamingResponse(
                self._events(session_id), media_type="text/event-stream"
            )

        return router
