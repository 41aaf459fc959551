"""
Facebook Messenger backend for the bot.

Messenger delivers messages to a webhook, so this bot exposes a FastAPI
router. Replies go out through the Graph Send API.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from .base import ChatBot

logger = logging.getLogger(__name__)

GRAPH_SEND_URL = "https://graph.facebook.com/v19.0/me/messages"


class MessengerConversation:
    """A thread of interaction with a specific Messenger user."""

    namespace = "facebook"

    def __init__(self, bot: "MessengerBot", user: str) -> None:
        self.bot = bot
        self.user = user

    async def send(self, text: str) -> None:
        await self.bot.send(self.user, text)

    async def recv(self) -> str:
        message = await self.bot.spool.wait(self.user)
        return str(message.get("text", ""))


class MessengerBot(ChatBot[str, Dict[str, Any]]):
    """A Messenger Platform wrapper for bot-like interactions."""

    namespace = "facebook"

    def __init__(
        self,
        page_token: str,
        verify_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__()
        self.page_token = page_token
        self.verify_token = verify_token
        self._http_client = http_client

    async def send(self, recipient_id: str, text: str) -> None:
        payload = {"recipient": {"id": recipient_id}, "message": {"text": text}}
        client = self._http_client or httpx.AsyncClient(timeout=30.0)
        try:
            response = await client.post(
                GRAPH_SEND_URL,
                params={"access_token": self.page_token},
                json=payload,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                "Failed to send Messenger message",
                extra={"recipient": recipient_id, "error": str(e)},
            )
            raise
        finally:
            if self._http_client is None:
                await client.aclose()

    def handle_webhook(self, body: Dict[str, Any]) -> int:
        """Routes every text message in a webhook payload; returns count."""
        count = 0
        for entry in body.get("entry", []):
            for messaging in entry.get("messaging", []):
                message = messaging.get("message")
                if not message or message.get("is_echo"):
                    continue
                text = message.get("text")
                if text is None:
                    continue
                sender_id = messaging["sender"]["id"]
                self.receive(
                    sender_id,
                    message,
                    text,
                    lambda sender_id=sender_id: MessengerConversation(
                        self, sender_id
                    ),
                )
                count += 1
        return count

    def router(self, prefix: str = "/fb") -> APIRouter:
        """The webhook routes for the Messenger Platform."""
        router = APIRouter(prefix=prefix, tags=["messenger"])

        @router.get("", response_class=PlainTextResponse)
        async def verify(
            mode: str = Query(..., alias="hub.mode"),
            token: str = Query(..., alias="hub.verify_token"),
            challenge: str = Query(..., alias="hub.challenge"),
        ) -> str:
            if mode == "subscribe" and token == self.verify_token:
                logger.info("Messenger webhook verified")
                return challenge
            logger.warning("Messenger webhook verification failed")
            raise HTTPException(status_code=403, detail="verification failed")

        @router.post("")
        async def webhook(request: Request) -> Dict[str, Any]:
            body = await request.json()
            if body.get("object") != "page":
                raise HTTPException(status_code=404, detail="not a page event")
            count = self.handle_webhook(body)
            logger.debug("Messenger webhook handled", extra={"count": count})
            return {"status": "ok", "received": count}

        return router
