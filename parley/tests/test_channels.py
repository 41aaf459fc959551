"""
Tests for the chat backends: terminal, web, Messenger and Slack.
"""

import io
import json
from typing import List
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from parley.api.app import create_app
from parley.channels.messenger import GRAPH_SEND_URL, MessengerBot
from parley.channels.slack import SlackBot
from parley.channels.terminal import TerminalBot
from parley.channels.web import WebBot
from parley.dialogue import ParleyBot
from parley.domain import Entity
from parley.repos.mock.settings import MockSettingsRepository
from parley.tests.factories import ScriptedNLU, classification


def greeting_bot() -> ParleyBot:
    nlu = ScriptedNLU(
        {"hello": classification(greetings=Entity(value="true"))}
    )
    return ParleyBot(nlu, MockSettingsRepository())


class TestTerminalBot:
    @pytest.mark.asyncio
    async def test_replies_are_printed_until_eof(self) -> None:
        stdout = io.StringIO()
        bot = TerminalBot(
            user="alice", stdin=io.StringIO("hello\n"), stdout=stdout
        )
        greeting_bot().register(bot)

        await bot.run()

        assert "<<< hi, alice!\n" in stdout.getvalue()
        assert stdout.getvalue().startswith(">>> ")


class TestWebBot:
    def test_post_then_poll(self) -> None:
        web_bot = WebBot()
        greeting_bot().register(web_bot)
        app = create_app(web_bot)

        with TestClient(app) as client:
            response = client.post(
                "/chat/s1/messages", json={"text": "hello", "user": "alice"}
            )
            assert response.status_code == 202

            messages = client.get("/chat/s1/messages").json()["messages"]
            assert messages == ["hi, alice!"]
            # Polling drains the outbox.
            assert client.get("/chat/s1/messages").json() == {"messages": []}

    def test_sessions_are_separate(self) -> None:
        web_bot = WebBot()
        greeting_bot().register(web_bot)

        with TestClient(create_app(web_bot)) as client:
            client.post("/chat/s1/messages", json={"text": "hello"})

            assert client.get("/chat/s2/messages").json()["messages"] == []
            assert client.get("/chat/s1/messages").json()["messages"] == [
                "hi, web-user!"
            ]

    def test_health(self) -> None:
        with TestClient(create_app(WebBot())) as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


def messenger_body(sender: str, text: str) -> dict:
    return {
        "object": "page",
        "entry": [
            {
                "messaging": [
                    {"sender": {"id": sender}, "message": {"text": text}},
                    {"sender": {"id": sender}, "delivery": {"mids": []}},
                ]
            }
        ],
    }


class TestMessengerBot:
    @pytest.mark.asyncio
    async def test_webhook_message_gets_reply_through_send_api(self) -> None:
        sent: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(request)
            return httpx.Response(200, json={"message_id": "m1"})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        bot = MessengerBot("page-token", "verify", http_client=client)
        greeting_bot().register(bot)

        assert bot.handle_webhook(messenger_body("1234", "hello")) == 1
        await bot.drain()

        assert len(sent) == 1
        assert str(sent[0].url).startswith(GRAPH_SEND_URL)
        assert sent[0].url.params["access_token"] == "page-token"
        assert json.loads(sent[0].content) == {
            "recipient": {"id": "1234"},
            "message": {"text": "hi, 1234!"},
        }

    def test_webhook_verification(self) -> None:
        bot = MessengerBot("page-token", "verify")
        app = create_app(WebBot(), bot)

        with TestClient(app) as client:
            ok = client.get(
                "/fb",
                params={
                    "hub.mode": "subscribe",
                    "hub.verify_token": "verify",
                    "hub.challenge": "42",
                },
            )
            bad = client.get(
                "/fb",
                params={
                    "hub.mode": "subscribe",
                    "hub.verify_token": "wrong",
                    "hub.challenge": "42",
                },
            )

        assert ok.status_code == 200
        assert ok.text == "42"
        assert bad.status_code == 403

    def test_non_page_events_are_rejected(self) -> None:
        app = create_app(WebBot(), MessengerBot("page-token", "verify"))

        with TestClient(app) as client:
            response = client.post("/fb", json={"object": "user"})

        assert response.status_code == 404


class TestSlackBot:
    def make_bot(self) -> SlackBot:
        app = MagicMock()
        app.client.users_info = AsyncMock(
            return_value={"user": {"name": "alice"}}
        )
        app.client.chat_postMessage = AsyncMock()
        bot = SlackBot("xoxb-token", "xapp-token", app=app)
        greeting_bot().register(bot)
        return bot

    @pytest.mark.asyncio
    async def test_direct_message_is_answered_in_channel(self) -> None:
        bot = self.make_bot()

        await bot.on_message(
            {
                "channel": "D1",
                "channel_type": "im",
                "user": "U1",
                "text": "hello",
            }
        )
        await bot.drain()

        bot.app.client.chat_postMessage.assert_awaited_once_with(
            channel="D1", text="hi, alice!"
        )

    @pytest.mark.asyncio
    async def test_channel_and_bot_messages_are_ignored(self) -> None:
        bot = self.make_bot()

        await bot.on_message(
            {"channel": "C1", "channel_type": "channel", "text": "hello"}
        )
        await bot.on_message(
            {
                "channel": "D1",
                "channel_type": "im",
                "bot_id": "B1",
                "text": "hello",
            }
        )
        await bot.drain()

        bot.app.client.chat_postMessage.assert_not_awaited()
