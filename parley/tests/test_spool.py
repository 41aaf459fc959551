"""
Tests for the message spool and the ChatBot routing built on it.
"""

import asyncio
from typing import List

import pytest

from parley.channels.base import ChatBot, FireOutcome, Spool
from parley.tests.factories import ScriptedConversation


class TestSpool:
    @pytest.mark.asyncio
    async def test_waiters_on_a_key_are_served_in_order(self) -> None:
        spool: Spool[str, str] = Spool()
        first = spool.wait("chan")
        second = spool.wait("chan")

        assert spool.dispatch("chan", "one")
        assert spool.dispatch("chan", "two")

        assert await first == "one"
        assert await second == "two"
        assert len(spool) == 0

    @pytest.mark.asyncio
    async def test_dispatch_only_matches_its_key(self) -> None:
        spool: Spool[str, str] = Spool()
        other = spool.wait("other")

        assert not spool.dispatch("chan", "hello")
        assert not other.done()
        assert len(spool) == 1

    @pytest.mark.asyncio
    async def test_cancelled_waiters_are_skipped(self) -> None:
        spool: Spool[str, str] = Spool()
        abandoned = spool.wait("chan")
        live = spool.wait("chan")
        abandoned.cancel()

        assert spool.dispatch("chan", "hello")
        assert await live == "hello"

    @pytest.mark.asyncio
    async def test_fire_starts_new_conversation_when_nobody_waits(
        self,
    ) -> None:
        spool: Spool[str, str] = Spool()
        started: List[str] = []

        async def handler(text, conv) -> None:
            started.append(text)

        outcome = await spool.fire(
            "chan", "hi", "hi", lambda: ScriptedConversation(), handler
        )

        assert outcome is FireOutcome.NEW
        assert started == ["hi"]

    @pytest.mark.asyncio
    async def test_waiting_dialogue_takes_message_before_handler(
        self,
    ) -> None:
        spool: Spool[str, str] = Spool()
        started: List[str] = []

        async def handler(text, conv) -> None:
            started.append(text)

        waiter = spool.wait("chan")
        first = await spool.fire(
            "chan", "answer", "answer", ScriptedConversation, handler
        )
        second = await spool.fire(
            "chan", "new", "new", ScriptedConversation, handler
        )

        assert first is FireOutcome.HANDLED
        assert await waiter == "answer"
        # The second message finds no waiter and starts exactly one
        # conversation.
        assert second is FireOutcome.NEW
        assert started == ["new"]

    @pytest.mark.asyncio
    async def test_two_waiters_then_a_new_conversation(self) -> None:
        spool: Spool[str, str] = Spool()
        started: List[str] = []

        async def handler(text, conv) -> None:
            started.append(text)

        w1 = spool.wait("chan")
        w2 = spool.wait("chan")

        outcomes = [
            await spool.fire("chan", m, m, ScriptedConversation, handler)
            for m in ("m1", "m2", "m3")
        ]

        assert outcomes == [
            FireOutcome.HANDLED,
            FireOutcome.HANDLED,
            FireOutcome.NEW,
        ]
        assert await w1 == "m1"
        assert await w2 == "m2"
        assert started == ["m3"]
        assert len(spool) == 0


class EchoConversation:
    def __init__(self, bot: "EchoBot", key: str) -> None:
        self.bot = bot
        self.key = key
        self.user = key
        self.namespace = "test"

    async def send(self, text: str) -> None:
        self.bot.sent.append(text)

    async def recv(self) -> str:
        return await self.bot.spool.wait(self.key)


class EchoBot(ChatBot[str, str]):
    namespace = "test"

    def __init__(self) -> None:
        super().__init__()
        self.sent: List[str] = []

    def push(self, key: str, text: str) -> "asyncio.Task[FireOutcome]":
        return self.receive(key, text, text, lambda: EchoConversation(self, key))


class TestChatBot:
    @pytest.mark.asyncio
    async def test_dialogue_waiting_for_input_does_not_block_reader(
        self,
    ) -> None:
        bot = EchoBot()

        async def ask_name(text, conv) -> None:
            await conv.send("name?")
            name = await conv.recv()
            await conv.send(f"hello {name}")

        bot.on_converse = ask_name
        bot.push("k", "start")
        await asyncio.sleep(0)
        answer = bot.push("k", "bob")
        await answer
        await bot.drain()

        assert answer.result() is FireOutcome.HANDLED
        assert bot.sent == ["name?", "hello bob"]

    @pytest.mark.asyncio
    async def test_shutdown_cancels_waiting_dialogues(self) -> None:
        bot = EchoBot()

        async def forever(text, conv) -> None:
            await conv.recv()

        bot.on_converse = forever
        task = bot.push("k", "start")
        await asyncio.sleep(0)

        await bot.shutdown()

        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_message_without_handler_is_dropped(self) -> None:
        bot = EchoBot()

        outcome = await bot.push("k", "hello")

        assert outcome is FireOutcome.NEW
        assert bot.sent == []
