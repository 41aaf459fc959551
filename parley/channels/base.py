"""
Abstract interface for bot-like communication.

Every chat backend provides Conversations (an ongoing exchange with one
user) and routes inbound messages through a Spool, which hands each
message either to a dialogue already waiting for it or to the handler
that starts a new dialogue.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import (
    Awaitable,
    Callable,
    Generic,
    List,
    Optional,
    Protocol,
    TypeVar,
    runtime_checkable,
)

from ..domain import ConversantIdentity

logger = logging.getLogger(__name__)

K = TypeVar("K")
M = TypeVar("M")


@runtime_checkable
class Conversation(Protocol):
    """An ongoing textual interaction with a single user."""

    user: str
    namespace: str

    async def send(self, text: str) -> None:
        """Sends a message in the conversation."""
        ...

    async def recv(self) -> str:
        """Waits for the next message in this conversation."""
        ...


def identity_of(conv: Conversation) -> ConversantIdentity:
    return ConversantIdentity(namespace=conv.namespace, user=conv.user)


ConversationHandler = Callable[[str, Conversation], Awaitable[None]]


class FireOutcome(str, Enum):
    HANDLED = "handled"
    NEW = "new"


@dataclass
class Waiter(Generic[K, M]):
    """A suspended dialogue waiting for the next message under ``key``."""

    key: K
    future: "asyncio.Future[M]"

    def resolve(self, message: M) -> None:
        self.future.set_result(message)


class Spool(Generic[K, M]):
    """
    A repository for dialogues waiting on messages, M, on channels
    identified by keys, K. Waiters under the same key are served in the
    order they registered.
    """

    def __init__(self) -> None:
        self._waiters: List[Waiter[K, M]] = []

    def __len__(self) -> int:
        return len(self._waiters)

    def wait(self, key: K) -> "asyncio.Future[M]":
        """Registers a waiter for the next message on ``key``."""
        future: "asyncio.Future[M]" = (
            asyncio.get_running_loop().create_future()
        )
        self._waiters.append(Waiter(key, future))
        logger.debug("Registered waiter", extra={"key": key})
        return future

    def dispatch(self, key: K, message: M) -> bool:
        """
        Delivers ``message`` to the first waiter registered under ``key``
        and removes it. Returns False if nobody was waiting.
        """
        i = 0
        while i < len(self._waiters):
            waiter = self._waiters[i]
            if waiter.key != key:
                i += 1
                continue
            del self._waiters[i]
            if waiter.future.done():
                # Cancelled by its owner; it no longer wants messages.
                continue
            waiter.resolve(message)
            logger.debug("Dispatched to waiter", extra={"key": key})
            return True
        return False

    async def fire(
        self,
        key: K,
        message: M,
        text: str,
        mk_conversation: Callable[[], Conversation],
        handler: Optional[ConversationHandler],
    ) -> FireOutcome:
        """
        Hands ``message`` to a waiting dialogue, or starts a new one by
        calling ``handler`` with ``text`` and a fresh Conversation.
        """
        if self.dispatch(key, message):
            return FireOutcome.HANDLED

        if handler is None:
            logger.warning(
                "No conversation handler registered; dropping message",
                extra={"key": key},
            )
            return FireOutcome.NEW

        logger.info("Starting new conversation", extra={"key": key})
        await handler(text, mk_conversation())
        return FireOutcome.NEW


class ChatBot(Generic[K, M]):
    """
    Base class for chat backends. Inbound messages are pushed through
    ``receive``; ``on_converse`` is called for new conversations.
    """

    namespace: str = "unknown"

    def __init__(self) -> None:
        self.spool: Spool[K, M] = Spool()
        self.on_converse: Optional[ConversationHandler] = None
        self._tasks: "set[asyncio.Task[FireOutcome]]" = set()

    async def fire(
        self,
        key: K,
        message: M,
        text: str,
        mk_conversation: Callable[[], Conversation],
    ) -> FireOutcome:
        return await self.spool.fire(
            key, message, text, mk_conversation, self.on_converse
        )

    def receive(
        self,
        key: K,
        message: M,
        text: str,
        mk_conversation: Callable[[], Conversation],
    ) -> "asyncio.Task[FireOutcome]":
        """
        Routes an inbound message without blocking the caller, so a new
        dialogue can wait in ``recv()`` while the adapter keeps reading.
        """
        task = asyncio.ensure_future(
            self.fire(key, message, text, mk_conversation)
        )
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: "asyncio.Task[FireOutcome]") -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Conversation ended with an error",
                exc_info=exc,
                extra={"namespace": self.namespace},
            )

    async def drain(self) -> None:
        """Waits for every in-flight conversation task to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancels conversations still waiting for input."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(
            "Chat bot stopped",
            extra={"namespace": self.namespace, "cancelled": len(tasks)},
        )
