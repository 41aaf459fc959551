"""Chat backends the bot can talk through."""

from .base import (
    ChatBot,
    Conversation,
    ConversationHandler,
    FireOutcome,
    Spool,
    Waiter,
    identity_of,
)

__all__ = [
    "ChatBot",
    "Conversation",
    "ConversationHandler",
    "FireOutcome",
    "Spool",
    "Waiter",
    "identity_of",
]
