"""
Local conversations in the terminal (for testing).
"""

import asyncio
import getpass
import logging
import sys
from typing import Optional, TextIO

from .base import ChatBot

logger = logging.getLogger(__name__)

TERMINAL_KEY = "terminal"


class TerminalConversation:
    """A conversation with the person at the terminal."""

    namespace = "terminal"

    def __init__(self, bot: "TerminalBot", user: str) -> None:
        self.bot = bot
        self.user = user

    async def send(self, text: str) -> None:
        self.bot.print(text)

    async def recv(self) -> str:
        self.bot.prompt()
        return await self.bot.spool.wait(TERMINAL_KEY)


class TerminalBot(ChatBot[str, str]):
    """A debugging bot that talks over stdin/stdout."""

    namespace = "terminal"

    def __init__(
        self,
        user: Optional[str] = None,
        stdin: TextIO = sys.stdin,
        stdout: TextIO = sys.stdout,
    ) -> None:
        super().__init__()
        self.user = user or getpass.getuser()
        self.stdin = stdin
        self.stdout = stdout

    def prompt(self) -> None:
        self.stdout.write(">>> ")
        self.stdout.flush()

    def print(self, message: str) -> None:
        """Prints a line of dialogue to the console."""
        self.stdout.write("<<< " + message + "\n")
        self.stdout.flush()

    async def run(self) -> None:
        """Reads lines until EOF and dispatches each one."""
        loop = asyncio.get_running_loop()
        self.prompt()
        while True:
            line = await loop.run_in_executor(None, self.stdin.readline)
            if not line:
                logger.info("Terminal input closed")
                break
            text = line.strip()
            task = self.receive(
                TERMINAL_KEY,
                text,
                text,
                lambda: TerminalConversation(self, self.user),
            )
            # Let the message reach its waiter or start its dialogue
            # before reading the next line.
            await asyncio.sleep(0)
            if task.done():
                self.prompt()
        await self.shutdown()
