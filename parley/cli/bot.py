"""
CLI that runs the bot on the configured chat channels.

    parley-bot --terminal
    parley-bot --config parley.yaml --web --port 8000

Slack is started whenever both Slack tokens are configured.
"""

import asyncio
import logging
import sys
from typing import Any, Awaitable, List, Optional

import click
import uvicorn

from parley.api.app import create_app
from parley.channels.messenger import MessengerBot
from parley.channels.slack import SlackBot
from parley.channels.terminal import TerminalBot
from parley.channels.web import WebBot
from parley.config import ConfigError, ParleyConfig, load_config
from parley.dialogue import ParleyBot
from parley.repos.local.settings import LocalSettingsRepository
from parley.repos.wit.nlu import WitNLURepository
from parley.worker import setup_logging

logger = logging.getLogger(__name__)


async def _run(
    config: ParleyConfig,
    terminal: bool,
    web: bool,
    user: Optional[str],
) -> None:
    assert config.wit_access_token is not None
    settings_repo = LocalSettingsRepository(config.data_path)
    nlu = WitNLURepository(config.wit_access_token)
    parley = ParleyBot(nlu, settings_repo)

    async with settings_repo:
        runners: List[Awaitable[Any]] = []
        slack_bot: Optional[SlackBot] = None

        if terminal:
            terminal_bot = TerminalBot(
                user=user, stdin=sys.stdin, stdout=sys.stdout
            )
            parley.register(terminal_bot)
            runners.append(terminal_bot.run())

        if config.slack_enabled:
            assert config.slack_bot_token and config.slack_app_token
            slack_bot = SlackBot(
                config.slack_bot_token,
                config.slack_app_token,
                status_channel=config.slack_status_channel,
            )
            parley.register(slack_bot)
            await slack_bot.start()

        if web:
            web_bot = WebBot()
            parley.register(web_bot)
            messenger_bot = None
            if config.messenger_enabled:
                assert config.facebook_page_token
                assert config.facebook_verify_token
                messenger_bot = MessengerBot(
                    config.facebook_page_token, config.facebook_verify_token
                )
                parley.register(messenger_bot)
            app = create_app(web_bot, messenger_bot)
            server = uvicorn.Server(
                uvicorn.Config(app, host="0.0.0.0", port=config.port)
            )
            runners.append(server.serve())

        try:
            if runners:
                await asyncio.gather(*runners)
            else:
                # Slack alone runs on the socket-mode connection.
                await asyncio.Event().wait()
        finally:
            if slack_bot is not None:
                await slack_bot.stop()

    logger.info("Bot stopped")


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(),
    default=None,
    help="YAML configuration file.",
)
@click.option("--terminal", is_flag=True, help="Chat over stdin/stdout.")
@click.option("--web", is_flag=True, help="Serve the web and webhook API.")
@click.option("--port", type=int, default=None, help="Port for --web.")
@click.option("--user", default=None, help="User name for --terminal.")
def main(
    config_path: Optional[str],
    terminal: bool,
    web: bool,
    port: Optional[int],
    user: Optional[str],
) -> None:
    """Run the parley chat bot."""
    setup_logging()
    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    if port is not None:
        config = config.model_copy(update={"port": port})
    if not config.wit_access_token:
        raise click.UsageError("WIT_ACCESS_TOKEN is not configured")
    if not (terminal or web or config.slack_enabled):
        raise click.UsageError(
            "Nothing to run: pass --terminal or --web, or configure Slack"
        )

    asyncio.run(_run(config, terminal, web, user))


if __name__ == "__main__":
    main()
