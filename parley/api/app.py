"""
FastAPI application hosting the bot's HTTP channels.

- ``/health`` for liveness checks
- ``/chat`` for the browser chat channel
- ``/fb`` for the Messenger webhook, when Messenger is configured
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from parley.channels.messenger import MessengerBot
from parley.channels.web import WebBot

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


class HealthCheckResponse(BaseModel):
    """Response for health check endpoint."""

    status: str
    version: str
    timestamp: datetime


def create_app(
    web_bot: WebBot, messenger_bot: Optional[MessengerBot] = None
) -> FastAPI:
    app = FastAPI(
        title="Parley",
        description="Chat bot that schedules meetings between users",
        version=VERSION,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthCheckResponse)
    async def health_check() -> HealthCheckResponse:
        """Health check endpoint."""
        return HealthCheckResponse(
            status="healthy",
            version=VERSION,
            timestamp=datetime.now(timezone.utc),
        )

    app.include_router(web_bot.router())
    if messenger_bot is not None:
        app.include_router(messenger_bot.router())

    logger.info(
        "API application created",
        extra={"messenger_enabled": messenger_bot is not None},
    )
    return app
