"""
Runtime configuration for the bot.

Settings come from an optional YAML file, then environment variables
override whatever the file provides.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .exceptions import ParleyError

logger = logging.getLogger(__name__)

# Environment variable -> config field
ENV_OVERRIDES = {
    "WIT_ACCESS_TOKEN": "wit_access_token",
    "SLACK_BOT_TOKEN": "slack_bot_token",
    "SLACK_APP_TOKEN": "slack_app_token",
    "SLACK_STATUS_CHANNEL": "slack_status_channel",
    "FACEBOOK_PAGE_TOKEN": "facebook_page_token",
    "FACEBOOK_VERIFY_TOKEN": "facebook_verify_token",
    "TEMPORAL_ADDRESS": "temporal_address",
    "PARLEY_DATA_PATH": "data_path",
    "WEB_URL": "web_url",
    "PORT": "port",
}


class ConfigError(ParleyError):
    """The configuration file could not be read or is invalid."""


class ParleyConfig(BaseModel):
    wit_access_token: Optional[str] = None
    slack_bot_token: Optional[str] = None
    slack_app_token: Optional[str] = None
    slack_status_channel: Optional[str] = None
    facebook_page_token: Optional[str] = None
    facebook_verify_token: Optional[str] = None
    temporal_address: str = "localhost:7233"
    data_path: str = Field(
        "~/.parley/users.json", description="Where user settings are stored"
    )
    web_url: str = "http://localhost:8000"
    port: int = 8000

    @property
    def slack_enabled(self) -> bool:
        return bool(self.slack_bot_token and self.slack_app_token)

    @property
    def messenger_enabled(self) -> bool:
        return bool(self.facebook_page_token and self.facebook_verify_token)


def load_config(
    path: Optional[str] = None, environ: Optional[Dict[str, str]] = None
) -> ParleyConfig:
    """
    Builds the configuration from ``path`` (if given) and the
    environment.

    Raises:
        ConfigError: the file is missing, not a YAML mapping, or has
            invalid values
    """
    environ = os.environ if environ is None else environ
    data: Dict[str, Any] = {}

    if path is not None:
        config_path = Path(path).expanduser()
        try:
            with open(config_path, "r") as f:
                loaded = yaml.safe_load(f)
        except (IOError, yaml.YAMLError) as e:
            raise ConfigError(f"Could not read {config_path}: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(
                f"Configuration file must contain a YAML dictionary: "
                f"{config_path}"
            )
        data.update(loaded or {})
        logger.debug(f"Loaded configuration file {config_path}")

    for env_name, field in ENV_OVERRIDES.items():
        if environ.get(env_name):
            data[field] = environ[env_name]

    try:
        return ParleyConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
