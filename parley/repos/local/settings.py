"""
Local file-based implementation of the SettingsRepository protocol.
Stores every user record in one JSON document.
"""

import json
import logging
import os
from pathlib import Path
from types import TracebackType
from typing import Dict, List, Optional, Type

from pydantic import ValidationError

from parley.domain import ConversantIdentity, Settings, UserRecord
from parley.exceptions import SettingsError
from parley.repositories import SettingsRepository

logger = logging.getLogger(__name__)


class LocalSettingsRepository(SettingsRepository):
    """
    User settings stored as a JSON file. The file is read on ``open`` and
    rewritten on every ``put``; writes from concurrent conversations for
    the same user are last-write-wins.
    """

    def __init__(self, path: str) -> None:
        self.path = Path(path).expanduser()
        self._records: Optional[Dict[str, UserRecord]] = None

    async def __aenter__(self) -> "LocalSettingsRepository":
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()

    @property
    def records(self) -> Dict[str, UserRecord]:
        if self._records is None:
            raise SettingsError("Settings repository is not open")
        return self._records

    async def open(self) -> None:
        if not self.path.exists():
            logger.info(f"Settings file not found, starting empty: {self.path}")
            self._records = {}
            return

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            users = [UserRecord.model_validate(u) for u in data.get("users", [])]
        except (IOError, json.JSONDecodeError, ValidationError) as e:
            raise SettingsError(
                f"Could not load settings from {self.path}: {e}"
            ) from e

        self._records = {u.identity.key: u for u in users}
        logger.info(f"Loaded {len(users)} user records from {self.path}")

    async def close(self) -> None:
        if self._records is None:
            return
        self._save()
        self._records = None
        logger.debug(f"Closed settings repository {self.path}")

    def _save(self) -> None:
        data = {
            "users": [
                r.model_dump(mode="json") for r in self.records.values()
            ]
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(tmp_path, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except IOError as e:
            raise SettingsError(
                f"Could not save settings to {self.path}: {e}"
            ) from e

    async def get(self, identity: ConversantIdentity) -> Optional[Settings]:
        record = self.records.get(identity.key)
        return record.settings if record else None

    async def put(
        self, identity: ConversantIdentity, settings: Settings
    ) -> None:
        self.records[identity.key] = UserRecord(
            identity=identity, settings=settings
        )
        self._save()
        logger.debug("Saved user settings", extra={"user": identity.key})

    async def list_users(self) -> List[ConversantIdentity]:
        return [r.identity for r in self.records.values()]
