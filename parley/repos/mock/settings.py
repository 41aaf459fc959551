"""
In-memory settings repository for demos and tests.
"""

import logging
from typing import Dict, List, Optional

from parley.domain import ConversantIdentity, Settings, UserRecord
from parley.repositories import SettingsRepository

logger = logging.getLogger(__name__)


class MockSettingsRepository(SettingsRepository):
    """Keeps user records in a dict keyed by conversant key."""

    def __init__(self, records: Optional[List[UserRecord]] = None) -> None:
        self._records: Dict[str, UserRecord] = {
            r.identity.key: r for r in records or []
        }

    async def open(self) -> None:
        logger.debug("MockSettingsRepository opened")

    async def close(self) -> None:
        logger.debug("MockSettingsRepository closed")

    async def get(self, identity: ConversantIdentity) -> Optional[Settings]:
        record = self._records.get(identity.key)
        return record.settings if record else None

    async def put(
        self, identity: ConversantIdentity, settings: Settings
    ) -> None:
        self._records[identity.key] = UserRecord(
            identity=identity, settings=settings
        )

    async def list_users(self) -> List[ConversantIdentity]:
        return [r.identity for r in self._records.values()]
