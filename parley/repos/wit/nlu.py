"""
Wit.ai implementation of the NLURepository protocol.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from parley.domain import Classification, Entity
from parley.exceptions import NLUError
from parley.repositories import NLURepository

logger = logging.getLogger(__name__)

WIT_URL = "https://api.wit.ai/message"
WIT_API_VERSION = "20170307"


def _best(values: Any) -> Optional[Dict[str, Any]]:
    """Wit lists candidate values per entity; take the most confident."""
    if not values:
        return None
    if isinstance(values, dict):
        return values
    return max(values, key=lambda v: v.get("confidence", 0.0))


def classification_from_wit(data: Dict[str, Any]) -> Classification:
    """
    Converts a Wit ``/message`` response into a Classification.

    Wit reports the intent as an entity named ``intent``; newer API
    versions also report ``intents`` and ``traits``.
    """
    entities: Dict[str, Entity] = {}
    intent: Optional[str] = None

    for tag, values in (data.get("entities") or {}).items():
        best = _best(values)
        if best is None:
            continue
        # Newer responses key entities as "name:role".
        name = tag.split(":", 1)[0]
        if name == "intent":
            intent = str(best.get("value"))
            continue
        entities[name] = Entity.model_validate(best)

    for trait, values in (data.get("traits") or {}).items():
        best = _best(values)
        if best is not None:
            entities.setdefault(
                trait.removeprefix("wit$"), Entity.model_validate(best)
            )

    if intent is None and data.get("intents"):
        best_intent = _best(data["intents"])
        if best_intent is not None:
            intent = best_intent.get("name")

    return Classification(intent=intent, entities=entities)


class WitNLURepository(NLURepository):
    """Classifies messages with a Wit.ai app."""

    def __init__(
        self,
        access_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
        api_version: str = WIT_API_VERSION,
    ) -> None:
        self.access_token = access_token
        self.api_version = api_version
        self._http_client = http_client

    async def classify(self, text: str) -> Classification:
        client = self._http_client or httpx.AsyncClient(timeout=30.0)
        try:
            response = await client.get(
                WIT_URL,
                params={"q": text, "v": self.api_version},
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Wit request failed", extra={"error": str(e)})
            raise NLUError(f"classifier unavailable: {e}") from e
        finally:
            if self._http_client is None:
                await client.aclose()

        result = classification_from_wit(data)
        logger.debug(
            "Wit parse",
            extra={"intent": result.intent, "entities": sorted(result.entities)},
        )
        return result
