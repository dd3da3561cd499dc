"""
TCG Appraiser — Authentic reference hashes

Reference pHashes of known-authentic cards live in object storage under

    {REFERENCE_HASH_PREFIX}/{card name}/{anything}.json

each holding {"cardName": ..., "hash": ..., "variant"?: ..., "set"?: ...}.
The visual hash confidence of a scanned card is its best similarity to
any reference for the same card name.
"""

from __future__ import annotations

import json
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from appraiser.authenticity.phash import similarity
from appraiser.config import settings
from appraiser.errors import ObjectStoreError
from appraiser.storage import ObjectStore

logger = structlog.get_logger(__name__)


class ReferenceHash(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    card_name: str
    hash: str = Field(..., min_length=16, max_length=16, pattern=r"^[0-9a-fA-F]+$")
    variant: Optional[str] = None
    set: Optional[str] = None


def reference_prefix(card_name: str, root: Optional[str] = None) -> str:
    safe_name = card_name.strip().replace("/", "-")
    return f"{(root or settings.REFERENCE_HASH_PREFIX).rstrip('/')}/{safe_name}/"


class ReferenceHashIndex:
    def __init__(
        self,
        store: ObjectStore,
        prefix: Optional[str] = None,
        neutral_confidence: Optional[float] = None,
    ) -> None:
        self._store = store
        self._prefix = prefix or settings.REFERENCE_HASH_PREFIX
        self._neutral = (
            settings.NEUTRAL_VISUAL_HASH_CONFIDENCE if neutral_confidence is None else neutral_confidence
        )

    async def load(self, card_name: str) -> list[ReferenceHash]:
        """All readable references for `card_name`. Malformed files are skipped."""
        keys = [k for k in await self._store.list_keys(reference_prefix(card_name, self._prefix)) if k.endswith(".json")]
        references: list[ReferenceHash] = []
        for key in keys:
            try:
                raw = await self._store.get_bytes(key)
                references.append(ReferenceHash.model_validate(json.loads(raw)))
            except (ObjectStoreError, ValueError, PydanticValidationError) as e:
                logger.warning("reference_hash_unreadable", key=key, error=str(e))
        return references

    async def visual_hash_confidence(self, image_hash: str, card_name: Optional[str]) -> float:
        """
        Best similarity between `image_hash` and the references for the card.

        Returns the neutral confidence when the card name is unknown, no
        reference exists, or the reference store cannot be read.
        """
        if not card_name:
            logger.info("visual_hash_neutral", reason="card name unresolved")
            return self._neutral

        try:
            references = await self.load(card_name)
        except ObjectStoreError as e:
            logger.warning("visual_hash_neutral", reason="reference store unavailable", error=str(e))
            return self._neutral

        if not references:
            logger.info("visual_hash_neutral", reason="no references", card_name=card_name)
            return self._neutral

        best = max(similarity(image_hash, ref.hash.lower()) for ref in references)
        logger.info(
            "visual_hash_compared",
            card_name=card_name,
            references=len(references),
            best_similarity=round(best, 4),
        )
        return best
