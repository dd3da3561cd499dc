"""Tests for authentic reference hash lookup (appraiser.authenticity.reference_hashes)."""

from __future__ import annotations

import json

import pytest

from appraiser.authenticity.reference_hashes import ReferenceHashIndex, reference_prefix
from appraiser.errors import ObjectStoreError
from helpers import InMemoryObjectStore

SCAN_HASH = "f0f0f0f0f0f0f0f0"


def _reference(card_name: str, hash_value: str, **extra) -> bytes:
    return json.dumps({"cardName": card_name, "hash": hash_value, **extra}).encode()


class _BrokenStore(InMemoryObjectStore):
    async def list_keys(self, prefix: str) -> list[str]:
        raise ObjectStoreError("bucket unreachable")


class TestReferencePrefix:
    def test_prefix(self):
        assert reference_prefix("Charizard") == "authentic-samples/Charizard/"

    def test_slashes_are_flattened(self):
        assert reference_prefix(" Porygon/Z ", root="refs/") == "refs/Porygon-Z/"


class TestVisualHashConfidence:
    @pytest.mark.asyncio
    async def test_best_match_wins(self):
        store = InMemoryObjectStore(
            {
                "authentic-samples/Charizard/base.json": _reference("Charizard", "0f0f0f0f0f0f0f0f"),
                "authentic-samples/Charizard/shadowless.json": _reference(
                    "Charizard", SCAN_HASH, variant="shadowless", set="Base Set"
                ),
            }
        )
        index = ReferenceHashIndex(store)
        assert await index.visual_hash_confidence(SCAN_HASH, "Charizard") == 1.0

    @pytest.mark.asyncio
    async def test_only_same_card_compared(self):
        store = InMemoryObjectStore(
            {"authentic-samples/Blastoise/base.json": _reference("Blastoise", SCAN_HASH)}
        )
        index = ReferenceHashIndex(store)
        assert await index.visual_hash_confidence(SCAN_HASH, "Charizard") == 0.5

    @pytest.mark.asyncio
    async def test_unknown_card_name_is_neutral(self):
        index = ReferenceHashIndex(InMemoryObjectStore(), neutral_confidence=0.4)
        assert await index.visual_hash_confidence(SCAN_HASH, None) == 0.4

    @pytest.mark.asyncio
    async def test_store_failure_is_neutral(self):
        index = ReferenceHashIndex(_BrokenStore())
        assert await index.visual_hash_confidence(SCAN_HASH, "Charizard") == 0.5

    @pytest.mark.asyncio
    async def test_malformed_references_skipped(self):
        store = InMemoryObjectStore(
            {
                "authentic-samples/Charizard/a.json": b"{not json",
                "authentic-samples/Charizard/b.json": _reference("Charizard", "xyz"),
                "authentic-samples/Charizard/c.json": _reference("Charizard", "f0f0f0f0f0f0f0f1"),
                "authentic-samples/Charizard/notes.txt": b"ignored",
            }
        )
        index = ReferenceHashIndex(store)

        references = await index.load("Charizard")
        assert [r.hash for r in references] == ["f0f0f0f0f0f0f0f1"]
        assert await index.visual_hash_confidence(SCAN_HASH, "Charizard") == pytest.approx(1 - 1 / 64)
