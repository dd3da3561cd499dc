"""Tests for the local object store (appraiser.storage)."""

from __future__ import annotations

import pytest

from appraiser.errors import ObjectStoreError, ValidationError
from appraiser.storage import FileObjectStore


@pytest.fixture
def store(tmp_path) -> FileObjectStore:
    (tmp_path / "uploads" / "user-1").mkdir(parents=True)
    (tmp_path / "uploads" / "user-1" / "front.png").write_bytes(b"front")
    (tmp_path / "authentic-samples" / "Charizard").mkdir(parents=True)
    (tmp_path / "authentic-samples" / "Charizard" / "base.json").write_text("{}")
    return FileObjectStore(tmp_path)


class TestFileObjectStore:
    @pytest.mark.asyncio
    async def test_get_bytes(self, store):
        assert await store.get_bytes("uploads/user-1/front.png") == b"front"

    @pytest.mark.asyncio
    async def test_missing_key(self, store):
        with pytest.raises(ObjectStoreError):
            await store.get_bytes("uploads/user-1/back.png")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["../secrets.txt", "/etc/passwd", ""])
    async def test_rejects_keys_outside_root(self, store, key):
        with pytest.raises(ValidationError):
            await store.get_bytes(key)

    @pytest.mark.asyncio
    async def test_list_keys_by_prefix(self, store):
        assert await store.list_keys("authentic-samples/Charizard/") == ["authentic-samples/Charizard/base.json"]
        assert await store.list_keys("authentic-samples/Blastoise/") == []

    @pytest.mark.asyncio
    async def test_list_missing_root(self, tmp_path):
        assert await FileObjectStore(tmp_path / "nowhere").list_keys("") == []
