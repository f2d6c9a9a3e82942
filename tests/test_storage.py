"""
rewardhound/tests/test_storage.py

Tests for ledger storage backends.
"""

import json
from unittest.mock import patch

import pytest

from rewardhound.storage import FileBackend, MemoryBackend


class TestMemoryBackend:
    """Test MemoryBackend class."""

    @pytest.fixture
    def backend(self):
        return MemoryBackend()

    @pytest.mark.asyncio
    async def test_put_and_get(self, backend):
        assert await backend.put("referrer:a", b"record") is True
        assert await backend.get("referrer:a") == b"record"

    @pytest.mark.asyncio
    async def test_get_missing(self, backend):
        assert await backend.get("referrer:missing") is None

    @pytest.mark.asyncio
    async def test_delete(self, backend):
        await backend.put("referrer:a", b"record")
        assert await backend.delete("referrer:a") is True
        assert await backend.delete("referrer:a") is False

    @pytest.mark.asyncio
    async def test_list_keys_by_prefix(self, backend):
        await backend.put("referrer:a", b"1")
        await backend.put("referrer:b", b"2")
        await backend.put("other:c", b"3")

        assert sorted(await backend.list_keys("referrer:")) == ["referrer:a", "referrer:b"]
        assert len(await backend.list_keys()) == 3


class TestFileBackend:
    """Test FileBackend class."""

    @pytest.fixture
    def backend(self, tmp_path):
        return FileBackend(tmp_path / "ledger")

    @pytest.mark.asyncio
    async def test_put_and_get(self, backend):
        await backend.put("referrer:EVM:1:0xab", b"record")
        assert await backend.get("referrer:EVM:1:0xab") == b"record"

    @pytest.mark.asyncio
    async def test_overwrite(self, backend):
        await backend.put("referrer:a", b"old")
        await backend.put("referrer:a", b"new")
        assert await backend.get("referrer:a") == b"new"

    @pytest.mark.asyncio
    async def test_persistence(self, backend):
        await backend.put("referrer:a", b"record")

        reopened = FileBackend(backend.storage_dir)

        assert await reopened.get("referrer:a") == b"record"
        assert await reopened.list_keys("referrer:") == ["referrer:a"]

    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, backend):
        await backend.put("referrer:a", b"record")
        assert not list(backend.storage_dir.glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_failed_write_leaves_no_key(self, backend):
        with patch.object(FileBackend, "_atomic_write", side_effect=OSError("disk full")):
            assert await backend.put("referrer:a", b"record") is False

        assert await backend.get("referrer:a") is None
        assert await backend.list_keys() == []

    @pytest.mark.asyncio
    async def test_failed_overwrite_keeps_old_value(self, backend):
        await backend.put("referrer:a", b"old")

        with patch.object(FileBackend, "_atomic_write", side_effect=OSError("disk full")):
            assert await backend.put("referrer:a", b"new") is False

        assert await backend.get("referrer:a") == b"old"

    @pytest.mark.asyncio
    async def test_delete(self, backend):
        await backend.put("referrer:a", b"record")

        assert await backend.delete("referrer:a") is True
        assert await FileBackend(backend.storage_dir).get("referrer:a") is None

    def test_corrupt_index_starts_empty(self, tmp_path):
        (tmp_path / FileBackend.INDEX_FILE).write_text("{not json")

        backend = FileBackend(tmp_path)

        assert backend._index == {}

