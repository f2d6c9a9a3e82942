"""
rewardhound/storage.py

Key-value storage backends for persisted state (the referral ledger).

Two backends:
1. MemoryBackend - Volatile, for tests and ephemeral runs
2. FileBackend - Local disk, survives restarts

Values are opaque bytes; callers serialize.
"""

import hashlib
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Get a value by key."""
        pass

    @abstractmethod
    async def put(self, key: str, value: bytes) -> bool:
        """Store a value. Returns False if the write did not land."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a value."""
        pass

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> List[str]:
        """List keys with optional prefix filter."""
        pass


class MemoryBackend(StorageBackend):
    """In-memory storage backend."""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    async def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def put(self, key: str, value: bytes) -> bool:
        self._data[key] = value
        return True

    async def delete(self, key: str) -> bool:
        if key in self._data:
            del self._data[key]
            return True
        return False

    async def list_keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]


class FileBackend(StorageBackend):
    """
    Local file storage backend.

    One file per key, named by hash, plus an index file mapping keys to
    files. Writes go to a temp file and are moved into place, so a value
    is either fully old or fully new.
    """

    INDEX_FILE = "index.json"

    def __init__(self, storage_dir: Path):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self._index_file = self.storage_dir / self.INDEX_FILE
        self._index: Dict[str, str] = self._load_index()

    def _load_index(self) -> Dict[str, str]:
        """Load key index from disk."""
        if self._index_file.exists():
            try:
                with open(self._index_file, "r") as f:
                    return json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Failed to load storage index: {e}")
        return {}

    def _save_index(self) -> None:
        self._atomic_write(self._index_file, json.dumps(self._index).encode())

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)

    def _key_to_path(self, key: str) -> Path:
        """Convert key to file path."""
        # Hash avoids filesystem issues with ':' and other characters
        hash_name = hashlib.sha256(key.encode()).hexdigest()[:32]
        return self.storage_dir / f"{hash_name}.dat"

    async def get(self, key: str) -> Optional[bytes]:
        if key not in self._index:
            return None

        path = self._key_to_path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            logger.warning(f"Index lists {key} but its file is missing")
            return None

    async def put(self, key: str, value: bytes) -> bool:
        path = self._key_to_path(key)
        is_new = key not in self._index
        try:
            self._atomic_write(path, value)
            if is_new:
                self._index[key] = path.name
                self._save_index()
            return True
        except OSError as e:
            if is_new:
                self._index.pop(key, None)
            logger.error(f"Failed to write {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        if key not in self._index:
            return False

        path = self._key_to_path(key)
        try:
            if path.exists():
                path.unlink()
            del self._index[key]
            self._save_index()
            return True
        except OSError as e:
            logger.error(f"Failed to delete {key}: {e}")
            return False

    async def list_keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._index if key.startswith(prefix)]
