"""
Schema cache module for structured_scraper.

Stores generated schemas and pattern sets under caller-chosen keys so they
can be reused across runs without regeneration. The cache never expires or
validates entries; callers invalidate by deleting a key or choosing a new one.
"""

import asyncio
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from .errors import CacheIOError, ConfigurationError
from .models import SchemaDefinition, format_validation_error
from .patterns import PatternSet
from .utils import create_hash, sanitize_filename

logger = logging.getLogger(__name__)

Payload = Union[SchemaDefinition, PatternSet, Dict[str, Any]]


class CacheEntry(BaseModel):
    """A cached payload with its key and creation time."""
    key: str
    kind: Literal["schema", "patterns", "raw"] = "raw"
    payload: Dict[str, Any]
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def as_schema(self) -> SchemaDefinition:
        """Rebuild the cached SchemaDefinition."""
        return SchemaDefinition.from_dict(self.payload)

    def as_pattern_set(self) -> PatternSet:
        """Rebuild the cached PatternSet."""
        return PatternSet.from_dict(self.payload)


def build_entry(key: str, payload: Payload) -> CacheEntry:
    if isinstance(payload, SchemaDefinition):
        return CacheEntry(key=key, kind="schema", payload=payload.to_dict())
    if isinstance(payload, PatternSet):
        return CacheEntry(key=key, kind="patterns", payload=payload.to_dict())
    if isinstance(payload, dict):
        return CacheEntry(key=key, kind="raw", payload=payload)
    raise TypeError(f"Unsupported cache payload: {type(payload).__name__}")


class SchemaCache(ABC):
    """Abstract base class for schema cache backends."""

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        """
        Look up a cached entry.

        Args:
            key: Cache key

        Returns:
            The entry, or None if the key is not cached

        Raises:
            CacheIOError: If the backing store cannot be read
        """
        pass

    @abstractmethod
    async def put(self, key: str, payload: Payload) -> CacheEntry:
        """
        Store a payload under a key, replacing any previous entry.

        Raises:
            CacheIOError: If the backing store cannot be written
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a key. Returns True if something was removed."""
        pass

    @abstractmethod
    async def keys(self) -> List[str]:
        """List cached keys."""
        pass

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None


class MemorySchemaCache(SchemaCache):
    """In-process cache. Entries are stored serialized so callers never share state."""

    def __init__(self):
        self._entries: Dict[str, str] = {}
        self._lock = threading.Lock()

    async def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            raw = self._entries.get(key)
        if raw is None:
            return None
        return CacheEntry.model_validate_json(raw)

    async def put(self, key: str, payload: Payload) -> CacheEntry:
        entry = build_entry(key, payload)
        with self._lock:
            self._entries[key] = entry.model_dump_json()
        logger.debug(f"Cached {entry.kind} in memory: {key}")
        return entry

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    async def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._entries)


class FileSchemaCache(SchemaCache):
    """Cache that keeps one JSON file per key in a directory."""

    def __init__(self, cache_dir: Union[str, Path]):
        """
        Initialize FileSchemaCache.

        Args:
            cache_dir: Directory holding the cache files

        Raises:
            CacheIOError: If the directory cannot be created
        """
        self.cache_dir = Path(cache_dir)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheIOError(f"Cannot create cache directory {self.cache_dir}: {e}") from e

    def _build_file_path(self, key: str) -> Path:
        """
        Build file path for a key.

        The sanitized key keeps files readable; the hash suffix keeps keys
        that sanitize to the same name apart.
        """
        filename = f"{sanitize_filename(key, max_length=80)}_{create_hash(key)[:8]}.json"
        return self.cache_dir / filename

    async def get(self, key: str) -> Optional[CacheEntry]:
        return await asyncio.to_thread(self._read, key)

    def _read(self, key: str) -> Optional[CacheEntry]:
        file_path = self._build_file_path(key)
        try:
            raw = file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise CacheIOError(f"Failed to read cache entry {file_path}: {e}", key=key) from e

        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError as e:
            raise CacheIOError(f"Corrupt cache entry {file_path}: {format_validation_error(e)}", key=key) from e

    async def put(self, key: str, payload: Payload) -> CacheEntry:
        entry = build_entry(key, payload)
        await asyncio.to_thread(self._write, key, entry)
        return entry

    def _write(self, key: str, entry: CacheEntry) -> None:
        file_path = self._build_file_path(key)
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.cache_dir, suffix=".tmp", delete=False
            ) as f:
                tmp_name = f.name
                f.write(entry.model_dump_json(indent=2))
            # atomic on the same filesystem; concurrent writers: last one wins
            os.replace(tmp_name, file_path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise CacheIOError(f"Failed to write cache entry {file_path}: {e}", key=key) from e

        logger.debug(f"Cached {entry.kind} to: {file_path}")

    async def delete(self, key: str) -> bool:
        return await asyncio.to_thread(self._delete, key)

    def _delete(self, key: str) -> bool:
        file_path = self._build_file_path(key)
        try:
            file_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CacheIOError(f"Failed to delete cache entry {file_path}: {e}", key=key) from e
        logger.info(f"Deleted cache entry: {key}")
        return True

    async def keys(self) -> List[str]:
        return await asyncio.to_thread(self._keys)

    def _keys(self) -> List[str]:
        keys = []
        for file_path in sorted(self.cache_dir.glob("*.json")):
            try:
                data = json.loads(file_path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping unreadable cache file {file_path}: {e}")
                continue
            if isinstance(data, dict) and "key" in data:
                keys.append(data["key"])
        return sorted(keys)


def create_schema_cache(strategy: str, cache_dir: Optional[Union[str, Path]] = None) -> SchemaCache:
    """
    Factory function to create a schema cache.

    Args:
        strategy: Backend name ("file" or "memory")
        cache_dir: Directory for the file backend

    Returns:
        Configured schema cache

    Raises:
        ConfigurationError: If strategy is not supported
    """
    if strategy == "file":
        if cache_dir is None:
            raise ConfigurationError("The file schema cache requires a cache directory")
        return FileSchemaCache(cache_dir)
    elif strategy == "memory":
        return MemorySchemaCache()
    else:
        raise ConfigurationError(f"Unsupported cache strategy: {strategy}")
