# ============================================================================
# Durable Key-Value Storage
# ============================================================================
"""
Opaque durable store used for quiz snapshots and progress records.

Values are JSON-serializable dicts. Every write is awaited by the caller
before control returns to the event loop, so a crash right after a
mutation does not lose it.
"""
from typing import Any, Dict, Optional, Protocol
import copy
import json
import logging

import redis.asyncio as redis

from app.config import Settings, get_settings
from app.core.exceptions import StorageError

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Protocol for durable store implementations"""
    async def get(self, key: str) -> Optional[Dict[str, Any]]: ...
    async def set(self, key: str, value: Dict[str, Any]) -> None: ...
    async def delete(self, key: str) -> None: ...


class RedisStore:
    """Redis-backed store, values kept as JSON strings without expiry"""

    def __init__(self, client: redis.Redis, prefix: str = ""):
        self.client = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            data = await self.client.get(self._key(key))
        except redis.RedisError as e:
            raise StorageError(f"Error reading {key}: {e}") from e
        if data is None:
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Discarding unreadable value stored at {key}")
            return None

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        try:
            await self.client.set(self._key(key), json.dumps(value))
        except redis.RedisError as e:
            raise StorageError(f"Error saving {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(self._key(key))
        except redis.RedisError as e:
            raise StorageError(f"Error removing {key}: {e}") from e

    async def ping(self) -> bool:
        return await self.client.ping()

    async def close(self) -> None:
        await self.client.aclose()


class InMemoryStore:
    """Process-local store for development and tests"""

    def __init__(self):
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        data = self._data.get(key)
        return json.loads(data) if data is not None else None

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        # Stored encoded so callers never share mutable state with the store
        self._data[key] = json.dumps(copy.deepcopy(value))

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list:
        return list(self._data)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._data.clear()


def create_store(settings: Optional[Settings] = None):
    """Build the store selected by STORAGE_BACKEND"""
    settings = settings or get_settings()
    backend = settings.STORAGE_BACKEND.lower()

    if backend == "memory":
        return InMemoryStore()
    if backend == "redis":
        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True
        )
        return RedisStore(client, prefix=settings.STORAGE_KEY_PREFIX)

    raise ValueError(f"Unknown storage backend: {settings.STORAGE_BACKEND}")
