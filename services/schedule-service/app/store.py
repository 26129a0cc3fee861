"""
Key-value storage for schedule data.

Values are JSON documents. ``RedisStore`` talks to Redis through
``redis.asyncio``; ``InMemoryStore`` keeps everything in process and backs
local runs and tests.
"""

import json
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from .exceptions import StoreConflictError, StoreUnavailableError
from .logging_config import get_logger

logger = get_logger("store")

SCHEDULE_KEY = "schedule_data"
BACKUP_INDEX_KEY = "backup_index"


def backup_key(backup_id: str) -> str:
    return f"backup:{backup_id}"


def login_attempts_key(client_ip: str) -> str:
    return f"login_attempts:{client_ip}"


def login_lock_key(client_ip: str) -> str:
    return f"login_lock:{client_ip}"


Mutator = Callable[[Optional[Any]], Any]


class KeyValueStore(ABC):
    @abstractmethod
    async def get_json(self, key: str) -> Optional[Any]:
        """Return the decoded value stored under ``key`` or None."""

    @abstractmethod
    async def put_json(self, key: str, value: Any, *, ttl_seconds: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def update_json(self, key: str, mutate: Mutator, *, ttl_seconds: Optional[int] = None) -> Any:
        """Atomically replace the value under ``key`` with ``mutate(current)``.

        Returns the value written.
        """

    async def close(self) -> None:
        return None


class RedisStore(KeyValueStore):
    def __init__(self, url: str, *, max_update_attempts: int = 10):
        self.url = url
        self.max_update_attempts = max_update_attempts
        self.client = redis.from_url(url, decode_responses=True)

    async def get_json(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(key)
        except RedisError as exc:
            raise StoreUnavailableError(f"GET {key} failed: {exc}") from exc
        return json.loads(raw) if raw is not None else None

    async def put_json(self, key: str, value: Any, *, ttl_seconds: Optional[int] = None) -> None:
        try:
            await self.client.set(key, json.dumps(value, ensure_ascii=False), ex=ttl_seconds)
        except RedisError as exc:
            raise StoreUnavailableError(f"SET {key} failed: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except RedisError as exc:
            raise StoreUnavailableError(f"DEL {key} failed: {exc}") from exc

    async def update_json(self, key: str, mutate: Mutator, *, ttl_seconds: Optional[int] = None) -> Any:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                for attempt in range(1, self.max_update_attempts + 1):
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        updated = mutate(json.loads(raw) if raw is not None else None)
                        pipe.multi()
                        pipe.set(key, json.dumps(updated, ensure_ascii=False), ex=ttl_seconds)
                        await pipe.execute()
                        return updated
                    except WatchError:
                        logger.debug(f"Concurrent write on {key}, retrying (attempt {attempt})")
        except RedisError as exc:
            raise StoreUnavailableError(f"update of {key} failed: {exc}") from exc
        raise StoreConflictError(f"update of {key} lost {self.max_update_attempts} races in a row")

    async def close(self) -> None:
        await self.client.aclose()


class InMemoryStore(KeyValueStore):
    """Process-local store with per-key expiry.

    ``update_json`` runs without awaiting between read and write, so it is
    atomic within a single event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _read(self, key: str) -> Optional[Any]:
        entry = self._data.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return json.loads(raw)

    def _write(self, key: str, value: Any, ttl_seconds: Optional[int]) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (json.dumps(value, ensure_ascii=False), expires_at)

    async def get_json(self, key: str) -> Optional[Any]:
        return self._read(key)

    async def put_json(self, key: str, value: Any, *, ttl_seconds: Optional[int] = None) -> None:
        self._write(key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def update_json(self, key: str, mutate: Mutator, *, ttl_seconds: Optional[int] = None) -> Any:
        updated = mutate(self._read(key))
        self._write(key, updated, ttl_seconds)
        return updated

    def keys(self) -> list[str]:
        return [key for key in list(self._data) if self._read(key) is not None]


def build_store(redis_url: str) -> KeyValueStore:
    if redis_url:
        logger.info("Using Redis key-value store")
        return RedisStore(redis_url)
    logger.warning("REDIS_URL not set, schedule data is kept in process memory only")
    return InMemoryStore()
