import json
import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.exceptions import StoreConflictError, StoreUnavailableError  # noqa: E402
from app.store import InMemoryStore, RedisStore, build_store  # noqa: E402


class FakePipeline:
    """Stands in for a redis.asyncio transaction pipeline."""

    def __init__(self, values: dict, conflicts: int = 0):
        self.values = values
        self.conflicts = conflicts
        self.executions = 0
        self.pending = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def watch(self, key):
        return True

    async def get(self, key):
        return self.values.get(key)

    def multi(self):
        self.pending = None

    def set(self, key, value, ex=None):
        self.pending = (key, value, ex)
        return self

    async def execute(self):
        self.executions += 1
        if self.conflicts:
            self.conflicts -= 1
            raise WatchError("watched key changed")
        key, value, _ex = self.pending
        self.values[key] = value
        return [True]


class ManualClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_in_memory_round_trip_and_delete():
    store = InMemoryStore()

    await store.put_json("key", {"text": "陳大文"})
    assert await store.get_json("key") == {"text": "陳大文"}

    await store.delete("key")
    await store.delete("key")
    assert await store.get_json("key") is None


@pytest.mark.asyncio
async def test_in_memory_values_are_copies():
    store = InMemoryStore()
    value = {"ids": ["a"]}

    await store.put_json("key", value)
    value["ids"].append("b")

    assert await store.get_json("key") == {"ids": ["a"]}


@pytest.mark.asyncio
async def test_in_memory_ttl_expires_keys():
    clock = ManualClock()
    store = InMemoryStore(clock=clock)

    await store.put_json("short", 1, ttl_seconds=10)
    await store.put_json("forever", 2)
    clock.now += 10

    assert await store.get_json("short") is None
    assert await store.get_json("forever") == 2
    assert store.keys() == ["forever"]


@pytest.mark.asyncio
async def test_in_memory_update_json_sees_current_value():
    store = InMemoryStore()

    first = await store.update_json("counter", lambda current: (current or 0) + 1)
    second = await store.update_json("counter", lambda current: (current or 0) + 1)

    assert (first, second) == (1, 2)


@pytest.mark.asyncio
async def test_redis_store_decodes_json():
    store = RedisStore("redis://localhost:6379/0")
    store.client = MagicMock()
    store.client.get = AsyncMock(return_value=json.dumps(["1", "2"]))

    assert await store.get_json("backup_index") == ["1", "2"]


@pytest.mark.asyncio
async def test_redis_store_writes_ttl():
    store = RedisStore("redis://localhost:6379/0")
    store.client = MagicMock()
    store.client.set = AsyncMock(return_value=True)

    await store.put_json("login_lock:1.2.3.4", {"locked": True}, ttl_seconds=60)

    store.client.set.assert_awaited_once_with("login_lock:1.2.3.4", '{"locked": true}', ex=60)


@pytest.mark.asyncio
async def test_redis_errors_become_store_unavailable():
    store = RedisStore("redis://localhost:6379/0")
    store.client = MagicMock()
    store.client.get = AsyncMock(side_effect=RedisConnectionError("connection refused"))

    with pytest.raises(StoreUnavailableError):
        await store.get_json("schedule_data")


@pytest.mark.asyncio
async def test_redis_update_retries_after_watch_conflict():
    values = {"backup_index": json.dumps(["old"])}
    pipeline = FakePipeline(values, conflicts=2)
    store = RedisStore("redis://localhost:6379/0")
    store.client = MagicMock()
    store.client.pipeline.return_value = pipeline

    updated = await store.update_json("backup_index", lambda current: ["new"] + (current or []))

    assert updated == ["new", "old"]
    assert json.loads(values["backup_index"]) == ["new", "old"]
    assert pipeline.executions == 3


@pytest.mark.asyncio
async def test_redis_update_gives_up_after_repeated_conflicts():
    pipeline = FakePipeline({}, conflicts=100)
    store = RedisStore("redis://localhost:6379/0", max_update_attempts=3)
    store.client = MagicMock()
    store.client.pipeline.return_value = pipeline

    with pytest.raises(StoreConflictError):
        await store.update_json("backup_index", lambda current: ["id"])
    assert pipeline.executions == 3


def test_build_store_without_url_is_in_memory():
    assert isinstance(build_store(""), InMemoryStore)
    assert isinstance(build_store("redis://localhost:6379/0"), RedisStore)
