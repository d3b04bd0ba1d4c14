"""Tests for the document stores and where-clause matching."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from timetiles.core.config import Settings
from timetiles.core.store import (
    MemoryDataStore,
    RedisDataStore,
    create_data_store,
    matches_where,
    parse_timestamp,
    to_timestamp,
)


class TestMatchesWhere:
    doc = {
        "stage": "failed",
        "retry_attempts": 2,
        "error_log": {"last_error": "timeout"},
        "next_retry_at": None,
    }

    def test_empty_where_matches(self):
        assert matches_where(self.doc, None)
        assert matches_where(self.doc, {})

    def test_literal_equality(self):
        assert matches_where(self.doc, {"stage": "failed"})
        assert not matches_where(self.doc, {"stage": "completed"})

    def test_dotted_path(self):
        assert matches_where(self.doc, {"error_log.last_error": {"equals": "timeout"}})

    def test_comparisons(self):
        assert matches_where(self.doc, {"retry_attempts": {"less_than": 3}})
        assert matches_where(self.doc, {"retry_attempts": {"greater_than_equal": 2}})
        assert not matches_where(self.doc, {"retry_attempts": {"greater_than": 2}})

    def test_comparison_with_null_never_matches(self):
        assert not matches_where(self.doc, {"next_retry_at": {"less_than": "2030"}})

    def test_exists(self):
        assert matches_where(self.doc, {"stage": {"exists": True}})
        assert matches_where(self.doc, {"next_retry_at": {"exists": False}})
        assert matches_where(self.doc, {"missing": {"exists": False}})

    def test_in_and_not_in(self):
        assert matches_where(self.doc, {"stage": {"in": ["failed", "completed"]}})
        assert matches_where(self.doc, {"stage": {"not_in": ["completed"]}})

    def test_and_or(self):
        where = {
            "or": [{"stage": "completed"}, {"retry_attempts": {"less_than": 5}}],
            "and": [{"stage": {"not_equals": "completed"}}],
        }
        assert matches_where(self.doc, where)

    def test_datetime_operands_compare_as_timestamps(self):
        doc = {"last_used": to_timestamp(datetime(2024, 1, 1, tzinfo=timezone.utc))}
        cutoff = datetime(2024, 2, 1, tzinfo=timezone.utc)
        assert matches_where(doc, {"last_used": {"less_than": cutoff}})


class TestTimestamps:
    def test_naive_datetimes_are_treated_as_utc(self):
        assert to_timestamp(datetime(2024, 1, 1)) == "2024-01-01T00:00:00.000000+00:00"

    def test_round_trip(self):
        value = datetime(2024, 3, 5, 10, 30, tzinfo=timezone.utc)
        assert parse_timestamp(to_timestamp(value)) == value

    def test_parse_accepts_z_suffix(self):
        assert parse_timestamp("2024-01-15T00:00:00.000Z") == datetime(
            2024, 1, 15, tzinfo=timezone.utc
        )

    def test_parse_invalid_returns_none(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None


class TestMemoryDataStore:
    @pytest.mark.asyncio
    async def test_create_assigns_id_and_timestamps(self, memory_store: MemoryDataStore):
        doc = await memory_store.create("things", {"name": "a"})

        assert doc["id"]
        assert doc["created_at"] == doc["updated_at"]
        assert await memory_store.find_by_id("things", doc["id"]) == doc

    @pytest.mark.asyncio
    async def test_documents_are_copied(self, memory_store: MemoryDataStore):
        data = {"nested": {"value": 1}}
        doc = await memory_store.create("things", data)
        data["nested"]["value"] = 2
        doc["nested"]["value"] = 3

        stored = await memory_store.find_by_id("things", doc["id"])
        assert stored["nested"]["value"] == 1

    @pytest.mark.asyncio
    async def test_update_merges_shallowly(self, memory_store: MemoryDataStore):
        doc = await memory_store.create("things", {"a": 1, "b": {"x": 1}})
        updated = await memory_store.update("things", doc["id"], {"b": {"y": 2}})

        assert updated["a"] == 1
        assert updated["b"] == {"y": 2}
        assert updated["id"] == doc["id"]

    @pytest.mark.asyncio
    async def test_update_missing_returns_none(self, memory_store: MemoryDataStore):
        assert await memory_store.update("things", "nope", {"a": 1}) is None

    @pytest.mark.asyncio
    async def test_find_respects_where_and_limit(self, memory_store: MemoryDataStore):
        for i in range(5):
            await memory_store.create("things", {"n": i})

        found = await memory_store.find("things", {"n": {"greater_than": 1}}, limit=2)
        assert [doc["n"] for doc in found] == [2, 3]
        assert await memory_store.count("things") == 5

    @pytest.mark.asyncio
    async def test_delete_by_where(self, memory_store: MemoryDataStore):
        for i in range(4):
            await memory_store.create("things", {"n": i})

        deleted = await memory_store.delete("things", {"n": {"less_than": 2}})
        assert deleted == 2
        assert await memory_store.count("things") == 2
        assert await memory_store.delete_by_id("things", "missing") is False


@pytest.fixture
def redis_client() -> MagicMock:
    """Async Redis double backed by a dict of hashes."""
    hashes: dict[str, dict[str, str]] = {}

    async def hgetall(key):
        return dict(hashes.get(key, {}))

    async def hget(key, field):
        return hashes.get(key, {}).get(field)

    async def hset(key, field, value):
        hashes.setdefault(key, {})[field] = value
        return 1

    async def hdel(key, field):
        return 1 if hashes.get(key, {}).pop(field, None) is not None else 0

    client = MagicMock()
    client.hgetall = AsyncMock(side_effect=hgetall)
    client.hget = AsyncMock(side_effect=hget)
    client.hset = AsyncMock(side_effect=hset)
    client.hdel = AsyncMock(side_effect=hdel)
    client.aclose = AsyncMock()
    client.hashes = hashes
    return client


class TestRedisDataStore:
    @pytest.mark.asyncio
    async def test_documents_live_in_prefixed_hash(self, redis_client):
        store = RedisDataStore(redis_client, prefix="tt")
        doc = await store.create("import-jobs", {"stage": "failed"})

        raw = redis_client.hashes["tt:import-jobs"][doc["id"]]
        assert json.loads(raw)["stage"] == "failed"

    @pytest.mark.asyncio
    async def test_find_update_delete(self, redis_client):
        store = RedisDataStore(redis_client, prefix="tt")
        first = await store.create("jobs", {"n": 1})
        await store.create("jobs", {"n": 2})

        updated = await store.update("jobs", first["id"], {"n": 10})
        assert updated["n"] == 10
        assert [d["n"] for d in await store.find("jobs", {"n": {"greater_than": 5}})] == [10]

        assert await store.delete_by_id("jobs", first["id"]) is True
        assert await store.count("jobs") == 1
        assert await store.update("jobs", "missing", {"n": 1}) is None

    @pytest.mark.asyncio
    async def test_close_closes_client(self, redis_client):
        store = RedisDataStore(redis_client)
        await store.close()
        redis_client.aclose.assert_awaited_once()


def test_create_data_store_defaults_to_memory():
    store = create_data_store(Settings(_env_file=None, DATA_STORE_BACKEND="memory"))
    assert isinstance(store, MemoryDataStore)


def test_create_data_store_builds_redis_store():
    config = Settings(
        _env_file=None, DATA_STORE_BACKEND="redis", DATA_STORE_PREFIX="custom"
    )
    store = create_data_store(config)
    assert isinstance(store, RedisDataStore)
    assert store.prefix == "custom"
