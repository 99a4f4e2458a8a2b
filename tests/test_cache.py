import asyncio
import json

import pytest

from structured_scraper.cache import (
    CacheEntry,
    FileSchemaCache,
    MemorySchemaCache,
    build_entry,
    create_schema_cache,
)
from structured_scraper.errors import CacheIOError, ConfigurationError
from structured_scraper.models import SchemaDefinition
from structured_scraper.patterns import BuiltInPattern, PatternSet


@pytest.fixture
def product_schema(product_schema_dict):
    return SchemaDefinition.from_dict(product_schema_dict)


@pytest.fixture(params=["file", "memory"])
def cache(request, tmp_path):
    return create_schema_cache(request.param, tmp_path / "cache")


class TestSchemaCacheBackends:
    """Behaviour shared by every cache backend."""

    @pytest.mark.asyncio
    async def test_miss(self, cache):
        assert await cache.get("unknown") is None
        assert not await cache.exists("unknown")

    @pytest.mark.asyncio
    async def test_schema_round_trip(self, cache, product_schema):
        await cache.put("products-v1", product_schema)

        entry = await cache.get("products-v1")
        assert entry.kind == "schema"
        assert entry.key == "products-v1"
        assert entry.as_schema() == product_schema

    @pytest.mark.asyncio
    async def test_pattern_set_round_trip(self, cache):
        pattern_set = PatternSet(BuiltInPattern.EMAIL, custom={"Sku": r"SKU-\d+"})
        await cache.put("contacts", pattern_set)

        entry = await cache.get("contacts")
        assert entry.kind == "patterns"
        assert entry.as_pattern_set() == pattern_set

    @pytest.mark.asyncio
    async def test_put_replaces(self, cache):
        await cache.put("k", {"version": 1})
        await cache.put("k", {"version": 2})
        assert (await cache.get("k")).payload == {"version": 2}

    @pytest.mark.asyncio
    async def test_delete_and_keys(self, cache):
        await cache.put("b", {"n": 1})
        await cache.put("a", {"n": 2})
        assert await cache.keys() == ["a", "b"]

        assert await cache.delete("a") is True
        assert await cache.delete("a") is False
        assert await cache.keys() == ["b"]

    @pytest.mark.asyncio
    async def test_returned_entries_are_independent(self, cache):
        await cache.put("k", {"items": [1]})
        entry = await cache.get("k")
        entry.payload["items"].append(2)
        assert (await cache.get("k")).payload == {"items": [1]}


class TestFileSchemaCache:
    """File backend specifics."""

    @pytest.mark.asyncio
    async def test_entries_survive_new_instance(self, tmp_path, product_schema):
        await FileSchemaCache(tmp_path).put("products-v1", product_schema)
        entry = await FileSchemaCache(tmp_path).get("products-v1")
        assert entry.as_schema() == product_schema

    @pytest.mark.asyncio
    async def test_keys_that_sanitize_alike_stay_apart(self, tmp_path):
        cache = FileSchemaCache(tmp_path)
        await cache.put("shop/a", {"n": 1})
        await cache.put("shop_a", {"n": 2})

        assert (await cache.get("shop/a")).payload == {"n": 1}
        assert (await cache.get("shop_a")).payload == {"n": 2}
        assert len(list(tmp_path.glob("*.json"))) == 2

    @pytest.mark.asyncio
    async def test_file_is_readable_json(self, tmp_path, product_schema):
        cache = FileSchemaCache(tmp_path)
        await cache.put("products-v1", product_schema)

        data = json.loads(cache._build_file_path("products-v1").read_text(encoding="utf-8"))
        assert data["key"] == "products-v1"
        assert data["payload"]["baseSelector"] == "div.product"

    @pytest.mark.asyncio
    async def test_corrupt_entry(self, tmp_path):
        cache = FileSchemaCache(tmp_path)
        cache._build_file_path("broken").write_text("{not json", encoding="utf-8")

        with pytest.raises(CacheIOError) as exc_info:
            await cache.get("broken")
        assert exc_info.value.key == "broken"

    @pytest.mark.asyncio
    async def test_undecodable_entry(self, tmp_path):
        cache = FileSchemaCache(tmp_path)
        cache._build_file_path("k").write_bytes(b'{"key": "k", "payload": {"x": "\xff\xfe"}}')

        with pytest.raises(CacheIOError) as exc_info:
            await cache.get("k")
        assert exc_info.value.key == "k"
        assert await cache.keys() == []

    @pytest.mark.asyncio
    async def test_unwritable_directory(self, tmp_path):
        cache = FileSchemaCache(tmp_path / "cache")
        (tmp_path / "cache").rmdir()
        (tmp_path / "cache").write_text("not a directory", encoding="utf-8")

        with pytest.raises(CacheIOError):
            await cache.put("k", {"n": 1})

    @pytest.mark.asyncio
    async def test_file_access_runs_in_worker_threads(self, tmp_path, monkeypatch):
        calls = []
        run_in_thread = asyncio.to_thread

        async def recording_to_thread(func, *args, **kwargs):
            calls.append(func.__name__)
            return await run_in_thread(func, *args, **kwargs)

        monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)

        cache = FileSchemaCache(tmp_path)
        await cache.put("k", {"n": 1})
        await cache.get("k")
        await cache.keys()
        await cache.delete("k")

        assert calls == ["_write", "_read", "_keys", "_delete"]

    @pytest.mark.asyncio
    async def test_keys_skip_unreadable_files(self, tmp_path):
        cache = FileSchemaCache(tmp_path)
        await cache.put("good", {"n": 1})
        (tmp_path / "stray.json").write_text("garbage", encoding="utf-8")
        assert await cache.keys() == ["good"]


class TestCacheFactory:
    """create_schema_cache() and entry building."""

    def test_memory(self):
        assert isinstance(create_schema_cache("memory"), MemorySchemaCache)

    def test_file_requires_directory(self):
        with pytest.raises(ConfigurationError):
            create_schema_cache("file")

    def test_unknown_strategy(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Unsupported"):
            create_schema_cache("redis", tmp_path)

    def test_build_entry_rejects_unknown_payload(self):
        with pytest.raises(TypeError):
            build_entry("k", ["not", "supported"])

    def test_raw_entry_is_not_a_schema(self):
        entry = CacheEntry(key="k", payload={"unexpected": True})
        with pytest.raises(ConfigurationError):
            entry.as_schema()
