"""Tests for cache invalidation and best-effort preload."""

import pytest

from storefront.core.cache import MISS, TTLCache
from storefront.services.cache_admin import CacheAdmin
from storefront.services.query_service import QueryClient, orders_cache_key
from tests.fakes import make_orders


@pytest.fixture
def client(source, clock):
    return QueryClient(source, cache=TTLCache(clock=clock))


@pytest.fixture
def admin(client):
    return CacheAdmin(client)


class TestInvalidate:
    def test_single_key(self, admin, client):
        client.cache.set("products", [1], 60_000)
        client.cache.set("categories", [2], 60_000)

        admin.invalidate("products")

        assert client.cache.get("products") is MISS
        assert client.cache.get("categories") == [2]

    def test_no_key_clears_everything(self, admin, client):
        client.cache.set("products", [1], 60_000)
        client.cache.set("categories", [2], 60_000)

        admin.invalidate()

        assert len(client.cache) == 0

    def test_absent_key_is_noop(self, admin, client):
        client.cache.set("products", [1], 60_000)
        admin.invalidate("orders_nobody_0")
        assert client.cache.get("products") == [1]

    def test_clear(self, admin, client):
        client.cache.set("orders_u1_0", [], 60_000)
        admin.clear()
        assert len(client.cache) == 0

    @pytest.mark.asyncio
    async def test_invalidate_user_orders(self, admin, client):
        query = client.orders("u1", page_size=10)
        await query.load_more()
        await query.load_more()
        await client.orders("u2", page_size=10).load()

        assert admin.invalidate_user_orders("u1") == 2
        assert client.cache.get(orders_cache_key("u1", 0)) is MISS
        assert client.cache.get(orders_cache_key("u2", 0)) is not MISS

    @pytest.mark.asyncio
    async def test_user_orders_do_not_match_similar_user_id(self, admin, client, source):
        source.tables["orders"] += make_orders("u", 2) + make_orders("u_x", 3)
        await client.orders("u", page_size=10).load()
        await client.orders("u_x", page_size=10).load()

        assert admin.invalidate_user_orders("u") == 1
        assert client.cache.get(orders_cache_key("u", 0)) is MISS
        assert len(client.cache.get(orders_cache_key("u_x", 0))) == 3

    @pytest.mark.asyncio
    async def test_invalidated_key_is_refetched(self, admin, client, source):
        await client.products().fetch()
        admin.invalidate("products")
        await client.products().fetch()
        assert len(source.calls_for("products")) == 2


class TestPreload:
    @pytest.mark.asyncio
    async def test_warms_products_and_categories(self, admin, client, source):
        await admin.preload()

        assert len(client.cache.get("products")) == 3
        assert len(client.cache.get("categories")) == 2

        await client.products().fetch()
        await client.categories().fetch()
        assert len(source.calls) == 2

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_successes(self, admin, client, source):
        source.fail("categories", "categories offline")

        result = await admin.preload(["products", "categories"])

        assert result is None
        assert len(client.cache.get("products")) == 3
        assert client.cache.get("categories") is MISS

    @pytest.mark.asyncio
    async def test_total_failure_does_not_raise(self, admin, client, source):
        source.fail("products")
        source.fail("categories")

        await admin.preload(["products", "categories"])

        assert len(client.cache) == 0

    @pytest.mark.asyncio
    async def test_skips_unknown_and_user_scoped(self, admin, client, source):
        await admin.preload(["wishlist", "orders", "products"])

        assert [c["table"] for c in source.calls] == ["products"]
        assert client.cache.keys() == ["products"]

    @pytest.mark.asyncio
    async def test_nothing_to_preload(self, admin, source):
        await admin.preload([])
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_preload_overwrites_stale_entry(self, admin, client, source):
        client.cache.set("products", ["old"], 60_000)

        await admin.preload(["products"])

        assert len(client.cache.get("products")) == 3
