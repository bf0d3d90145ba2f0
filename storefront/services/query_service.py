"""Cached queries over the storefront tables (products, categories, orders).

Each query object checks the shared TTLCache first and only goes to the data
source on a miss. Failures never escape: they are logged and turned into the
`error` field of the returned snapshot, leaving previous data in place.
"""

import logging
from dataclasses import dataclass
from typing import Any

from storefront.core.cache import MISS, RequestCoalescer, TTLCache
from storefront.core.config import settings
from storefront.models.schemas import PagedQueryResult, QueryResult, QueryStatus
from storefront.services.data_source import DataSource, Ordering

logger = logging.getLogger(__name__)

ORDER_SUMMARY_COLUMNS = """
    id,
    order_number,
    status,
    total_amount,
    payment_method,
    created_at,
    order_items (
        id,
        product_name,
        quantity,
        price,
        total_price
    )
"""


@dataclass(frozen=True)
class EntitySpec:
    name: str
    table: str
    ttl_ms: int
    order: Ordering
    columns: str = "*"
    user_scoped: bool = False


def build_entity_specs() -> dict[str, EntitySpec]:
    return {
        "products": EntitySpec(
            name="products",
            table="products",
            ttl_ms=settings.PRODUCTS_CACHE_TTL_MS,
            order=Ordering("created_at", descending=True),
        ),
        "categories": EntitySpec(
            name="categories",
            table="categories",
            ttl_ms=settings.CATEGORIES_CACHE_TTL_MS,
            order=Ordering("name"),
        ),
        "orders": EntitySpec(
            name="orders",
            table="orders",
            ttl_ms=settings.ORDERS_CACHE_TTL_MS,
            order=Ordering("created_at", descending=True),
            columns=ORDER_SUMMARY_COLUMNS,
            user_scoped=True,
        ),
    }


def orders_cache_key(user_id: str, offset: int) -> str:
    return f"orders_{user_id}_{offset}"


def is_orders_cache_key(key: str, user_id: str) -> bool:
    """True only for this user's page keys, so "u" never matches pages of "u_x"."""
    prefix = f"orders_{user_id}_"
    return key.startswith(prefix) and key[len(prefix):].isdigit()


class QueryClient:
    """Owns the cache, the data source and the in-flight request map.

    Query objects built from the same client share one cache.
    """

    def __init__(
        self,
        source: DataSource,
        cache: TTLCache | None = None,
        coalescer: RequestCoalescer | None = None,
        specs: dict[str, EntitySpec] | None = None,
    ) -> None:
        self.source = source
        self.cache = cache if cache is not None else TTLCache()
        self.coalescer = coalescer or RequestCoalescer()
        self.specs = specs or build_entity_specs()

    def spec(self, name: str) -> EntitySpec:
        return self.specs[name]

    async def load(
        self,
        spec: EntitySpec,
        *,
        key: str | None = None,
        fresh: bool = False,
        filters: dict[str, Any] | None = None,
        offset: int | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """Return rows for spec, from cache unless fresh is set.

        Concurrent misses for the same key share one fetch. A fresh load
        always hits the source. Only successful results are cached.
        """
        key = key or spec.name

        async def fetch_and_store() -> list[dict]:
            rows = await self.source.fetch(
                spec.table,
                columns=spec.columns,
                filters=filters,
                order=spec.order,
                offset=offset,
                limit=limit,
            )
            self.cache.set(key, rows, spec.ttl_ms)
            logger.debug(f"Cached {len(rows)} rows under {key} for {spec.ttl_ms}ms")
            return rows

        if fresh:
            return await fetch_and_store()

        cached = self.cache.get(key)
        if cached is not MISS:
            logger.debug(f"Cache hit: {key}")
            return cached

        logger.debug(f"Cache miss: {key}")
        return await self.coalescer.run(key, fetch_and_store)

    def products(self) -> "EntityQuery":
        return EntityQuery(self, self.spec("products"))

    def categories(self) -> "EntityQuery":
        return EntityQuery(self, self.spec("categories"))

    def orders(self, user_id: str | None, page_size: int | None = None) -> "OrdersQuery":
        return OrdersQuery(self, self.spec("orders"), user_id, page_size or settings.ORDERS_PAGE_SIZE)


class EntityQuery:
    """Whole-table query for a non-paginated entity."""

    def __init__(self, client: QueryClient, spec: EntitySpec) -> None:
        self._client = client
        self.spec = spec
        self.data: list[dict] = []
        self.error: str | None = None
        self.status = QueryStatus.IDLE

    @property
    def loading(self) -> bool:
        return self.status == QueryStatus.LOADING

    async def fetch(self) -> QueryResult:
        return await self._run(fresh=False)

    async def refetch(self) -> QueryResult:
        return await self._run(fresh=True)

    async def _run(self, fresh: bool) -> QueryResult:
        self.status = QueryStatus.LOADING
        self.error = None
        try:
            self.data = await self._client.load(self.spec, fresh=fresh)
            self.status = QueryStatus.READY
        except Exception as e:
            logger.error(f"Failed to fetch {self.spec.name}: {e}")
            self.error = str(e) or f"Failed to fetch {self.spec.name}"
            self.status = QueryStatus.ERROR
        return self.snapshot()

    def snapshot(self) -> QueryResult:
        return QueryResult(data=self.data, loading=self.loading, error=self.error, status=self.status)


class OrdersQuery:
    """A user's orders, newest first, accumulated page by page.

    has_more is a heuristic: a full page means there may be more, a short page
    means the list is exhausted. When the remaining count is an exact multiple
    of page_size the last full page still reports has_more=True and the next
    load_more returns an empty page.
    """

    def __init__(self, client: QueryClient, spec: EntitySpec, user_id: str | None, page_size: int = 10) -> None:
        self._client = client
        self.spec = spec
        self.user_id = user_id
        self.page_size = page_size
        self.data: list[dict] = []
        self.error: str | None = None
        self.has_more = True
        self.status = QueryStatus.IDLE

    @property
    def loading(self) -> bool:
        return self.status == QueryStatus.LOADING

    async def load(self) -> PagedQueryResult:
        """Load the first page, replacing whatever was accumulated."""
        return await self._fetch_page(0, reset=True, fresh=False)

    async def load_more(self) -> PagedQueryResult:
        if self.loading or not self.has_more:
            return self.snapshot()
        return await self._fetch_page(len(self.data), reset=False, fresh=False)

    async def refetch(self) -> PagedQueryResult:
        """Re-read the first page from the source and drop the accumulated list.

        The list is only replaced once the new page arrives, so a failed
        refetch keeps what was shown before.
        """
        return await self._fetch_page(0, reset=True, fresh=True)

    async def _fetch_page(self, offset: int, reset: bool, fresh: bool) -> PagedQueryResult:
        if not self.user_id:
            logger.debug("No user_id, skipping orders fetch")
            return self.snapshot()

        self.status = QueryStatus.LOADING
        self.error = None
        try:
            page = await self._client.load(
                self.spec,
                key=orders_cache_key(self.user_id, offset),
                fresh=fresh,
                filters={"user_id": self.user_id},
                offset=offset,
                limit=self.page_size,
            )
        except Exception as e:
            logger.error(f"Failed to fetch orders for {self.user_id} at offset {offset}: {e}")
            self.error = str(e) or "Failed to fetch orders"
            self.status = QueryStatus.ERROR
            return self.snapshot()

        self.has_more = len(page) == self.page_size
        self.data = list(page) if reset else self.data + list(page)
        self.status = QueryStatus.READY
        return self.snapshot()

    def snapshot(self) -> PagedQueryResult:
        return PagedQueryResult(
            data=self.data,
            loading=self.loading,
            error=self.error,
            status=self.status,
            has_more=self.has_more,
        )
