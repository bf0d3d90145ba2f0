"""Cache invalidation and best-effort warm-up."""
import asyncio
import logging

from storefront.services.query_service import QueryClient, is_orders_cache_key

logger = logging.getLogger(__name__)

DEFAULT_PRELOAD = ("products", "categories")


class CacheAdmin:
    def __init__(self, client: QueryClient) -> None:
        self._client = client

    @property
    def cache(self):
        return self._client.cache

    def invalidate(self, key: str | None = None) -> None:
        """Drop one entry, or everything when no key is given."""
        if key:
            self.cache.invalidate(key)
            logger.info(f"Cache invalidated: {key}")
        else:
            self.clear()

    def clear(self) -> None:
        self.cache.clear()
        logger.info("Cache cleared")

    def invalidate_user_orders(self, user_id: str) -> int:
        removed = self.cache.invalidate_where(lambda key: is_orders_cache_key(key, user_id))
        logger.info(f"Dropped {removed} cached order pages for {user_id}")
        return removed

    async def preload(self, entity_types: list[str] | tuple[str, ...] = DEFAULT_PRELOAD) -> None:
        """Fetch several entity types in parallel and cache each that succeeds.

        Never raises. A failing branch is logged and the others still land in
        the cache.
        """
        specs = []
        for name in entity_types:
            spec = self._client.specs.get(name)
            if spec is None:
                logger.warning(f"Preload skipped unknown entity type: {name}")
                continue
            if spec.user_scoped:
                logger.warning(f"Preload skipped user-scoped entity type: {name}")
                continue
            specs.append(spec)

        if not specs:
            return

        results = await asyncio.gather(
            *[self._client.load(spec, fresh=True) for spec in specs],
            return_exceptions=True,
        )

        for spec, result in zip(specs, results):
            if isinstance(result, BaseException):
                logger.warning(f"Preload of {spec.name} failed: {result}")
            else:
                logger.info(f"Preloaded {len(result)} {spec.name}")
