import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from storefront.core.cache import RequestCoalescer, TTLCache
from storefront.core.config import settings
from storefront.core.database import get_supabase
from storefront.core.perf import PerformanceMonitor
from storefront.services.cache_admin import CacheAdmin
from storefront.services.data_source import SupabaseDataSource
from storefront.services.order_service import OrderService
from storefront.services.query_service import QueryClient

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

from storefront.api import routes


def init_services(app: FastAPI, source=None) -> None:
    """Wire one cache, one data source and the services that share them onto app.state."""
    monitor = PerformanceMonitor()
    if source is None:
        source = SupabaseDataSource(get_supabase(), monitor=monitor)

    client = QueryClient(source, cache=TTLCache(), coalescer=RequestCoalescer())
    admin = CacheAdmin(client)

    app.state.monitor = monitor
    app.state.query_client = client
    app.state.cache_admin = admin
    app.state.order_service = OrderService(client, admin)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not hasattr(app.state, "query_client"):
        init_services(app)
    logger.info("Storefront data services ready")
    yield
    app.state.query_client.cache.clear()


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
app.include_router(routes.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
