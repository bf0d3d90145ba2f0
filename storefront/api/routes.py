import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request

from storefront.core.config import settings
from storefront.core.perf import PerformanceMonitor
from storefront.models.schemas import (
    CancelOrderRequest,
    CreateOrderRequest,
    InvalidateRequest,
    OrderStatusUpdate,
    PagedQueryResult,
    PreloadRequest,
    QueryResult,
)
from storefront.services.cache_admin import CacheAdmin
from storefront.services.data_source import DataSourceError
from storefront.services.order_service import OrderError, OrderNotFoundError, OrderService
from storefront.services.query_service import QueryClient

router = APIRouter(prefix=settings.API_V1_STR, tags=["storefront"])
logger = logging.getLogger(__name__)


def get_query_client(request: Request) -> QueryClient:
    return request.app.state.query_client


def get_cache_admin(request: Request) -> CacheAdmin:
    return request.app.state.cache_admin


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def get_monitor(request: Request) -> PerformanceMonitor:
    return request.app.state.monitor


@router.get("/products", response_model=QueryResult)
async def list_products(refresh: bool = False, client: QueryClient = Depends(get_query_client)):
    query = client.products()
    return await (query.refetch() if refresh else query.fetch())


@router.get("/categories", response_model=QueryResult)
async def list_categories(refresh: bool = False, client: QueryClient = Depends(get_query_client)):
    query = client.categories()
    return await (query.refetch() if refresh else query.fetch())


@router.get("/orders", response_model=PagedQueryResult)
async def list_orders(
    user_id: Optional[str] = None,
    pages: int = Query(1, ge=1, le=50),
    page_size: Optional[int] = Query(None, ge=1, le=100),
    refresh: bool = False,
    client: QueryClient = Depends(get_query_client),
):
    query = client.orders(user_id, page_size)
    result = await (query.refetch() if refresh else query.load())
    for _ in range(pages - 1):
        if result.error or not result.has_more:
            break
        result = await query.load_more()
    return result


@router.post("/orders", status_code=201)
async def create_order(body: CreateOrderRequest, orders: OrderService = Depends(get_order_service)):
    items = [item.model_dump() for item in body.items]
    try:
        return await orders.create_order(body.user_id, body.order.model_dump(), items)
    except OrderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DataSourceError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/orders/{order_id}")
async def get_order(order_id: str, user_id: str, orders: OrderService = Depends(get_order_service)):
    try:
        order = await orders.get_order(user_id, order_id)
    except DataSourceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    orders: OrderService = Depends(get_order_service),
):
    try:
        return await orders.cancel_order(body.user_id, order_id, body.reason)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OrderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DataSourceError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/orders/{order_id}/status")
async def update_order_status(
    order_id: str,
    body: OrderStatusUpdate,
    orders: OrderService = Depends(get_order_service),
):
    try:
        return await orders.update_order_status(body.user_id, order_id, body.status, body.notes)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OrderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DataSourceError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/cache/invalidate")
async def invalidate_cache(body: InvalidateRequest, admin: CacheAdmin = Depends(get_cache_admin)):
    admin.invalidate(body.key)
    return {"status": "ok", "key": body.key}


@router.post("/cache/preload", status_code=202)
async def preload_cache(
    body: PreloadRequest,
    background_tasks: BackgroundTasks,
    admin: CacheAdmin = Depends(get_cache_admin),
):
    background_tasks.add_task(admin.preload, body.entity_types)
    return {"status": "accepted", "entity_types": body.entity_types}


@router.get("/perf/report")
async def perf_report(monitor: PerformanceMonitor = Depends(get_monitor)):
    report = monitor.generate_report()
    if report is None:
        return {"enabled": False}
    return {"enabled": True, **report, "recommendations": monitor.recommendations()}
