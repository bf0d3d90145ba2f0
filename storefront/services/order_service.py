"""Order placement, detail lookup and status changes. Mutations evict the user's cached order pages."""

import logging
import random
from datetime import datetime, timezone
from typing import get_args

from storefront.core.cache import MISS
from storefront.models.schemas import OrderStatus, PaymentMethod
from storefront.services.cache_admin import CacheAdmin
from storefront.services.data_source import DataSourceError
from storefront.services.query_service import QueryClient, is_orders_cache_key

logger = logging.getLogger(__name__)

ORDER_DETAIL_COLUMNS = "*, order_items (*), order_status_history (*)"
ORDER_STATUSES = frozenset(get_args(OrderStatus))
PAYMENT_METHODS = frozenset(get_args(PaymentMethod))
ORDER_NUMBER_ATTEMPTS = 3

# payment method -> (order status, payment status) on creation
INITIAL_STATUS = {
    "upi": ("pending_payment_verification", "pending"),
    "cod": ("confirmed", "pending"),
}


class OrderError(Exception):
    """Caller asked for something that cannot be done to this order."""


class OrderNotFoundError(OrderError):
    pass


def format_order_number(now: datetime, rand: int) -> str:
    """YYYYMMDD-<last 6 digits of the ms timestamp>-<3-digit random>."""
    millis = str(int(now.timestamp() * 1000))[-6:]
    return f"{now:%Y%m%d}-{millis}-{rand:03d}"


class OrderService:
    def __init__(self, client: QueryClient, admin: CacheAdmin) -> None:
        self._client = client
        self._admin = admin

    def _find_cached(self, user_id: str, order_id: str) -> dict | None:
        cache = self._client.cache
        for key in cache.keys():
            if not is_orders_cache_key(key, user_id):
                continue
            page = cache.get(key)
            if page is MISS:
                continue
            for order in page:
                if order.get("id") == order_id and order.get("user_id") == user_id:
                    return order
        return None

    async def generate_order_number(self) -> str:
        now = datetime.now(timezone.utc)
        order_number = format_order_number(now, random.randint(0, 999))
        for _ in range(ORDER_NUMBER_ATTEMPTS):
            try:
                existing = await self._client.source.fetch_one(
                    "orders", columns="id", filters={"order_number": order_number}
                )
            except DataSourceError as e:
                logger.warning(f"Order number check failed, using {order_number}: {e}")
                break
            if existing is None:
                break
            logger.warning(f"Order number {order_number} already taken, retrying")
            order_number = format_order_number(now, random.randint(0, 999))
        return order_number

    async def create_order(self, user_id: str, order_data: dict, items: list[dict]) -> dict:
        """Insert an order and its line items for user_id.

        items are cart lines with product_id, name, price, quantity and an
        optional image. If the line items cannot be written the order row is
        deleted again and the failure is raised as DataSourceError.
        """
        if not user_id:
            raise OrderError("User must be logged in to create an order")
        if not items:
            raise OrderError("Cart is empty")
        payment_method = order_data.get("payment_method")
        if payment_method not in PAYMENT_METHODS:
            raise OrderError(f"Unknown payment method: {payment_method}")

        total_amount = sum(item["price"] * item["quantity"] for item in items)
        order_number = await self.generate_order_number()
        status, payment_status = INITIAL_STATUS[payment_method]

        try:
            rows = await self._client.source.insert("orders", [{
                "user_id": user_id,
                "order_number": order_number,
                "total_amount": total_amount,
                "shipping_address": order_data.get("shipping_address"),
                "billing_address": order_data.get("billing_address") or order_data.get("shipping_address"),
                "shipping_pincode": order_data.get("shipping_pincode"),
                "customer_name": order_data.get("customer_name"),
                "customer_phone": order_data.get("customer_phone"),
                "customer_email": order_data.get("customer_email"),
                "payment_method": payment_method,
                "notes": order_data.get("notes"),
                "status": status,
                "payment_status": payment_status,
            }])
        except DataSourceError as e:
            raise DataSourceError(f"Order creation failed: {e}") from e
        if not rows:
            raise DataSourceError("Order creation failed: no row returned")
        order = rows[0]

        order_items = [
            {
                "order_id": order["id"],
                "product_id": item["product_id"],
                "product_name": item.get("name"),
                "price": item["price"],
                "product_price": item["price"],
                "total_price": item["price"] * item["quantity"],
                "product_image": item.get("image"),
                "quantity": item["quantity"],
            }
            for item in items
        ]
        try:
            await self._client.source.insert("order_items", order_items)
        except DataSourceError as e:
            logger.error(f"Order items for {order['id']} failed, removing order: {e}")
            try:
                await self._client.source.delete("orders", {"id": order["id"]})
            except Exception as cleanup_error:
                logger.error(f"Failed to remove order {order['id']}: {cleanup_error}")
            raise DataSourceError(f"Order items creation failed: {e}") from e

        self._admin.invalidate_user_orders(user_id)
        logger.info(f"Order {order_number} created for {user_id} ({len(items)} items, total {total_amount})")
        return order

    async def get_order(self, user_id: str, order_id: str) -> dict | None:
        """Return an order owned by user_id, or None if there is no such order.

        Orders already sitting in a cached page are returned as-is (summary
        columns only); otherwise the full record with items and status history
        is fetched.
        """
        if not user_id:
            return None

        cached = self._find_cached(user_id, order_id)
        if cached is not None:
            logger.debug(f"Order {order_id} served from cached page")
            return cached

        return await self._client.source.fetch_one(
            "orders",
            columns=ORDER_DETAIL_COLUMNS,
            filters={"id": order_id, "user_id": user_id},
        )

    async def update_order_status(
        self,
        user_id: str,
        order_id: str,
        status: str,
        notes: str | None = None,
    ) -> dict:
        if not user_id:
            raise OrderError("User must be logged in")
        if status not in ORDER_STATUSES:
            raise OrderError(f"Unknown order status: {status}")

        values = {"status": status, "updated_at": datetime.now(timezone.utc).isoformat()}
        # leave stored notes alone unless new ones were given
        if notes is not None:
            values["notes"] = notes

        rows = await self._client.source.update("orders", values, {"id": order_id, "user_id": user_id})
        if not rows:
            raise OrderNotFoundError(f"Order {order_id} not found")

        self._admin.invalidate_user_orders(user_id)
        logger.info(f"Order {order_id} -> {status}")
        return rows[0]

    async def cancel_order(self, user_id: str, order_id: str, reason: str | None = None) -> dict:
        return await self.update_order_status(user_id, order_id, "cancelled", reason)
