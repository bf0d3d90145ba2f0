"""Pydantic schemas for query snapshots and admin/mutation request bodies."""

from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field


class QueryStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


OrderStatus = Literal[
    "pending",
    "pending_payment_verification",
    "confirmed",
    "processing",
    "shipped",
    "delivered",
    "returned",
    "cancelled",
]

PaymentMethod = Literal["upi", "cod"]


class QueryResult(BaseModel):
    data: list[dict] = Field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None
    status: QueryStatus = QueryStatus.IDLE


class PagedQueryResult(QueryResult):
    has_more: bool = True


class InvalidateRequest(BaseModel):
    key: Optional[str] = Field(None, description="Cache key to drop; omit to clear the whole cache")


class PreloadRequest(BaseModel):
    entity_types: list[str] = Field(default_factory=lambda: ["products", "categories"])


class CancelOrderRequest(BaseModel):
    user_id: str
    reason: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    user_id: str
    status: OrderStatus
    notes: Optional[str] = None


class CartItem(BaseModel):
    product_id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., gt=0)
    image: Optional[str] = None


class CreateOrderData(BaseModel):
    shipping_address: Union[str, dict]
    billing_address: Optional[Union[str, dict]] = Field(None, description="Defaults to the shipping address")
    shipping_pincode: str
    customer_name: str
    customer_phone: str
    customer_email: str
    payment_method: PaymentMethod
    notes: Optional[str] = None


class CreateOrderRequest(BaseModel):
    user_id: str
    order: CreateOrderData
    items: list[CartItem]
