from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Any, Optional

from craft_orders.domain.aggregates import AggregateReport
from craft_orders.domain.models import Order, OrderStatus, PaymentStatus


class ApiModel(BaseModel):
    """JSON в camelCase, как у остальных сервисов маркетплейса"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderItemRequest(ApiModel):
    product_id: str
    quantity: int = Field(gt=0)
    price: Optional[Decimal] = Field(default=None, ge=0)
    artisan_id: Optional[str] = None
    customization: Optional[dict[str, Any]] = None


class CreateOrderRequest(ApiModel):
    items: list[OrderItemRequest] = Field(min_length=1)
    shipping_address: dict[str, Any]
    billing_address: Optional[dict[str, Any]] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    shipping: Decimal = Field(default=Decimal("0"), ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class UpdateStatusRequest(ApiModel):
    status: OrderStatus
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None


class PaymentCallbackRequest(ApiModel):
    payment_id: str
    order_id: str
    status: str
    payment_method: Optional[str] = None
    error_message: Optional[str] = None


class OrderCreated(ApiModel):
    order_id: str
    order_number: str
    total_amount: float
    status: OrderStatus
    created_at: datetime

    @classmethod
    def from_domain(cls, order: Order):
        return cls(
            order_id=order.order_id,
            order_number=order.order_number,
            total_amount=float(order.total_amount),
            status=order.order_status,
            created_at=order.created_at
        )


class LineItemResponse(ApiModel):
    product_id: str
    title: str
    price: float
    quantity: int
    image: Optional[str] = None
    artisan_id: str
    customization: Optional[dict[str, Any]] = None


class ProductDetailResponse(ApiModel):
    product_id: str
    title: Optional[str] = None
    images: list[str] = []
    artisan_id: Optional[str] = None
    artisan_name: Optional[str] = None


class OrderResponse(ApiModel):
    order_id: str
    order_number: str
    buyer_id: str
    items: list[LineItemResponse]
    subtotal: float
    tax: float
    shipping: float
    discount: float
    total_amount: float
    currency: str
    order_status: OrderStatus
    payment_status: PaymentStatus
    payment_method: Optional[str] = None
    payment_id: Optional[str] = None
    shipping_address: dict[str, Any]
    billing_address: dict[str, Any]
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    product_details: list[ProductDetailResponse] = []

    @classmethod
    def from_domain(cls, order: Order):
        return cls(
            order_id=order.order_id,
            order_number=order.order_number,
            buyer_id=order.buyer_id,
            items=[
                LineItemResponse(
                    product_id=item.product_id,
                    title=item.title,
                    price=float(item.price),
                    quantity=item.quantity,
                    image=item.image,
                    artisan_id=item.artisan_id,
                    customization=item.customization
                )
                for item in order.items
            ],
            subtotal=float(order.subtotal),
            tax=float(order.tax),
            shipping=float(order.shipping),
            discount=float(order.discount),
            total_amount=float(order.total_amount),
            currency=order.currency,
            order_status=order.order_status,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            payment_id=order.payment_id,
            shipping_address=order.shipping_address,
            billing_address=order.billing_address,
            tracking_number=order.tracking_number,
            estimated_delivery=order.estimated_delivery,
            delivered_at=order.delivered_at,
            notes=order.notes,
            created_at=order.created_at,
            updated_at=order.updated_at,
            product_details=[
                ProductDetailResponse(**detail.model_dump()) for detail in order.product_details
            ]
        )


class StatusUpdated(ApiModel):
    order_id: str
    status: OrderStatus
    tracking_number: Optional[str] = None
    delivered_at: Optional[datetime] = None
    updated_at: datetime

    @classmethod
    def from_domain(cls, order: Order):
        return cls(
            order_id=order.order_id,
            status=order.order_status,
            tracking_number=order.tracking_number,
            delivered_at=order.delivered_at,
            updated_at=order.updated_at
        )


class Pagination(ApiModel):
    limit: int
    offset: int
    has_more: bool


class DriftResponse(ApiModel):
    key: str
    field: str
    current: float
    expected: float


class ReconcileReport(ApiModel):
    products_checked: int
    artisans_checked: int
    applied: bool
    drift: list[DriftResponse]
    net_sales_count: dict[str, int]
    net_revenue: dict[str, float]

    @classmethod
    def from_domain(cls, report: AggregateReport):
        return cls(
            products_checked=report.products_checked,
            artisans_checked=report.artisans_checked,
            applied=report.applied,
            drift=[
                DriftResponse(key=d.key, field=d.field, current=float(d.current), expected=float(d.expected))
                for d in report.drift
            ],
            net_sales_count=report.net_sales_count,
            net_revenue={key: float(value) for key, value in report.net_revenue.items()}
        )


class OrderCreatedEnvelope(ApiModel):
    success: bool = True
    message: str
    data: OrderCreated


class OrderEnvelope(ApiModel):
    success: bool = True
    data: OrderResponse


class OrderListEnvelope(ApiModel):
    success: bool = True
    data: list[OrderResponse]
    pagination: Pagination


class StatusUpdatedEnvelope(ApiModel):
    success: bool = True
    message: str
    data: StatusUpdated


class MessageEnvelope(ApiModel):
    success: bool = True
    message: str


class ReconcileEnvelope(ApiModel):
    success: bool = True
    data: ReconcileReport


class ErrorResponse(ApiModel):
    success: bool = False
    message: str
