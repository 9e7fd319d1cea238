from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class Role(str, Enum):
    BUYER = "buyer"
    ARTISAN = "artisan"
    ADMIN = "admin"


class Actor(BaseModel):
    """Проверенная личность от AuthenticationProvider"""
    user_id: str
    roles: frozenset[Role] = frozenset()

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN in self.roles


class LineItem(BaseModel):
    """Value Object: позиция заказа со снимком цены"""
    product_id: str
    title: str
    price: Decimal
    quantity: int
    image: Optional[str] = None
    artisan_id: str
    customization: Optional[dict[str, Any]] = None

    @property
    def revenue(self) -> Decimal:
        return self.price * self.quantity


class ProductDetail(BaseModel):
    """Текущие данные каталога по позиции заказа (для чтения заказа)"""
    product_id: str
    title: Optional[str] = None
    images: list[str] = Field(default_factory=list)
    artisan_id: Optional[str] = None
    artisan_name: Optional[str] = None


class Order(BaseModel):
    """Domain Entity: заказ"""
    order_id: str
    order_number: str
    buyer_id: str
    items: list[LineItem]
    subtotal: Decimal
    tax: Decimal = Decimal("0")
    shipping: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    total_amount: Decimal
    currency: str
    order_status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: str | None = None
    payment_id: str | None = None
    shipping_address: dict[str, Any]
    billing_address: dict[str, Any]
    tracking_number: str | None = None
    estimated_delivery: datetime | None = None
    delivered_at: datetime | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime
    product_details: list[ProductDetail] = Field(default_factory=list)

    def is_owned_by(self, buyer_id: str) -> bool:
        return self.buyer_id == buyer_id

    def has_artisan(self, artisan_id: str) -> bool:
        """Артизан «владеет» заказом, если в нём есть хотя бы одна его позиция"""
        return any(item.artisan_id == artisan_id for item in self.items)

    def is_visible_to(self, actor: Actor) -> bool:
        if actor.is_admin:
            return True
        if actor.has_role(Role.ARTISAN) and self.has_artisan(actor.user_id):
            return True
        return self.is_owned_by(actor.user_id)


class Product(BaseModel):
    """Товар из каталога (владелец ProductCatalog)"""
    product_id: str
    artisan_id: str
    title: str
    price: Decimal
    images: list[str] = Field(default_factory=list)
    status: str
    stock_quantity: int
    sales_count: int = 0

    def is_sellable(self) -> bool:
        return self.status == "published"
