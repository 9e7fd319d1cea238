from sqlalchemy import (
    Table, Column, String, Integer, Numeric, Enum, DateTime, JSON, MetaData, Text,
    CheckConstraint, ForeignKey, UniqueConstraint,
)
from sqlalchemy.sql import func

from craft_orders.domain.models import OrderStatus, PaymentStatus

metadata = MetaData()


def _values(enum_cls):
    return [member.value for member in enum_cls]


# Таблицы каталога и артизанов принадлежат другим сервисам,
# здесь меняются только stock_quantity / sales_count / total_*
products_tbl = Table(
    "products",
    metadata,
    Column("product_id", String, primary_key=True),
    Column("artisan_id", String, nullable=False, index=True),
    Column("title", String, nullable=False),
    Column("price", Numeric(12, 2), nullable=False),
    Column("images", JSON, nullable=True),
    Column("status", String, nullable=False, default="draft"),
    Column("stock_quantity", Integer, nullable=False, default=0),
    Column("sales_count", Integer, nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
)


artisans_tbl = Table(
    "artisans",
    metadata,
    Column("user_id", String, primary_key=True),
    Column("full_name", String, nullable=True),
    Column("total_sales", Integer, nullable=False, default=0),
    Column("total_revenue", Numeric(14, 2), nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
)


orders_tbl = Table(
    "orders",
    metadata,
    Column("order_id", String, primary_key=True),
    Column("order_number", String, nullable=False, unique=True),
    Column("buyer_id", String, nullable=False, index=True),
    Column("subtotal", Numeric(12, 2), nullable=False),
    Column("tax", Numeric(12, 2), nullable=False, default=0),
    Column("shipping", Numeric(12, 2), nullable=False, default=0),
    Column("discount", Numeric(12, 2), nullable=False, default=0),
    Column("total_amount", Numeric(12, 2), nullable=False),
    Column("currency", String(3), nullable=False),
    Column(
        "order_status",
        Enum(OrderStatus, name="order_status", native_enum=False, values_callable=_values),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    ),
    Column(
        "payment_status",
        Enum(PaymentStatus, name="payment_status", native_enum=False, values_callable=_values),
        nullable=False,
        default=PaymentStatus.PENDING,
    ),
    Column("payment_method", String, nullable=True),
    Column("payment_id", String, nullable=True),
    Column("shipping_address", JSON, nullable=False),
    Column("billing_address", JSON, nullable=False),
    Column("tracking_number", String, nullable=True),
    Column("estimated_delivery", DateTime(timezone=True), nullable=True),
    Column("delivered_at", DateTime(timezone=True), nullable=True),
    Column("notes", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


order_lines_tbl = Table(
    "order_lines",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_id", String, ForeignKey("orders.order_id"), nullable=False, index=True),
    Column("line_no", Integer, nullable=False),
    Column("product_id", String, nullable=False),
    Column("artisan_id", String, nullable=False, index=True),
    Column("title", String, nullable=False),
    Column("price", Numeric(12, 2), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("image", String, nullable=True),
    Column("customization", JSON, nullable=True),
    UniqueConstraint("order_id", "line_no", name="uq_order_lines_order_line_no"),
    CheckConstraint("quantity > 0", name="ck_order_lines_quantity_positive"),
)


# Леджер: только добавление, источник для пересчёта агрегатов
order_line_events_tbl = Table(
    "order_line_events",
    metadata,
    Column("id", String, primary_key=True),
    Column("event_type", String, nullable=False, index=True),
    Column("order_id", String, nullable=False, index=True),
    Column("product_id", String, nullable=False),
    Column("artisan_id", String, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)
