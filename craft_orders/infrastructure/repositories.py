import uuid
import logging
from decimal import Decimal
from typing import Optional, List
from datetime import datetime, timezone
from sqlalchemy import select, insert, update, func, distinct, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from craft_orders.domain.aggregates import ArtisanTotals, LedgerEvent
from craft_orders.domain.exceptions import (
    ArtisanNotFoundError, InsufficientStockError, TransientInfrastructureError
)
from craft_orders.domain.models import LineItem, Order, OrderStatus, PaymentStatus, Product, ProductDetail
from craft_orders.infrastructure.db_schema import (
    orders_tbl, order_lines_tbl, order_line_events_tbl, products_tbl, artisans_tbl
)
from craft_orders.application.interfaces import (
    AggregateRepository, OrderEventLedger, OrderRepository, StockLedger
)

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        return await self._fetch(order_id, for_update=False)

    async def get_for_update(self, order_id: str) -> Optional[Order]:
        return await self._fetch(order_id, for_update=True)

    async def _fetch(self, order_id: str, for_update: bool) -> Optional[Order]:
        stmt = select(orders_tbl).where(orders_tbl.c.order_id == order_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        row = result.fetchone()
        if not row:
            return None
        lines = await self._load_lines([order_id])
        return self._to_domain(row, lines.get(order_id, []))

    async def create(self, order: Order) -> None:
        stmt = insert(orders_tbl).values(
            order_id=order.order_id,
            order_number=order.order_number,
            buyer_id=order.buyer_id,
            subtotal=order.subtotal,
            tax=order.tax,
            shipping=order.shipping,
            discount=order.discount,
            total_amount=order.total_amount,
            currency=order.currency,
            order_status=order.order_status,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            payment_id=order.payment_id,
            shipping_address=order.shipping_address,
            billing_address=order.billing_address,
            notes=order.notes,
            created_at=order.created_at,
            updated_at=order.updated_at
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError as e:
            # orderId / orderNumber уже заняты другим процессом
            logger.error(f"Коллизия идентификатора заказа {order.order_id}: {e}")
            raise TransientInfrastructureError("Order identifier collision, retry the request") from e

        await self._session.execute(
            insert(order_lines_tbl),
            [
                {
                    "order_id": order.order_id,
                    "line_no": line_no,
                    "product_id": item.product_id,
                    "artisan_id": item.artisan_id,
                    "title": item.title,
                    "price": item.price,
                    "quantity": item.quantity,
                    "image": item.image,
                    "customization": item.customization,
                }
                for line_no, item in enumerate(order.items, start=1)
            ]
        )

    async def list_orders(
        self,
        *,
        buyer_id: Optional[str] = None,
        artisan_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Order]:
        stmt = select(orders_tbl)
        # Области видимости покупателя и артизана объединяются через OR
        scopes = []
        if buyer_id is not None:
            scopes.append(orders_tbl.c.buyer_id == buyer_id)
        if artisan_id is not None:
            scopes.append(
                orders_tbl.c.order_id.in_(
                    select(order_lines_tbl.c.order_id).where(order_lines_tbl.c.artisan_id == artisan_id)
                )
            )
        if scopes:
            stmt = stmt.where(or_(*scopes))
        if status is not None:
            stmt = stmt.where(orders_tbl.c.order_status == status)
        stmt = (
            stmt.order_by(orders_tbl.c.created_at.desc(), orders_tbl.c.order_number.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        rows = result.fetchall()

        lines = await self._load_lines([row.order_id for row in rows])
        return [self._to_domain(row, lines.get(row.order_id, [])) for row in rows]

    async def product_details(self, order_id: str) -> List[ProductDetail]:
        stmt = (
            select(
                order_lines_tbl.c.product_id,
                products_tbl.c.title,
                products_tbl.c.images,
                artisans_tbl.c.user_id.label("artisan_id"),
                artisans_tbl.c.full_name.label("artisan_name")
            )
            .select_from(
                order_lines_tbl
                .outerjoin(products_tbl, products_tbl.c.product_id == order_lines_tbl.c.product_id)
                .outerjoin(artisans_tbl, artisans_tbl.c.user_id == products_tbl.c.artisan_id)
            )
            .where(order_lines_tbl.c.order_id == order_id)
            .order_by(order_lines_tbl.c.line_no)
        )
        result = await self._session.execute(stmt)
        return [
            ProductDetail(
                product_id=row.product_id,
                title=row.title,
                images=row.images or [],
                artisan_id=row.artisan_id,
                artisan_name=row.artisan_name
            )
            for row in result.fetchall()
        ]

    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        *,
        expected: Optional[frozenset[OrderStatus]] = None,
        tracking_number: Optional[str] = None,
        estimated_delivery: Optional[datetime] = None,
        delivered_at: Optional[datetime] = None,
    ) -> bool:
        values = {"order_status": status, "updated_at": _utcnow()}
        if tracking_number is not None:
            values["tracking_number"] = tracking_number
        if estimated_delivery is not None:
            values["estimated_delivery"] = estimated_delivery
        if delivered_at is not None:
            values["delivered_at"] = delivered_at

        stmt = update(orders_tbl).where(orders_tbl.c.order_id == order_id)
        if expected is not None:
            # Условная запись: статус мог измениться параллельной транзакцией
            stmt = stmt.where(orders_tbl.c.order_status.in_(sorted(expected, key=lambda s: s.value)))
        result = await self._session.execute(stmt.values(**values))
        return result.rowcount == 1

    async def update_payment(
        self,
        order_id: str,
        payment_status: PaymentStatus,
        payment_id: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> None:
        values = {"payment_status": payment_status, "updated_at": _utcnow()}
        if payment_id is not None:
            values["payment_id"] = payment_id
        if payment_method is not None:
            values["payment_method"] = payment_method
        stmt = update(orders_tbl).where(orders_tbl.c.order_id == order_id).values(**values)
        await self._session.execute(stmt)

    async def _load_lines(self, order_ids: List[str]) -> dict[str, List[LineItem]]:
        if not order_ids:
            return {}
        result = await self._session.execute(
            select(order_lines_tbl)
            .where(order_lines_tbl.c.order_id.in_(order_ids))
            .order_by(order_lines_tbl.c.order_id, order_lines_tbl.c.line_no)
        )
        grouped: dict[str, List[LineItem]] = {}
        for row in result.fetchall():
            grouped.setdefault(row.order_id, []).append(
                LineItem(
                    product_id=row.product_id,
                    title=row.title,
                    price=row.price,
                    quantity=row.quantity,
                    image=row.image,
                    artisan_id=row.artisan_id,
                    customization=row.customization
                )
            )
        return grouped

    def _to_domain(self, row, items: List[LineItem]) -> Order:
        """Трансформация DB → Domain"""
        return Order(
            order_id=row.order_id,
            order_number=row.order_number,
            buyer_id=row.buyer_id,
            items=items,
            subtotal=row.subtotal,
            tax=row.tax,
            shipping=row.shipping,
            discount=row.discount,
            total_amount=row.total_amount,
            currency=row.currency,
            order_status=OrderStatus(row.order_status),
            payment_status=PaymentStatus(row.payment_status),
            payment_method=row.payment_method,
            payment_id=row.payment_id,
            shipping_address=row.shipping_address,
            billing_address=row.billing_address,
            tracking_number=row.tracking_number,
            estimated_delivery=row.estimated_delivery,
            delivered_at=row.delivered_at,
            notes=row.notes,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemyStockLedger(StockLedger):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_for_update(self, product_id: str) -> Optional[Product]:
        result = await self._session.execute(
            select(products_tbl).where(products_tbl.c.product_id == product_id).with_for_update()
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def reserve(self, product_id: str, quantity: int) -> None:
        """Списание только при достаточном остатке в момент записи"""
        stmt = (
            update(products_tbl)
            .where(
                products_tbl.c.product_id == product_id,
                products_tbl.c.stock_quantity >= quantity
            )
            .values(
                stock_quantity=products_tbl.c.stock_quantity - quantity,
                updated_at=_utcnow()
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise InsufficientStockError(product_id, required=quantity)

    async def release(self, product_id: str, quantity: int) -> bool:
        stmt = (
            update(products_tbl)
            .where(products_tbl.c.product_id == product_id)
            .values(
                stock_quantity=products_tbl.c.stock_quantity + quantity,
                updated_at=_utcnow()
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    def _to_domain(self, row) -> Product:
        return Product(
            product_id=row.product_id,
            artisan_id=row.artisan_id,
            title=row.title,
            price=row.price,
            images=row.images or [],
            status=row.status,
            stock_quantity=row.stock_quantity,
            sales_count=row.sales_count
        )


class SQLAlchemyAggregateRepository(AggregateRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def add_product_sales(self, product_id: str, quantity: int) -> None:
        stmt = (
            update(products_tbl)
            .where(products_tbl.c.product_id == product_id)
            .values(sales_count=products_tbl.c.sales_count + quantity, updated_at=_utcnow())
        )
        await self._session.execute(stmt)

    async def add_artisan_sale(self, artisan_id: str, revenue: Decimal) -> None:
        stmt = (
            update(artisans_tbl)
            .where(artisans_tbl.c.user_id == artisan_id)
            .values(
                total_sales=artisans_tbl.c.total_sales + 1,
                total_revenue=artisans_tbl.c.total_revenue + revenue,
                updated_at=_utcnow()
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise ArtisanNotFoundError(artisan_id)

    async def product_sales_counts(self) -> dict[str, int]:
        result = await self._session.execute(
            select(products_tbl.c.product_id, products_tbl.c.sales_count)
        )
        return {row.product_id: row.sales_count for row in result.fetchall()}

    async def artisan_totals(self) -> dict[str, ArtisanTotals]:
        result = await self._session.execute(
            select(artisans_tbl.c.user_id, artisans_tbl.c.total_sales, artisans_tbl.c.total_revenue)
        )
        return {
            row.user_id: ArtisanTotals(
                total_sales=row.total_sales,
                total_revenue=Decimal(str(row.total_revenue)).quantize(_CENT)
            )
            for row in result.fetchall()
        }

    async def set_product_sales_count(self, product_id: str, value: int) -> None:
        stmt = (
            update(products_tbl)
            .where(products_tbl.c.product_id == product_id)
            .values(sales_count=value, updated_at=_utcnow())
        )
        await self._session.execute(stmt)

    async def set_artisan_totals(self, artisan_id: str, totals: ArtisanTotals) -> None:
        stmt = (
            update(artisans_tbl)
            .where(artisans_tbl.c.user_id == artisan_id)
            .values(
                total_sales=totals.total_sales,
                total_revenue=totals.total_revenue,
                updated_at=_utcnow()
            )
        )
        await self._session.execute(stmt)


class SQLAlchemyOrderEventLedger(OrderEventLedger):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(self, order: Order, event_type: LedgerEvent) -> None:
        await self._session.execute(
            insert(order_line_events_tbl),
            [
                {
                    "id": str(uuid.uuid4()),
                    "event_type": event_type.value,
                    "order_id": order.order_id,
                    "product_id": item.product_id,
                    "artisan_id": item.artisan_id,
                    "quantity": item.quantity,
                    "amount": item.revenue,
                }
                for item in order.items
            ]
        )

    async def product_quantities(self, event_type: LedgerEvent) -> dict[str, int]:
        result = await self._session.execute(
            select(
                order_line_events_tbl.c.product_id,
                func.sum(order_line_events_tbl.c.quantity).label("quantity")
            )
            .where(order_line_events_tbl.c.event_type == event_type.value)
            .group_by(order_line_events_tbl.c.product_id)
        )
        return {row.product_id: int(row.quantity or 0) for row in result.fetchall()}

    async def artisan_totals(self, event_type: LedgerEvent) -> dict[str, ArtisanTotals]:
        result = await self._session.execute(
            select(
                order_line_events_tbl.c.artisan_id,
                func.count(distinct(order_line_events_tbl.c.order_id)).label("orders"),
                func.sum(order_line_events_tbl.c.amount).label("amount")
            )
            .where(order_line_events_tbl.c.event_type == event_type.value)
            .group_by(order_line_events_tbl.c.artisan_id)
        )
        return {
            row.artisan_id: ArtisanTotals(
                total_sales=int(row.orders),
                total_revenue=Decimal(str(row.amount or 0)).quantize(_CENT)
            )
            for row in result.fetchall()
        }
