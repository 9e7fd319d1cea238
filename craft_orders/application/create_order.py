import logging
from decimal import Decimal, ROUND_HALF_UP
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import Any, Optional

from craft_orders.config import settings
from craft_orders.domain.aggregates import LedgerEvent, quantity_by_product
from craft_orders.domain.exceptions import (
    InsufficientStockError, ProductNotAvailableError, ValidationError
)
from craft_orders.domain.identifiers import OrderIdGenerator, order_ids
from craft_orders.domain.models import LineItem, Order, OrderStatus, PaymentStatus, Product
from craft_orders.application.revenue import RevenueAggregator


logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


class OrderItemDTO(BaseModel):
    product_id: str
    quantity: int = Field(gt=0)
    # Цену и артизана от клиента не используем, в заказ попадает снимок из каталога
    price: Optional[Decimal] = None
    artisan_id: Optional[str] = None
    customization: Optional[dict[str, Any]] = None


class CreateOrderDTO(BaseModel):
    buyer_id: str
    items: list[OrderItemDTO] = Field(min_length=1)
    shipping_address: dict[str, Any]
    billing_address: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    shipping: Decimal = Field(default=Decimal("0"), ge=0)
    currency: Optional[str] = None


class CreateOrderUseCase:
    """Создание заказа одной транзакцией"""

    def __init__(
        self,
        unit_of_work,
        id_generator: OrderIdGenerator = order_ids,
        revenue_aggregator: Optional[RevenueAggregator] = None,
        tax_rate: Decimal = settings.TAX_RATE,
        default_currency: str = settings.DEFAULT_CURRENCY
    ):
        self._uow = unit_of_work
        self._ids = id_generator
        self._revenue = revenue_aggregator or RevenueAggregator()
        self._tax_rate = tax_rate
        self._default_currency = default_currency

    async def __call__(self, order_data: CreateOrderDTO) -> Order:
        logger.info(f"Создание заказа для покупателя {order_data.buyer_id}, позиций: {len(order_data.items)}")

        async with self._uow() as uow:
            # 1. Проверка наличия (строки товаров блокируются до конца транзакции)
            products = await self._lock_products(uow, order_data.items)

            # 2. Снимок позиций и расчет суммы
            lines = [self._snapshot(item, products[item.product_id]) for item in order_data.items]
            subtotal = sum((line.revenue for line in lines), Decimal("0"))
            tax = (subtotal * self._tax_rate).quantize(_CENT, rounding=ROUND_HALF_UP)
            total_amount = subtotal + tax + order_data.shipping - order_data.discount
            if total_amount < 0:
                raise ValidationError("Discount exceeds order amount")

            # 3. Запись заказа
            order_id, order_number = self._ids.next_ids()
            now = datetime.now(timezone.utc)
            order = Order(
                order_id=order_id,
                order_number=order_number,
                buyer_id=order_data.buyer_id,
                items=lines,
                subtotal=subtotal,
                tax=tax,
                shipping=order_data.shipping,
                discount=order_data.discount,
                total_amount=total_amount,
                currency=order_data.currency or self._default_currency,
                order_status=OrderStatus.PENDING,
                payment_status=PaymentStatus.PENDING,
                shipping_address=order_data.shipping_address,
                billing_address=order_data.billing_address or order_data.shipping_address,
                notes=order_data.notes,
                created_at=now,
                updated_at=now
            )
            await uow.orders.create(order)

            # 4. Списание склада условной записью
            for line in lines:
                await uow.stock.reserve(line.product_id, line.quantity)

            # 5. Агрегаты и леджер
            await self._revenue.record(uow, order)
            await uow.ledger.append(order, LedgerEvent.FULFILLED)

            await uow.commit()

        logger.info(f"Заказ создан: {order.order_id} ({order.order_number}), сумма {order.total_amount}")
        return order

    async def _lock_products(self, uow, items: list[OrderItemDTO]) -> dict[str, Product]:
        requested = quantity_by_product(items)
        products: dict[str, Product] = {}
        # Блокируем в одном порядке, чтобы встречные заказы не взаимоблокировались
        for product_id in sorted(requested):
            product = await uow.stock.get_for_update(product_id)
            if product is None or not product.is_sellable():
                raise ProductNotAvailableError(product_id)
            if product.stock_quantity < requested[product_id]:
                raise InsufficientStockError(product_id, product.stock_quantity, requested[product_id])
            products[product_id] = product
        return products

    def _snapshot(self, item: OrderItemDTO, product: Product) -> LineItem:
        if item.price is not None and item.price != product.price:
            logger.warning(
                f"Цена товара {product.product_id} от клиента ({item.price}) "
                f"не совпадает с каталогом ({product.price}), используется каталог"
            )
        if item.artisan_id is not None and item.artisan_id != product.artisan_id:
            logger.warning(
                f"Артизан товара {product.product_id} от клиента ({item.artisan_id}) "
                f"не совпадает с каталогом ({product.artisan_id})"
            )
        return LineItem(
            product_id=product.product_id,
            title=product.title,
            price=product.price,
            quantity=item.quantity,
            image=product.images[0] if product.images else None,
            artisan_id=product.artisan_id,
            customization=item.customization
        )
