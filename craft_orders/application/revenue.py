import logging

from craft_orders.domain.aggregates import quantity_by_product, revenue_by_artisan
from craft_orders.domain.models import Order

logger = logging.getLogger(__name__)


class RevenueAggregator:
    """
    Инкрементальные счётчики продаж: salesCount товара, totalSales/totalRevenue артизана.

    Вызывается только при создании заказа, внутри его транзакции.
    Отмена счётчики не откатывает.
    """

    async def record(self, uow, order: Order) -> None:
        for product_id, quantity in quantity_by_product(order.items).items():
            await uow.aggregates.add_product_sales(product_id, quantity)

        # totalSales +1 на артизана за заказ, а не за позицию
        for artisan_id, revenue in revenue_by_artisan(order.items).items():
            await uow.aggregates.add_artisan_sale(artisan_id, revenue)
            logger.info(f"Артизан {artisan_id}: +1 продажа, +{revenue} выручки (заказ {order.order_id})")
