import logging

from craft_orders.domain.aggregates import AggregateDrift, AggregateReport, ArtisanTotals, LedgerEvent
from craft_orders.domain.exceptions import AuthorizationError
from craft_orders.domain.models import Actor

logger = logging.getLogger(__name__)


class ReconcileAggregatesUseCase:
    """
    Сверка счётчиков (salesCount, totalSales, totalRevenue) с леджером позиций.

    Ожидаемые значения валовые: считаются по order_line.fulfilled, как и сами счётчики.
    Чистые значения (за вычетом отмен) попадают только в отчёт.
    """

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, actor: Actor, apply: bool = False) -> AggregateReport:
        if not actor.is_admin:
            raise AuthorizationError("Only admins can reconcile aggregates")

        report = AggregateReport()
        async with self._uow() as uow:
            sold = await uow.ledger.product_quantities(LedgerEvent.FULFILLED)
            returned = await uow.ledger.product_quantities(LedgerEvent.CANCELLED)
            fulfilled = await uow.ledger.artisan_totals(LedgerEvent.FULFILLED)
            cancelled = await uow.ledger.artisan_totals(LedgerEvent.CANCELLED)

            sales_counts = await uow.aggregates.product_sales_counts()
            report.products_checked = len(sales_counts)
            for product_id, current in sales_counts.items():
                expected = sold.get(product_id, 0)
                report.net_sales_count[product_id] = expected - returned.get(product_id, 0)
                if current != expected:
                    report.drift.append(AggregateDrift(product_id, "salesCount", current, expected))
                    if apply:
                        await uow.aggregates.set_product_sales_count(product_id, expected)

            artisan_totals = await uow.aggregates.artisan_totals()
            report.artisans_checked = len(artisan_totals)
            for artisan_id, current in artisan_totals.items():
                expected = fulfilled.get(artisan_id, ArtisanTotals())
                report.net_revenue[artisan_id] = (
                    expected.total_revenue - cancelled.get(artisan_id, ArtisanTotals()).total_revenue
                )
                if current.total_sales != expected.total_sales:
                    report.drift.append(
                        AggregateDrift(artisan_id, "totalSales", current.total_sales, expected.total_sales)
                    )
                if current.total_revenue != expected.total_revenue:
                    report.drift.append(
                        AggregateDrift(artisan_id, "totalRevenue", current.total_revenue, expected.total_revenue)
                    )
                if apply and current != expected:
                    await uow.aggregates.set_artisan_totals(artisan_id, expected)

            if apply:
                await uow.commit()
                report.applied = True

        if report.drift:
            logger.warning(f"Расхождение агрегатов: {len(report.drift)} (применено: {report.applied})")
        else:
            logger.info("Агрегаты совпадают с леджером")
        return report
