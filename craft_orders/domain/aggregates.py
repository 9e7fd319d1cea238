from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterable

from craft_orders.domain.models import LineItem


class LedgerEvent(str, Enum):
    FULFILLED = "order_line.fulfilled"
    CANCELLED = "order_line.cancelled"


def quantity_by_product(items: Iterable[LineItem]) -> dict[str, int]:
    totals: dict[str, int] = {}
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def revenue_by_artisan(items: Iterable[LineItem]) -> dict[str, Decimal]:
    """Выручка по артизанам в пределах одного заказа (в порядке первого появления)"""
    totals: dict[str, Decimal] = {}
    for item in items:
        totals[item.artisan_id] = totals.get(item.artisan_id, Decimal("0")) + item.revenue
    return totals


@dataclass
class ArtisanTotals:
    total_sales: int = 0
    total_revenue: Decimal = Decimal("0")


@dataclass
class AggregateDrift:
    """Расхождение счётчика с леджером"""
    key: str
    field: str
    current: Decimal | int
    expected: Decimal | int


@dataclass
class AggregateReport:
    products_checked: int = 0
    artisans_checked: int = 0
    drift: list[AggregateDrift] = field(default_factory=list)
    # Чистые значения (продано минус отменено) идут только в отчёт
    net_sales_count: dict[str, int] = field(default_factory=dict)
    net_revenue: dict[str, Decimal] = field(default_factory=dict)
    applied: bool = False
