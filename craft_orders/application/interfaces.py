from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from craft_orders.domain.aggregates import ArtisanTotals, LedgerEvent
from craft_orders.domain.models import Order, OrderStatus, PaymentStatus, Product, ProductDetail


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_for_update(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
    async def list_orders(
        self,
        *,
        buyer_id: Optional[str] = None,
        artisan_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Order]:
        """buyer_id и artisan_id вместе дают объединение двух областей"""
        pass

    @abstractmethod
    async def product_details(self, order_id: str) -> List[ProductDetail]:
        pass

    @abstractmethod
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
        pass

    @abstractmethod
    async def update_payment(
        self,
        order_id: str,
        payment_status: PaymentStatus,
        payment_id: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> None:
        pass


class StockLedger(ABC):
    @abstractmethod
    async def get_for_update(self, product_id: str) -> Optional[Product]:
        pass

    @abstractmethod
    async def reserve(self, product_id: str, quantity: int) -> None:
        pass

    @abstractmethod
    async def release(self, product_id: str, quantity: int) -> bool:
        pass


class AggregateRepository(ABC):
    @abstractmethod
    async def add_product_sales(self, product_id: str, quantity: int) -> None:
        pass

    @abstractmethod
    async def add_artisan_sale(self, artisan_id: str, revenue: Decimal) -> None:
        pass

    @abstractmethod
    async def product_sales_counts(self) -> dict[str, int]:
        pass

    @abstractmethod
    async def artisan_totals(self) -> dict[str, ArtisanTotals]:
        pass

    @abstractmethod
    async def set_product_sales_count(self, product_id: str, value: int) -> None:
        pass

    @abstractmethod
    async def set_artisan_totals(self, artisan_id: str, totals: ArtisanTotals) -> None:
        pass


class OrderEventLedger(ABC):
    @abstractmethod
    async def append(self, order: Order, event_type: LedgerEvent) -> None:
        pass

    @abstractmethod
    async def product_quantities(self, event_type: LedgerEvent) -> dict[str, int]:
        pass

    @abstractmethod
    async def artisan_totals(self, event_type: LedgerEvent) -> dict[str, ArtisanTotals]:
        pass


class UnitOfWork(ABC):
    """Репозитории одной транзакции"""
    orders: OrderRepository
    stock: StockLedger
    aggregates: AggregateRepository
    ledger: OrderEventLedger

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass
