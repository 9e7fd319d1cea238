"""
Pytest fixtures: файловая SQLite на каждый тест, каталог товаров и акторы
"""
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, insert, select, update

from craft_orders.application.create_order import CreateOrderDTO, CreateOrderUseCase, OrderItemDTO
from craft_orders.database import build_engine, build_session_factory
from craft_orders.domain.models import Actor, Role
from craft_orders.infrastructure.db_schema import (
    artisans_tbl, metadata, order_line_events_tbl, orders_tbl, products_tbl
)
from craft_orders.infrastructure.unit_of_work import UnitOfWork


ADDRESS = {"line1": "12 Potter Street", "city": "Jaipur", "postalCode": "302001", "country": "IN"}


class Store:
    """Прямой доступ к таблицам для подготовки данных и проверок"""

    def __init__(self, engine):
        self._engine = engine

    async def add_artisan(self, user_id: str, total_sales: int = 0, total_revenue: str = "0") -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                insert(artisans_tbl).values(
                    user_id=user_id,
                    full_name=f"Artisan {user_id}",
                    total_sales=total_sales,
                    total_revenue=Decimal(total_revenue)
                )
            )

    async def add_product(
        self,
        product_id: str,
        artisan_id: str,
        price: str,
        stock: int,
        status: str = "published",
        images=None
    ) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                insert(products_tbl).values(
                    product_id=product_id,
                    artisan_id=artisan_id,
                    title=f"Handmade {product_id}",
                    price=Decimal(price),
                    images=images if images is not None else [f"https://img.example/{product_id}.jpg"],
                    status=status,
                    stock_quantity=stock,
                    sales_count=0
                )
            )

    async def product(self, product_id: str):
        async with self._engine.connect() as conn:
            result = await conn.execute(select(products_tbl).where(products_tbl.c.product_id == product_id))
            return result.fetchone()

    async def stock(self, product_id: str) -> int:
        return (await self.product(product_id)).stock_quantity

    async def artisan(self, user_id: str):
        async with self._engine.connect() as conn:
            result = await conn.execute(select(artisans_tbl).where(artisans_tbl.c.user_id == user_id))
            return result.fetchone()

    async def set_product(self, product_id: str, **values) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(update(products_tbl).where(products_tbl.c.product_id == product_id).values(**values))

    async def set_artisan(self, user_id: str, **values) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(update(artisans_tbl).where(artisans_tbl.c.user_id == user_id).values(**values))

    async def count_orders(self) -> int:
        async with self._engine.connect() as conn:
            return (await conn.execute(select(func.count()).select_from(orders_tbl))).scalar_one()

    async def count_events(self) -> int:
        async with self._engine.connect() as conn:
            return (await conn.execute(select(func.count()).select_from(order_line_events_tbl))).scalar_one()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        pool_size=10,
        max_overflow=10,
        pool_timeout=10
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def uow(session_factory):
    return UnitOfWork(session_factory)


@pytest.fixture
def store(engine):
    return Store(engine)


@pytest_asyncio.fixture
async def catalog(store):
    """
    P: цена 100, остаток 5, артизан B
    Q: цена 50, остаток 1, артизан A
    """
    await store.add_artisan("artisan-a")
    await store.add_artisan("artisan-b")
    await store.add_product("P", "artisan-b", "100.00", 5)
    await store.add_product("Q", "artisan-a", "50.00", 1)
    return store


@pytest.fixture
def buyer() -> Actor:
    return Actor(user_id="buyer-1", roles=frozenset({Role.BUYER}))


@pytest.fixture
def other_buyer() -> Actor:
    return Actor(user_id="buyer-2", roles=frozenset({Role.BUYER}))


@pytest.fixture
def artisan_a() -> Actor:
    return Actor(user_id="artisan-a", roles=frozenset({Role.ARTISAN}))


@pytest.fixture
def stranger_artisan() -> Actor:
    return Actor(user_id="artisan-z", roles=frozenset({Role.ARTISAN}))


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="admin-1", roles=frozenset({Role.ADMIN}))


def make_order_dto(buyer_id: str = "buyer-1", items=(("P", 1),), **extra) -> CreateOrderDTO:
    return CreateOrderDTO(
        buyer_id=buyer_id,
        items=[OrderItemDTO(product_id=product_id, quantity=quantity) for product_id, quantity in items],
        shipping_address=ADDRESS,
        **extra
    )


@pytest.fixture
def place_order(uow):
    """Фабрика: place_order(items=[("P", 2)], buyer_id=..., **extra)"""
    use_case = CreateOrderUseCase(uow)

    async def _place(items=(("P", 1),), buyer_id: str = "buyer-1", **extra):
        return await use_case(make_order_dto(buyer_id, items, **extra))

    return _place


@pytest.fixture
def order_dto():
    return make_order_dto
