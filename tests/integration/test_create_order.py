"""
Тесты создания заказа: суммы, списание склада, агрегаты, атомарность
"""
import re
from decimal import Decimal

import pytest

from craft_orders.application.create_order import CreateOrderDTO, CreateOrderUseCase, OrderItemDTO
from craft_orders.application.get_order import GetOrderUseCase
from craft_orders.domain.exceptions import (
    ArtisanNotFoundError, InsufficientStockError, ProductNotAvailableError, ValidationError
)
from craft_orders.domain.models import OrderStatus, PaymentStatus


async def test_two_artisan_order_updates_stock_and_aggregates(catalog, place_order):
    order = await place_order(items=[("P", 2), ("Q", 1)])

    assert order.subtotal == Decimal("250")
    assert order.total_amount == Decimal("250")
    assert order.order_status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.PENDING

    assert await catalog.stock("P") == 3
    assert await catalog.stock("Q") == 0
    assert (await catalog.product("P")).sales_count == 2
    assert (await catalog.product("Q")).sales_count == 1

    artisan_a = await catalog.artisan("artisan-a")
    assert artisan_a.total_sales == 1
    assert Decimal(str(artisan_a.total_revenue)) == Decimal("50")
    artisan_b = await catalog.artisan("artisan-b")
    assert artisan_b.total_sales == 1
    assert Decimal(str(artisan_b.total_revenue)) == Decimal("200")


async def test_identifiers_follow_public_format(catalog, place_order):
    order = await place_order()

    assert re.match(r"^ord_\d{13}_[0-9a-z]{9}$", order.order_id)
    assert re.match(r"^CC-\d{13}$", order.order_number)


async def test_total_includes_tax_shipping_and_discount(catalog, uow, order_dto):
    use_case = CreateOrderUseCase(uow, tax_rate=Decimal("0.18"))

    order = await use_case(order_dto(items=[("P", 1)], shipping=Decimal("40"), discount=Decimal("10")))

    assert order.subtotal == Decimal("100")
    assert order.tax == Decimal("18.00")
    assert order.total_amount == order.subtotal + order.tax + order.shipping - order.discount
    assert order.total_amount == Decimal("148.00")


async def test_persisted_order_keeps_line_snapshots(catalog, uow, place_order, buyer):
    created = await place_order(items=[("P", 2), ("Q", 1)])

    order = await GetOrderUseCase(uow)(created.order_id, buyer)

    assert [(item.product_id, item.quantity) for item in order.items] == [("P", 2), ("Q", 1)]
    first = order.items[0]
    assert first.title == "Handmade P"
    assert first.price == Decimal("100")
    assert first.image == "https://img.example/P.jpg"
    assert first.artisan_id == "artisan-b"
    assert order.subtotal == sum(item.price * item.quantity for item in order.items)
    assert order.billing_address == order.shipping_address
    assert order.currency == "INR"


async def test_later_price_change_does_not_touch_existing_order(catalog, uow, place_order, buyer):
    created = await place_order(items=[("P", 2)])

    await catalog.set_product("P", price=Decimal("999.00"))
    order = await GetOrderUseCase(uow)(created.order_id, buyer)

    assert order.items[0].price == Decimal("100")
    assert order.subtotal == Decimal("200")
    assert order.total_amount == Decimal("200")


async def test_client_price_is_replaced_by_catalog_price(catalog, uow):
    dto = CreateOrderDTO(
        buyer_id="buyer-1",
        items=[OrderItemDTO(product_id="P", quantity=1, price=Decimal("1.00"), artisan_id="someone-else")],
        shipping_address={"city": "Jaipur"},
    )

    order = await CreateOrderUseCase(uow)(dto)

    assert order.items[0].price == Decimal("100")
    assert order.items[0].artisan_id == "artisan-b"
    assert order.subtotal == Decimal("100")


async def test_one_failing_line_leaves_everything_untouched(catalog, place_order):
    with pytest.raises(InsufficientStockError) as exc_info:
        await place_order(items=[("P", 2), ("Q", 2)])

    assert exc_info.value.product_id == "Q"
    assert "Q" in str(exc_info.value)
    assert await catalog.stock("P") == 5
    assert await catalog.stock("Q") == 1
    assert (await catalog.product("P")).sales_count == 0
    assert (await catalog.artisan("artisan-b")).total_sales == 0
    assert await catalog.count_orders() == 0
    assert await catalog.count_events() == 0


async def test_unknown_product_is_not_available(catalog, place_order):
    with pytest.raises(ProductNotAvailableError) as exc_info:
        await place_order(items=[("P", 1), ("missing", 1)])

    assert exc_info.value.product_id == "missing"
    assert await catalog.stock("P") == 5
    assert await catalog.count_orders() == 0


async def test_unpublished_product_is_not_available(catalog, place_order):
    await catalog.add_product("draft", "artisan-a", "10.00", 10, status="draft")

    with pytest.raises(ProductNotAvailableError):
        await place_order(items=[("draft", 1)])

    assert await catalog.stock("draft") == 10


async def test_repeated_product_lines_are_checked_together(catalog, place_order):
    with pytest.raises(InsufficientStockError):
        await place_order(items=[("P", 3), ("P", 3)])

    assert await catalog.stock("P") == 5


async def test_repeated_product_lines_within_stock(catalog, place_order):
    order = await place_order(items=[("P", 2), ("P", 3)])

    assert order.subtotal == Decimal("500")
    assert await catalog.stock("P") == 0
    assert (await catalog.product("P")).sales_count == 5
    artisan_b = await catalog.artisan("artisan-b")
    assert artisan_b.total_sales == 1
    assert Decimal(str(artisan_b.total_revenue)) == Decimal("500")


async def test_missing_artisan_rolls_back_whole_order(catalog, place_order):
    await catalog.add_product("orphan", "ghost-artisan", "20.00", 3)

    with pytest.raises(ArtisanNotFoundError):
        await place_order(items=[("P", 1), ("orphan", 1)])

    assert await catalog.stock("P") == 5
    assert await catalog.stock("orphan") == 3
    assert await catalog.count_orders() == 0


async def test_discount_above_amount_is_rejected(catalog, place_order):
    with pytest.raises(ValidationError):
        await place_order(items=[("Q", 1)], discount=Decimal("60"))

    assert await catalog.stock("Q") == 1
    assert await catalog.count_orders() == 0


async def test_conditional_reserve_never_goes_negative(catalog, uow):
    async with uow() as work:
        with pytest.raises(InsufficientStockError):
            await work.stock.reserve("Q", 2)

    assert await catalog.stock("Q") == 1


async def test_ledger_records_each_fulfilled_line(catalog, place_order):
    await place_order(items=[("P", 2), ("Q", 1)])

    assert await catalog.count_events() == 2
