from typing import Optional

from craft_orders.domain.models import Actor, Order, OrderStatus, Role
from craft_orders.domain.exceptions import AuthorizationError, OrderNotFoundError, ValidationError

MAX_PAGE_SIZE = 100


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, actor: Actor) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(order_id)
            if not order.is_visible_to(actor):
                raise AuthorizationError("Not allowed to view this order")
            details = await uow.orders.product_details(order_id)
            return order.model_copy(update={"product_details": details})


class ListOrdersUseCase:
    """Новые сначала. Видимость как у GetOrderUseCase: свои покупки и заказы со своими позициями"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(
        self,
        actor: Actor,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0
    ) -> tuple[list[Order], bool]:
        if not 1 <= limit <= MAX_PAGE_SIZE or offset < 0:
            raise ValidationError(f"limit must be 1..{MAX_PAGE_SIZE}, offset must be >= 0")

        scope: dict[str, str] = {}
        if not actor.is_admin:
            if actor.has_role(Role.BUYER):
                scope["buyer_id"] = actor.user_id
            if actor.has_role(Role.ARTISAN):
                scope["artisan_id"] = actor.user_id
            if not scope:
                raise AuthorizationError("Unauthorized to list orders")

        async with self._uow() as uow:
            # Лишняя строка показывает, есть ли следующая страница
            orders = await uow.orders.list_orders(status=status, limit=limit + 1, offset=offset, **scope)

        return orders[:limit], len(orders) > limit
