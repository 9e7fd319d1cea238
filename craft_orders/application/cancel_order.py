import logging

from craft_orders.domain.aggregates import LedgerEvent
from craft_orders.domain.exceptions import InvalidStateTransitionError, OrderNotFoundError
from craft_orders.domain.models import Actor, Order, OrderStatus
from craft_orders.domain.state_machine import CANNOT_CANCEL_MESSAGE, OrderStateMachine

logger = logging.getLogger(__name__)


async def compensate_cancellation(uow, order: Order) -> Order:
    """
    Компенсирующая транзакция: статус cancelled и возврат остатков на склад.

    Выполняется внутри уже открытого uow, commit делает вызывающая сторона.
    salesCount и агрегаты артизана не откатываются.
    """
    OrderStateMachine.ensure_cancellable(order)

    changed = await uow.orders.update_status(
        order.order_id, OrderStatus.CANCELLED, expected=OrderStateMachine.CANCELLABLE
    )
    if not changed:
        # Параллельная транзакция успела сменить статус
        raise InvalidStateTransitionError(
            order.order_status.value, OrderStatus.CANCELLED.value, CANNOT_CANCEL_MESSAGE
        )

    for item in order.items:
        restored = await uow.stock.release(item.product_id, item.quantity)
        if not restored:
            logger.warning(f"Товар {item.product_id} отсутствует в каталоге, остаток заказа {order.order_id} не возвращён")

    await uow.ledger.append(order, LedgerEvent.CANCELLED)
    logger.info(f"Заказ {order.order_id} отменён, остатки возвращены")
    return await uow.orders.get_by_id(order.order_id)


class CancelOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, actor: Actor) -> Order:
        logger.info(f"Отмена заказа {order_id} пользователем {actor.user_id}")

        async with self._uow() as uow:
            order = await uow.orders.get_for_update(order_id)
            if not order:
                raise OrderNotFoundError(order_id)

            OrderStateMachine.authorize_cancellation(order, actor)
            cancelled = await compensate_cancellation(uow, order)
            await uow.commit()

        return cancelled
