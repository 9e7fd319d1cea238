import logging
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel

from craft_orders.application.cancel_order import compensate_cancellation
from craft_orders.domain.exceptions import OrderNotFoundError
from craft_orders.domain.models import Actor, Order, OrderStatus
from craft_orders.domain.state_machine import OrderStateMachine

logger = logging.getLogger(__name__)


class UpdateStatusDTO(BaseModel):
    order_id: str
    status: OrderStatus
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None


class UpdateOrderStatusUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, dto: UpdateStatusDTO, actor: Actor) -> Order:
        logger.info(f"Смена статуса заказа {dto.order_id} на {dto.status.value} пользователем {actor.user_id}")

        async with self._uow() as uow:
            order = await uow.orders.get_for_update(dto.order_id)
            if not order:
                raise OrderNotFoundError(dto.order_id)

            OrderStateMachine.authorize_transition(order, actor, dto.status)

            if dto.status == OrderStatus.CANCELLED and OrderStateMachine.is_cancellable(order.order_status):
                await compensate_cancellation(uow, order)
                if dto.tracking_number or dto.estimated_delivery:
                    await uow.orders.update_status(
                        order.order_id,
                        OrderStatus.CANCELLED,
                        tracking_number=dto.tracking_number,
                        estimated_delivery=dto.estimated_delivery
                    )
            else:
                delivered_at = datetime.now(timezone.utc) if dto.status == OrderStatus.DELIVERED else None
                await uow.orders.update_status(
                    order.order_id,
                    dto.status,
                    tracking_number=dto.tracking_number,
                    estimated_delivery=dto.estimated_delivery,
                    delivered_at=delivered_at
                )

            updated = await uow.orders.get_by_id(order.order_id)
            await uow.commit()

        logger.info(f"Заказ {updated.order_id}: {order.order_status.value} → {updated.order_status.value}")
        return updated
