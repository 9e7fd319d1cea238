import logging
from pydantic import BaseModel
from typing import Optional

from craft_orders.application.cancel_order import compensate_cancellation
from craft_orders.domain.models import Order, OrderStatus, PaymentStatus
from craft_orders.domain.exceptions import InvalidStateTransitionError, OrderNotFoundError, ValidationError
from craft_orders.domain.state_machine import OrderStateMachine

logger = logging.getLogger(__name__)

# Заказы, по которым успешная оплата не принимается
_CLOSED_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.REFUNDED})


class PaymentCallbackDTO(BaseModel):
    payment_id: str
    order_id: str
    status: str
    payment_method: Optional[str] = None
    error_message: Optional[str] = None


class ProcessPaymentCallbackUseCase:
    """Фиксация статуса оплаты; сам платёж проводит внешний шлюз"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, dto: PaymentCallbackDTO) -> Order:
        logger.info(f"Обработка payment callback: заказ {dto.order_id}, статус {dto.status}")
        if dto.status not in ("succeeded", "failed"):
            raise ValidationError(f"Unknown payment status '{dto.status}'")

        async with self._uow() as uow:
            order = await uow.orders.get_for_update(dto.order_id)
            if not order:
                raise OrderNotFoundError(dto.order_id)

            # Идемпотентность: оплаченный заказ повторные callback не меняют
            if order.payment_status == PaymentStatus.PAID:
                logger.info(f"Заказ {order.order_id} уже оплачен, callback {dto.status} пропущен")
                return order

            if dto.status == "succeeded" and order.order_status in _CLOSED_STATUSES:
                logger.warning(
                    f"Оплата {dto.payment_id} пришла по заказу {order.order_id} "
                    f"в статусе {order.order_status.value}, требуется возврат"
                )
                raise InvalidStateTransitionError(
                    order.order_status.value,
                    PaymentStatus.PAID.value,
                    f"Order {order.order_id} is {order.order_status.value}, payment must be refunded"
                )

            if dto.status == "succeeded":
                await uow.orders.update_payment(
                    order.order_id, PaymentStatus.PAID, dto.payment_id, dto.payment_method
                )
                if order.order_status == OrderStatus.PENDING:
                    await uow.orders.update_status(
                        order.order_id, OrderStatus.CONFIRMED, expected=frozenset({OrderStatus.PENDING})
                    )
                logger.info(f"Заказ {order.order_id} оплачен")
            else:
                await uow.orders.update_payment(
                    order.order_id, PaymentStatus.FAILED, dto.payment_id, dto.payment_method
                )
                if OrderStateMachine.is_cancellable(order.order_status):
                    await compensate_cancellation(uow, order)
                logger.info(
                    f"Заказ {order.order_id}: оплата не прошла ({dto.error_message or 'платеж не прошел'})"
                )

            updated = await uow.orders.get_by_id(order.order_id)
            await uow.commit()

        return updated
