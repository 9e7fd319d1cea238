"""
State Machine для статусов заказа

Граф переходов (для всех, кроме администратора):

    pending → confirmed → processing → shipped → delivered
      ↓           ↓   ↘         ↓
    cancelled  cancelled refunded refunded

Администратор может выставить любой документированный статус,
кроме выхода из cancelled.
"""

from craft_orders.domain.exceptions import AuthorizationError, InvalidStateTransitionError
from craft_orders.domain.models import Actor, Order, OrderStatus, Role


CANNOT_CANCEL_MESSAGE = "Order cannot be cancelled at this stage"
REOPEN_CANCELLED_MESSAGE = "Cancelled order cannot be reopened"


class OrderStateMachine:
    TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
        OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
        OrderStatus.CONFIRMED: frozenset(
            {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
        ),
        OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.REFUNDED}),
        OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
        OrderStatus.DELIVERED: frozenset(),
        OrderStatus.CANCELLED: frozenset(),
        OrderStatus.REFUNDED: frozenset(),
    }

    # Только из этих статусов отмена возвращает товар на склад
    CANCELLABLE: frozenset[OrderStatus] = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})

    @classmethod
    def can_transition(cls, from_status: OrderStatus, to_status: OrderStatus) -> bool:
        return to_status in cls.TRANSITIONS.get(from_status, frozenset())

    @classmethod
    def is_cancellable(cls, status: OrderStatus) -> bool:
        return status in cls.CANCELLABLE

    @classmethod
    def ensure_cancellable(cls, order: Order) -> None:
        if not cls.is_cancellable(order.order_status):
            raise InvalidStateTransitionError(
                order.order_status.value, OrderStatus.CANCELLED.value, CANNOT_CANCEL_MESSAGE
            )

    @classmethod
    def authorize_cancellation(cls, order: Order, actor: Actor) -> None:
        """Самостоятельная отмена: покупатель-владелец или администратор"""
        if not (actor.is_admin or (actor.has_role(Role.BUYER) and order.is_owned_by(actor.user_id))):
            raise AuthorizationError("Not allowed to cancel this order")
        cls.ensure_cancellable(order)

    @classmethod
    def authorize_transition(cls, order: Order, actor: Actor, target: OrderStatus) -> None:
        """
        Проверка права actor перевести order в target

        Raises:
            AuthorizationError: актор не имеет отношения к заказу
            InvalidStateTransitionError: переход недопустим для этого актора
        """
        if actor.is_admin:
            if order.order_status == OrderStatus.CANCELLED and target != OrderStatus.CANCELLED:
                # Остатки отменённого заказа уже вернулись на склад
                raise InvalidStateTransitionError(
                    order.order_status.value, target.value, REOPEN_CANCELLED_MESSAGE
                )
            return

        if actor.has_role(Role.ARTISAN) and order.has_artisan(actor.user_id):
            if not cls.can_transition(order.order_status, target):
                raise InvalidStateTransitionError(order.order_status.value, target.value)
            return

        if actor.has_role(Role.BUYER) and order.is_owned_by(actor.user_id):
            if target != OrderStatus.CANCELLED:
                raise InvalidStateTransitionError(
                    order.order_status.value, target.value, CANNOT_CANCEL_MESSAGE
                )
            cls.ensure_cancellable(order)
            return

        raise AuthorizationError("Unauthorized to update order status")
