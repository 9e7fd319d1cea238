import logging
from typing import Optional
from fastapi import APIRouter, Depends, FastAPI, Header, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from craft_orders.config import settings
from craft_orders.database import AsyncSessionLocal
from craft_orders.presentation.schemas import (
    CreateOrderRequest, UpdateStatusRequest, PaymentCallbackRequest,
    OrderCreated, OrderResponse, StatusUpdated, Pagination, ReconcileReport,
    OrderCreatedEnvelope, OrderEnvelope, OrderListEnvelope, StatusUpdatedEnvelope,
    MessageEnvelope, ReconcileEnvelope, ErrorResponse
)
from craft_orders.application.create_order import CreateOrderUseCase, CreateOrderDTO, OrderItemDTO
from craft_orders.application.cancel_order import CancelOrderUseCase
from craft_orders.application.get_order import GetOrderUseCase, ListOrdersUseCase
from craft_orders.application.update_status import UpdateOrderStatusUseCase, UpdateStatusDTO
from craft_orders.application.process_payment import ProcessPaymentCallbackUseCase, PaymentCallbackDTO
from craft_orders.application.reconcile import ReconcileAggregatesUseCase
from craft_orders.domain.exceptions import (
    DomainException, ValidationError, NotFoundError, ConflictError,
    AuthorizationError, AuthenticationRequiredError, TransientInfrastructureError
)
from craft_orders.domain.models import Actor, OrderStatus, Role
from craft_orders.infrastructure.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

router = APIRouter()

_ROLE_VALUES = {role.value for role in Role}

# Порядок важен: подклассы раньше базовых классов
_STATUS_CODES = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthenticationRequiredError, status.HTTP_401_UNAUTHORIZED),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (TransientInfrastructureError, status.HTTP_503_SERVICE_UNAVAILABLE),
)

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def get_uow() -> UnitOfWork:
    return UnitOfWork(AsyncSessionLocal)


async def get_actor(
    x_user_id: Optional[str] = Header(default=None),
    x_user_roles: str = Header(default="")
) -> Actor:
    """Личность от шлюза аутентификации (AuthenticationProvider)"""
    if not x_user_id:
        raise AuthenticationRequiredError("Authentication required")
    roles = frozenset(
        Role(value) for value in (part.strip().lower() for part in x_user_roles.split(","))
        if value in _ROLE_VALUES
    )
    return Actor(user_id=x_user_id, roles=roles)


async def verify_api_key(x_api_key: Optional[str] = Header(default=None)) -> None:
    if settings.API_TOKEN and x_api_key != settings.API_TOKEN:
        raise AuthorizationError("Invalid API key")


# Фабрики для создания use cases
def get_create_order_use_case(uow: UnitOfWork = Depends(get_uow)):
    return CreateOrderUseCase(uow)


def get_list_orders_use_case(uow: UnitOfWork = Depends(get_uow)):
    return ListOrdersUseCase(uow)


def get_get_order_use_case(uow: UnitOfWork = Depends(get_uow)):
    return GetOrderUseCase(uow)


def get_update_status_use_case(uow: UnitOfWork = Depends(get_uow)):
    return UpdateOrderStatusUseCase(uow)


def get_cancel_order_use_case(uow: UnitOfWork = Depends(get_uow)):
    return CancelOrderUseCase(uow)


def get_process_payment_use_case(uow: UnitOfWork = Depends(get_uow)):
    return ProcessPaymentCallbackUseCase(uow)


def get_reconcile_use_case(uow: UnitOfWork = Depends(get_uow)):
    return ReconcileAggregatesUseCase(uow)


@router.post(
    "/orders",
    response_model=OrderCreatedEnvelope,
    responses=_ERROR_RESPONSES,
    status_code=status.HTTP_201_CREATED
)
async def create_order(
    request: CreateOrderRequest,
    actor: Actor = Depends(get_actor),
    use_case: CreateOrderUseCase = Depends(get_create_order_use_case)
):
    """Создать новый заказ"""
    if not actor.has_role(Role.BUYER):
        raise AuthorizationError("Only buyers can create orders")

    dto = CreateOrderDTO(
        buyer_id=actor.user_id,
        items=[OrderItemDTO(**item.model_dump()) for item in request.items],
        shipping_address=request.shipping_address,
        billing_address=request.billing_address,
        notes=request.notes,
        discount=request.discount,
        shipping=request.shipping,
        currency=request.currency
    )
    order = await use_case(dto)
    return OrderCreatedEnvelope(
        message="Order created successfully",
        data=OrderCreated.from_domain(order)
    )


@router.get("/orders", response_model=OrderListEnvelope, responses=_ERROR_RESPONSES)
async def list_orders(
    status: Optional[OrderStatus] = None,
    limit: int = 50,
    offset: int = 0,
    actor: Actor = Depends(get_actor),
    use_case: ListOrdersUseCase = Depends(get_list_orders_use_case)
):
    """Заказы пользователя, новые сначала"""
    orders, has_more = await use_case(actor, status=status, limit=limit, offset=offset)
    return OrderListEnvelope(
        data=[OrderResponse.from_domain(order) for order in orders],
        pagination=Pagination(limit=limit, offset=offset, has_more=has_more)
    )


@router.post("/orders/payment-callback", response_model=MessageEnvelope, responses=_ERROR_RESPONSES)
async def payment_callback(
    callback: PaymentCallbackRequest,
    _: None = Depends(verify_api_key),
    use_case: ProcessPaymentCallbackUseCase = Depends(get_process_payment_use_case)
):
    """Обработка callback от платёжного шлюза"""
    dto = PaymentCallbackDTO(
        payment_id=callback.payment_id,
        order_id=callback.order_id,
        status=callback.status,
        payment_method=callback.payment_method,
        error_message=callback.error_message
    )
    await use_case(dto)
    return MessageEnvelope(message="Callback processed")


@router.get("/orders/{order_id}", response_model=OrderEnvelope, responses=_ERROR_RESPONSES)
async def get_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    use_case: GetOrderUseCase = Depends(get_get_order_use_case)
):
    """Получить заказ по ID"""
    order = await use_case(order_id, actor)
    return OrderEnvelope(data=OrderResponse.from_domain(order))


@router.put("/orders/{order_id}/status", response_model=StatusUpdatedEnvelope, responses=_ERROR_RESPONSES)
async def update_order_status(
    order_id: str,
    request: UpdateStatusRequest,
    actor: Actor = Depends(get_actor),
    use_case: UpdateOrderStatusUseCase = Depends(get_update_status_use_case)
):
    """Смена статуса (покупатель может только отменить)"""
    dto = UpdateStatusDTO(
        order_id=order_id,
        status=request.status,
        tracking_number=request.tracking_number,
        estimated_delivery=request.estimated_delivery
    )
    order = await use_case(dto, actor)
    return StatusUpdatedEnvelope(
        message="Order status updated successfully",
        data=StatusUpdated.from_domain(order)
    )


@router.put("/orders/{order_id}/cancel", response_model=MessageEnvelope, responses=_ERROR_RESPONSES)
async def cancel_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    use_case: CancelOrderUseCase = Depends(get_cancel_order_use_case)
):
    """Отмена заказа покупателем"""
    await use_case(order_id, actor)
    return MessageEnvelope(message="Order cancelled successfully")


@router.post("/admin/aggregates/reconcile", response_model=ReconcileEnvelope, responses=_ERROR_RESPONSES)
async def reconcile_aggregates(
    apply: bool = False,
    actor: Actor = Depends(get_actor),
    use_case: ReconcileAggregatesUseCase = Depends(get_reconcile_use_case)
):
    """Сверка счётчиков продаж с леджером позиций"""
    report = await use_case(actor, apply=apply)
    return ReconcileEnvelope(data=ReconcileReport.from_domain(report))


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message).model_dump(by_alias=True)
    )


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    status_code = next(
        (code for exc_type, code in _STATUS_CODES if isinstance(exc, exc_type)),
        status.HTTP_400_BAD_REQUEST
    )
    message = str(exc)
    if isinstance(exc, TransientInfrastructureError):
        logger.error(f"{request.method} {request.url.path}: {exc}", exc_info=exc)
        if settings.is_production:
            message = "Service temporarily unavailable"
    else:
        logger.warning(f"{request.method} {request.url.path}: {exc}")
    return _error(status_code, message)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    logger.warning(f"{request.method} {request.url.path}: невалидный запрос ({details})")
    return _error(status.HTTP_400_BAD_REQUEST, f"Validation failed: {details}")


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path}: необработанная ошибка", exc_info=exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
