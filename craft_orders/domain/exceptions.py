class DomainException(Exception):
    pass


class ValidationError(DomainException):
    pass


class NotFoundError(DomainException):
    pass


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class ProductNotAvailableError(NotFoundError):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found or not available")


class ArtisanNotFoundError(NotFoundError):
    def __init__(self, artisan_id: str):
        self.artisan_id = artisan_id
        super().__init__(f"Artisan {artisan_id} not found")


class ConflictError(DomainException):
    pass


class InsufficientStockError(ConflictError):
    def __init__(self, product_id: str, available: int | None = None, required: int | None = None):
        self.product_id = product_id
        self.available = available
        self.required = required
        super().__init__(f"Insufficient stock for product {product_id}")


class InvalidStateTransitionError(ConflictError):
    def __init__(self, from_status: str, to_status: str, message: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(message or f"Cannot change order status from '{from_status}' to '{to_status}'")


class AuthorizationError(DomainException):
    pass


class AuthenticationRequiredError(AuthorizationError):
    pass


class TransientInfrastructureError(DomainException):
    pass
