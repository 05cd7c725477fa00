"""Domain exceptions for the picking verifier.

These exceptions are framework-agnostic and represent business rule violations
or remote failures. They are caught and translated to HTTP responses by the
API layer's middleware.
"""


class PickingError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "PICKING_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Input Errors ---


class InvalidInputError(PickingError):
    """Raised when caller input is malformed (e.g. a non-numeric order number)."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_INPUT")


# --- Session Errors ---


class BusyError(PickingError):
    """Raised when a load or finalize is already in flight."""

    def __init__(self, message: str = "Another order operation is in progress, try again") -> None:
        super().__init__(message=message, code="BUSY")


class NoActiveOrderError(PickingError):
    """Raised when finalize is attempted with no order loaded."""

    def __init__(self) -> None:
        super().__init__(message="No order is loaded", code="NO_ACTIVE_ORDER")


class OrderNotFoundError(PickingError):
    """Raised when an order number has no remote counterpart."""

    def __init__(self, order_number: int) -> None:
        super().__init__(
            message=f"Order not found: {order_number}",
            code="ORDER_NOT_FOUND",
        )
        self.order_number = order_number


class AlreadyVerifiedError(PickingError):
    """Raised when loading an order whose remote situation is already Verified."""

    def __init__(self, order_number: int) -> None:
        super().__init__(
            message=f"Order {order_number} has already been verified",
            code="ALREADY_VERIFIED",
        )
        self.order_number = order_number


# --- Scan Errors ---


class NotInOrderError(PickingError):
    """Raised when a scanned code does not belong to the active order."""

    def __init__(self, code: str) -> None:
        super().__init__(
            message=f"Product does not belong to the order: {code}",
            code="NOT_IN_ORDER",
        )
        self.scanned_code = code


class QuantityExceededError(PickingError):
    """Raised when a line has already been scanned up to its ordered quantity."""

    def __init__(self, product_name: str, ordered_qty: int) -> None:
        super().__init__(
            message=f"Quantity exceeded for {product_name} (ordered {ordered_qty})",
            code="QUANTITY_EXCEEDED",
        )
        self.product_name = product_name
        self.ordered_qty = ordered_qty


# --- Gateway Errors ---


class GatewayError(PickingError):
    """Raised when a remote ERP call fails and no reconciling policy applies."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: object | None = None,
    ) -> None:
        super().__init__(message=message, code="GATEWAY_ERROR")
        self.status_code = status_code
        self.details = details


class GatewayTimeoutError(GatewayError):
    """Raised when a remote call exceeded the client timeout."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message)
        self.code = "GATEWAY_TIMEOUT"


class GatewayNotFoundError(GatewayError):
    """Raised when the remote side answered 404 for a resource."""

    def __init__(self, message: str, details: object | None = None) -> None:
        super().__init__(message=message, status_code=404, details=details)
        self.code = "GATEWAY_NOT_FOUND"


class NotAuthenticatedError(GatewayError):
    """Raised when no usable ERP token is stored (OAuth login pending)."""

    def __init__(self, message: str = "Bling is not authenticated, open /oauth/login") -> None:
        super().__init__(message=message)
        self.code = "NOT_AUTHENTICATED"
