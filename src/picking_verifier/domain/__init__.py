"""Domain layer — pure business logic with zero framework dependencies."""

from picking_verifier.domain.enums import (
    EventKind,
    FinalizeResult,
    SessionPhase,
    Situation,
)
from picking_verifier.domain.exceptions import (
    AlreadyVerifiedError,
    BusyError,
    GatewayError,
    GatewayNotFoundError,
    GatewayTimeoutError,
    InvalidInputError,
    NoActiveOrderError,
    NotInOrderError,
    OrderNotFoundError,
    PickingError,
    QuantityExceededError,
)
from picking_verifier.domain.gateway_protocol import ErpGateway, FinalizeOutcome
from picking_verifier.domain.session import BarcodeIndex, OrderLine, OrderSession
from picking_verifier.domain.state_machine import (
    SessionPhaseMachine,
    validate_transition,
)

__all__ = [
    "EventKind",
    "FinalizeResult",
    "SessionPhase",
    "Situation",
    "AlreadyVerifiedError",
    "BusyError",
    "GatewayError",
    "GatewayNotFoundError",
    "GatewayTimeoutError",
    "InvalidInputError",
    "NoActiveOrderError",
    "NotInOrderError",
    "OrderNotFoundError",
    "PickingError",
    "QuantityExceededError",
    "ErpGateway",
    "FinalizeOutcome",
    "BarcodeIndex",
    "OrderLine",
    "OrderSession",
    "SessionPhaseMachine",
    "validate_transition",
]
