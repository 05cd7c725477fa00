"""Pydantic API schemas."""

from picking_verifier.schemas.orders import (
    ActiveOrderResponse,
    ConnectionStatusResponse,
    FinalizeResponse,
    HealthResponse,
    OrderLineResponse,
    ScanRequest,
    ScanResponse,
)

__all__ = [
    "ActiveOrderResponse",
    "ConnectionStatusResponse",
    "FinalizeResponse",
    "HealthResponse",
    "OrderLineResponse",
    "ScanRequest",
    "ScanResponse",
]
