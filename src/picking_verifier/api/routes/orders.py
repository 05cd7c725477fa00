"""Order verification REST API routes.

These endpoints drive the single active order. All of them delegate to the
VerificationWorkflow; domain errors are turned into JSON by the
ErrorHandlerMiddleware.

Routes:
    GET    /pedido              — Active order snapshot
    GET    /pedido/{numero}     — Load an order from Bling
    POST   /scan                — Record one scanned unit
    POST   /finalizar           — Post stock and mark the order Verified
    GET    /status/{numero}     — Raw Bling order detail (debug)
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from picking_verifier.api.deps import get_workflow
from picking_verifier.logging_config import get_logger
from picking_verifier.schemas.orders import (
    ActiveOrderResponse,
    FinalizeResponse,
    OrderLineResponse,
    ScanRequest,
    ScanResponse,
)
from picking_verifier.services.verification_service import VerificationWorkflow


router = APIRouter(tags=["Orders"])
logger = get_logger(__name__)


@router.get(
    "/pedido",
    response_model=ActiveOrderResponse,
    summary="Get the active order",
)
async def get_active_order(
    workflow: VerificationWorkflow = Depends(get_workflow),
) -> Any:
    """Return the loaded order and its scan progress."""
    return await workflow.active_order()


@router.get(
    "/pedido/{numero}",
    response_model=dict[str, OrderLineResponse],
    summary="Load an order",
)
async def load_order(
    numero: str,
    workflow: VerificationWorkflow = Depends(get_workflow),
) -> Any:
    """Load order ``numero`` from Bling, replacing the active one.

    Moves Open orders to In-Progress. Rejects orders already Verified.
    """
    return await workflow.load(numero)


@router.post(
    "/scan",
    response_model=ScanResponse,
    summary="Record one scan",
)
async def scan(
    request: ScanRequest,
    workflow: VerificationWorkflow = Depends(get_workflow),
) -> Any:
    """Count one unit for the line owning the scanned code."""
    result = await workflow.scan(request.code)
    return result.to_dict()


@router.post(
    "/finalizar",
    response_model=FinalizeResponse,
    response_model_exclude_none=True,
    summary="Finalize the active order",
)
async def finalize(
    workflow: VerificationWorkflow = Depends(get_workflow),
) -> Any:
    """Post stock and mark the order Verified in Bling.

    Timeouts and vanished orders during finalize are reported as success
    with an ``aviso`` warning.
    """
    outcome = await workflow.finalize()
    return outcome.to_dict()


@router.get(
    "/status/{numero}",
    summary="Raw Bling order detail",
)
async def remote_status(
    numero: str,
    workflow: VerificationWorkflow = Depends(get_workflow),
) -> dict:
    """Read-through of the remote order, for debugging situation codes."""
    return await workflow.remote_status(numero)
