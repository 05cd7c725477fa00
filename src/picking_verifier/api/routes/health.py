"""Health and connectivity endpoints.

    GET /health        — local liveness, no remote call
    GET /bling/status  — authenticated round trip to Bling
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from picking_verifier.api.deps import get_monitor_bus, get_workflow
from picking_verifier.domain.exceptions import GatewayError
from picking_verifier.logging_config import get_logger
from picking_verifier.schemas.orders import ConnectionStatusResponse, HealthResponse
from picking_verifier.services.monitor_bus import MonitorBus
from picking_verifier.services.verification_service import VerificationWorkflow

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the local state of the verifier without calling Bling.",
)
async def health_check(
    workflow: VerificationWorkflow = Depends(get_workflow),
    bus: MonitorBus = Depends(get_monitor_bus),
) -> HealthResponse:
    return HealthResponse(
        phase=workflow.phase.value,
        active_order=workflow.session.order_number,
        subscribers=bus.subscriber_count,
        allowed_events=workflow.allowed_events(),
    )


@router.get(
    "/bling/status",
    response_model=ConnectionStatusResponse,
    response_model_exclude_none=True,
    summary="Bling connectivity",
)
async def bling_status(
    workflow: VerificationWorkflow = Depends(get_workflow),
) -> ConnectionStatusResponse | JSONResponse:
    """Check that the stored token works against the Bling API."""
    try:
        await workflow.check_connection()
    except GatewayError as exc:
        logger.error("health.bling_check_failed", error=exc.message)
        body = ConnectionStatusResponse(connected=False, error=exc.details or exc.message)
        return JSONResponse(status_code=500, content=body.model_dump(by_alias=True, mode="json"))
    return ConnectionStatusResponse(connected=True)
