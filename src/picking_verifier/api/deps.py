"""FastAPI dependency injection providers.

The workflow, monitor bus and token provider are created once by
``create_app`` and parked on ``app.state``; these providers hand them to
route handlers via Depends(), which also lets tests override them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request

from picking_verifier.config import Settings, get_settings

if TYPE_CHECKING:
    from picking_verifier.infrastructure.bling_auth import BlingTokenProvider
    from picking_verifier.services.monitor_bus import MonitorBus
    from picking_verifier.services.verification_service import VerificationWorkflow


def get_workflow(request: Request) -> VerificationWorkflow:
    """Provide the process-wide verification workflow."""
    return request.app.state.workflow


def get_monitor_bus(request: Request) -> MonitorBus:
    """Provide the process-wide monitor bus."""
    return request.app.state.monitor_bus


def get_token_provider(request: Request) -> BlingTokenProvider:
    """Provide the Bling token provider."""
    return request.app.state.token_provider


def get_app_settings(request: Request) -> Settings:
    """Provide the settings the app was created with."""
    return getattr(request.app.state, "settings", None) or get_settings()
