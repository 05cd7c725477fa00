"""Bling OAuth routes.

Routes:
    GET /oauth/login     — Redirect to the Bling consent screen
    GET /oauth/callback  — Exchange the authorization code and store the token
"""

from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse, RedirectResponse

from picking_verifier.api.deps import get_token_provider
from picking_verifier.domain.exceptions import GatewayError
from picking_verifier.infrastructure.bling_auth import BlingTokenProvider
from picking_verifier.logging_config import get_logger

router = APIRouter(prefix="/oauth", tags=["OAuth"])
logger = get_logger(__name__)


@router.get("/login", summary="Start the Bling OAuth flow")
async def login(
    provider: BlingTokenProvider = Depends(get_token_provider),
) -> RedirectResponse:
    return RedirectResponse(provider.build_authorize_url(), status_code=302)


@router.get("/callback", summary="Bling OAuth callback")
async def callback(
    code: str | None = None,
    provider: BlingTokenProvider = Depends(get_token_provider),
) -> PlainTextResponse:
    """Store the token obtained for ``code``; the page can be closed afterwards."""
    if not code:
        return PlainTextResponse("Authorization code not received from Bling", status_code=400)

    try:
        await provider.exchange_code(code)
    except GatewayError as exc:
        logger.error("auth.callback_failed", error=exc.message, details=exc.details)
        return PlainTextResponse("Bling authentication failed", status_code=500)
    except httpx.HTTPError as exc:
        logger.error("auth.callback_failed", error=str(exc))
        return PlainTextResponse("Bling authentication failed", status_code=500)

    return PlainTextResponse("Bling authenticated successfully. You can close this page.")
