"""Bling OAuth token storage and refresh.

The OAuth callback stores a TokenRecord on disk; every gateway call asks
BlingTokenProvider for a bearer token, which refreshes the record through
the ``refresh_token`` grant shortly before it expires.

Usage:
    store = FileTokenStore("./bling_token.json")
    provider = BlingTokenProvider(store, settings)
    token = await provider.get_token()
"""

from __future__ import annotations

import asyncio
import json
import secrets
import time
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from picking_verifier.domain.exceptions import GatewayError, NotAuthenticatedError
from picking_verifier.logging_config import get_logger

if TYPE_CHECKING:
    from picking_verifier.config import Settings

logger = get_logger(__name__)

# Refresh this long before the recorded expiry
REFRESH_MARGIN_MS = 60_000


def _now_ms() -> int:
    return int(time.time() * 1000)


class TokenRecord(BaseModel):
    """Persisted token record; ``expires_at`` is an epoch in milliseconds."""

    access_token: str
    refresh_token: str | None = None
    expires_at: int

    @classmethod
    def from_token_response(cls, data: dict) -> TokenRecord:
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=_now_ms() + int(data.get("expires_in", 0)) * 1000,
        )

    def expires_soon(self, now_ms: int | None = None) -> bool:
        now = _now_ms() if now_ms is None else now_ms
        return now >= self.expires_at - REFRESH_MARGIN_MS


class FileTokenStore:
    """Reads and writes the token record as pretty-printed JSON."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def load(self) -> TokenRecord | None:
        if not self._path.exists():
            return None
        try:
            return TokenRecord.model_validate_json(self._path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            logger.error("auth.token_file_unreadable", path=str(self._path), error=str(exc))
            raise NotAuthenticatedError(
                "Stored Bling token is unreadable, open /oauth/login"
            ) from exc

    def save(self, record: TokenRecord) -> None:
        self._path.write_text(
            json.dumps(record.model_dump(), indent=2), encoding="utf-8"
        )
        logger.info("auth.token_saved", path=str(self._path), expires_at=record.expires_at)


class BlingTokenProvider:
    """Hands out a valid access token, refreshing it when needed."""

    def __init__(
        self,
        store: FileTokenStore,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._transport = transport
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        async with self._lock:
            record = self._store.load()
            if record is None:
                raise NotAuthenticatedError()
            if record.expires_soon():
                if not record.refresh_token:
                    raise NotAuthenticatedError()
                try:
                    record = await self._refresh(record.refresh_token)
                except httpx.HTTPError as exc:
                    # Never a GatewayTimeoutError: nothing reached the order endpoints
                    logger.error("auth.refresh_unreachable", error=str(exc))
                    raise GatewayError(f"Bling token refresh failed: {exc}") from exc
                self._store.save(record)
            return record.access_token

    async def exchange_code(self, code: str) -> TokenRecord:
        """Trade an authorization code for a token record and persist it."""
        record = await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._settings.bling_redirect_uri,
            }
        )
        self._store.save(record)
        logger.info("auth.code_exchanged")
        return record

    def build_authorize_url(self, state: str | None = None) -> str:
        params = {
            "response_type": "code",
            "client_id": self._settings.bling_client_id,
            "redirect_uri": self._settings.bling_redirect_uri,
            "state": state or secrets.token_urlsafe(16),
        }
        return f"{self._settings.bling_authorize_url}?{urlencode(params)}"

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _refresh(self, refresh_token: str) -> TokenRecord:
        logger.info("auth.refreshing_token")
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    async def _token_request(self, form: dict[str, str]) -> TokenRecord:
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self._settings.bling_timeout_seconds,
        ) as client:
            response = await client.post(
                self._settings.bling_token_url,
                data=form,
                auth=(self._settings.bling_client_id, self._settings.bling_client_secret),
                headers={"Accept": "application/json"},
            )
        if response.is_error:
            logger.error(
                "auth.token_request_failed",
                grant=form["grant_type"],
                status=response.status_code,
                body=response.text[:500],
            )
            raise GatewayError(
                "Bling token request failed",
                status_code=response.status_code,
                details=response.text,
            )
        try:
            return TokenRecord.from_token_response(response.json())
        except (ValueError, KeyError, TypeError) as exc:
            raise GatewayError(
                "Bling token response is malformed", details=response.text
            ) from exc
