"""Bling API v3 adapter implementing the ErpGateway protocol.

Each call fetches a bearer token from the token provider, opens a short
lived httpx.AsyncClient and translates failures into the GatewayError
family:

    httpx.TimeoutException  -> GatewayTimeoutError
    token unavailable       -> GatewayError (never GatewayTimeoutError)
    HTTP 404                -> GatewayNotFoundError
    anything else           -> GatewayError (with the remote body)

No call is retried here; the workflow decides what a failure means.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import httpx

from picking_verifier.domain.exceptions import (
    GatewayError,
    GatewayNotFoundError,
    GatewayTimeoutError,
)
from picking_verifier.logging_config import get_logger

if TYPE_CHECKING:
    from picking_verifier.config import Settings

logger = get_logger(__name__)


class TokenProvider(Protocol):
    async def get_token(self) -> str: ...


def _body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class BlingGateway:
    """ErpGateway backed by the Bling REST API."""

    def __init__(
        self,
        token_provider: TokenProvider,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._tokens = token_provider
        self._base_url = settings.bling_api_base_url
        self._timeout = settings.bling_timeout_seconds
        self._transport = transport

    # ------------------------------------------------------------------
    # ErpGateway
    # ------------------------------------------------------------------

    async def find_orders(self, order_number: int) -> list[dict]:
        data = await self._request("GET", "/pedidos/vendas", params={"numero": order_number})
        return data if isinstance(data, list) else []

    async def get_order(self, order_id: Any) -> dict:
        return await self._request("GET", f"/pedidos/vendas/{order_id}") or {}

    async def change_situation(self, order_id: Any, situation_id: int) -> None:
        await self._request(
            "PATCH", f"/pedidos/vendas/{order_id}/situacoes/{int(situation_id)}"
        )

    async def get_product(self, product_id: Any) -> dict:
        return await self._request("GET", f"/produtos/{product_id}") or {}

    async def post_stock(self, order_id: Any) -> None:
        await self._request("POST", f"/pedidos/vendas/{order_id}/lancar-estoque")

    async def ping(self) -> None:
        await self._request("GET", "/produtos", params={"limite": 1})

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Perform an authenticated call and return the ``data`` member."""
        # Token failures are plain GatewayErrors, never timeouts of the call itself
        try:
            token = await self._tokens.get_token()
        except httpx.HTTPError as exc:
            logger.error("bling.token_unavailable", method=method, path=path, error=str(exc))
            raise GatewayError(f"Bling token unavailable: {exc}") from exc
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, params=params)
        except httpx.TimeoutException as exc:
            logger.warning("bling.timeout", method=method, path=path)
            raise GatewayTimeoutError(f"Bling timed out on {method} {path}") from exc
        except httpx.HTTPError as exc:
            logger.error("bling.transport_error", method=method, path=path, error=str(exc))
            raise GatewayError(f"Bling unreachable on {method} {path}: {exc}") from exc

        logger.debug("bling.response", method=method, path=path, status=response.status_code)

        if response.status_code == 404:
            raise GatewayNotFoundError(
                f"Bling returned 404 on {method} {path}", details=_body(response)
            )
        if response.is_error:
            details = _body(response)
            logger.error(
                "bling.http_error",
                method=method,
                path=path,
                status=response.status_code,
                details=details,
            )
            raise GatewayError(
                f"Bling returned {response.status_code} on {method} {path}",
                status_code=response.status_code,
                details=details,
            )

        if not response.content:
            return None
        body = _body(response)
        if isinstance(body, dict):
            return body.get("data")
        return body
