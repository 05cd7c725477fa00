"""Pydantic schemas for the order verification API.

These schemas define the request/response shapes of the HTTP surface. The
wire names are the Portuguese keys the picking screen already speaks
(``codigo``, ``idProduto``, ``bipado``...); Python code uses the English
field names and FastAPI serializes by alias.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class ScanRequest(BaseModel):
    """Request body for recording one scan."""

    model_config = ConfigDict(populate_by_name=True)

    code: str | int = Field(
        ...,
        alias="codigo",
        description="Barcode read by the scanner (GTIN, product barcode or order item code)",
        examples=["7891234567895"],
    )


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class OrderLineResponse(BaseModel):
    """One line of the active order."""

    model_config = ConfigDict(populate_by_name=True)

    product_id: int | str = Field(alias="idProduto")
    name: str = Field(alias="nome")
    ordered_qty: int = Field(alias="pedido")
    scanned_qty: int = Field(alias="bipado")
    codes: list[str] = Field(default_factory=list, alias="codigos")


class ActiveOrderResponse(BaseModel):
    """The currently loaded order, for screens resuming after a reload."""

    model_config = ConfigDict(populate_by_name=True)

    order_number: int = Field(alias="pedido")
    lines: dict[str, OrderLineResponse] = Field(alias="linhas")


class ScanResponse(BaseModel):
    """Result of an accepted scan."""

    model_config = ConfigDict(populate_by_name=True)

    product_id: int | str = Field(alias="idProduto")
    scanned_qty: int = Field(alias="bipado")


class FinalizeResponse(BaseModel):
    """Result of finalizing; ``aviso`` is set for probable successes."""

    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    warning: str | None = Field(default=None, alias="aviso")


class ConnectionStatusResponse(BaseModel):
    """Liveness of the Bling connection."""

    model_config = ConfigDict(populate_by_name=True)

    connected: bool = Field(alias="conectado")
    error: Any | None = Field(default=None, alias="erro")


class HealthResponse(BaseModel):
    """Local health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    phase: str
    active_order: int | None = Field(default=None, alias="pedido_ativo")
    subscribers: int = Field(default=0, alias="assinantes")
    allowed_events: list[str] = Field(
        default_factory=list,
        alias="acoes_permitidas",
        description="Phase machine events that can fire from the current phase",
    )

    model_config = ConfigDict(populate_by_name=True)
