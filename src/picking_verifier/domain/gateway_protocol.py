"""ERP Gateway Protocol.

Defines the remote call surface the verification workflow needs from the
ERP. This is a Protocol (structural subtyping) so the Bling adapter and the
in-memory fakes used in tests don't need to inherit from a base class.

The domain layer has ZERO imports from httpx or any external service.
Implementations raise the GatewayError family from domain/exceptions.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from picking_verifier.domain.enums import FinalizeResult


@dataclass(frozen=True)
class FinalizeOutcome:
    """Result of a finalize attempt that did not fail hard.

    Attributes:
        result: VERIFIED, or one of the PROBABLE_* ambiguous successes.
        order_number: The order that was finalized.
        warning: Human-readable warning for ambiguous successes.
    """

    result: FinalizeResult
    order_number: int | None = None
    warning: str | None = None

    @property
    def is_ambiguous(self) -> bool:
        return self.result is not FinalizeResult.VERIFIED

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"ok": True}
        if self.warning:
            body["aviso"] = self.warning
        return body


@runtime_checkable
class ErpGateway(Protocol):
    """Protocol that every ERP adapter must satisfy.

    Concrete implementations:
        - infrastructure/bling_gateway.py (Bling API v3 over httpx)
    """

    async def find_orders(self, order_number: int) -> list[dict]:
        """Return the remote candidates for a human-facing order number."""
        ...

    async def get_order(self, order_id: Any) -> dict:
        """Return the full order detail, including ``situacao`` and ``itens``."""
        ...

    async def change_situation(self, order_id: Any, situation_id: int) -> None:
        """Move the order to another situation code."""
        ...

    async def get_product(self, product_id: Any) -> dict:
        """Return product detail (``codigoBarras``/``gtin`` when present)."""
        ...

    async def post_stock(self, order_id: Any) -> None:
        """Post the stock movement for the order."""
        ...

    async def ping(self) -> None:
        """Perform a cheap authenticated call to prove connectivity."""
        ...
