"""Shared test fixtures for the picking verifier test suite.

Provides:
    - FakeGateway: in-memory ErpGateway with scriptable failures
    - A workflow wired to the fake gateway and a fresh monitor bus
    - Factory helpers for Bling-shaped order payloads
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from tenacity import wait_none

from picking_verifier.config import Settings
from picking_verifier.domain.enums import Situation
from picking_verifier.domain.exceptions import GatewayNotFoundError
from picking_verifier.infrastructure.bling_auth import BlingTokenProvider
from picking_verifier.services.monitor_bus import MonitorBus
from picking_verifier.services.verification_service import VerificationWorkflow

VERIFIED = 24


def make_item(
    product_id: int,
    quantity: float,
    name: str = "",
    code: str | None = None,
) -> dict:
    """Return one Bling order item."""
    return {
        "produto": {"id": product_id},
        "descricao": name or f"Product {product_id}",
        "quantidade": quantity,
        "codigo": code,
    }


class FakeGateway:
    """In-memory ErpGateway.

    Orders are registered by number; ``errors`` maps a method name to the
    exception it should raise, ``gate`` (when set) holds find_orders until
    released.
    """

    def __init__(self) -> None:
        self.numbers: dict[int, int] = {}
        self.orders: dict[int, dict] = {}
        self.products: dict[int, dict] = {}
        self.failing_products: set[int] = set()
        self.errors: dict[str, Exception] = {}
        self.calls: list[tuple] = []
        self.gate: asyncio.Event | None = None

    def add_order(
        self,
        number: int,
        remote_id: int,
        items: list[dict],
        situation: int = Situation.IN_PROGRESS,
    ) -> None:
        self.numbers[number] = remote_id
        self.orders[remote_id] = {
            "id": remote_id,
            "numero": number,
            "situacao": {"id": int(situation)},
            "itens": items,
        }

    def calls_to(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def _enter(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name == "find_orders" and self.gate is not None:
            await self.gate.wait()
        exc = self.errors.get(name)
        if exc is not None:
            raise exc

    async def find_orders(self, order_number: int) -> list[dict]:
        await self._enter("find_orders", order_number)
        remote_id = self.numbers.get(order_number)
        if remote_id is None:
            return []
        return [{"id": remote_id, "numero": order_number}]

    async def get_order(self, order_id: Any) -> dict:
        await self._enter("get_order", order_id)
        if order_id not in self.orders:
            raise GatewayNotFoundError(f"order {order_id}")
        return self.orders[order_id]

    async def change_situation(self, order_id: Any, situation_id: int) -> None:
        await self._enter("change_situation", order_id, int(situation_id))
        if order_id in self.orders:
            self.orders[order_id]["situacao"] = {"id": int(situation_id)}

    async def get_product(self, product_id: Any) -> dict:
        await self._enter("get_product", product_id)
        if product_id in self.failing_products:
            raise GatewayNotFoundError(f"product {product_id}")
        return self.products.get(product_id, {"id": product_id})

    async def post_stock(self, order_id: Any) -> None:
        await self._enter("post_stock", order_id)

    async def ping(self) -> None:
        await self._enter("ping")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def gateway() -> FakeGateway:
    """Gateway preloaded with order 500 (two lines) and order 1000."""
    gw = FakeGateway()
    gw.add_order(
        500,
        9500,
        [
            make_item(1, 3, "Blue mug", code="MUG-1"),
            make_item(2, 1, "Red plate"),
        ],
    )
    gw.products[1] = {"id": 1, "codigoBarras": "7890000000011", "gtin": "07890000000011"}
    gw.products[2] = {"id": 2, "gtin": "7890000000028"}
    gw.add_order(1000, 91000, [make_item(3, 2, "Green bowl", code="BOWL-3")])
    return gw


@pytest.fixture
def bus() -> MonitorBus:
    return MonitorBus(queue_size=50)


@pytest.fixture
def workflow(gateway: FakeGateway, bus: MonitorBus) -> VerificationWorkflow:
    return VerificationWorkflow(gateway=gateway, bus=bus, verified_situation_id=VERIFIED)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the developer's .env and token file."""
    return Settings(
        _env_file=None,
        app_env="development",
        bling_api_base_url="https://bling.test/Api/v3",
        bling_client_id="client-id",
        bling_client_secret="client-secret",
        bling_redirect_uri="http://localhost:3000/oauth/callback",
        bling_token_path=str(tmp_path / "bling_token.json"),
        bling_situacao_verificado_id=VERIFIED,
        static_dir=str(tmp_path / "no-static"),
        monitor_heartbeat_seconds=0.05,
    )


@pytest.fixture
def instant_token_retry(monkeypatch):
    """Drop the backoff between token refresh attempts."""
    monkeypatch.setattr(BlingTokenProvider._refresh.retry, "wait", wait_none())
