"""Verification Workflow — load, scan and finalize the one active order.

Coordinates between:
    - OrderSession / BarcodeIndex (the authoritative in-memory state)
    - SessionPhaseMachine (which operation is legal right now)
    - ErpGateway (remote lookups, situation transitions, stock posting)
    - MonitorBus (live events for observers)

Concurrency discipline:
    - Load and Finalize share a single-flight guard. A second caller gets
      BusyError immediately instead of queueing behind the first.
    - Every mutation of the OrderSession (population, scan increment,
      clear) happens while holding one asyncio.Lock.

Finalize treats two remote failures as probable success, because Bling may
complete stock posting and situation changes after the HTTP call has
already failed on our side:
    - a timeout on either call  -> PROBABLE_TIMEOUT
    - a 404 on the situation change -> PROBABLE_ASYNC
Both clear the session and return a FinalizeOutcome carrying a warning.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from statemachine.exceptions import TransitionNotAllowed

from picking_verifier.domain.enums import EventKind, FinalizeResult, SessionPhase, Situation
from picking_verifier.domain.exceptions import (
    AlreadyVerifiedError,
    BusyError,
    GatewayError,
    GatewayNotFoundError,
    GatewayTimeoutError,
    InvalidInputError,
    NoActiveOrderError,
    NotInOrderError,
    OrderNotFoundError,
)
from picking_verifier.domain.gateway_protocol import FinalizeOutcome
from picking_verifier.domain.session import OrderLine, OrderSession, ProductId
from picking_verifier.domain.state_machine import SessionPhaseMachine, validate_transition
from picking_verifier.logging_config import bind_order_context, get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from picking_verifier.domain.gateway_protocol import ErpGateway
    from picking_verifier.services.monitor_bus import MonitorBus

logger = get_logger(__name__)

TIMEOUT_WARNING = (
    "Bling did not answer in time; the order was probably finalized. "
    "Confirm its situation in Bling."
)
ASYNC_WARNING = (
    "Bling no longer found the order while changing its situation; "
    "it was probably finalized asynchronously. Confirm its situation in Bling."
)

_OUTCOME_EVENTS = {
    FinalizeResult.VERIFIED: EventKind.FINALIZED,
    FinalizeResult.PROBABLE_TIMEOUT: EventKind.FINALIZED_TIMEOUT,
    FinalizeResult.PROBABLE_ASYNC: EventKind.FINALIZED_ASYNC,
}


@dataclass(frozen=True)
class ScanResult:
    """What a single accepted scan changed."""

    product_id: ProductId
    product_name: str
    scanned_qty: int
    ordered_qty: int

    def to_dict(self) -> dict:
        return {"idProduto": self.product_id, "bipado": self.scanned_qty}


def parse_order_number(raw: object) -> int:
    """Parse a human-facing order number, which must be an integer >= 1."""
    try:
        number = int(str(raw).strip())
    except ValueError:
        raise InvalidInputError(f"Invalid order number: {raw!r}") from None
    if number < 1:
        raise InvalidInputError(f"Invalid order number: {raw!r}")
    return number


def _parse_quantity(raw: Any, product_id: ProductId) -> int:
    try:
        qty = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise GatewayError(
            f"Unreadable quantity for product {product_id}", details=raw
        ) from None
    if qty != qty.to_integral_value() or qty < 1:
        raise GatewayError(
            f"Quantity for product {product_id} is not a whole number >= 1", details=raw
        )
    return int(qty)


class VerificationWorkflow:
    """Owns the single OrderSession and every operation that touches it."""

    def __init__(
        self,
        gateway: ErpGateway,
        bus: MonitorBus,
        verified_situation_id: int,
    ) -> None:
        self._gateway = gateway
        self._bus = bus
        self._verified_situation_id = verified_situation_id
        self._session = OrderSession()
        self._state_lock = asyncio.Lock()
        self._flight_lock = asyncio.Lock()

    @property
    def session(self) -> OrderSession:
        return self._session

    @property
    def phase(self) -> SessionPhase:
        return self._session.phase

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    async def load(self, raw_order_number: object) -> dict[str, dict]:
        """Load an order from the ERP and make it the active session.

        Returns:
            The new line map keyed by product id.

        Raises:
            InvalidInputError, BusyError, OrderNotFoundError,
            AlreadyVerifiedError, GatewayError.
        """
        order_number = parse_order_number(raw_order_number)
        bind_order_context(order_number)

        async with self._single_flight("begin_load", SessionPhase.LOADING):
            order_id, detail = await self._fetch_order(order_number)
            lines = await self._build_lines(detail)

            async with self._state_lock:
                self._session.replace(order_id, order_number, lines)
                snapshot = self._session.snapshot()

        logger.info("order.loaded", remote_order_id=order_id, lines=len(snapshot))
        self._bus.emit(EventKind.LOADED, pedido=order_number)
        return snapshot

    async def _resolve_order(self, order_number: int) -> tuple[Any, dict]:
        """Look up ``order_number`` and fetch its detail; any miss is OrderNotFound."""
        try:
            candidates = await self._gateway.find_orders(order_number)
        except GatewayNotFoundError:
            raise OrderNotFoundError(order_number) from None

        if not candidates:
            raise OrderNotFoundError(order_number)

        candidate = next(
            (c for c in candidates if str(c.get("numero")) == str(order_number)),
            candidates[0],
        )
        order_id = candidate.get("id")
        if order_id is None:
            raise OrderNotFoundError(order_number)

        try:
            detail = await self._gateway.get_order(order_id)
        except GatewayNotFoundError:
            raise OrderNotFoundError(order_number) from None
        if not detail:
            raise OrderNotFoundError(order_number)
        return order_id, detail

    async def _fetch_order(self, order_number: int) -> tuple[Any, dict]:
        order_id, detail = await self._resolve_order(order_number)

        situation_id = (detail.get("situacao") or {}).get("id")
        if situation_id == self._verified_situation_id:
            logger.info("order.already_verified", remote_order_id=order_id)
            raise AlreadyVerifiedError(order_number)

        if situation_id == Situation.OPEN:
            await self._mark_in_progress(order_id)

        return order_id, detail

    async def _mark_in_progress(self, order_id: Any) -> None:
        # A failed move to In-Progress does not stop the operator from picking
        try:
            await self._gateway.change_situation(order_id, Situation.IN_PROGRESS)
        except GatewayError as exc:
            logger.warning(
                "order.in_progress_transition_failed",
                remote_order_id=order_id,
                error=exc.message,
            )
        else:
            logger.info("order.marked_in_progress", remote_order_id=order_id)

    async def _build_lines(self, detail: dict) -> list[OrderLine]:
        lines: dict[ProductId, OrderLine] = {}
        for item in detail.get("itens") or []:
            product_id = (item.get("produto") or {}).get("id")
            if product_id is None:
                logger.warning("order.item_without_product", item=item.get("descricao"))
                continue
            qty = _parse_quantity(item.get("quantidade"), product_id)

            line = lines.get(product_id)
            if line is None:
                line = OrderLine(
                    product_id=product_id,
                    name=str(item.get("descricao") or ""),
                    ordered_qty=qty,
                )
                lines[product_id] = line
            else:
                line.ordered_qty += qty
            line.add_code(item.get("codigo"))

        for line in lines.values():
            codes = await self._product_codes(line.product_id)
            for code in codes or ():
                line.add_code(code)

        return list(lines.values())

    async def _product_codes(self, product_id: ProductId) -> list[str] | None:
        """Fetch extra barcodes for a product; None when the lookup fails."""
        try:
            product = await self._gateway.get_product(product_id)
        except GatewayError as exc:
            logger.warning(
                "order.product_enrichment_failed",
                product_id=product_id,
                error=exc.message,
            )
            return None
        product = product or {}
        return [str(product[key]) for key in ("codigoBarras", "gtin") if product.get(key)]

    # ------------------------------------------------------------------
    # Scan
    # ------------------------------------------------------------------

    async def scan(self, raw_code: object) -> ScanResult:
        """Count one unit for the line owning ``raw_code``.

        Raises:
            InvalidInputError, NotInOrderError, QuantityExceededError, BusyError.
        """
        code = "" if raw_code is None else str(raw_code).strip()
        if not code:
            raise InvalidInputError("Empty barcode")

        async with self._state_lock:
            phase = self._session.phase
            if phase is SessionPhase.EMPTY:
                raise NotInOrderError(code)
            try:
                validate_transition(phase.value, "scan")
            except TransitionNotAllowed:
                raise BusyError(f"Order is {phase.value.lower()}, scan again shortly") from None

            try:
                line = self._session.scan(code)
            except NotInOrderError:
                logger.info("scan.not_in_order", code=code)
                raise
            result = ScanResult(
                product_id=line.product_id,
                product_name=line.name,
                scanned_qty=line.scanned_qty,
                ordered_qty=line.ordered_qty,
            )
            order_number = self._session.order_number

        logger.info(
            "scan.accepted",
            product_id=result.product_id,
            scanned=result.scanned_qty,
            ordered=result.ordered_qty,
        )
        self._bus.emit(
            EventKind.SCAN,
            pedido=order_number,
            produto=result.product_name,
            bipado=result.scanned_qty,
            total=result.ordered_qty,
        )
        return result

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    async def finalize(self) -> FinalizeOutcome:
        """Post stock, mark the order Verified and clear the session.

        Raises:
            NoActiveOrderError, BusyError, GatewayError (session kept for retry).
        """
        async with self._single_flight("begin_finalize", SessionPhase.FINALIZING):
            order_id = self._session.remote_order_id
            order_number = self._session.order_number
            bind_order_context(order_number)

            step = "post_stock"
            try:
                await self._gateway.post_stock(order_id)
                step = "change_situation"
                await self._gateway.change_situation(order_id, self._verified_situation_id)
            except GatewayTimeoutError as exc:
                logger.warning("finalize.ambiguous_timeout", step=step, error=exc.message)
                outcome = FinalizeOutcome(
                    FinalizeResult.PROBABLE_TIMEOUT, order_number, TIMEOUT_WARNING
                )
            except GatewayNotFoundError as exc:
                if step != "change_situation":
                    logger.error("finalize.failed", step=step, error=exc.message)
                    raise
                logger.warning("finalize.ambiguous_async", step=step, error=exc.message)
                outcome = FinalizeOutcome(
                    FinalizeResult.PROBABLE_ASYNC, order_number, ASYNC_WARNING
                )
            except GatewayError as exc:
                logger.error(
                    "finalize.failed", step=step, error=exc.message, details=exc.details
                )
                raise
            else:
                outcome = FinalizeOutcome(FinalizeResult.VERIFIED, order_number)

            async with self._state_lock:
                self._session.clear()

        logger.info("order.finalized", result=outcome.result.value)
        payload: dict[str, Any] = {"pedido": order_number}
        if outcome.warning:
            payload["aviso"] = outcome.warning
        self._bus.emit(_OUTCOME_EVENTS[outcome.result], **payload)
        return outcome

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def active_order(self) -> dict:
        """Return the loaded order number and its lines."""
        async with self._state_lock:
            if not self._session.is_loaded:
                raise NoActiveOrderError()
            return {
                "pedido": self._session.order_number,
                "linhas": self._session.snapshot(),
            }

    async def remote_status(self, raw_order_number: object) -> dict:
        """Read the remote order detail without touching the session."""
        order_number = parse_order_number(raw_order_number)
        _, detail = await self._resolve_order(order_number)
        return detail

    def allowed_events(self) -> list[str]:
        """Phase machine events that can fire from the current phase."""
        return SessionPhaseMachine(current_phase=self.phase.value).get_allowed_events()

    async def check_connection(self) -> None:
        await self._gateway.ping()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _single_flight(
        self, event_name: str, pending: SessionPhase
    ) -> AsyncIterator[None]:
        """Hold the load/finalize guard, failing fast when it is taken.

        Fires ``event_name`` on entry and the matching exit event once the
        body has finished, whether it returned or raised.
        """
        if self._flight_lock.locked():
            logger.info("session.busy", attempted=event_name, phase=self.phase.value)
            raise BusyError()

        async with self._flight_lock:
            async with self._state_lock:
                self._fire_transition(event_name)
                self._session.pending = pending
            succeeded = False
            try:
                yield
                succeeded = True
            finally:
                self._session.pending = None
                self._settle(pending, succeeded)

    def _fire_transition(self, event_name: str) -> None:
        """Validate an entry transition against the current phase.

        Raises NoActiveOrderError or BusyError if it is illegal.
        """
        phase = self._session.phase
        try:
            validate_transition(phase.value, event_name)
        except TransitionNotAllowed:
            if phase is SessionPhase.EMPTY:
                raise NoActiveOrderError() from None
            raise BusyError() from None

    def _settle(self, pending: SessionPhase, succeeded: bool) -> None:
        """Fire the exit event of an in-flight operation."""
        if pending is SessionPhase.LOADING:
            if succeeded:
                event_name = "load_succeeded"
            elif self._session.is_loaded:
                event_name = "reload_failed"
            else:
                event_name = "load_failed"
        else:
            event_name = "finalize_succeeded" if succeeded else "finalize_failed"

        new_phase = validate_transition(pending.value, event_name)
        if new_phase != self._session.phase:
            logger.error(
                "session.phase_mismatch",
                transition=event_name,
                expected=new_phase,
                actual=self._session.phase.value,
            )
        else:
            logger.debug("session.settled", transition=event_name, phase=new_phase)
