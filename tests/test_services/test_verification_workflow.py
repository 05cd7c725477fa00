"""Unit tests for the VerificationWorkflow.

Run against the in-memory FakeGateway from conftest, so every remote
failure mode can be scripted without touching Bling.
"""

from __future__ import annotations

import asyncio

import pytest
from conftest import VERIFIED, make_item

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
    QuantityExceededError,
)
from picking_verifier.services.verification_service import parse_order_number


async def _yield_to_tasks() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def _drain(sub) -> list[dict]:
    events = []
    while not sub.queue.empty():
        events.append(sub.queue.get_nowait().to_dict())
    return events


class TestParseOrderNumber:
    def test_accepts_digits(self) -> None:
        assert parse_order_number(" 500 ") == 500
        assert parse_order_number(7) == 7

    @pytest.mark.parametrize("raw", ["abc", "0", "-3", "1.5", ""])
    def test_rejects_everything_else(self, raw: str) -> None:
        with pytest.raises(InvalidInputError):
            parse_order_number(raw)


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_builds_lines_and_codes(self, workflow, gateway) -> None:
        lines = await workflow.load("500")

        assert set(lines) == {"1", "2"}
        assert lines["1"]["pedido"] == 3
        assert lines["1"]["bipado"] == 0
        assert lines["1"]["codigos"] == ["MUG-1", "7890000000011", "07890000000011"]
        assert lines["2"]["codigos"] == ["7890000000028"]
        assert workflow.phase is SessionPhase.LOADED
        assert workflow.session.remote_order_id == 9500

    @pytest.mark.asyncio
    async def test_open_order_moves_to_in_progress(self, workflow, gateway) -> None:
        gateway.add_order(42, 942, [make_item(1, 1)], situation=Situation.OPEN)
        await workflow.load(42)
        assert gateway.calls_to("change_situation") == [
            ("change_situation", 942, Situation.IN_PROGRESS)
        ]

    @pytest.mark.asyncio
    async def test_in_progress_order_is_not_transitioned(self, workflow, gateway) -> None:
        await workflow.load(500)
        assert gateway.calls_to("change_situation") == []

    @pytest.mark.asyncio
    async def test_failed_in_progress_transition_does_not_fail_load(
        self, workflow, gateway
    ) -> None:
        gateway.add_order(42, 942, [make_item(1, 1)], situation=Situation.OPEN)
        gateway.errors["change_situation"] = GatewayError("Bling returned 400")

        lines = await workflow.load(42)

        assert set(lines) == {"1"}
        assert workflow.phase is SessionPhase.LOADED

    @pytest.mark.asyncio
    async def test_unknown_order(self, workflow) -> None:
        with pytest.raises(OrderNotFoundError):
            await workflow.load(404)
        assert workflow.phase is SessionPhase.EMPTY

    @pytest.mark.asyncio
    async def test_product_enrichment_failure_is_tolerated(self, workflow, gateway) -> None:
        gateway.failing_products.add(1)

        lines = await workflow.load(500)

        assert lines["1"]["codigos"] == ["MUG-1"]
        assert lines["2"]["codigos"] == ["7890000000028"]
        assert len(gateway.calls_to("get_product")) == 2

    @pytest.mark.asyncio
    async def test_repeated_product_lines_are_merged(self, workflow, gateway) -> None:
        gateway.add_order(
            77, 977, [make_item(1, 2, code="A"), make_item(1, 1.0, code="B")]
        )
        lines = await workflow.load(77)
        assert lines["1"]["pedido"] == 3
        assert lines["1"]["codigos"][:2] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_fractional_quantity_is_a_gateway_error(self, workflow, gateway) -> None:
        gateway.add_order(78, 978, [make_item(1, 1.5)])
        with pytest.raises(GatewayError):
            await workflow.load(78)

    @pytest.mark.asyncio
    async def test_gateway_timeout_surfaces_as_gateway_error(self, workflow, gateway) -> None:
        gateway.errors["get_order"] = GatewayTimeoutError("timed out")
        with pytest.raises(GatewayError):
            await workflow.load(500)
        assert workflow.phase is SessionPhase.EMPTY

    @pytest.mark.asyncio
    async def test_load_emits_loaded_event(self, workflow, bus) -> None:
        sub = bus.subscribe()
        await workflow.load(500)
        kinds = [e["evento"] for e in _drain(sub)]
        assert kinds == ["CONNECTED", "LOADED"]


class TestAlreadyVerified:
    @pytest.mark.asyncio
    async def test_verified_order_conflicts_and_keeps_prior_session(
        self, workflow, gateway
    ) -> None:
        gateway.add_order(1001, 91001, [make_item(9, 1, code="NINE")], situation=VERIFIED)
        await workflow.load(1000)

        with pytest.raises(AlreadyVerifiedError):
            await workflow.load(1001)

        assert workflow.session.order_number == 1000
        assert workflow.session.remote_order_id == 91000
        assert workflow.phase is SessionPhase.LOADED
        result = await workflow.scan("BOWL-3")
        assert result.scanned_qty == 1


class TestLoadReplaces:
    @pytest.mark.asyncio
    async def test_codes_of_previous_order_stop_resolving(self, workflow) -> None:
        await workflow.load(500)
        await workflow.scan("MUG-1")
        await workflow.load(1000)

        with pytest.raises(NotInOrderError):
            await workflow.scan("MUG-1")
        assert set(workflow.session.lines) == {3}


class TestGuard:
    @pytest.mark.asyncio
    async def test_concurrent_load_is_busy(self, workflow, gateway) -> None:
        gateway.gate = asyncio.Event()
        first = asyncio.create_task(workflow.load(500))
        await _yield_to_tasks()

        assert workflow.phase is SessionPhase.LOADING
        for _ in range(3):
            with pytest.raises(BusyError):
                await workflow.load(1000)

        gateway.gate.set()
        await first
        assert workflow.session.order_number == 500
        assert len(gateway.calls_to("find_orders")) == 1

    @pytest.mark.asyncio
    async def test_guard_released_after_failure(self, workflow) -> None:
        with pytest.raises(OrderNotFoundError):
            await workflow.load(404)
        await workflow.load(500)
        assert workflow.phase is SessionPhase.LOADED

    @pytest.mark.asyncio
    async def test_finalize_during_load_is_busy(self, workflow, gateway) -> None:
        await workflow.load(1000)
        gateway.gate = asyncio.Event()
        loading = asyncio.create_task(workflow.load(500))
        await _yield_to_tasks()

        with pytest.raises(BusyError):
            await workflow.finalize()
        with pytest.raises(BusyError):
            await workflow.scan("BOWL-3")

        gateway.gate.set()
        await loading
        assert workflow.session.order_number == 500


class TestPhaseSettling:
    @pytest.mark.asyncio
    async def test_failed_first_load_returns_to_empty(self, workflow) -> None:
        with pytest.raises(OrderNotFoundError):
            await workflow.load(404)
        assert workflow.phase is SessionPhase.EMPTY
        assert workflow.allowed_events() == ["begin_load"]

    @pytest.mark.asyncio
    async def test_failed_reload_keeps_previous_order(self, workflow) -> None:
        await workflow.load(1000)
        with pytest.raises(OrderNotFoundError):
            await workflow.load(404)

        assert workflow.phase is SessionPhase.LOADED
        assert workflow.session.order_number == 1000
        assert set(workflow.allowed_events()) == {"begin_load", "scan", "begin_finalize"}

    @pytest.mark.asyncio
    async def test_only_exit_events_while_loading(self, workflow, gateway) -> None:
        gateway.gate = asyncio.Event()
        loading = asyncio.create_task(workflow.load(500))
        await _yield_to_tasks()

        assert set(workflow.allowed_events()) == {
            "load_succeeded",
            "load_failed",
            "reload_failed",
        }

        gateway.gate.set()
        await loading
        assert "begin_finalize" in workflow.allowed_events()

    @pytest.mark.asyncio
    async def test_failed_finalize_settles_back_to_loaded(self, workflow, gateway) -> None:
        await workflow.load(1000)
        gateway.errors["post_stock"] = GatewayError("boom", status_code=500)

        with pytest.raises(GatewayError):
            await workflow.finalize()

        assert workflow.phase is SessionPhase.LOADED
        assert "begin_finalize" in workflow.allowed_events()


class TestScan:
    @pytest.mark.asyncio
    async def test_scan_counts_up_to_ordered_quantity(self, workflow) -> None:
        await workflow.load(500)
        counts = [(await workflow.scan("MUG-1")).scanned_qty for _ in range(3)]
        assert counts == [1, 2, 3]

        with pytest.raises(QuantityExceededError):
            await workflow.scan("MUG-1")
        assert workflow.session.lines[1].scanned_qty == 3

    @pytest.mark.asyncio
    async def test_any_code_of_a_line_counts_for_it(self, workflow) -> None:
        await workflow.load(500)
        await workflow.scan("MUG-1")
        await workflow.scan("7890000000011")
        result = await workflow.scan("07890000000011")
        assert result.product_id == 1
        assert result.scanned_qty == 3
        assert workflow.session.lines[2].scanned_qty == 0

    @pytest.mark.asyncio
    async def test_unknown_code_mutates_nothing(self, workflow) -> None:
        await workflow.load(500)
        with pytest.raises(NotInOrderError):
            await workflow.scan("NOPE")
        assert all(line.scanned_qty == 0 for line in workflow.session.lines.values())

    @pytest.mark.asyncio
    async def test_scan_without_order(self, workflow) -> None:
        with pytest.raises(NotInOrderError):
            await workflow.scan("MUG-1")

    @pytest.mark.asyncio
    async def test_blank_code(self, workflow) -> None:
        with pytest.raises(InvalidInputError):
            await workflow.scan("   ")

    @pytest.mark.asyncio
    async def test_numeric_code_is_matched_as_text(self, workflow) -> None:
        await workflow.load(500)
        result = await workflow.scan(7890000000028)
        assert result.product_id == 2

    @pytest.mark.asyncio
    async def test_scan_event_payload(self, workflow, bus) -> None:
        await workflow.load(500)
        sub = bus.subscribe()
        await workflow.scan("MUG-1")
        event = _drain(sub)[-1]
        assert event["evento"] == "SCAN"
        assert event["produto"] == "Blue mug"
        assert event["bipado"] == 1
        assert event["total"] == 3
        assert event["pedido"] == 500
        assert "hora" in event


class TestFinalize:
    @pytest.mark.asyncio
    async def test_finalize_posts_stock_then_marks_verified(self, workflow, gateway, bus) -> None:
        await workflow.load(500)
        sub = bus.subscribe()

        outcome = await workflow.finalize()

        assert outcome.result is FinalizeResult.VERIFIED
        assert outcome.to_dict() == {"ok": True}
        names = [c[0] for c in gateway.calls]
        assert names[-2:] == ["post_stock", "change_situation"]
        assert gateway.calls[-1] == ("change_situation", 9500, VERIFIED)
        assert workflow.phase is SessionPhase.EMPTY
        assert workflow.session.lines == {}
        event = _drain(sub)[-1]
        assert event["evento"] == "FINALIZED"
        assert event["pedido"] == 500
        assert "aviso" not in event

    @pytest.mark.asyncio
    async def test_finalize_without_order(self, workflow) -> None:
        with pytest.raises(NoActiveOrderError):
            await workflow.finalize()

    @pytest.mark.asyncio
    async def test_second_finalize_fails(self, workflow) -> None:
        await workflow.load(500)
        await workflow.finalize()
        with pytest.raises(NoActiveOrderError):
            await workflow.finalize()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failing_step", ["post_stock", "change_situation"])
    async def test_timeout_is_probable_success(
        self, workflow, gateway, bus, failing_step: str
    ) -> None:
        await workflow.load(500)
        sub = bus.subscribe()
        gateway.errors[failing_step] = GatewayTimeoutError("timed out")

        outcome = await workflow.finalize()

        assert outcome.result is FinalizeResult.PROBABLE_TIMEOUT
        assert outcome.is_ambiguous
        assert outcome.to_dict()["ok"] is True
        assert outcome.to_dict()["aviso"]
        assert workflow.phase is SessionPhase.EMPTY
        event = _drain(sub)[-1]
        assert event["evento"] == "FINALIZED_TIMEOUT"
        assert event["aviso"] == outcome.warning

    @pytest.mark.asyncio
    async def test_not_found_on_transition_is_probable_async_success(
        self, workflow, gateway, bus
    ) -> None:
        await workflow.load(500)
        sub = bus.subscribe()
        gateway.errors["change_situation"] = GatewayNotFoundError("gone")

        outcome = await workflow.finalize()

        assert outcome.result is FinalizeResult.PROBABLE_ASYNC
        assert workflow.session.remote_order_id is None
        assert _drain(sub)[-1]["evento"] == EventKind.FINALIZED_ASYNC

    @pytest.mark.asyncio
    async def test_not_found_on_stock_posting_is_hard_failure(self, workflow, gateway) -> None:
        await workflow.load(500)
        gateway.errors["post_stock"] = GatewayNotFoundError("gone")

        with pytest.raises(GatewayNotFoundError):
            await workflow.finalize()
        assert workflow.phase is SessionPhase.LOADED

    @pytest.mark.asyncio
    async def test_other_failure_keeps_session_for_retry(self, workflow, gateway) -> None:
        await workflow.load(500)
        await workflow.scan("MUG-1")
        gateway.errors["post_stock"] = GatewayError("Bling returned 500", status_code=500)

        with pytest.raises(GatewayError):
            await workflow.finalize()

        assert workflow.phase is SessionPhase.LOADED
        assert workflow.session.lines[1].scanned_qty == 1

        del gateway.errors["post_stock"]
        outcome = await workflow.finalize()
        assert outcome.result is FinalizeResult.VERIFIED


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_load_scan_finalize(self, workflow) -> None:
        lines = await workflow.load(500)
        assert {k: v["pedido"] for k, v in lines.items()} == {"1": 3, "2": 1}

        assert [(await workflow.scan("MUG-1")).scanned_qty for _ in range(3)] == [1, 2, 3]
        with pytest.raises(QuantityExceededError):
            await workflow.scan("MUG-1")

        outcome = await workflow.finalize()
        assert outcome.to_dict() == {"ok": True}

        for code in ("MUG-1", "7890000000028"):
            with pytest.raises(NotInOrderError):
                await workflow.scan(code)


class TestReadHelpers:
    @pytest.mark.asyncio
    async def test_active_order(self, workflow) -> None:
        with pytest.raises(NoActiveOrderError):
            await workflow.active_order()
        await workflow.load(500)
        active = await workflow.active_order()
        assert active["pedido"] == 500
        assert set(active["linhas"]) == {"1", "2"}

    @pytest.mark.asyncio
    async def test_remote_status_does_not_touch_session(self, workflow) -> None:
        detail = await workflow.remote_status("1000")
        assert detail["id"] == 91000
        assert workflow.phase is SessionPhase.EMPTY

    @pytest.mark.asyncio
    async def test_remote_status_unknown(self, workflow) -> None:
        with pytest.raises(OrderNotFoundError):
            await workflow.remote_status("31337")

    @pytest.mark.asyncio
    async def test_remote_status_candidate_without_id(self, workflow, gateway) -> None:
        async def find_orders(order_number: int) -> list[dict]:
            return [{"numero": order_number}]

        gateway.find_orders = find_orders
        with pytest.raises(OrderNotFoundError):
            await workflow.remote_status("500")
        assert gateway.calls_to("get_order") == []

    @pytest.mark.asyncio
    async def test_remote_status_search_404(self, workflow, gateway) -> None:
        gateway.errors["find_orders"] = GatewayNotFoundError("gone")
        with pytest.raises(OrderNotFoundError):
            await workflow.remote_status("500")

    @pytest.mark.asyncio
    async def test_remote_status_prefers_matching_number(self, workflow, gateway) -> None:
        async def find_orders(order_number: int) -> list[dict]:
            return [{"id": 9500, "numero": 500}, {"id": 91000, "numero": order_number}]

        gateway.find_orders = find_orders
        detail = await workflow.remote_status("1000")
        assert detail["id"] == 91000
