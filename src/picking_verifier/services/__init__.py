"""Application services — use case orchestration."""

from picking_verifier.services.monitor_bus import MonitorBus, MonitorEvent, Subscription
from picking_verifier.services.verification_service import (
    ScanResult,
    VerificationWorkflow,
    parse_order_number,
)

__all__ = [
    "MonitorBus",
    "MonitorEvent",
    "ScanResult",
    "Subscription",
    "VerificationWorkflow",
    "parse_order_number",
]
