"""Message builders and a recording Validator Unit for writing rule tests.

Consumers testing their own Validator Units can import these:
    from flow_conformance.conformance.builders import make_message, make_flow
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from flow_conformance.models import CheckOutcome, Message

BASE_TIME = datetime(2026, 3, 1, 10, 0, 0, tzinfo=timezone.utc)
ACK: Dict[str, Any] = {"message": {"ack": {"status": "ACK"}}}

# Order template without a catalog step, as used by retail-style domains.
ORDER_FLOW = ("select", "on_select", "init", "on_init", "confirm", "on_confirm")


def make_context(action: str, /, **overrides: Any) -> Dict[str, Any]:
    """A complete request context for ``action``."""
    ctx: Dict[str, Any] = {
        "domain": "ONDC:LOG10",
        "country": "IND",
        "city": "std:080",
        "action": action,
        "core_version": "1.2.5",
        "transaction_id": "txn-001",
        "message_id": f"msg-{action.replace('on_', '')}",
        "timestamp": "2026-03-01T10:00:00.000Z",
    }
    ctx.update(overrides)
    return ctx


def make_message(action: str = "search", offset: float = 0, **overrides: Any) -> Message:
    """Build a Message with defaults for all required fields.

    ``offset`` is seconds after BASE_TIME. ``body`` sets the request's
    ``message`` object. Other keyword arguments override Message fields.
    """
    body = overrides.pop("body", {})
    data: Dict[str, Any] = {
        "action": action,
        "flowId": "ORDER_FLOW",
        "transactionId": "txn-001",
        "sessionId": "sess-001",
        "createdAt": BASE_TIME + timedelta(seconds=offset),
        "requestBody": {"context": make_context(action), "message": body},
        "responseEnvelope": ACK,
    }
    data.update(overrides)
    return Message.model_validate(data)


def make_flow(actions: Sequence[str], flow_id: str = "ORDER_FLOW", step: float = 2.0) -> List[Message]:
    """Messages for ``actions`` captured ``step`` seconds apart."""
    return [
        make_message(action, offset=i * step, flowId=flow_id)
        for i, action in enumerate(actions)
    ]


class RecordingUnit:
    """Validator Unit that records its calls and returns a fixed outcome."""

    def __init__(self, outcome: Optional[CheckOutcome] = None) -> None:
        self.outcome = outcome if outcome is not None else CheckOutcome(passed=("ok",))
        self.calls: List[Message] = []

    async def __call__(self, message, session_id, flow_id, action_id=None, usecase_id=None, *, store):
        self.calls.append(message)
        return self.outcome
