"""Common ``context`` checks applied to every message before domain rules."""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from flow_conformance.checks import CheckRecorder, dig
from flow_conformance.models import CheckOutcome, Message
from flow_conformance.store import ConsistencyStore

_ISO_MILLIS_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")

REQUIRED_CONTEXT_FIELDS = (
    "domain",
    "action",
    "message_id",
    "transaction_id",
    "timestamp",
)


def is_iso_timestamp(value: object) -> bool:
    """True for ISO-8601 UTC timestamps with millisecond precision."""
    return isinstance(value, str) and bool(_ISO_MILLIS_RE.match(value))


def missing_context_fields(context: Optional[Dict[str, Any]]) -> List[str]:
    if not isinstance(context, dict):
        return ["context"]
    missing = [f"context.{f}" for f in REQUIRED_CONTEXT_FIELDS if not context.get(f)]
    # 2.x domains carry 'version', 1.x domains carry 'core_version'
    if not context.get("version") and not context.get("core_version"):
        missing.insert(2, "context.version|core_version")
    return missing


def check_context(message: Message) -> CheckOutcome:
    """Required fields, timestamp format, and country/city presence."""
    rec = CheckRecorder(message.action)
    ctx = message.request_body.get("context")

    missing = missing_context_fields(ctx)
    if missing:
        for field in missing:
            rec.fail(f"context:required: {field} is required")
    else:
        rec.pass_("context:required: all mandatory context fields are present")

    ts = dig(ctx, "timestamp")
    if ts is not None:
        rec.check(
            is_iso_timestamp(ts),
            "context:timestamp-format: context.timestamp is ISO-8601 with milliseconds",
            "context:timestamp-format: context.timestamp must be ISO-8601 with milliseconds and Z",
        )

    country = dig(ctx, "country") or dig(ctx, "location", "country", "code")
    city = dig(ctx, "city") or dig(ctx, "location", "city", "code")
    if not country:
        rec.fail("context:country-city-required: context.country|location.country.code is required")
    if not city:
        rec.fail("context:country-city-required: context.city|location.city.code is required")
    if country and city:
        rec.pass_("context:country-city-required: country and city are present")

    if isinstance(ctx, dict) and ctx.get("action"):
        rec.check(
            str(ctx["action"]).lower() == message.action,
            f"context.action matches captured action '{message.action}'",
            f"context.action '{ctx['action']}' does not match captured action '{message.action}'",
        )
    return rec.outcome()


async def context_unit(
    message: Message,
    session_id: str,
    flow_id: str,
    action_id: Optional[str] = None,
    usecase_id: Optional[str] = None,
    *,
    store: ConsistencyStore,
) -> CheckOutcome:
    """Validator Unit wrapper around :func:`check_context`."""
    return check_context(message)
