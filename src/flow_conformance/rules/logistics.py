"""Validator Units for logistics (ONDC:LOG10, version 1.2.5).

Each unit is a flat list of independent checks recorded on a
:class:`~flow_conformance.checks.CheckRecorder`. Facts flow between the
units of one transaction through the consistency store:

=================  =========================================  ==================
Written by         Key                                        Read by
=================  =========================================  ==================
search/init        search_start_gps, search_end_gps           init, confirm
on_search          on_search_provider_id                      init .. on_confirm
on_search          on_search_delivery_fulfillment_id          init, confirm
init               init_items, init_billing                   on_init, confirm
on_init            on_init_quote                              confirm, on_confirm
confirm/on_confirm order_id, order_state, order_created_at    status .. on_cancel
on_confirm         on_confirm_quote                           on_status, on_cancel
=================  =========================================  ==================
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from flow_conformance.checks import CheckRecorder, dig
from flow_conformance.consistency import (
    TransactionScope,
    split_fulfillments,
    validate_billing,
    validate_cancellation_terms,
    validate_created_at_unchanged,
    validate_fulfillment_ids,
    validate_gps,
    validate_item_ids,
    validate_message_id_pairing,
    validate_order_id,
    validate_order_state_transition,
    validate_pickup_timestamp,
    validate_provider_id,
    validate_quote_breakup,
    validate_quote_price,
    validate_updated_at_advanced,
)
from flow_conformance.models import CheckOutcome, Message
from flow_conformance.registry import RuleRegistry
from flow_conformance.store import ConsistencyStore

logger = logging.getLogger("flow_conformance.rules.logistics")

DOMAIN: str = "ONDC:LOG10"
VERSION: str = "1.2.5"

_DECIMALS_RE = re.compile(r"\.(\d+)$")

# lat 6.4..35.7, lon 68.1..97.4
SERVICEABLE_BOUNDS = ((6.4, 35.7), (68.1, 97.4))

DELIVERY_FLOW_KEYS = (
    "on_search_delivery_fulfillment_id",
    "on_search_rto_fulfillment_id",
)
CONFIRM_FLOW_KEYS = (
    "confirm_delivery_fulfillment_id",
    "confirm_rto_fulfillment_id",
)


def _scope(store: ConsistencyStore, session_id: str, message: Message) -> TransactionScope:
    return TransactionScope(store, session_id, message.transaction_id or "")


def has_four_decimals(gps: Any) -> bool:
    """Both coordinates of a ``"lat,lon"`` string carry >= 4 decimal places."""
    if not isinstance(gps, str):
        return False
    parts = [p.strip() for p in gps.split(",")]
    if len(parts) != 2:
        return False
    for part in parts:
        match = _DECIMALS_RE.search(part)
        if not match or len(match.group(1)) < 4:
            return False
    return True


def within_bounds(gps: Any) -> bool:
    if not isinstance(gps, str):
        return False
    try:
        lat, lon = (float(p) for p in gps.split(","))
    except ValueError:
        return False
    (lat_lo, lat_hi), (lon_lo, lon_hi) = SERVICEABLE_BOUNDS
    return lat_lo <= lat <= lat_hi and lon_lo <= lon <= lon_hi


def _check_gps(rec: CheckRecorder, action: str, label: str, gps: Any) -> None:
    if not rec.check(
        gps,
        f"{label} GPS presence validation passed",
        f"message.intent.fulfillment.{label.lower()}.location.gps is required in {action}",
    ):
        return
    rec.check(
        has_four_decimals(gps),
        f"{label} GPS precision validation passed",
        f"{label.lower()}.location.gps '{gps}' must have at least 4 decimal places "
        f"of precision on both coordinates",
    )
    rec.check(
        within_bounds(gps),
        f"{label} GPS within serviceable area",
        f"{label.lower()}.location.gps '{gps}' is outside the serviceable area",
    )


def _catalog_provider(message: Message) -> Dict[str, Any]:
    provider = dig(message.body, "catalog", "bpp/providers", 0)
    return provider if isinstance(provider, dict) else {}


def _order(message: Message) -> Dict[str, Any]:
    order = message.body.get("order")
    return order if isinstance(order, dict) else {}


async def _pair_message_id(rec: CheckRecorder, scope: TransactionScope, message: Message) -> None:
    with rec.guard():
        await validate_message_id_pairing(
            scope, rec, message.action, message.context.get("message_id")
        )


async def search(
    message: Message,
    session_id: str,
    flow_id: str,
    action_id: Optional[str] = None,
    usecase_id: Optional[str] = None,
    *,
    store: ConsistencyStore,
) -> CheckOutcome:
    rec = CheckRecorder(message.action)
    scope = _scope(store, session_id, message)
    intent = message.body.get("intent") or {}
    start_gps = dig(intent, "fulfillment", "start", "location", "gps")
    end_gps = dig(intent, "fulfillment", "end", "location", "gps")

    with rec.guard():
        await scope.save_all({
            "search_start_gps": start_gps,
            "search_end_gps": end_gps,
            "search_category_id": dig(intent, "category", "id"),
            "search_payment_type": dig(intent, "payment", "type"),
        })
    with rec.guard():
        _check_gps(rec, message.action, "Start", start_gps)
    with rec.guard():
        _check_gps(rec, message.action, "End", end_gps)
    rec.check(
        dig(intent, "category", "id"),
        "Category ID validation passed",
        f"message.intent.category.id is required in {message.action}",
    )
    await _pair_message_id(rec, scope, message)
    return rec.outcome()


async def on_search(
    message: Message,
    session_id: str,
    flow_id: str,
    action_id: Optional[str] = None,
    usecase_id: Optional[str] = None,
    *,
    store: ConsistencyStore,
) -> CheckOutcome:
    rec = CheckRecorder(message.action)
    scope = _scope(store, session_id, message)
    provider = _catalog_provider(message)

    if rec.check(
        provider.get("id"),
        "Provider ID is present in catalog",
        f"catalog/bpp/providers[0].id is required in {message.action}",
    ):
        with rec.guard():
            await validate_provider_id(scope, rec, message.action, provider["id"])
    with rec.guard():
        await validate_fulfillment_ids(
            scope,
            rec,
            message.action,
            provider.get("fulfillments"),
            saved_keys=(None, None),
            save_keys=DELIVERY_FLOW_KEYS,
        )
    with rec.guard():
        items = provider.get("items") or []
        rec.check(
            items,
            "Catalog items are present",
            f"catalog/bpp/providers[0].items must not be empty in {message.action}",
        )
        await scope.set("on_search_items", [i.get("id") for i in items if isinstance(i, dict)])
    await _pair_message_id(rec, scope, message)
    return rec.outcome()


async def init(
    message: Message,
    session_id: str,
    flow_id: str,
    action_id: Optional[str] = None,
    usecase_id: Optional[str] = None,
    *,
    store: ConsistencyStore,
) -> CheckOutcome:
    rec = CheckRecorder(message.action)
    scope = _scope(store, session_id, message)
    order = _order(message)
    items: List[Any] = order.get("items") or []

    with rec.guard():
        await validate_provider_id(scope, rec, message.action, dig(order, "provider", "id"))
    with rec.guard():
        catalog = await scope.get("on_search_items")
        if catalog:
            unknown = sorted(
                str(i.get("id")) for i in items
                if isinstance(i, dict) and i.get("id") not in catalog
            )
            rec.check(
                not unknown,
                f"Item IDs in {message.action} are offered in on_search",
                f"Item IDs {unknown} in {message.action} were not offered in on_search",
            )
        await validate_item_ids(scope, rec, message.action, items)
    with rec.guard():
        await validate_fulfillment_ids(
            scope, rec, message.action, order.get("fulfillments"), saved_keys=DELIVERY_FLOW_KEYS
        )
    with rec.guard():
        delivery, _ = split_fulfillments(order.get("fulfillments"))
        await validate_gps(scope, rec, message.action, delivery)
    with rec.guard():
        billing = order.get("billing")
        if rec.check(
            billing,
            "Billing details are present",
            f"message.order.billing is required in {message.action}",
        ):
            await validate_billing(scope, rec, message.action, billing)
    await _pair_message_id(rec, scope, message)
    return rec.outcome()


async def on_init(
    message: Message,
    session_id: str,
    flow_id: str,
    action_id: Optional[str] = None,
    usecase_id: Optional[str] = None,
    *,
    store: ConsistencyStore,
) -> CheckOutcome:
    rec = CheckRecorder(message.action)
    scope = _scope(store, session_id, message)
    order = _order(message)
    quote = order.get("quote")

    with rec.guard():
        await validate_provider_id(scope, rec, message.action, dig(order, "provider", "id"))
    with rec.guard():
        await validate_item_ids(scope, rec, message.action, order.get("items"))
    with rec.guard():
        if rec.check(
            dig(quote, "price", "value") is not None,
            "Quote price is present",
            f"message.order.quote.price.value is required in {message.action}",
        ):
            await validate_quote_price(scope, rec, message.action, quote, key="on_init_quote")
    with rec.guard():
        await validate_cancellation_terms(
            scope, rec, message.action, order.get("cancellation_terms")
        )
    await _pair_message_id(rec, scope, message)
    return rec.outcome()


async def _order_lifecycle(rec: CheckRecorder, scope: TransactionScope, message: Message) -> None:
    """Order id, state and timestamps shared by confirm onwards."""
    order = _order(message)
    with rec.guard():
        await validate_order_id(scope, rec, message.action, order.get("id"))
    with rec.guard():
        await validate_order_state_transition(scope, rec, message.action, order.get("state"))
    with rec.guard():
        await validate_created_at_unchanged(scope, rec, message.action, order.get("created_at"))
    with rec.guard():
        await validate_updated_at_advanced(scope, rec, message.action, order.get("updated_at"))


async def confirm(
    message: Message,
    session_id: str,
    flow_id: str,
    action_id: Optional[str] = None,
    usecase_id: Optional[str] = None,
    *,
    store: ConsistencyStore,
) -> CheckOutcome:
    rec = CheckRecorder(message.action)
    scope = _scope(store, session_id, message)
    order = _order(message)

    rec.check(
        order.get("state") == "Created",
        "Order state is 'Created'",
        f"message.order.state must be 'Created' in {message.action}, got '{order.get('state')}'",
    )
    await _order_lifecycle(rec, scope, message)
    with rec.guard():
        await validate_provider_id(scope, rec, message.action, dig(order, "provider", "id"))
    with rec.guard():
        await validate_item_ids(scope, rec, message.action, order.get("items"))
    with rec.guard():
        await validate_fulfillment_ids(
            scope,
            rec,
            message.action,
            order.get("fulfillments"),
            saved_keys=DELIVERY_FLOW_KEYS,
            save_keys=CONFIRM_FLOW_KEYS,
        )
    with rec.guard():
        delivery, _ = split_fulfillments(order.get("fulfillments"))
        await validate_gps(scope, rec, message.action, delivery)
    with rec.guard():
        await validate_billing(scope, rec, message.action, order.get("billing"))
    with rec.guard():
        await validate_quote_price(scope, rec, message.action, order.get("quote"), key="on_init_quote")
    await _pair_message_id(rec, scope, message)
    return rec.outcome()


async def on_confirm(
    message: Message,
    session_id: str,
    flow_id: str,
    action_id: Optional[str] = None,
    usecase_id: Optional[str] = None,
    *,
    store: ConsistencyStore,
) -> CheckOutcome:
    rec = CheckRecorder(message.action)
    scope = _scope(store, session_id, message)
    order = _order(message)

    await _order_lifecycle(rec, scope, message)
    with rec.guard():
        await validate_provider_id(scope, rec, message.action, dig(order, "provider", "id"))
    with rec.guard():
        await validate_fulfillment_ids(
            scope, rec, message.action, order.get("fulfillments"), saved_keys=CONFIRM_FLOW_KEYS
        )
    quote = order.get("quote")
    with rec.guard():
        await validate_quote_breakup(scope, rec, message.action, quote, key="on_init_quote")
    with rec.guard():
        await validate_quote_price(
            scope, rec, message.action, quote, key="on_init_quote", save_as="on_confirm_quote"
        )
    await _pair_message_id(rec, scope, message)
    return rec.outcome()


async def status(
    message: Message,
    session_id: str,
    flow_id: str,
    action_id: Optional[str] = None,
    usecase_id: Optional[str] = None,
    *,
    store: ConsistencyStore,
) -> CheckOutcome:
    rec = CheckRecorder(message.action)
    scope = _scope(store, session_id, message)
    order_id = message.body.get("order_id")
    if rec.check(
        order_id,
        "Order ID presence validation passed",
        f"message.order_id is required in {message.action}",
    ):
        with rec.guard():
            await validate_order_id(scope, rec, message.action, order_id)
    await _pair_message_id(rec, scope, message)
    return rec.outcome()


async def on_status(
    message: Message,
    session_id: str,
    flow_id: str,
    action_id: Optional[str] = None,
    usecase_id: Optional[str] = None,
    *,
    store: ConsistencyStore,
) -> CheckOutcome:
    rec = CheckRecorder(message.action)
    scope = _scope(store, session_id, message)
    order = _order(message)

    await _order_lifecycle(rec, scope, message)
    with rec.guard():
        await validate_quote_price(
            scope, rec, message.action, order.get("quote"), key="on_confirm_quote"
        )
    with rec.guard():
        delivery, _ = split_fulfillments(order.get("fulfillments"))
        await validate_pickup_timestamp(
            scope, rec, message.action, delivery, message.context.get("timestamp")
        )
    await _pair_message_id(rec, scope, message)
    return rec.outcome()


async def cancel(
    message: Message,
    session_id: str,
    flow_id: str,
    action_id: Optional[str] = None,
    usecase_id: Optional[str] = None,
    *,
    store: ConsistencyStore,
) -> CheckOutcome:
    rec = CheckRecorder(message.action)
    scope = _scope(store, session_id, message)
    order_id = message.body.get("order_id")

    if rec.check(
        order_id,
        "Order ID presence validation in cancel passed",
        "message.order_id is required in cancel request",
    ):
        with rec.guard():
            await validate_order_id(scope, rec, message.action, order_id)
    rec.check(
        message.body.get("cancellation_reason_id"),
        "Cancellation reason ID presence validation passed",
        "message.cancellation_reason_id is required in cancel request",
    )
    await _pair_message_id(rec, scope, message)
    return rec.outcome()


async def on_cancel(
    message: Message,
    session_id: str,
    flow_id: str,
    action_id: Optional[str] = None,
    usecase_id: Optional[str] = None,
    *,
    store: ConsistencyStore,
) -> CheckOutcome:
    rec = CheckRecorder(message.action)
    scope = _scope(store, session_id, message)
    order = _order(message)

    rec.check(
        order.get("state") == "Cancelled",
        "Order state is 'Cancelled'",
        f"message.order.state must be 'Cancelled' in {message.action}, got '{order.get('state')}'",
    )
    await _order_lifecycle(rec, scope, message)
    rec.check(
        dig(order, "cancellation", "reason", "id"),
        "Cancellation reason is present",
        f"message.order.cancellation.reason.id is required in {message.action}",
    )
    await _pair_message_id(rec, scope, message)
    return rec.outcome()


UNITS = {
    "search": search,
    "on_search": on_search,
    "init": init,
    "on_init": on_init,
    "confirm": confirm,
    "on_confirm": on_confirm,
    "status": status,
    "on_status": on_status,
    "cancel": cancel,
    "on_cancel": on_cancel,
}


def register(registry: RuleRegistry, version: str = VERSION) -> RuleRegistry:
    """Register every logistics unit under ``(DOMAIN, version)``."""
    for action, unit in UNITS.items():
        registry.register(DOMAIN, version, action, unit)
    registry.set_default_version(DOMAIN, version)
    logger.debug("Registered %d logistics units for %s/%s", len(UNITS), DOMAIN, version)
    return registry
