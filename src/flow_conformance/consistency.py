"""Cross-message consistency helpers.

Every helper follows the same pattern over one transaction's store scope:

1. fetch the saved value (absence is fine: nothing to compare yet);
2. compare it to the current value when both exist;
3. record exactly one passed or failed entry for that comparison;
4. overwrite the saved value with the current one for the next consumer.

Helpers never raise for a mismatch. Store faults degrade to "absent" on
read and to a logged no-op on write.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from flow_conformance.checks import CheckRecorder, dig
from flow_conformance.store import ConsistencyStore

logger = logging.getLogger("flow_conformance.consistency")

DELIVERY_FULFILLMENT_TYPES = frozenset({"Delivery", "FTL", "PTL"})
RTO_FULFILLMENT_TYPE = "RTO"

STATES_AFTER_PICKUP = (
    "Order-picked-up",
    "In-transit",
    "At-destination-hub",
    "Out-for-delivery",
)

# Forward-only order lifecycle. A state may repeat; it may never go back.
ORDER_STATE_RANK: Dict[str, int] = {
    "Created": 0,
    "Accepted": 1,
    "In-progress": 2,
    "Completed": 3,
    "Cancelled": 3,
}

# Fields that are expected to change between otherwise identical objects.
VOLATILE_FIELDS = frozenset({"created_at", "updated_at"})


@dataclass(frozen=True)
class TransactionScope:
    """The (session, transaction) partition of a consistency store."""

    store: ConsistencyStore
    session_id: str
    transaction_id: str

    async def get(self, key: str) -> Optional[Any]:
        try:
            return await self.store.get(self.session_id, self.transaction_id, key)
        except Exception as e:  # noqa: BLE001 - a faulty backend reads as absent
            logger.warning(
                "Consistency read failed for %s/%s/%s: %s",
                self.session_id, self.transaction_id, key, e,
            )
            return None

    async def set(self, key: str, value: Any) -> None:
        try:
            await self.store.set(self.session_id, self.transaction_id, key, value)
        except Exception as e:  # noqa: BLE001 - a lost write only skips a later comparison
            logger.warning(
                "Consistency write failed for %s/%s/%s: %s",
                self.session_id, self.transaction_id, key, e,
            )

    async def save_all(self, values: Mapping[str, Any]) -> None:
        """Save every non-None value."""
        for key, value in values.items():
            if value is not None:
                await self.set(key, value)


def _present(value: Any) -> bool:
    return value is not None and value != "" and value != [] and value != {}


async def compare_and_save(
    scope: TransactionScope,
    rec: CheckRecorder,
    action: str,
    label: str,
    key: str,
    current: Any,
    *,
    save_as: Optional[str] = None,
    normalize: Optional[Callable[[Any], Any]] = None,
) -> Optional[bool]:
    """Compare ``current`` to the value saved under ``key``.

    Args:
        label: Human name of the field, used in the check description.
        key: Store key holding the earlier value.
        current: Value observed in this message.
        save_as: Key to write ``current`` to (defaults to ``key``).
        normalize: Applied to both sides before comparing.

    Returns:
        True/False for a recorded comparison, None if nothing was compared.
    """
    saved = await scope.get(key)
    result: Optional[bool] = None
    if _present(saved) and _present(current):
        left = normalize(current) if normalize else current
        right = normalize(saved) if normalize else saved
        result = rec.check(
            left == right,
            f"{label} matches in {action}",
            f"{label} in {action} ({current}) does not match saved value ({saved})",
        )
    if _present(current):
        await scope.set(save_as or key, current)
    return result


async def validate_provider_id(
    scope: TransactionScope,
    rec: CheckRecorder,
    action: str,
    provider_id: Optional[str],
    key: str = "on_search_provider_id",
    save_as: Optional[str] = None,
) -> Optional[bool]:
    """Provider declared in on_search must reappear unchanged."""
    return await compare_and_save(
        scope, rec, action, "Provider ID", key, provider_id, save_as=save_as
    )


async def validate_order_id(
    scope: TransactionScope,
    rec: CheckRecorder,
    action: str,
    order_id: Optional[str],
    key: str = "order_id",
    save_as: Optional[str] = None,
) -> Optional[bool]:
    return await compare_and_save(
        scope, rec, action, "Order ID", key, order_id, save_as=save_as
    )


def _item_ids(items: Any) -> List[str]:
    if not isinstance(items, list):
        return []
    ids = []
    for item in items:
        if isinstance(item, dict) and item.get("id") is not None:
            ids.append(str(item["id"]))
        elif isinstance(item, str):
            ids.append(item)
    return sorted(ids)


async def validate_item_ids(
    scope: TransactionScope,
    rec: CheckRecorder,
    action: str,
    items: Optional[Sequence[Any]],
    key: str = "init_items",
    save_as: Optional[str] = None,
) -> Optional[bool]:
    """Item ids must match as a set; order does not matter."""
    saved = _item_ids(await scope.get(key))
    current = _item_ids(list(items or []))
    result: Optional[bool] = None
    if saved and current:
        result = rec.check(
            current == saved,
            f"Item IDs match in {action}",
            f"Item IDs in {action} {current} do not match saved {saved}",
        )
    if current:
        await scope.set(save_as or key, [{"id": i} for i in current])
    return result


def split_fulfillments(fulfillments: Any) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """Return the (delivery, rto) fulfillments, either may be None."""
    delivery = rto = None
    for ff in fulfillments if isinstance(fulfillments, list) else []:
        if not isinstance(ff, dict):
            continue
        if delivery is None and ff.get("type") in DELIVERY_FULFILLMENT_TYPES:
            delivery = ff
        elif rto is None and ff.get("type") == RTO_FULFILLMENT_TYPE:
            rto = ff
    return delivery, rto


async def validate_fulfillment_ids(
    scope: TransactionScope,
    rec: CheckRecorder,
    action: str,
    fulfillments: Any,
    saved_keys: Tuple[Optional[str], Optional[str]] = (
        "on_search_delivery_fulfillment_id",
        "on_search_rto_fulfillment_id",
    ),
    save_keys: Tuple[Optional[str], Optional[str]] = (None, None),
) -> None:
    """Delivery and RTO fulfillment ids must be echoed unchanged.

    ``saved_keys`` are read for comparison; ``save_keys`` receive the
    current ids (a None slot reuses the matching read key).
    """
    delivery, rto = split_fulfillments(fulfillments)
    pairs = (
        ("Delivery fulfillment ID", delivery, saved_keys[0], save_keys[0]),
        ("RTO fulfillment ID", rto, saved_keys[1], save_keys[1]),
    )
    for label, ff, read_key, write_key in pairs:
        current = ff.get("id") if ff else None
        if read_key:
            await compare_and_save(
                scope, rec, action, label, read_key, current, save_as=write_key
            )
        elif write_key and current is not None:
            await scope.set(write_key, current)


def _normalize_gps(value: Any) -> Any:
    if isinstance(value, str):
        return ",".join(part.strip() for part in value.split(","))
    return value


async def validate_gps(
    scope: TransactionScope,
    rec: CheckRecorder,
    action: str,
    delivery_fulfillment: Optional[Dict[str, Any]],
    start_key: str = "search_start_gps",
    end_key: str = "search_end_gps",
) -> None:
    """Start/end GPS of the delivery leg must match the last declared value.

    The current coordinates replace the saved ones, so each leg is compared
    with the one before it, starting from search.
    """
    if not delivery_fulfillment:
        return
    for label, key, path in (
        ("Start GPS", start_key, ("start", "location", "gps")),
        ("End GPS", end_key, ("end", "location", "gps")),
    ):
        await compare_and_save(
            scope,
            rec,
            action,
            label,
            key,
            dig(delivery_fulfillment, *path),
            normalize=_normalize_gps,
        )


def _price(value: Any) -> Optional[float]:
    try:
        return round(float(value), 2)
    except (TypeError, ValueError):
        return None


async def validate_quote_price(
    scope: TransactionScope,
    rec: CheckRecorder,
    action: str,
    quote: Optional[Dict[str, Any]],
    key: str = "on_confirm_quote",
    save_as: Optional[str] = None,
) -> Optional[bool]:
    """Quote total must be unchanged since ``key`` was recorded."""
    saved = await scope.get(key)
    current_value = dig(quote, "price", "value")
    saved_value = dig(saved, "price", "value")
    result: Optional[bool] = None
    if _present(current_value) and _present(saved_value):
        result = rec.check(
            _price(current_value) is not None and _price(current_value) == _price(saved_value),
            f"Quote price consistent in {action}",
            f"Quote price in {action} ({current_value}) does not match saved ({saved_value})",
        )
    if _present(quote):
        await scope.set(save_as or key, quote)
    return result


def _breakup_signature(quote: Any) -> List[Tuple[str, str, Optional[float]]]:
    rows = []
    for row in dig(quote, "breakup", default=[]) or []:
        if not isinstance(row, dict):
            continue
        rows.append((
            str(row.get("@ondc/org/item_id") or dig(row, "item", "id") or ""),
            str(row.get("@ondc/org/title_type") or row.get("title") or ""),
            _price(dig(row, "price", "value")),
        ))
    return sorted(rows, key=lambda r: (r[0], r[1], r[2] if r[2] is not None else 0.0))


async def validate_quote_breakup(
    scope: TransactionScope,
    rec: CheckRecorder,
    action: str,
    quote: Optional[Dict[str, Any]],
    key: str = "on_confirm_quote",
) -> Optional[bool]:
    """Breakup lines (item, title type, price) must be unchanged.

    Does not write: the breakup is part of the quote object that
    :func:`validate_quote_price` saves under its own key in the same step.
    """
    saved = await scope.get(key)
    current_rows = _breakup_signature(quote)
    saved_rows = _breakup_signature(saved)
    if not current_rows or not saved_rows:
        return None
    if current_rows == saved_rows:
        rec.pass_(f"Quote breakup consistent in {action}")
        return True
    added = [r for r in current_rows if r not in saved_rows]
    removed = [r for r in saved_rows if r not in current_rows]
    rec.fail(
        f"Quote breakup in {action} differs from saved: added {added}, removed {removed}"
    )
    return False


async def validate_order_state_transition(
    scope: TransactionScope,
    rec: CheckRecorder,
    action: str,
    state: Optional[str],
    key: str = "order_state",
) -> Optional[bool]:
    """Order state may stay put or move forward, never backward."""
    saved = await scope.get(key)
    result: Optional[bool] = None
    if _present(saved) and _present(state):
        old_rank = ORDER_STATE_RANK.get(str(saved))
        new_rank = ORDER_STATE_RANK.get(str(state))
        if old_rank is None or new_rank is None:
            rec.fail(f"Unknown order state transition in {action}: '{saved}' -> '{state}'")
            result = False
        else:
            terminal_switch = old_rank == new_rank == 3 and saved != state
            result = rec.check(
                new_rank >= old_rank and not terminal_switch,
                f"Order state transition '{saved}' -> '{state}' is valid in {action}",
                f"Order state cannot move from '{saved}' to '{state}' in {action}",
            )
    if _present(state):
        await scope.set(key, state)
    return result


async def validate_created_at_unchanged(
    scope: TransactionScope,
    rec: CheckRecorder,
    action: str,
    created_at: Optional[str],
    key: str = "order_created_at",
) -> Optional[bool]:
    """order.created_at is fixed once the order exists."""
    return await compare_and_save(
        scope, rec, action, "order.created_at", key, created_at
    )


async def validate_updated_at_advanced(
    scope: TransactionScope,
    rec: CheckRecorder,
    action: str,
    updated_at: Optional[str],
    key: str = "order_updated_at",
    strictly: bool = False,
) -> Optional[bool]:
    """order.updated_at must not move backwards (or must move, if ``strictly``).

    ISO-8601 UTC strings compare correctly as text.
    """
    saved = await scope.get(key)
    result: Optional[bool] = None
    if _present(saved) and _present(updated_at):
        ok = str(updated_at) > str(saved) if strictly else str(updated_at) >= str(saved)
        result = rec.check(
            ok,
            f"order.updated_at is updated correctly in {action}",
            f"order.updated_at in {action} ({updated_at}) must be "
            f"{'later than' if strictly else 'no earlier than'} saved ({saved})",
        )
    if _present(updated_at):
        await scope.set(key, updated_at)
    return result


async def validate_pickup_timestamp(
    scope: TransactionScope,
    rec: CheckRecorder,
    action: str,
    fulfillment: Optional[Dict[str, Any]],
    context_timestamp: Optional[str],
    key: str = "pickup_timestamp",
) -> None:
    """Pickup time is set at 'Order-picked-up', never future-dated, then frozen.

    Delivery time at 'Order-delivered' must not be future-dated either.
    """
    if not fulfillment:
        return
    ff_state = dig(fulfillment, "state", "descriptor", "code", default="")
    pickup_ts = dig(fulfillment, "start", "time", "timestamp")
    delivery_ts = dig(fulfillment, "end", "time", "timestamp")

    if ff_state == "Order-picked-up" and pickup_ts:
        if context_timestamp:
            rec.check(
                str(context_timestamp) >= str(pickup_ts),
                f"Pickup timestamp is not future-dated in {action}",
                f"Pickup timestamp ({pickup_ts}) cannot be future-dated w.r.t context timestamp in {action}",
            )
        await scope.set(key, pickup_ts)
        return

    if ff_state in STATES_AFTER_PICKUP[1:] or ff_state == "Order-delivered":
        saved = await scope.get(key)
        if _present(saved):
            rec.check(
                pickup_ts == saved,
                f"Pickup timestamp unchanged in {action}",
                f"Pickup timestamp cannot change once fulfillment state is '{ff_state}' "
                f"({pickup_ts} vs saved {saved})",
            )

    if ff_state == "Order-delivered" and delivery_ts and context_timestamp:
        rec.check(
            str(context_timestamp) >= str(delivery_ts),
            f"Delivery timestamp is not future-dated in {action}",
            f"Delivery timestamp ({delivery_ts}) cannot be future-dated w.r.t context timestamp in {action}",
        )


def message_id_key(request_action: str) -> str:
    return f"{request_action}_message_id"


async def validate_message_id_pairing(
    scope: TransactionScope,
    rec: CheckRecorder,
    action: str,
    message_id: Optional[str],
) -> Optional[bool]:
    """A callback ``on_x`` must echo the message_id of its request ``x``.

    Requests save their message_id; callbacks compare against it.
    """
    if not _present(message_id):
        return None
    if not action.startswith("on_"):
        await scope.set(message_id_key(action), message_id)
        return None
    request = action[len("on_"):]
    saved = await scope.get(message_id_key(request))
    if not _present(saved):
        return None
    return rec.check(
        message_id == saved,
        f"message_id of {action} matches {request}",
        f"message_id of {action} ({message_id}) does not match {request} ({saved})",
    )


def _strip_volatile(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _strip_volatile(v) for k, v in value.items() if k not in VOLATILE_FIELDS}
    if isinstance(value, list):
        return [_strip_volatile(v) for v in value]
    return value


async def validate_billing(
    scope: TransactionScope,
    rec: CheckRecorder,
    action: str,
    billing: Optional[Dict[str, Any]],
    key: str = "init_billing",
) -> Optional[bool]:
    """Billing details must be echoed unchanged (timestamps excluded)."""
    saved = await scope.get(key)
    result: Optional[bool] = None
    if _present(saved) and _present(billing):
        left, right = _strip_volatile(billing), _strip_volatile(saved)
        changed = sorted(
            k for k in set(left) | set(right) if left.get(k) != right.get(k)
        ) if isinstance(left, dict) and isinstance(right, dict) else ["billing"]
        result = rec.check(
            not changed,
            f"Billing details match in {action}",
            f"Billing details in {action} differ from saved in: {', '.join(changed)}",
        )
    if _present(billing):
        await scope.set(key, billing)
    return result


async def validate_cancellation_terms(
    scope: TransactionScope,
    rec: CheckRecorder,
    action: str,
    terms: Optional[Iterable[Any]],
    key: str = "cancellation_terms",
) -> Optional[bool]:
    """Cancellation terms, once offered, must not change."""
    current = list(terms or [])
    return await compare_and_save(
        scope,
        rec,
        action,
        "Cancellation terms",
        key,
        current or None,
        normalize=_strip_volatile,
    )
