"""Validation orchestrator.

Drives one validation run over a session's captured messages, grouped by
flow. For every flow it runs the sequence checker and, independently,
validates every message in capture order:

1. common units registered for the domain (context checks, ...);
2. the generic ACK/NACK envelope check, unless the flow bypasses it;
3. the Validator Unit resolved from the registry.

Outcomes are concatenated per message under ``<action>_<n>`` keys. Flows
run concurrently; messages within a flow run one at a time so that
consistency-store reads see the writes of earlier messages.

Nothing raised while validating one message or one flow escapes the run:
it becomes a failed entry or a sequence error in that flow's report.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from flow_conformance.audit import audit_mandatory_flows
from flow_conformance.checks import CheckRecorder
from flow_conformance.config import DomainConfig
from flow_conformance.envelope import envelope_errors
from flow_conformance.models import CheckOutcome, Message
from flow_conformance.registry import RuleRegistry, ValidatorUnit
from flow_conformance.report import FlowReport, Report, action_key
from flow_conformance.sequence import check_flow_sequence, sort_messages
from flow_conformance.store import ConsistencyStore, InMemoryConsistencyStore, add_transaction_id

logger = logging.getLogger("flow_conformance.engine")

RawMessage = Union[Message, Mapping[str, Any]]
GroupedPayloads = Mapping[str, Sequence[RawMessage]]

UNKNOWN_ACTION: str = "unknown"


def _coerce(raw: RawMessage, flow_id: str) -> Message:
    if isinstance(raw, Message):
        return raw
    data = dict(raw)
    if "flowId" not in data and "flow_id" not in data:
        data["flowId"] = flow_id
    return Message.model_validate(data)


def _raw_action(raw: RawMessage) -> str:
    if isinstance(raw, Mapping):
        action = raw.get("action")
        if isinstance(action, str) and action.strip():
            return action.strip().lower()
    return UNKNOWN_ACTION


async def invoke_unit(
    unit: ValidatorUnit,
    message: Message,
    session_id: str,
    usecase_id: Optional[str],
    store: ConsistencyStore,
) -> CheckOutcome:
    """Call a unit, awaiting it if needed, and check what it returned."""
    result = unit(
        message,
        session_id,
        message.flow_id,
        message.action_id,
        usecase_id,
        store=store,
    )
    if inspect.isawaitable(result):
        result = await result
    if not isinstance(result, CheckOutcome):
        raise TypeError(f"validator returned {type(result).__name__}, not CheckOutcome")
    return result


class ValidationOrchestrator:
    """Runs registered Validator Units over grouped payloads.

    Args:
        config: Read-only domain configuration (flow catalog, routing,
            tolerances).
        registry: Where Validator Units are resolved.
        store: Consistency store shared by the units. A fresh in-memory
            store is used when omitted.
        record_transactions: Also keep the session's transaction index in
            the store.
    """

    def __init__(
        self,
        config: DomainConfig,
        registry: RuleRegistry,
        store: Optional[ConsistencyStore] = None,
        *,
        record_transactions: bool = False,
    ) -> None:
        self.config = config
        self.registry = registry
        self.store = store if store is not None else InMemoryConsistencyStore()
        self.record_transactions = record_transactions

    async def validate_message(
        self,
        message: Message,
        session_id: str,
        usecase_id: Optional[str] = None,
    ) -> CheckOutcome:
        """All checks for one message, merged by concatenation."""
        rec = CheckRecorder(message.action)
        domain = message.domain or self.config.domain

        for unit in self.registry.common_units(domain):
            with rec.guard():
                rec.extend(await invoke_unit(unit, message, session_id, usecase_id, self.store))

        if self.config.bypass_envelope_check(message.flow_id):
            logger.debug("Envelope check bypassed for flow %s", message.flow_id)
        else:
            with rec.guard("sync response validation"):
                for error in envelope_errors(message.response_envelope):
                    rec.fail(f"Issue with sync response: {error}")

        unit = self.registry.resolve_message(message, self.config)
        if unit is None:
            logger.warning(
                "No validator found for %s (domain=%s, version=%s)",
                message.routing_key, domain, message.schema_version,
            )
            rec.fail(
                f"No validator found for action '{message.routing_key}' "
                f"(domain {domain}, version {message.schema_version})"
            )
        else:
            with rec.guard():
                outcome = await invoke_unit(unit, message, session_id, usecase_id, self.store)
                if outcome.is_empty:
                    outcome = outcome.merge(CheckOutcome(passed=(f"Validated {message.action}",)))
                rec.extend(outcome)

        if not rec.response and message.response_envelope:
            rec.response = dict(message.response_envelope)
        return rec.outcome()

    async def validate_flow(
        self,
        flow_id: str,
        raw_messages: Sequence[RawMessage],
        session_id: str,
        usecase_id: Optional[str] = None,
    ) -> FlowReport:
        messages: List[Message] = []
        malformed: List[Tuple[str, str]] = []
        for raw in raw_messages:
            try:
                messages.append(_coerce(raw, flow_id))
            except ValidationError as e:
                action = _raw_action(raw)
                logger.warning("Malformed %s message in flow %s: %s", action, flow_id, e)
                malformed.append((action, f"Error during {action} validation: malformed message: {e}"))

        try:
            ordered = sort_messages(messages)
        except Exception as e:  # noqa: BLE001 - messages are still validated in input order
            logger.error("Cannot order messages of %s by capture time: %s", flow_id, e)
            ordered = list(messages)
            valid_flow = False
            sequence_errors: Tuple[str, ...] = (
                f"Error during sequence validation: cannot order messages: {e}",
            )
        else:
            try:
                sequence = check_flow_sequence(ordered, self.config.flow(flow_id), self.config)
                valid_flow, sequence_errors = sequence.valid_flow, sequence.errors
            except Exception as e:  # noqa: BLE001 - recorded as a sequence error
                logger.error("Error during sequence validation of %s: %s", flow_id, e)
                valid_flow, sequence_errors = False, (f"Error during sequence validation: {e}",)

        counters: Dict[str, int] = {}
        outcomes: Dict[str, CheckOutcome] = {}
        for message in ordered:
            counters[message.action] = counters.get(message.action, 0) + 1
            key = action_key(message.action, counters[message.action])
            logger.info("Validating %s in flow %s", key, flow_id)
            try:
                outcomes[key] = await self.validate_message(message, session_id, usecase_id)
            except Exception as e:  # noqa: BLE001 - one message never aborts the flow
                logger.error("Error during %s validation: %s", message.action, e)
                outcomes[key] = CheckOutcome.failure(f"Error during {message.action} validation: {e}")

        for action, error in malformed:
            counters[action] = counters.get(action, 0) + 1
            outcomes[action_key(action, counters[action])] = CheckOutcome.failure(error)

        report = FlowReport(
            flow_id=flow_id,
            valid_flow=valid_flow,
            sequence_errors=tuple(sequence_errors),
            per_action_outcomes=outcomes,
        )
        logger.info(
            "Flow %s: valid_flow=%s, %d messages, %d failed checks",
            flow_id, report.valid_flow, len(outcomes), report.failed_checks,
        )
        return report

    async def _record_transactions(self, grouped: GroupedPayloads, session_id: str) -> None:
        seen = []
        for raw_messages in grouped.values():
            for raw in raw_messages:
                if isinstance(raw, Message):
                    txn = raw.transaction_id
                else:
                    txn = raw.get("transactionId") or raw.get("transaction_id")
                if txn and txn not in seen:
                    seen.append(txn)
        for txn in seen:
            await add_transaction_id(self.store, session_id, txn)

    async def run(
        self,
        grouped: GroupedPayloads,
        session_id: str,
        usecase_id: Optional[str] = None,
    ) -> Report:
        """Validate every flow in ``grouped`` and audit mandatory coverage."""
        flow_ids = list(grouped)
        logger.info(
            "Validating %d flow(s) for session %s (domain %s)",
            len(flow_ids), session_id, self.config.domain,
        )
        if self.record_transactions:
            await self._record_transactions(grouped, session_id)

        results = await asyncio.gather(
            *(self.validate_flow(fid, grouped[fid], session_id, usecase_id) for fid in flow_ids),
            return_exceptions=True,
        )

        flows: Dict[str, FlowReport] = {}
        for flow_id, result in zip(flow_ids, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error("Error during validation of flow %s: %s", flow_id, result)
                result = FlowReport(
                    flow_id=flow_id,
                    valid_flow=False,
                    sequence_errors=(f"Error during flow validation: {result}",),
                )
            flows[flow_id] = result

        audit = audit_mandatory_flows(self.config, flow_ids)
        return Report(
            mandatory_flows_summary=audit.summary,
            missing_mandatory_flows=audit.missing,
            flows=flows,
        )


async def validate_flows(
    grouped: GroupedPayloads,
    session_id: str,
    config: DomainConfig,
    registry: RuleRegistry,
    store: Optional[ConsistencyStore] = None,
    *,
    usecase_id: Optional[str] = None,
    record_transactions: bool = False,
) -> Report:
    """Validate grouped payloads in one call.

    Example::

        report = asyncio.run(validate_flows(grouped, "sess-1", config, registry))
        report.flows["ORDER_FLOW"].valid_flow
    """
    orchestrator = ValidationOrchestrator(
        config, registry, store, record_transactions=record_transactions
    )
    return await orchestrator.run(grouped, session_id, usecase_id)
