"""Reusable test helpers for flow-conformance reports.

Consumers can import these to write their own conformance assertions:
    from flow_conformance.conformance.pytest_helpers import (
        assert_flow_valid,
        assert_flow_invalid,
        assert_outcome_passed,
    )
"""
from __future__ import annotations

from typing import Optional

from flow_conformance.models import CheckOutcome
from flow_conformance.report import FlowReport, Report


def _flow(report: Report, flow_id: str) -> FlowReport:
    if flow_id not in report.flows:
        raise AssertionError(
            f"Flow {flow_id!r} missing from report; got {sorted(report.flows)}"
        )
    return report.flows[flow_id]


def _failures(flow: FlowReport) -> str:
    lines = []
    for key, outcome in flow.per_action_outcomes.items():
        for failure in outcome.failed:
            lines.append(f"  {key}: {failure}")
    return "\n".join(lines)


def assert_flow_valid(report: Report, flow_id: str, *, allow_failed_checks: bool = False) -> FlowReport:
    """Assert the flow's sequence is valid and, by default, nothing failed."""
    flow = _flow(report, flow_id)
    if not flow.valid_flow:
        raise AssertionError(
            f"Flow {flow_id!r} has an invalid sequence:\n  "
            + "\n  ".join(flow.sequence_errors)
        )
    if not allow_failed_checks and flow.failed_checks:
        raise AssertionError(
            f"Flow {flow_id!r} has {flow.failed_checks} failed check(s):\n"
            + _failures(flow)
        )
    return flow


def assert_flow_invalid(report: Report, flow_id: str, expected_error: Optional[str] = None) -> FlowReport:
    """Assert the flow's sequence is invalid (optionally mentioning ``expected_error``)."""
    flow = _flow(report, flow_id)
    if flow.valid_flow:
        raise AssertionError(
            f"Flow {flow_id!r} was expected to have an invalid sequence but passed."
        )
    if expected_error is not None and not any(expected_error in e for e in flow.sequence_errors):
        raise AssertionError(
            f"No sequence error of flow {flow_id!r} mentions {expected_error!r}; "
            f"got {list(flow.sequence_errors)}"
        )
    return flow


def assert_outcome_passed(report: Report, flow_id: str, key: str) -> CheckOutcome:
    """Assert the outcome at ``key`` (e.g. ``"confirm_1"``) has no failed entries."""
    flow = _flow(report, flow_id)
    if key not in flow.per_action_outcomes:
        raise AssertionError(
            f"No outcome {key!r} in flow {flow_id!r}; got {sorted(flow.per_action_outcomes)}"
        )
    outcome = flow.per_action_outcomes[key]
    if outcome.failed:
        raise AssertionError(
            f"Outcome {key!r} of flow {flow_id!r} failed:\n  " + "\n  ".join(outcome.failed)
        )
    return outcome
