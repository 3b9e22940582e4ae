"""Conformance test suite for flow-conformance.

Run: pytest --pyargs flow_conformance.conformance
"""
from flow_conformance.conformance.builders import RecordingUnit, make_flow, make_message
from flow_conformance.conformance.loader import (
    ReplayCase,
    list_replay_streams,
    load_replay_case,
    load_replay_stream,
)
from flow_conformance.conformance.pytest_helpers import (
    assert_flow_invalid,
    assert_flow_valid,
    assert_outcome_passed,
)

__all__ = [
    "RecordingUnit",
    "ReplayCase",
    "assert_flow_invalid",
    "assert_flow_valid",
    "assert_outcome_passed",
    "list_replay_streams",
    "load_replay_case",
    "load_replay_stream",
    "make_flow",
    "make_message",
]
