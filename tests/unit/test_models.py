"""Unit tests for core data models."""
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from flow_conformance.models import CheckOutcome, Message, merge_outcomes

_CAPTURED = {
    "action": "ON_SEARCH",
    "flowId": "ORDER_FLOW",
    "createdAt": "2026-03-01T10:00:02.000Z",
    "action_id": "on_search_catalog",
    "jsonRequest": {
        "context": {
            "domain": "ONDC:LOG10",
            "core_version": "1.2.5",
            "transaction_id": "txn-9",
        },
        "message": {"catalog": {}},
    },
    "jsonResponse": {"response": {"message": {"ack": {"status": "ACK"}}}},
}


class TestMessage:
    """Tests for Message parsing."""

    def test_action_is_lower_cased(self):
        """Test action is normalized to lower case."""
        msg = Message.model_validate(_CAPTURED)
        assert msg.action == "on_search"

    def test_capture_names_are_mapped(self):
        """Test jsonRequest/jsonResponse/action_id map onto model fields."""
        msg = Message.model_validate(_CAPTURED)
        assert msg.request_body["message"] == {"catalog": {}}
        assert msg.response_envelope == {"message": {"ack": {"status": "ACK"}}}
        assert msg.action_id == "on_search_catalog"

    def test_context_fills_missing_fields(self):
        """Test domain, version and transaction fall back to the context."""
        msg = Message.model_validate(_CAPTURED)
        assert msg.domain == "ONDC:LOG10"
        assert msg.schema_version == "1.2.5"
        assert msg.transaction_id == "txn-9"

    def test_explicit_fields_win_over_context(self):
        """Test explicitly provided values are not replaced by context ones."""
        msg = Message.model_validate({**_CAPTURED, "domain": "ONDC:RET10", "schemaVersion": "2.0.0"})
        assert msg.domain == "ONDC:RET10"
        assert msg.schema_version == "2.0.0"

    def test_python_names_accepted(self):
        """Test fields can be populated by attribute name."""
        msg = Message(
            action="search",
            flow_id="F",
            created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )
        assert msg.flow_id == "F"
        assert msg.request_body == {}
        assert msg.context == {}
        assert msg.body == {}

    def test_naive_created_at_is_utc(self):
        """Test naive capture times are read as UTC and compare with aware ones."""
        naive = Message.model_validate({**_CAPTURED, "createdAt": "2026-03-01T10:00:02"})
        aware = Message.model_validate({**_CAPTURED, "createdAt": "2026-03-01T10:00:00Z"})
        assert naive.created_at == datetime(2026, 3, 1, 10, 0, 2, tzinfo=timezone.utc)
        assert sorted([naive, aware], key=lambda m: m.created_at) == [aware, naive]

    def test_aware_created_at_keeps_offset(self):
        msg = Message.model_validate({**_CAPTURED, "createdAt": "2026-03-01T15:30:00+05:30"})
        assert msg.created_at.utcoffset().total_seconds() == 5.5 * 3600

    def test_action_taken_from_context(self):
        """Test a missing action is read from context.action."""
        data = {k: v for k, v in _CAPTURED.items() if k != "action"}
        data["jsonRequest"] = {"context": {"action": "Confirm"}}
        assert Message.model_validate(data).action == "confirm"

    def test_flow_id_required(self):
        """Test flowId is mandatory."""
        data = {k: v for k, v in _CAPTURED.items() if k != "flowId"}
        with pytest.raises(ValidationError):
            Message.model_validate(data)

    def test_immutable(self):
        """Test messages are frozen."""
        msg = Message.model_validate(_CAPTURED)
        with pytest.raises(ValidationError):
            msg.action = "search"  # type: ignore[misc]

    def test_routing_key_prefers_action_id(self):
        msg = Message.model_validate(_CAPTURED)
        assert msg.routing_key == "on_search_catalog"
        plain = Message.model_validate({**_CAPTURED, "action_id": None})
        assert plain.routing_key == "on_search"


class TestCheckOutcome:
    """Tests for CheckOutcome merging."""

    def test_defaults_are_empty_lists(self):
        outcome = CheckOutcome()
        assert outcome.passed == ()
        assert outcome.failed == ()
        assert outcome.is_empty
        assert outcome.ok

    def test_merge_concatenates(self):
        """Test merge concatenates and never replaces."""
        a = CheckOutcome(passed=("a1",), failed=("a2",))
        b = CheckOutcome(passed=("b1",), failed=("b2",))
        merged = a.merge(b)
        assert merged.passed == ("a1", "b1")
        assert merged.failed == ("a2", "b2")

    def test_merge_keeps_non_empty_response(self):
        a = CheckOutcome(response={"x": 1})
        assert a.merge(CheckOutcome()).response == {"x": 1}
        assert a.merge(CheckOutcome(response={"y": 2})).response == {"y": 2}

    def test_merge_outcomes_folds_in_order(self):
        outcomes = [CheckOutcome(passed=(str(i),)) for i in range(3)]
        assert merge_outcomes(outcomes).passed == ("0", "1", "2")
        assert merge_outcomes([]).is_empty

    def test_failure_constructor(self):
        outcome = CheckOutcome.failure("boom")
        assert outcome.failed == ("boom",)
        assert not outcome.ok

    def test_to_dict_shape(self):
        outcome = CheckOutcome(passed=("p",), failed=("f",), response={"r": 1})
        assert outcome.to_dict() == {"passed": ["p"], "failed": ["f"], "response": {"r": 1}}
