"""Unit tests for the report model."""
import pytest

from flow_conformance.models import CheckOutcome
from flow_conformance.report import FlowReport, Report, action_key


class TestActionKey:
    def test_one_based_suffix(self):
        assert action_key("search", 1) == "search_1"
        assert action_key("on_status", 3) == "on_status_3"

    def test_zero_rejected(self):
        with pytest.raises(ValueError):
            action_key("search", 0)


class TestFlowReport:
    """Tests for FlowReport counters and serialization."""

    def test_counts(self):
        flow = FlowReport(
            flow_id="ORDER_FLOW",
            per_action_outcomes={
                "search_1": CheckOutcome(passed=("a", "b")),
                "on_search_1": CheckOutcome(passed=("c",), failed=("d",)),
            },
        )
        assert flow.passed_checks == 3
        assert flow.failed_checks == 1

    def test_to_dict(self):
        flow = FlowReport(
            flow_id="ORDER_FLOW",
            valid_flow=False,
            sequence_errors=("Error: x",),
            per_action_outcomes={"search_1": CheckOutcome(passed=("ok",))},
        )
        assert flow.to_dict() == {
            "valid_flow": False,
            "errors": ["Error: x"],
            "messages": {"search_1": {"passed": ["ok"], "failed": [], "response": {}}},
        }


class TestReport:
    """Tests for the aggregate report."""

    def test_to_dict_shape(self):
        report = Report(
            mandatory_flows_summary="CANCEL_FLOW is mandatory and should be tested.",
            missing_mandatory_flows=("CANCEL_FLOW",),
            flows={"ORDER_FLOW": FlowReport(flow_id="ORDER_FLOW")},
        )
        data = report.to_dict()
        assert data["finalReport"] == {
            "mandatoryFlows": "CANCEL_FLOW is mandatory and should be tested."
        }
        assert data["flowErrors"]["ORDER_FLOW"]["valid_flow"] is True

    def test_empty_summary_omitted(self):
        assert Report().to_dict() == {"finalReport": {}, "flowErrors": {}}

    def test_all_valid(self):
        ok = FlowReport(flow_id="A")
        failing = FlowReport(
            flow_id="B", per_action_outcomes={"x_1": CheckOutcome(failed=("f",))}
        )
        assert Report(flows={"A": ok}).all_valid
        assert not Report(flows={"A": ok, "B": failing}).all_valid
        assert not Report(flows={"C": FlowReport(flow_id="C", valid_flow=False)}).all_valid
