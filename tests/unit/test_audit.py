"""Unit tests for the mandatory-flow auditor."""
from flow_conformance.audit import (
    AuditResult,
    audit_mandatory_flows,
    find_missing_flows,
    mandatory_flows_summary,
)
from flow_conformance.config import DomainConfig

_CONFIG = DomainConfig(
    domain="ONDC:LOG10",
    flows={"ORDER_FLOW": ["search"], "STATUS_FLOW": ["status"], "CANCEL_FLOW": ["cancel"]},
    optional_flows=["CANCEL_FLOW"],
)


class TestMandatoryFlowAudit:
    """Tests for coverage auditing."""

    def test_untested_mandatory_flow_listed(self):
        result = audit_mandatory_flows(_CONFIG, ["ORDER_FLOW"])
        assert result.missing == ("STATUS_FLOW",)
        assert result.summary == "STATUS_FLOW is mandatory and should be tested."
        assert not result.complete

    def test_optional_flow_not_required(self):
        result = audit_mandatory_flows(_CONFIG, ["ORDER_FLOW", "STATUS_FLOW"])
        assert result == AuditResult()
        assert result.complete

    def test_plural_summary_in_catalog_order(self):
        result = audit_mandatory_flows(_CONFIG, [])
        assert result.summary == "ORDER_FLOW, STATUS_FLOW are mandatory and should be tested."

    def test_uncatalogued_tested_flow_ignored(self):
        result = audit_mandatory_flows(_CONFIG, ["ORDER_FLOW", "STATUS_FLOW", "ADHOC_FLOW"])
        assert result.missing == ()

    def test_empty_summary(self):
        assert mandatory_flows_summary([]) == ""

    def test_find_missing_flows(self):
        assert find_missing_flows(["A", "B", "C"], {"B"}, {"C"}) == ("A",)
