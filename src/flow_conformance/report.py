"""Report model returned by a validation run."""
from __future__ import annotations

from typing import Any, Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field

from flow_conformance.models import CheckOutcome


def action_key(action: str, occurrence: int) -> str:
    """Disambiguated report key for the ``occurrence``-th (1-based) ``action``."""
    if occurrence < 1:
        raise ValueError(f"occurrence is 1-based; got {occurrence}")
    return f"{action}_{occurrence}"


class FlowReport(BaseModel):
    """Sequence verdict and per-message outcomes for one flow."""

    model_config = ConfigDict(frozen=True)

    flow_id: str = Field(..., min_length=1, description="Flow identifier")
    valid_flow: bool = Field(True, description="False once the sequence diverged")
    sequence_errors: Tuple[str, ...] = Field(
        default_factory=tuple, description="Descriptive sequence violations"
    )
    per_action_outcomes: Dict[str, CheckOutcome] = Field(
        default_factory=dict,
        description="actionKey (e.g. 'search_1') -> outcome, in processing order",
    )

    @property
    def failed_checks(self) -> int:
        return sum(len(o.failed) for o in self.per_action_outcomes.values())

    @property
    def passed_checks(self) -> int:
        return sum(len(o.passed) for o in self.per_action_outcomes.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid_flow": self.valid_flow,
            "errors": list(self.sequence_errors),
            "messages": {k: o.to_dict() for k, o in self.per_action_outcomes.items()},
        }

    def __repr__(self) -> str:
        return (
            f"FlowReport(flow={self.flow_id}, valid={self.valid_flow}, "
            f"messages={len(self.per_action_outcomes)}, failed={self.failed_checks})"
        )


class Report(BaseModel):
    """Aggregate result of one validation run."""

    model_config = ConfigDict(frozen=True)

    mandatory_flows_summary: str = Field(
        "", description="Advisory note listing untested mandatory flows (empty if none)"
    )
    missing_mandatory_flows: Tuple[str, ...] = Field(
        default_factory=tuple, description="Catalog flows neither tested nor optional"
    )
    flows: Dict[str, FlowReport] = Field(
        default_factory=dict, description="flowId -> FlowReport, one per input flow"
    )

    @property
    def all_valid(self) -> bool:
        return all(
            f.valid_flow and f.failed_checks == 0 for f in self.flows.values()
        )

    def to_dict(self) -> Dict[str, Any]:
        """Renderer-facing shape."""
        final: Dict[str, Any] = {}
        if self.mandatory_flows_summary:
            final["mandatoryFlows"] = self.mandatory_flows_summary
        return {
            "finalReport": final,
            "flowErrors": {fid: f.to_dict() for fid, f in self.flows.items()},
        }
