"""Core data models for flow-conformance."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Message(BaseModel):
    """One captured protocol call, read-only to the engine."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    action: str = Field(
        ...,
        min_length=1,
        description="Protocol action (e.g., 'search', 'on_confirm'), lower-cased",
    )
    action_id: Optional[str] = Field(
        None,
        alias="actionId",
        description="Finer-grained routing key (e.g., 'confirm_card_balance_failure')",
    )
    flow_id: str = Field(
        ..., alias="flowId", min_length=1, description="Flow this message belongs to"
    )
    transaction_id: Optional[str] = Field(
        None, alias="transactionId", description="Transaction grouping identifier"
    )
    session_id: Optional[str] = Field(
        None, alias="sessionId", description="Session the message was captured in"
    )
    domain: Optional[str] = Field(None, description="Protocol domain (e.g., 'ONDC:LOG10')")
    schema_version: Optional[str] = Field(
        None, alias="schemaVersion", description="Domain schema version"
    )
    request_body: Dict[str, Any] = Field(
        default_factory=dict,
        alias="requestBody",
        description="Captured request JSON (context + message)",
    )
    response_envelope: Optional[Dict[str, Any]] = Field(
        None,
        alias="responseEnvelope",
        description="Synchronous ACK/NACK response, if captured",
    )
    created_at: datetime = Field(
        ..., alias="createdAt", description="Capture timestamp, used for ordering"
    )

    @model_validator(mode="before")
    @classmethod
    def _accept_capture_names(cls, data: Any) -> Any:
        """Map the storage service's field names and fill gaps from context."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "requestBody" not in data and "request_body" not in data and "jsonRequest" in data:
            data["requestBody"] = data.pop("jsonRequest")
        if (
            "responseEnvelope" not in data
            and "response_envelope" not in data
            and "jsonResponse" in data
        ):
            jr = data.pop("jsonResponse")
            # The capture service wraps the sync response one level deep.
            if isinstance(jr, dict) and isinstance(jr.get("response"), dict):
                jr = jr["response"]
            data["responseEnvelope"] = jr
        if "actionId" not in data and "action_id" in data:
            data["actionId"] = data.pop("action_id")

        body = data.get("requestBody", data.get("request_body")) or {}
        context = body.get("context") if isinstance(body, dict) else None
        if isinstance(context, dict):
            if not data.get("transactionId") and not data.get("transaction_id"):
                data["transactionId"] = context.get("transaction_id")
            if not data.get("domain"):
                data["domain"] = context.get("domain")
            if not data.get("schemaVersion") and not data.get("schema_version"):
                data["schemaVersion"] = context.get("version") or context.get("core_version")
            if not data.get("action") and context.get("action"):
                data["action"] = context["action"]
        return data

    @field_validator("action", mode="before")
    @classmethod
    def _canonical_action(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        """Naive capture times are UTC so every message of a flow sorts together."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def context(self) -> Dict[str, Any]:
        ctx = self.request_body.get("context")
        return ctx if isinstance(ctx, dict) else {}

    @property
    def body(self) -> Dict[str, Any]:
        """The ``message`` object of the request (empty if absent)."""
        msg = self.request_body.get("message")
        return msg if isinstance(msg, dict) else {}

    @property
    def routing_key(self) -> str:
        return self.action_id or self.action

    def __repr__(self) -> str:
        return (
            f"Message(action={self.action}, flow={self.flow_id}, "
            f"txn={self.transaction_id}, at={self.created_at.isoformat()})"
        )


class CheckOutcome(BaseModel):
    """Result of one Validator Unit over one message.

    Both lists are always present. Outcomes are combined with ``merge``,
    which concatenates and never replaces.
    """

    model_config = ConfigDict(frozen=True)

    passed: Tuple[str, ...] = Field(default_factory=tuple, description="Satisfied checks")
    failed: Tuple[str, ...] = Field(default_factory=tuple, description="Violated checks")
    response: Dict[str, Any] = Field(
        default_factory=dict, description="Echoed synchronous response, if any"
    )

    @property
    def is_empty(self) -> bool:
        return not self.passed and not self.failed

    @property
    def ok(self) -> bool:
        return not self.failed

    def merge(self, other: "CheckOutcome") -> "CheckOutcome":
        """Concatenate ``other`` after this outcome.

        The echoed response of ``other`` wins when it is non-empty.
        """
        return CheckOutcome(
            passed=self.passed + other.passed,
            failed=self.failed + other.failed,
            response=other.response or self.response,
        )

    @classmethod
    def failure(cls, message: str) -> "CheckOutcome":
        return cls(failed=(message,))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": list(self.passed),
            "failed": list(self.failed),
            "response": dict(self.response),
        }


def merge_outcomes(outcomes: List[CheckOutcome]) -> CheckOutcome:
    """Fold outcomes left to right with ``CheckOutcome.merge``."""
    merged = CheckOutcome()
    for outcome in outcomes:
        merged = merged.merge(outcome)
    return merged


# Custom Exceptions
class FlowConformanceError(Exception):
    """Base exception for all library errors."""
    pass


class StorageError(FlowConformanceError):
    """Consistency store backend failure."""
    pass


class ConfigurationError(FlowConformanceError):
    """Domain configuration could not be loaded or is invalid."""
    pass


class RegistrationError(FlowConformanceError):
    """Validator Unit registration conflict."""
    pass
