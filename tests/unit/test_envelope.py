"""Unit tests for the ACK/NACK envelope check."""
import pytest

from flow_conformance.envelope import envelope_errors, validate_envelope
from flow_conformance.schemas import list_schemas, load_schema, schema_path

_ACK = {"message": {"ack": {"status": "ACK"}}}
_NACK = {
    "message": {"ack": {"status": "NACK"}},
    "error": {"code": "30016", "message": "Invalid signature"},
}


class TestSchemas:
    def test_list_schemas(self):
        assert list_schemas() == ["ack_context_response", "ack_response"]

    def test_unknown_schema(self):
        with pytest.raises(FileNotFoundError):
            schema_path("nope")

    def test_load_schema(self):
        assert load_schema("ack_response")["title"] == "AckResponse"


class TestValidateEnvelope:
    """Tests for envelope validation."""

    def test_ack_is_valid(self):
        assert validate_envelope(_ACK) == ()

    def test_nack_with_error_is_valid(self):
        assert validate_envelope(_NACK) == ()

    def test_nack_without_error(self):
        errors = envelope_errors({"message": {"ack": {"status": "NACK"}}})
        assert len(errors) == 1
        assert "'error' is a required property" in errors[0]

    def test_ack_with_error_rejected(self):
        assert envelope_errors({**_NACK, "message": {"ack": {"status": "ACK"}}})

    def test_bad_status(self):
        errors = envelope_errors({"message": {"ack": {"status": "OK"}}})
        assert errors == ("$.message.ack.status: 'OK' is not one of ['ACK', 'NACK']",)

    def test_missing_message(self):
        errors = envelope_errors({})
        assert errors == ("$: 'message' is a required property",)

    def test_no_response_captured(self):
        assert envelope_errors(None) == ("$: no synchronous response captured",)

    def test_violation_details(self):
        (violation,) = validate_envelope({"message": {"ack": {}}})
        assert violation.json_path == "$.message.ack"
        assert violation.validator == "required"

    def test_context_schema(self):
        response = {
            "context": {
                "domain": "ONDC:LOG10",
                "country": "IND",
                "city": "std:080",
                "action": "on_search",
                "core_version": "1.2.5",
                "bap_id": "buyer.example.com",
                "bap_uri": "https://buyer.example.com/ondc",
                "transaction_id": "t",
                "message_id": "m",
                "timestamp": "2026-03-01T10:00:00.000Z",
            },
            **_ACK,
        }
        assert validate_envelope(response, "ack_context_response") == ()
        assert validate_envelope(_ACK, "ack_context_response")
