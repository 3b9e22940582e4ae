"""Generic ACK/NACK envelope validation for synchronous responses.

Checks the shape of a captured sync response against a bundled JSON Schema
before any domain-specific rule runs. Returns plain violation strings; the
caller decides how they land in the report.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple, Union

from jsonschema import Draft202012Validator, FormatChecker

from flow_conformance.schemas import load_schema

logger = logging.getLogger("flow_conformance.envelope")

DEFAULT_ENVELOPE_SCHEMA: str = "ack_response"


@dataclass(frozen=True)
class EnvelopeViolation:
    """A violation detected by JSON Schema validation."""

    json_path: str
    message: str
    validator: str
    schema_path: Tuple[Union[str, int], ...]

    def __str__(self) -> str:
        return f"{self.json_path}: {self.message}"


@lru_cache(maxsize=None)
def _validator_for(schema_name: str) -> Draft202012Validator:
    schema = load_schema(schema_name)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema, format_checker=FormatChecker())


def _json_path(path: Any) -> str:
    return "$" + "".join(f"[{p}]" if isinstance(p, int) else f".{p}" for p in path)


def validate_envelope(
    response: Optional[Dict[str, Any]],
    schema_name: str = DEFAULT_ENVELOPE_SCHEMA,
) -> Tuple[EnvelopeViolation, ...]:
    """Validate a sync response envelope.

    Args:
        response: The captured response body. None means nothing was captured
            and is reported as a single violation.
        schema_name: Bundled schema to validate against.

    Returns:
        Tuple of violations, empty if the envelope conforms. Violations are
        ordered by JSON path for stable output.
    """
    if response is None:
        return (
            EnvelopeViolation(
                json_path="$",
                message="no synchronous response captured",
                validator="presence",
                schema_path=(),
            ),
        )

    validator = _validator_for(schema_name)
    violations = [
        EnvelopeViolation(
            json_path=_json_path(error.absolute_path),
            message=error.message,
            validator=str(error.validator),
            schema_path=tuple(error.absolute_schema_path),
        )
        for error in validator.iter_errors(response)
    ]
    violations.sort(key=lambda v: (v.json_path, v.message))
    if violations:
        logger.info("Envelope check found %d violation(s)", len(violations))
    return tuple(violations)


def envelope_errors(
    response: Optional[Dict[str, Any]],
    schema_name: str = DEFAULT_ENVELOPE_SCHEMA,
) -> Tuple[str, ...]:
    """Violation strings for ``response`` (empty if it conforms)."""
    return tuple(str(v) for v in validate_envelope(response, schema_name))
