"""
flow-conformance: Conformance validation for captured commerce-protocol flows.

Replays the messages of each flow against the domain's expected action
sequence, runs the registered Validator Unit for every message, carries
facts between messages of one transaction through a consistency store, and
returns a report per flow plus an advisory mandatory-flow summary.

Example:
    >>> import asyncio
    >>> from flow_conformance import DomainConfig, RuleRegistry, validate_flows
    >>> config = DomainConfig(domain="ONDC:LOG10", flows={"ORDER_FLOW": ("search", "on_search")})
    >>> report = asyncio.run(validate_flows({}, "sess-1", config, RuleRegistry()))
    >>> report.missing_mandatory_flows
    ('ORDER_FLOW',)

Export Notes:
    Models: Message, CheckOutcome, FlowReport, Report
    Configuration: DomainConfig, FlowDefinition, load_domain_config,
        parse_domain_config
    Dispatch: RuleRegistry, ValidatorUnit, CheckRecorder
    Stores: ConsistencyStore, InMemoryConsistencyStore, RedisConsistencyStore
    Engine: ValidationOrchestrator, validate_flows, check_flow_sequence,
        audit_mandatory_flows

    Bundled rule sets live in ``flow_conformance.rules`` and replay
    fixtures in ``flow_conformance.conformance``.
"""

__version__ = "0.3.0"

# Core data models
from flow_conformance.models import (
    CheckOutcome,
    ConfigurationError,
    FlowConformanceError,
    Message,
    RegistrationError,
    StorageError,
    merge_outcomes,
)

# Report
from flow_conformance.report import FlowReport, Report, action_key

# Configuration
from flow_conformance.config import (
    DomainConfig,
    FlowDefinition,
    SequenceStep,
    load_domain_config,
    parse_domain_config,
)

# Consistency store
from flow_conformance.store import (
    DEFAULT_TTL_SECONDS,
    ConsistencyStore,
    InMemoryConsistencyStore,
    RedisConsistencyStore,
    add_transaction_id,
    get_transaction_ids,
)

# Dispatch
from flow_conformance.checks import CheckRecorder, dig
from flow_conformance.registry import ANY_VERSION, RuleRegistry, ValidatorUnit

# Engine
from flow_conformance.sequence import SequenceResult, check_flow_sequence
from flow_conformance.audit import AuditResult, audit_mandatory_flows
from flow_conformance.envelope import EnvelopeViolation, envelope_errors, validate_envelope
from flow_conformance.engine import ValidationOrchestrator, validate_flows

__all__ = [
    "__version__",
    # Models
    "Message",
    "CheckOutcome",
    "merge_outcomes",
    "FlowReport",
    "Report",
    "action_key",
    # Exceptions
    "FlowConformanceError",
    "StorageError",
    "ConfigurationError",
    "RegistrationError",
    # Configuration
    "DomainConfig",
    "FlowDefinition",
    "SequenceStep",
    "load_domain_config",
    "parse_domain_config",
    # Stores
    "DEFAULT_TTL_SECONDS",
    "ConsistencyStore",
    "InMemoryConsistencyStore",
    "RedisConsistencyStore",
    "add_transaction_id",
    "get_transaction_ids",
    # Dispatch
    "ANY_VERSION",
    "CheckRecorder",
    "RuleRegistry",
    "ValidatorUnit",
    "dig",
    # Engine
    "AuditResult",
    "EnvelopeViolation",
    "SequenceResult",
    "ValidationOrchestrator",
    "audit_mandatory_flows",
    "check_flow_sequence",
    "envelope_errors",
    "validate_envelope",
    "validate_flows",
]
