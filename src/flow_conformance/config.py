"""Domain configuration: flow catalogs and sequencing rules.

A :class:`DomainConfig` is built once by the caller (usually from YAML via
:func:`load_domain_config`) and passed read-only into every validation run.

Example document::

    domain: "ONDC:LOG10"
    default_version: "1.2.5"
    flows:
      ORDER_FLOW: [search, on_search, "select?", init, on_init, confirm, on_confirm]
      CANCEL_FLOW: [search, on_search, init, on_init, confirm, on_confirm, cancel, on_cancel]
    optional_flows: [CANCEL_FLOW]
    synonyms:
      select: [select, init]
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from flow_conformance.models import ConfigurationError

logger = logging.getLogger("flow_conformance.config")

OPTIONAL_MARKER: str = "?"

DEFAULT_PLACEHOLDER_STEPS: Tuple[str, ...] = ("html_form", "dynamic_form")


@dataclass(frozen=True)
class SequenceStep:
    """One parsed token of an expected flow sequence."""

    action: str
    optional: bool = False
    placeholder: bool = False


class FlowDefinition(BaseModel):
    """Expected action sequence for one flow."""

    model_config = ConfigDict(frozen=True)

    flow_id: str = Field(..., min_length=1, description="Flow identifier")
    tokens: Tuple[str, ...] = Field(
        default_factory=tuple,
        description="Expected action tokens; a trailing '?' marks an optional step",
    )

    def steps(self, placeholders: FrozenSet[str] = frozenset(DEFAULT_PLACEHOLDER_STEPS)) -> Tuple[SequenceStep, ...]:
        parsed: List[SequenceStep] = []
        for token in self.tokens:
            raw = token.strip().lower()
            optional = raw.endswith(OPTIONAL_MARKER)
            action = raw.rstrip(OPTIONAL_MARKER)
            parsed.append(
                SequenceStep(
                    action=action,
                    optional=optional,
                    placeholder=action in placeholders,
                )
            )
        return tuple(parsed)


class DomainConfig(BaseModel):
    """Read-only configuration for one (domain, schema version) pair."""

    model_config = ConfigDict(frozen=True)

    domain: str = Field(..., min_length=1, description="Protocol domain identifier")
    default_version: Optional[str] = Field(
        None, description="Version used when a message's own version has no rules"
    )
    flows: Dict[str, Tuple[str, ...]] = Field(
        default_factory=dict, description="Flow catalog: flowId -> expected tokens"
    )
    optional_flows: FrozenSet[str] = Field(
        default_factory=frozenset, description="Flows that need not be exercised"
    )
    synonyms: Dict[str, Tuple[str, ...]] = Field(
        default_factory=dict,
        description="Token -> actions accepted in its place (token itself included)",
    )
    route_by_action_id: bool = Field(
        False, description="Resolve Validator Units by actionId instead of action"
    )
    envelope_bypass_flows: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Flows whose sync-response envelope check is skipped",
    )
    placeholder_steps: FrozenSet[str] = Field(
        default_factory=lambda: frozenset(DEFAULT_PLACEHOLDER_STEPS),
        description="Template tokens with no corresponding message",
    )
    unsolicited_actions: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Actions tolerated anywhere in a flow when not expected",
    )
    collapse_repeated_callbacks: bool = Field(
        False, description="Tolerate an unexpected repeat of the previous on_* action"
    )
    duplicate_window_seconds: float = Field(
        0.0, ge=0, description="Same action+transaction within this window counts once"
    )
    early_exit_actions: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Requests a flow may stop before (after an on_* callback)",
    )

    @field_validator("flows", mode="before")
    @classmethod
    def _coerce_flows(cls, v: Any) -> Any:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("flows must be a mapping of flowId -> list of actions")
        for flow_id, tokens in v.items():
            if not isinstance(tokens, (list, tuple)):
                raise ValueError(f"flow {flow_id!r} must list its actions")
        return v

    @field_validator(
        "optional_flows",
        "envelope_bypass_flows",
        "unsolicited_actions",
        "early_exit_actions",
        "placeholder_steps",
        mode="before",
    )
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return frozenset() if v is None else v

    @field_validator("unsolicited_actions", "early_exit_actions", "placeholder_steps")
    @classmethod
    def _lower_actions(cls, v: FrozenSet[str]) -> FrozenSet[str]:
        return frozenset(a.lower() for a in v)

    @field_validator("synonyms", mode="before")
    @classmethod
    def _coerce_synonyms(cls, v: Any) -> Any:
        if v is None:
            return {}
        return {
            str(token).lower(): tuple(str(a).lower() for a in accepted)
            for token, accepted in v.items()
        }

    def flow(self, flow_id: str) -> Optional[FlowDefinition]:
        tokens = self.flows.get(flow_id)
        if tokens is None:
            return None
        return FlowDefinition(flow_id=flow_id, tokens=tokens)

    def accepted_actions(self, token: str) -> FrozenSet[str]:
        """Actions that satisfy ``token``, always including the token itself."""
        return frozenset(self.synonyms.get(token, ())) | {token}

    def bypass_envelope_check(self, flow_id: Optional[str]) -> bool:
        return flow_id is not None and flow_id in self.envelope_bypass_flows


def _read_document(source: Union[str, Path]) -> Dict[str, Any]:
    path = Path(source)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read domain configuration {path}: {e}") from e
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(document, dict):
        raise ConfigurationError(f"Domain configuration {path} must be a mapping")
    return document


def parse_domain_config(document: Dict[str, Any], domain: Optional[str] = None) -> DomainConfig:
    """Build a DomainConfig from a parsed document.

    Args:
        document: Either a single domain mapping, or ``{"domains": {name: mapping}}``.
        domain: Which domain to select from a multi-domain document.

    Raises:
        ConfigurationError: If the domain is missing or the mapping is invalid.
    """
    if "domains" in document:
        domains = document["domains"] or {}
        if domain is None:
            if len(domains) != 1:
                raise ConfigurationError(
                    f"Document defines {len(domains)} domains; pass domain=. "
                    f"Available: {sorted(domains)}"
                )
            domain = next(iter(domains))
        if domain not in domains:
            raise ConfigurationError(
                f"Unknown domain: {domain!r}. Available: {sorted(domains)}"
            )
        data = {"domain": domain, **(domains[domain] or {})}
    else:
        data = dict(document)
        if domain is not None and data.get("domain") not in (None, domain):
            raise ConfigurationError(
                f"Document is for domain {data.get('domain')!r}, not {domain!r}"
            )
        data.setdefault("domain", domain)

    try:
        return DomainConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid domain configuration: {e}") from e


def load_domain_config(source: Union[str, Path], domain: Optional[str] = None) -> DomainConfig:
    """Load a DomainConfig from a YAML file."""
    config = parse_domain_config(_read_document(source), domain)
    logger.info(
        "Loaded domain configuration for %s (%d flows)", config.domain, len(config.flows)
    )
    return config
