"""Bundled Validator Units and their domain configuration."""
from __future__ import annotations

from pathlib import Path

from flow_conformance.config import DomainConfig, load_domain_config
from flow_conformance.context import context_unit
from flow_conformance.registry import RuleRegistry
from flow_conformance.rules import logistics

_RULES_DIR = Path(__file__).parent


def build_default_registry(include_context: bool = True) -> RuleRegistry:
    """Registry with every bundled rule set.

    Args:
        include_context: Also run the common ``context`` checks before every
            domain unit.
    """
    registry = RuleRegistry()
    if include_context:
        registry.register_common(context_unit)
    logistics.register(registry)
    return registry


def load_logistics_config() -> DomainConfig:
    """Flow catalog for the bundled logistics rule set."""
    return load_domain_config(_RULES_DIR / "logistics.yaml", logistics.DOMAIN)


__all__ = [
    "build_default_registry",
    "load_logistics_config",
    "logistics",
]
