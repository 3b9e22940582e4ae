"""Fixtures for the bundled conformance suite."""
from __future__ import annotations

from typing import Any, Dict, List

import pytest

from flow_conformance.config import DomainConfig
from flow_conformance.conformance.loader import load_manifest
from flow_conformance.registry import RuleRegistry
from flow_conformance.rules import build_default_registry, load_logistics_config


@pytest.fixture
def manifest_entries() -> List[Dict[str, Any]]:
    """Every entry declared in fixtures/manifest.json."""
    entries: List[Dict[str, Any]] = load_manifest()["fixtures"]
    return entries


@pytest.fixture
def logistics_config() -> DomainConfig:
    return load_logistics_config()


@pytest.fixture
def default_registry() -> RuleRegistry:
    """Context checks plus the ONDC:LOG10 1.2.5 units."""
    return build_default_registry()
