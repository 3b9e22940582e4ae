"""Shared pytest fixtures for all tests."""
import pytest

from flow_conformance import DomainConfig, InMemoryConsistencyStore, RuleRegistry
from flow_conformance.conformance.builders import ORDER_FLOW, RecordingUnit


@pytest.fixture
def store() -> InMemoryConsistencyStore:
    return InMemoryConsistencyStore()


@pytest.fixture
def order_config() -> DomainConfig:
    return DomainConfig(
        domain="ONDC:LOG10",
        default_version="1.2.5",
        flows={"ORDER_FLOW": ORDER_FLOW},
    )


@pytest.fixture
def passing_registry() -> RuleRegistry:
    """Every ORDER_FLOW action resolves to a unit that passes one check."""
    registry = RuleRegistry()
    for action in ORDER_FLOW:
        registry.register("ONDC:LOG10", "1.2.5", action, RecordingUnit())
    return registry
