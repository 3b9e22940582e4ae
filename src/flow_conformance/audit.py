"""Mandatory-flow auditor.

Compares a domain's flow catalog with the flows a session actually
exercised. The result is advisory and never fails a run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AbstractSet, Iterable, Tuple

from flow_conformance.config import DomainConfig

logger = logging.getLogger("flow_conformance.audit")


@dataclass(frozen=True)
class AuditResult:
    """Mandatory flows that were not tested, and the report summary line."""

    missing: Tuple[str, ...] = ()
    summary: str = ""

    @property
    def complete(self) -> bool:
        return not self.missing


def mandatory_flows_summary(missing: Iterable[str]) -> str:
    """Advisory sentence listing ``missing`` (empty string if none).

    >>> mandatory_flows_summary(["CANCEL_FLOW"])
    'CANCEL_FLOW is mandatory and should be tested.'
    >>> mandatory_flows_summary(["A", "B"])
    'A, B are mandatory and should be tested.'
    """
    missing = list(missing)
    if not missing:
        return ""
    verb = "is" if len(missing) == 1 else "are"
    return f"{', '.join(missing)} {verb} mandatory and should be tested."


def find_missing_flows(
    catalog: Iterable[str],
    optional: AbstractSet[str],
    tested: AbstractSet[str],
) -> Tuple[str, ...]:
    """Catalog flows neither tested nor optional, in catalog order."""
    return tuple(f for f in catalog if f not in tested and f not in optional)


def audit_mandatory_flows(config: DomainConfig, tested: Iterable[str]) -> AuditResult:
    """Audit ``tested`` flow ids against ``config``'s catalog."""
    missing = find_missing_flows(config.flows, config.optional_flows, frozenset(tested))
    if missing:
        logger.info("Mandatory flows not tested for %s: %s", config.domain, ", ".join(missing))
    return AuditResult(missing=missing, summary=mandatory_flows_summary(missing))
