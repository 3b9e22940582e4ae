"""Per-check recording for Validator Units.

A unit body is a flat list of independent checks. Each check appends one
entry to the recorder; an exception inside one check becomes one failed
entry and never reaches the next check.

Example:
    >>> rec = CheckRecorder("confirm")
    >>> rec.check(True, "order.id is present", "order.id is missing")
    True
    >>> with rec.guard():
    ...     raise KeyError("quote")
    >>> rec.outcome().failed
    ("Error during confirm validation: 'quote'",)
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from flow_conformance.models import CheckOutcome

logger = logging.getLogger("flow_conformance.checks")


class CheckRecorder:
    """Mutable accumulator that a Validator Unit fills and then freezes."""

    def __init__(self, action: str) -> None:
        self.action = action
        self.passed: List[str] = []
        self.failed: List[str] = []
        self.response: Dict[str, Any] = {}

    def check(self, condition: object, pass_msg: str, fail_msg: str) -> bool:
        """Record one pass or fail entry depending on ``condition``."""
        if condition:
            self.passed.append(pass_msg)
            return True
        self.failed.append(fail_msg)
        return False

    def pass_(self, message: str) -> None:
        self.passed.append(message)

    def fail(self, message: str) -> None:
        self.failed.append(message)

    def extend(self, outcome: CheckOutcome) -> None:
        """Append another outcome's entries (concatenation, never replacement)."""
        self.passed.extend(outcome.passed)
        self.failed.extend(outcome.failed)
        if outcome.response:
            self.response = dict(outcome.response)

    @contextmanager
    def guard(self, label: Optional[str] = None) -> Iterator[None]:
        """Convert an exception raised inside the block into one failed entry."""
        try:
            yield
        except Exception as e:  # noqa: BLE001 - each check is isolated
            what = label or f"{self.action} validation"
            logger.error("Error during %s: %s", what, e)
            self.failed.append(f"Error during {what}: {e}")

    def outcome(self) -> CheckOutcome:
        return CheckOutcome(
            passed=tuple(self.passed),
            failed=tuple(self.failed),
            response=dict(self.response),
        )

    def __repr__(self) -> str:
        return (
            f"CheckRecorder(action={self.action}, "
            f"passed={len(self.passed)}, failed={len(self.failed)})"
        )


def dig(obj: Any, *path: Any, default: Any = None) -> Any:
    """Walk nested dicts/lists, returning ``default`` on any missing step."""
    current = obj
    for step in path:
        if isinstance(current, dict):
            if step not in current:
                return default
            current = current[step]
        elif isinstance(current, list) and isinstance(step, int):
            if step >= len(current) or step < -len(current):
                return default
            current = current[step]
        else:
            return default
    return current
