"""Flow sequence state machine.

Replays a flow's messages, sorted by capture time, against the flow's
expected action template. The first structural mismatch produces one
descriptive error, marks the flow invalid, and stops sequence checking.
Messages beyond the end of the template are not sequence-checked.

Tolerances are opt-in per domain (see :class:`~flow_conformance.config.DomainConfig`):
placeholder steps, optional ``token?`` steps, synonym realignment,
unsolicited actions, collapsed repeated callbacks, duplicate windows, and
early exit before a user-initiated request.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from flow_conformance.config import DomainConfig, FlowDefinition, SequenceStep
from flow_conformance.models import Message

logger = logging.getLogger("flow_conformance.sequence")

START: str = "start"


@dataclass(frozen=True)
class SequenceResult:
    """Outcome of replaying one flow against its template."""

    valid_flow: bool
    errors: Tuple[str, ...] = ()
    steps_matched: int = 0
    tolerated: Tuple[int, ...] = ()


def sort_messages(messages: Sequence[Message]) -> List[Message]:
    """Stable sort by capture time."""
    return sorted(messages, key=lambda m: m.created_at)


def drop_duplicates(messages: Sequence[Message], window_seconds: float) -> List[Message]:
    """Keep the first of any same action + transaction pair within the window."""
    if window_seconds <= 0:
        return list(messages)
    kept: List[Message] = []
    for msg in messages:
        is_dup = any(
            k.action == msg.action
            and k.transaction_id == msg.transaction_id
            and abs((k.created_at - msg.created_at).total_seconds()) < window_seconds
            for k in kept
        )
        if is_dup:
            logger.info(
                "Duplicate %s for transaction %s ignored for sequencing",
                msg.action, msg.transaction_id,
            )
            continue
        kept.append(msg)
    return kept


@dataclass
class FlowSequenceChecker:
    """Position-indexed matcher for one flow template.

    State is the template position ``position``, the message cursor
    ``cursor``, and ``valid_flow``. Call :meth:`run` once per flow.
    """

    flow: FlowDefinition
    config: Optional[DomainConfig] = None
    position: int = 0
    cursor: int = 0
    valid_flow: bool = True
    errors: List[str] = field(default_factory=list)
    tolerated: List[int] = field(default_factory=list)
    _previous: str = START
    _skipped_placeholder: Optional[str] = None

    def _accepted(self, token: str) -> Tuple[str, ...]:
        """Accepted actions for ``token``, token first."""
        extra: Tuple[str, ...] = ()
        if self.config is not None:
            extra = tuple(a for a in self.config.synonyms.get(token, ()) if a != token)
        return (token,) + extra

    def _display(self, token: str) -> str:
        return " or ".join(self._accepted(token))

    def _realign(self, steps: Tuple[SequenceStep, ...], actual: str) -> None:
        """Jump to the later template step a synonym alternative stands for."""
        for j in range(self.position + 1, len(steps)):
            if not steps[j].placeholder and steps[j].action == actual:
                logger.info(
                    "Synonym '%s' satisfies '%s'; realigning template position %d -> %d",
                    actual, steps[self.position].action, self.position, j,
                )
                self.position = j
                return

    def _fail(self, message: str) -> None:
        self.valid_flow = False
        self.errors.append(message)
        logger.info("Sequence violation in %s: %s", self.flow.flow_id, message)

    def run(self, messages: Sequence[Message]) -> SequenceResult:
        cfg = self.config
        placeholders = cfg.placeholder_steps if cfg is not None else None
        steps = self.flow.steps(placeholders) if placeholders is not None else self.flow.steps()
        ordered = sort_messages(messages)
        if cfg is not None:
            ordered = drop_duplicates(ordered, cfg.duplicate_window_seconds)
        actions = [m.action for m in ordered]
        matched = 0

        while self.position < len(steps):
            step = steps[self.position]

            if step.placeholder:
                self._skipped_placeholder = step.action
                self.position += 1
                continue

            if self.cursor >= len(actions):
                remaining = steps[self.position:]
                if all(s.optional or s.placeholder for s in remaining):
                    break
                if (
                    cfg is not None
                    and step.action in cfg.early_exit_actions
                    and self._previous.startswith("on_")
                ):
                    logger.info(
                        "Flow %s ended before '%s'; treated as user stopping after '%s'",
                        self.flow.flow_id, step.action, self._previous,
                    )
                    break
                self._fail(
                    f"Error: Expected '{self._display(step.action)}' but no more "
                    f"payloads found. Sequence position: {self.position + 1}"
                )
                break

            actual = actions[self.cursor]
            accepted = self._accepted(step.action)

            if actual in accepted:
                if actual != step.action:
                    self._realign(steps, actual)
                self._previous = steps[self.position].action
                self._skipped_placeholder = None
                self.position += 1
                self.cursor += 1
                matched += 1
                continue

            if cfg is not None and actual in cfg.unsolicited_actions:
                self.tolerated.append(self.cursor)
                self.cursor += 1
                continue

            if (
                cfg is not None
                and cfg.collapse_repeated_callbacks
                and self.cursor > 0
                and actual.startswith("on_")
                and actual == actions[self.cursor - 1]
            ):
                self.tolerated.append(self.cursor)
                self.cursor += 1
                continue

            if step.optional:
                self.position += 1
                continue

            message = f"Error: Expected '{self._display(step.action)}' after '{self._previous}'"
            if self._skipped_placeholder:
                message += f" ({self._skipped_placeholder.upper()} was skipped)"
            later = next(
                (k for k in range(self.cursor + 1, len(actions)) if actions[k] == step.action),
                None,
            )
            if later is not None:
                message += (
                    f". Note: '{step.action}' action found later at payload position "
                    f"{later + 1}, suggesting a missing action in the sequence"
                )
            message += f", but found '{actual}'."
            self._fail(message)
            break

        return SequenceResult(
            valid_flow=self.valid_flow,
            errors=tuple(self.errors),
            steps_matched=matched,
            tolerated=tuple(self.tolerated),
        )


def check_flow_sequence(
    messages: Sequence[Message],
    flow: Optional[FlowDefinition],
    config: Optional[DomainConfig] = None,
) -> SequenceResult:
    """Replay ``messages`` against ``flow``.

    A flow with no definition is not sequence-checked and is reported valid.
    """
    if flow is None:
        logger.info("No sequence template; skipping sequence check")
        return SequenceResult(valid_flow=True)
    return FlowSequenceChecker(flow=flow, config=config).run(messages)
