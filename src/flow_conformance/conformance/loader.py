"""Canonical replay fixtures for flow-conformance testing.

Provides ReplayCase (frozen dataclass), load_replay_stream() and
load_replay_case() for data-driven tests. Reads from the bundled
manifest.json and newline-delimited JSON capture streams.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

_FIXTURES_DIR = Path(__file__).parent / "fixtures"
_MANIFEST_PATH = _FIXTURES_DIR / "manifest.json"

# Replay stream fixture type sentinel
_REPLAY_STREAM_TYPE = "replay_stream"


@dataclass(frozen=True)
class ReplayCase:
    """A captured flow loaded from the manifest, with its expected verdict."""

    id: str
    domain: str
    flow_id: str
    messages: Tuple[Dict[str, Any], ...]
    expected_valid_flow: bool
    expected_failed_keys: Tuple[str, ...]
    notes: str

    def grouped(self) -> Dict[str, List[Dict[str, Any]]]:
        """The case as orchestrator input: ``{flow_id: [raw message, ...]}``."""
        return {self.flow_id: [dict(m) for m in self.messages]}


def load_manifest() -> Dict[str, Any]:
    with open(_MANIFEST_PATH, "r", encoding="utf-8") as fh:
        manifest: Dict[str, Any] = json.load(fh)
    return manifest


def _entry(fixture_id: str) -> Dict[str, Any]:
    for candidate in load_manifest()["fixtures"]:
        if candidate["id"] == fixture_id:
            entry: Dict[str, Any] = candidate
            break
    else:
        raise ValueError(
            f"Replay stream fixture not found in manifest: {fixture_id!r}"
        )

    if entry.get("fixture_type") != _REPLAY_STREAM_TYPE:
        raise ValueError(
            f"Fixture {fixture_id!r} is not a replay_stream "
            f"(fixture_type={entry.get('fixture_type')!r})."
        )
    return entry


def list_replay_streams(domain: Optional[str] = None) -> List[str]:
    """Manifest ids of all replay streams, optionally for one domain."""
    return [
        e["id"]
        for e in load_manifest()["fixtures"]
        if e.get("fixture_type") == _REPLAY_STREAM_TYPE
        and (domain is None or e.get("domain") == domain)
    ]


def load_replay_stream(fixture_id: str) -> List[Dict[str, Any]]:
    """Load a replay stream fixture as a list of raw captured messages.

    Replay streams are stored as newline-delimited JSON (JSONL) files.
    Each line is one message as the capture service stores it.

    Args:
        fixture_id: The manifest ``id`` of the replay stream entry
            (e.g. ``"logistics-order-flow-happy-path"``).

    Returns:
        List of raw message dictionaries, one per line in the JSONL file.

    Raises:
        ValueError: If *fixture_id* is not found, is not a replay_stream
            entry, or a line is not valid JSON.
        FileNotFoundError: If the JSONL file does not exist on disk.
    """
    entry = _entry(fixture_id)
    full_path = _FIXTURES_DIR / entry["path"]
    if not full_path.exists():
        raise FileNotFoundError(
            f"Replay stream file referenced in manifest does not exist: {full_path}"
        )

    messages: List[Dict[str, Any]] = []
    with open(full_path, "r", encoding="utf-8") as fh:
        for line_number, line in enumerate(fh, start=1):
            stripped = line.strip()
            if not stripped:
                continue
            try:
                messages.append(json.loads(stripped))
            except json.JSONDecodeError as e:
                raise ValueError(
                    f"{full_path.name}:{line_number}: invalid JSON: {e}"
                ) from e

    return messages


def load_replay_case(fixture_id: str) -> ReplayCase:
    """Load a replay stream together with its manifest expectations."""
    entry = _entry(fixture_id)
    return ReplayCase(
        id=entry["id"],
        domain=entry["domain"],
        flow_id=entry["flow_id"],
        messages=tuple(load_replay_stream(fixture_id)),
        expected_valid_flow=entry["expected_valid_flow"],
        expected_failed_keys=tuple(entry.get("expected_failed_keys", ())),
        notes=entry.get("notes", ""),
    )
