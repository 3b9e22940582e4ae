"""Bundled JSON Schemas for synchronous response envelopes.

Schemas live beside this module as ``<name>.schema.json`` and are checked
as Draft 2020-12 documents by :mod:`flow_conformance.envelope`.
"""
from __future__ import annotations

import copy
import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

SCHEMA_SUFFIX = ".schema.json"
_HERE = Path(__file__).parent


def list_schemas() -> List[str]:
    return sorted(p.name[: -len(SCHEMA_SUFFIX)] for p in _HERE.glob(f"*{SCHEMA_SUFFIX}"))


def schema_path(name: str) -> Path:
    """Path of the bundled envelope schema ``name``.

    Raises:
        FileNotFoundError: If no such schema is bundled.
    """
    candidate = _HERE / f"{name}{SCHEMA_SUFFIX}"
    if candidate.is_file():
        return candidate
    raise FileNotFoundError(
        f"Unknown envelope schema {name!r}; bundled: {', '.join(list_schemas())}"
    )


@lru_cache(maxsize=None)
def _read(name: str) -> Dict[str, Any]:
    with schema_path(name).open(encoding="utf-8") as fh:
        data: Dict[str, Any] = json.load(fh)
    return data


def load_schema(name: str) -> Dict[str, Any]:
    """Parsed schema ``name``; callers get their own copy."""
    return copy.deepcopy(_read(name))
