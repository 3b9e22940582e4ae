"""Consistency store: facts carried between messages of one transaction.

Records are keyed by ``(session_id, transaction_id, key)``. Readers must
tolerate absence; writers always overwrite (last write wins).

Two backends are provided:

* :class:`InMemoryConsistencyStore` for tests and single-process runs.
* :class:`RedisConsistencyStore` backed by ``redis.asyncio``. Backend
  failures degrade to "absent" on read and to a logged no-op on write.
"""
from __future__ import annotations

import copy
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from flow_conformance.models import StorageError

logger = logging.getLogger("flow_conformance.store")

DEFAULT_TTL_SECONDS: int = 3600

_MISSING = object()


def record_key(session_id: str, transaction_id: str, key: str) -> str:
    """Flat cache key for one consistency record."""
    return f"{session_id}:{transaction_id}:{key}"


def transaction_index_key(session_id: str) -> str:
    return f"{session_id}:transactionMap"


class ConsistencyStore(ABC):
    """Abstract scoped key/value cache."""

    @abstractmethod
    async def get(self, session_id: str, transaction_id: str, key: str) -> Optional[Any]:
        """Return the saved value, or None when absent or unreadable."""

    @abstractmethod
    async def set(
        self,
        session_id: str,
        transaction_id: str,
        key: str,
        value: Any,
        ttl: Optional[int] = DEFAULT_TTL_SECONDS,
    ) -> None:
        """Save ``value``, overwriting any previous record."""

    @abstractmethod
    async def delete(self, session_id: str, transaction_id: str, key: str) -> None:
        """Remove a record if present."""

    @abstractmethod
    async def get_raw(self, key: str) -> Optional[Any]:
        """Read an unscoped key (session-level bookkeeping)."""

    @abstractmethod
    async def set_raw(self, key: str, value: Any, ttl: Optional[int] = DEFAULT_TTL_SECONDS) -> None:
        """Write an unscoped key (session-level bookkeeping)."""


class InMemoryConsistencyStore(ConsistencyStore):
    """Dict-backed store honouring TTL against a monotonic clock.

    Values are deep-copied on the way in and out, so a caller mutating a
    value it read can never change what the next reader sees.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}

    def _read(self, flat_key: str) -> Any:
        entry = self._data.get(flat_key)
        if entry is None:
            return _MISSING
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[flat_key]
            return _MISSING
        return copy.deepcopy(value)

    def _write(self, flat_key: str, value: Any, ttl: Optional[int]) -> None:
        expires_at = self._clock() + ttl if ttl else None
        self._data[flat_key] = (copy.deepcopy(value), expires_at)

    async def get(self, session_id: str, transaction_id: str, key: str) -> Optional[Any]:
        value = self._read(record_key(session_id, transaction_id, key))
        return None if value is _MISSING else value

    async def set(
        self,
        session_id: str,
        transaction_id: str,
        key: str,
        value: Any,
        ttl: Optional[int] = DEFAULT_TTL_SECONDS,
    ) -> None:
        self._write(record_key(session_id, transaction_id, key), value, ttl)

    async def delete(self, session_id: str, transaction_id: str, key: str) -> None:
        self._data.pop(record_key(session_id, transaction_id, key), None)

    async def get_raw(self, key: str) -> Optional[Any]:
        value = self._read(key)
        return None if value is _MISSING else value

    async def set_raw(self, key: str, value: Any, ttl: Optional[int] = DEFAULT_TTL_SECONDS) -> None:
        self._write(key, value, ttl)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class RedisConsistencyStore(ConsistencyStore):
    """Store backed by a Redis-compatible cache service.

    Values are JSON-encoded. Every backend error is logged and absorbed:
    reads return None, writes are dropped.
    """

    def __init__(self, client: "redis.Redis", default_ttl: int = DEFAULT_TTL_SECONDS) -> None:
        self.client = client
        self.default_ttl = default_ttl

    @classmethod
    def from_url(
        cls,
        url: str,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        max_connections: int = 20,
    ) -> "RedisConsistencyStore":
        try:
            pool = redis.ConnectionPool.from_url(url, max_connections=max_connections)
        except ValueError as e:
            raise StorageError(f"Invalid consistency store URL {url!r}: {e}") from e
        return cls(redis.Redis(connection_pool=pool), default_ttl=default_ttl)

    async def _get_key(self, flat_key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(flat_key)
        except (RedisError, OSError) as e:
            logger.warning("Consistency store read failed for key %s: %s", flat_key, e)
            return None
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Consistency store holds non-JSON value for key %s: %s", flat_key, e)
            return None

    async def _set_key(self, flat_key: str, value: Any, ttl: Optional[int]) -> None:
        try:
            serialized = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning("Consistency store cannot serialize value for key %s: %s", flat_key, e)
            return
        try:
            if ttl:
                await self.client.set(flat_key, serialized, ex=ttl)
            else:
                await self.client.set(flat_key, serialized)
        except (RedisError, OSError) as e:
            logger.warning("Consistency store write failed for key %s: %s", flat_key, e)

    async def get(self, session_id: str, transaction_id: str, key: str) -> Optional[Any]:
        return await self._get_key(record_key(session_id, transaction_id, key))

    async def set(
        self,
        session_id: str,
        transaction_id: str,
        key: str,
        value: Any,
        ttl: Optional[int] = DEFAULT_TTL_SECONDS,
    ) -> None:
        await self._set_key(record_key(session_id, transaction_id, key), value, ttl)

    async def delete(self, session_id: str, transaction_id: str, key: str) -> None:
        flat_key = record_key(session_id, transaction_id, key)
        try:
            await self.client.delete(flat_key)
        except (RedisError, OSError) as e:
            logger.warning("Consistency store delete failed for key %s: %s", flat_key, e)

    async def get_raw(self, key: str) -> Optional[Any]:
        return await self._get_key(key)

    async def set_raw(self, key: str, value: Any, ttl: Optional[int] = DEFAULT_TTL_SECONDS) -> None:
        await self._set_key(key, value, ttl)

    async def close(self) -> None:
        await self.client.aclose()


async def add_transaction_id(
    store: ConsistencyStore,
    session_id: str,
    transaction_id: str,
    timestamp: Optional[float] = None,
) -> None:
    """Record that ``transaction_id`` was seen in ``session_id``.

    Re-adding a known transaction keeps its original timestamp.
    """
    index_key = transaction_index_key(session_id)
    entries: List[Dict[str, Any]] = await store.get_raw(index_key) or []
    if any(e.get("transactionId") == transaction_id for e in entries):
        return
    entries.append({
        "transactionId": transaction_id,
        "timestamp": timestamp if timestamp is not None else time.time(),
    })
    await store.set_raw(index_key, entries)


async def get_transaction_ids(store: ConsistencyStore, session_id: str) -> List[str]:
    """Transactions of a session, oldest first. Empty when none recorded."""
    entries = await store.get_raw(transaction_index_key(session_id))
    if not isinstance(entries, list):
        if entries is not None:
            logger.warning("Invalid transaction index for session %s", session_id)
        return []
    ordered = sorted(
        (e for e in entries if isinstance(e, dict) and "transactionId" in e),
        key=lambda e: e.get("timestamp", 0),
    )
    return [e["transactionId"] for e in ordered]
