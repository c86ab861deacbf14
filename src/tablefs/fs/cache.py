"""Existence cache: lookaside ``(storage, identifier) -> bool`` map.

The cache is never authoritative.  A miss is always answered from the
entries table and the answer stored back.  Values written by a mutation
are staged on the session that performed it and only reach the shared
cache once that session commits, so a rolled-back transaction never
leaves a stale positive or negative behind.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from collections import OrderedDict
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy import event

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 10_000

_STAGED_KEY = "tablefs.staged_existence"
_LISTENING_KEY = "tablefs.existence_listeners"


def cache_key(storage: int, identifier: str) -> str:
    """sha256 hex digest of ``"storage:identifier"``."""
    return hashlib.sha256(f"{storage}:{identifier}".encode()).hexdigest()


@runtime_checkable
class ExistenceCache(Protocol):
    """Key-value cache of entry existence.

    ``get`` may only be called after ``has`` returned ``True``.
    """

    def has(self, storage: int, identifier: str) -> bool: ...

    def get(self, storage: int, identifier: str) -> bool: ...

    def set(self, storage: int, identifier: str, exists: bool) -> None: ...

    def clear(self) -> None: ...


class MemoryExistenceCache:
    """Process-local, thread-safe LRU implementation of ``ExistenceCache``."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._values: OrderedDict[str, bool] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._values)

    def has(self, storage: int, identifier: str) -> bool:
        with self._lock:
            return cache_key(storage, identifier) in self._values

    def get(self, storage: int, identifier: str) -> bool:
        key = cache_key(storage, identifier)
        with self._lock:
            self._values.move_to_end(key)
            return self._values[key]

    def set(self, storage: int, identifier: str, exists: bool) -> None:
        key = cache_key(storage, identifier)
        with self._lock:
            self._values[key] = exists
            self._values.move_to_end(key)
            while len(self._values) > self.max_entries:
                self._values.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()


_default_cache: MemoryExistenceCache | None = None
_default_lock = threading.Lock()


def default_cache() -> MemoryExistenceCache:
    """Return the process-wide cache shared by drivers built without one."""
    global _default_cache
    with _default_lock:
        if _default_cache is None:
            _default_cache = MemoryExistenceCache()
        return _default_cache


# =============================================================================
# Session staging
# =============================================================================


def _publish_staged(sync_session: Session) -> None:
    staged = sync_session.info.pop(_STAGED_KEY, None)
    if not staged:
        return
    for cache, storage, identifier, exists in staged.values():
        cache.set(storage, identifier, exists)
    logger.debug("Published %d staged existence values", len(staged))


def _discard_staged(sync_session: Session) -> None:
    staged = sync_session.info.pop(_STAGED_KEY, None)
    if staged:
        logger.debug("Discarded %d staged existence values", len(staged))


def _staged(session: AsyncSession) -> dict[str, tuple[ExistenceCache, int, str, bool]]:
    sync_session = session.sync_session
    if not sync_session.info.get(_LISTENING_KEY):
        event.listen(sync_session, "after_commit", _publish_staged)
        event.listen(sync_session, "after_rollback", _discard_staged)
        sync_session.info[_LISTENING_KEY] = True
    return sync_session.info.setdefault(_STAGED_KEY, {})


def stage_existence(
    session: AsyncSession,
    cache: ExistenceCache,
    storage: int,
    identifier: str,
    exists: bool,
) -> None:
    """Record an existence change made inside *session*'s transaction."""
    _staged(session)[cache_key(storage, identifier)] = (cache, storage, identifier, exists)


def staged_existence(session: AsyncSession, storage: int, identifier: str) -> bool | None:
    """Return the value staged on *session*, or ``None`` if nothing was staged."""
    staged = session.sync_session.info.get(_STAGED_KEY)
    if not staged:
        return None
    item = staged.get(cache_key(storage, identifier))
    return None if item is None else item[3]


def has_staged_changes(session: AsyncSession) -> bool:
    return bool(session.sync_session.info.get(_STAGED_KEY))
