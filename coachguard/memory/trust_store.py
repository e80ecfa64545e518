"""
Per-user trust state.

The store keeps a process-local cache of ``UserMemoryContext`` keyed by
user id.  The cache is the source of truth until the caller persists an
entry through ``save``.

Updates are copy-on-write: ``apply_adjustment`` returns a new memory and
``commit`` swaps it in only if the cached ``version`` is still the one
the caller started from.  Together with ``user_lock`` this rules out
lost trust updates when several requests for the same user overlap.

Trust adjustment per interaction::

    +0.05  risk < 0.2
    +0.02  not refused
    -0.10  refused
    -0.15  risk > 0.7
    sum clamped to [-0.2, +0.2], trust clamped to [0, 1]
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Tuple

from ..events import TRUST_CHANGED
from ..models import RefusalResult, UserMemoryContext
from .repository import InMemoryRepository, MemoryRepository, PersistenceFailure

logger = logging.getLogger(__name__)

DEFAULT_TRUST = 0.5
MAX_ADJUSTMENT = 0.2
_INTERACTION_SNIPPET_CHARS = 200


class StaleMemoryError(Exception):
    """The cached memory changed since the caller read it."""


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def compute_trust_adjustment(risk_score: float, refusal: RefusalResult) -> float:
    adjustment = 0.0
    if risk_score < 0.2:
        adjustment += 0.05
    if refusal.should_refuse:
        adjustment -= 0.1
    else:
        adjustment += 0.02
    if risk_score > 0.7:
        adjustment -= 0.15
    return _clamp(adjustment, -MAX_ADJUSTMENT, MAX_ADJUSTMENT)


def apply_adjustment(
    memory: UserMemoryContext,
    adjustment: float,
    interaction: Optional[str] = None,
) -> UserMemoryContext:
    """Return a new memory with the adjustment applied; *memory* is untouched."""
    adjustment = _clamp(adjustment, -MAX_ADJUSTMENT, MAX_ADJUSTMENT)
    updated = memory.copy()
    updated.trust_level = _clamp(memory.trust_level + adjustment)
    updated.last_interaction = time.time()
    updated.version = memory.version + 1
    if interaction:
        updated.remember_interaction(interaction[:_INTERACTION_SNIPPET_CHARS])
    return updated


def default_memory(user_id: str, personality_type: str = "") -> UserMemoryContext:
    return UserMemoryContext(
        user_id=user_id,
        personality_type=personality_type,
        trust_level=DEFAULT_TRUST,
    )


class TrustStateStore:
    """
    Usage::

        store = TrustStateStore(JsonFileRepository("user_memory"))
        memory = await store.load("alice", "INFJ")
        async with store.user_lock("alice"):
            current = store.get("alice")
            store.commit(apply_adjustment(current, +0.07), current.version)
        await store.save("alice")
    """

    def __init__(
        self,
        repository: Optional[MemoryRepository] = None,
        event_bus: Optional[Any] = None,
    ):
        self.repository: MemoryRepository = repository or InMemoryRepository()
        self.bus = event_bus
        self._cache: Dict[str, UserMemoryContext] = {}
        # {user_id: (lock, tasks holding or waiting on it)}
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    # ── Locking ──────────────────────────────────────────────

    @asynccontextmanager
    async def user_lock(self, user_id: str) -> AsyncIterator[None]:
        """
        Exclusive section for one user's read-adjust-write.  The lock is
        dropped once no task holds or waits on it, so idle users cost nothing.
        """
        lock, users = self._locks.get(user_id) or (asyncio.Lock(), 0)
        self._locks[user_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[user_id]
            if users <= 1:
                del self._locks[user_id]
            else:
                self._locks[user_id] = (lock, users - 1)

    @property
    def active_locks(self) -> int:
        return len(self._locks)

    # ── Cache ────────────────────────────────────────────────

    def get(self, user_id: str) -> Optional[UserMemoryContext]:
        return self._cache.get(user_id)

    def set(self, memory: UserMemoryContext) -> None:
        """Replace the cached entry unconditionally."""
        self._cache[memory.user_id] = memory

    def seed(self, memory: UserMemoryContext) -> UserMemoryContext:
        """Cache *memory* unless the user already has an entry; return the cached one."""
        cached = self._cache.get(memory.user_id)
        if cached is None:
            cached = self._cache[memory.user_id] = memory.copy()
        return cached

    def commit(self, memory: UserMemoryContext, expected_version: int) -> None:
        """Compare-and-swap on ``version``."""
        cached = self._cache.get(memory.user_id)
        current_version = cached.version if cached is not None else expected_version
        if current_version != expected_version:
            raise StaleMemoryError(
                f"memory for {memory.user_id} is at version {current_version}, "
                f"expected {expected_version}"
            )
        self._cache[memory.user_id] = memory
        if self.bus is not None:
            previous = cached.trust_level if cached is not None else memory.trust_level
            self.bus.publish(TRUST_CHANGED, {
                "user_id": memory.user_id,
                "trust_level": memory.trust_level,
                "adjustment": round(memory.trust_level - previous, 4),
            })

    # ── Persistence ──────────────────────────────────────────

    async def load(self, user_id: str, personality_type: str = "") -> UserMemoryContext:
        """
        Return the cached memory, else load it from the repository, else
        a fresh default.  A failing repository is logged and treated as
        "no stored memory".
        """
        cached = self._cache.get(user_id)
        if cached is not None:
            return cached
        try:
            memory = await self.repository.load_user_memory(user_id, personality_type)
            if memory is not None and memory.user_id != user_id:
                raise PersistenceFailure(f"repository returned memory for {memory.user_id!r}")
        except Exception as e:  # repository hooks may fail in any way
            logger.error("Failed to load user memory for %s, using default: %s", user_id, e)
            memory = None
        if memory is None:
            memory = default_memory(user_id, personality_type)
        # Another coroutine may have filled the cache while we awaited.
        return self.seed(memory)

    async def save(self, user_id: str) -> bool:
        memory = self._cache.get(user_id)
        if memory is None:
            logger.warning("No cached memory to save for %s", user_id)
            return False
        try:
            await self.repository.save_user_memory(memory.copy())
        except Exception as e:  # repository hooks may fail in any way
            logger.error("Failed to save user memory for %s: %s", user_id, e)
            return False
        logger.info("User memory saved for %s", user_id)
        return True
