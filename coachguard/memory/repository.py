"""
Persistence backends for ``UserMemoryContext``.

The filter only talks to the ``MemoryRepository`` protocol::

    await repo.load_user_memory(user_id, personality_type) -> UserMemoryContext | None
    await repo.save_user_memory(memory) -> None

Either call may raise ``PersistenceFailure``; the trust store turns
that into a logged, degraded result instead of a crash.

Three backends ship here:

* ``InMemoryRepository``: a dict, for tests and single-process use.
* ``JsonFileRepository``: one ``<slug>-<digest>.json`` per user.
* ``SqliteRepository``: one row per user in an aiosqlite database.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import re
from pathlib import Path
from typing import Dict, Optional, Protocol

import aiosqlite

from ..models import UserMemoryContext


class PersistenceFailure(Exception):
    """Loading or saving user memory failed."""


class MemoryRepository(Protocol):
    async def load_user_memory(
        self, user_id: str, personality_type: str = "",
    ) -> Optional[UserMemoryContext]: ...

    async def save_user_memory(self, memory: UserMemoryContext) -> None: ...


# ------------------------------------------------------------------
# In-memory
# ------------------------------------------------------------------

class InMemoryRepository:
    """Keeps serialised copies, so callers never share objects with it."""

    def __init__(self) -> None:
        self._rows: Dict[str, dict] = {}

    async def load_user_memory(
        self, user_id: str, personality_type: str = "",
    ) -> Optional[UserMemoryContext]:
        row = self._rows.get(user_id)
        return UserMemoryContext.from_dict(row) if row is not None else None

    async def save_user_memory(self, memory: UserMemoryContext) -> None:
        self._rows[memory.user_id] = memory.to_dict()

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._rows


# ------------------------------------------------------------------
# JSON files
# ------------------------------------------------------------------

def _file_stem(user_id: str) -> str:
    """
    Safe, collision-free file name for a user id: a readable slug plus a
    digest of the raw id, so "a b" and "a_b" never share a file.
    """
    slug = re.sub(r"[^A-Za-z0-9_.-]+", "_", user_id).strip("._")[:40] or "user"
    digest = hashlib.sha256(user_id.encode("utf-8")).hexdigest()[:16]
    return f"{slug}-{digest}"


class JsonFileRepository:
    """
    Storage layout::

        user_memory/
            alice-<digest>.json
            bob-<digest>.json
    """

    def __init__(self, base_dir: Path | str = Path("user_memory")):
        self._dir = Path(base_dir)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, user_id: str) -> Path:
        return self._dir / f"{_file_stem(user_id)}.json"

    async def load_user_memory(
        self, user_id: str, personality_type: str = "",
    ) -> Optional[UserMemoryContext]:
        path = self._path(user_id)
        if not path.exists():
            return None
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
            memory = UserMemoryContext.from_dict(json.loads(raw))
        except (OSError, ValueError, KeyError) as e:
            raise PersistenceFailure(f"cannot load memory for {user_id}: {e}") from e
        if memory.user_id != user_id:
            raise PersistenceFailure(f"{path.name} holds memory for {memory.user_id!r}, not {user_id!r}")
        return memory

    async def save_user_memory(self, memory: UserMemoryContext) -> None:
        payload = json.dumps(memory.to_dict(), indent=2, ensure_ascii=False)
        try:
            await asyncio.to_thread(self._path(memory.user_id).write_text, payload, encoding="utf-8")
        except OSError as e:
            raise PersistenceFailure(f"cannot save memory for {memory.user_id}: {e}") from e


# ------------------------------------------------------------------
# SQLite
# ------------------------------------------------------------------

class SqliteRepository:
    """One JSON document per user in a ``user_memory`` table."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ready = False
        self._init_lock = asyncio.Lock()

    async def init(self) -> None:
        async with self._init_lock:
            if self._ready:
                return
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """
                    CREATE TABLE IF NOT EXISTS user_memory (
                        user_id TEXT PRIMARY KEY,
                        personality_type TEXT NOT NULL DEFAULT '',
                        trust_level REAL NOT NULL,
                        payload TEXT NOT NULL,
                        updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
                    )
                    """
                )
                await db.commit()
            self._ready = True

    async def load_user_memory(
        self, user_id: str, personality_type: str = "",
    ) -> Optional[UserMemoryContext]:
        try:
            await self.init()
            async with aiosqlite.connect(self.db_path) as db:
                async with db.execute(
                    "SELECT payload FROM user_memory WHERE user_id = ?",
                    (user_id,),
                ) as cursor:
                    row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceFailure(f"cannot load memory for {user_id}: {e}") from e
        if row is None:
            return None
        try:
            return UserMemoryContext.from_dict(json.loads(row[0]))
        except (ValueError, KeyError) as e:
            raise PersistenceFailure(f"corrupt memory row for {user_id}: {e}") from e

    async def save_user_memory(self, memory: UserMemoryContext) -> None:
        try:
            await self.init()
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """
                    INSERT INTO user_memory (user_id, personality_type, trust_level, payload)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET
                        personality_type = excluded.personality_type,
                        trust_level = excluded.trust_level,
                        payload = excluded.payload,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (
                        memory.user_id,
                        memory.personality_type,
                        memory.trust_level,
                        json.dumps(memory.to_dict(), ensure_ascii=False),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceFailure(f"cannot save memory for {memory.user_id}: {e}") from e
