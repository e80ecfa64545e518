"""
Tests for coachguard/memory/repository.py - the three memory backends.

Each backend must return None for an unknown user, return an equal but
unshared memory after a save, and overwrite on a second save.  The file
backends must also report damaged storage as PersistenceFailure.
"""

from __future__ import annotations

import asyncio

import pytest

from coachguard.memory.repository import (
    InMemoryRepository,
    JsonFileRepository,
    PersistenceFailure,
    SqliteRepository,
)
from coachguard.models import UserMemoryContext


def sample_memory(user_id: str = "alice", trust: float = 0.72) -> UserMemoryContext:
    return UserMemoryContext(
        user_id=user_id,
        personality_type="INFJ",
        recent_interactions=["hi", "how do I rest more?"],
        emotional_state="hopeful",
        current_goals=["sleep by 11pm"],
        active_challenges=["work stress"],
        preferences={"tone": "gentle"},
        relationship_history=["first session"],
        trust_level=trust,
        version=3,
    )


@pytest.fixture(params=["memory", "json", "sqlite"])
def repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryRepository()
    if request.param == "json":
        return JsonFileRepository(tmp_path / "user_memory")
    return SqliteRepository(tmp_path / "db" / "memory.sqlite3")


class TestRepositories:
    def test_unknown_user(self, repo):
        assert asyncio.run(repo.load_user_memory("nobody")) is None

    def test_save_then_load(self, repo):
        original = sample_memory()
        asyncio.run(repo.save_user_memory(original))
        loaded = asyncio.run(repo.load_user_memory("alice", "INFJ"))
        assert loaded == original
        assert loaded is not original
        loaded.current_goals.append("changed")
        assert original.current_goals == ["sleep by 11pm"]

    def test_second_save_overwrites(self, repo):
        asyncio.run(repo.save_user_memory(sample_memory(trust=0.2)))
        asyncio.run(repo.save_user_memory(sample_memory(trust=0.8)))
        assert asyncio.run(repo.load_user_memory("alice")).trust_level == 0.8

    def test_users_kept_apart(self, repo):
        asyncio.run(repo.save_user_memory(sample_memory("alice", 0.1)))
        asyncio.run(repo.save_user_memory(sample_memory("bob", 0.9)))
        assert asyncio.run(repo.load_user_memory("alice")).trust_level == 0.1
        assert asyncio.run(repo.load_user_memory("bob")).trust_level == 0.9


class TestJsonFileRepository:
    def test_file_per_user(self, tmp_path):
        repo = JsonFileRepository(tmp_path)
        asyncio.run(repo.save_user_memory(sample_memory("team/lead:7")))
        assert len(list(tmp_path.glob("team_lead_7-*.json"))) == 1

    def test_similar_ids_get_separate_files(self, tmp_path):
        repo = JsonFileRepository(tmp_path)
        asyncio.run(repo.save_user_memory(sample_memory("a b", 0.2)))
        asyncio.run(repo.save_user_memory(sample_memory("a_b", 0.9)))
        assert len(list(tmp_path.glob("*.json"))) == 2
        assert asyncio.run(repo.load_user_memory("a b")).trust_level == 0.2
        assert asyncio.run(repo.load_user_memory("a_b")).trust_level == 0.9

    def test_corrupt_file_raises(self, tmp_path):
        repo = JsonFileRepository(tmp_path)
        asyncio.run(repo.save_user_memory(sample_memory()))
        (path,) = tmp_path.glob("alice-*.json")
        path.write_text("{broken", encoding="utf-8")
        with pytest.raises(PersistenceFailure):
            asyncio.run(repo.load_user_memory("alice"))

    def test_file_for_another_user_raises(self, tmp_path):
        repo = JsonFileRepository(tmp_path)
        asyncio.run(repo.save_user_memory(sample_memory("mallory")))
        asyncio.run(repo.save_user_memory(sample_memory("alice")))
        (mallory,) = tmp_path.glob("mallory-*.json")
        (alice,) = tmp_path.glob("alice-*.json")
        alice.write_text(mallory.read_text(encoding="utf-8"), encoding="utf-8")
        with pytest.raises(PersistenceFailure):
            asyncio.run(repo.load_user_memory("alice"))


class TestSqliteRepository:
    def test_init_is_idempotent(self, tmp_path):
        repo = SqliteRepository(tmp_path / "m.db")

        async def main():
            await repo.init()
            await repo.init()
            await repo.save_user_memory(sample_memory())
            return await repo.load_user_memory("alice")

        assert asyncio.run(main()).trust_level == 0.72

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "m.db"
        asyncio.run(SqliteRepository(path).save_user_memory(sample_memory()))
        loaded = asyncio.run(SqliteRepository(path).load_user_memory("alice"))
        assert loaded.preferences == {"tone": "gentle"}
        assert loaded.version == 3

    def test_unusable_database_raises(self, tmp_path):
        path = tmp_path / "not_a_db.sqlite3"
        path.write_text("this is not sqlite\n" * 200, encoding="utf-8")
        with pytest.raises(PersistenceFailure):
            asyncio.run(SqliteRepository(path).load_user_memory("alice"))
