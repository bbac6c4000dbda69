from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable, Iterator, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from core.auth import get_current_user
from main import create_app
from models.schemas import ChunkStatistics, Material, StudySession, TestSession, User, utcnow


class InMemoryStore:
    """
    Store double with the same coroutines as MaterialStore, backed by dicts.

    Reads yield to the event loop the way a driver round-trip does, so
    concurrent requests interleave; conditional writes check and write
    without yielding, like a single-document update.
    """

    def __init__(self) -> None:
        self.users: dict[str, User] = {}
        self.materials: dict[str, Material] = {}
        self.study_sessions: dict[str, StudySession] = {}
        self.test_sessions: dict[str, TestSession] = {}

    async def create_indexes(self) -> None:
        return None

    async def insert_user(self, user: User) -> None:
        self.users[user.username] = user.model_copy(deep=True)

    async def find_user(self, username: str) -> Optional[User]:
        await asyncio.sleep(0)
        user = self.users.get(username)
        return user.model_copy(deep=True) if user else None

    async def insert_material(self, material: Material) -> None:
        self.materials[material.id] = material.model_copy(deep=True)

    async def list_materials(self, owner_id: str) -> list[Material]:
        await asyncio.sleep(0)
        owned = [m for m in self.materials.values() if m.owner_id == owner_id]
        owned.sort(key=lambda m: m.created_at, reverse=True)
        return [m.model_copy(deep=True) for m in owned]

    async def get_material(self, material_id: str) -> Optional[Material]:
        await asyncio.sleep(0)
        material = self.materials.get(material_id)
        return material.model_copy(deep=True) if material else None

    async def update_material(self, material_id: str, fields: dict) -> bool:
        material = self.materials.get(material_id)
        if material is None:
            return False
        for name, value in fields.items():
            setattr(material, name, value)
        return True

    async def update_chunk(
        self, material_id: str, chunk_id: str, fields: dict, updated_at: datetime
    ) -> bool:
        material = self.materials.get(material_id)
        chunk = material.find_chunk(chunk_id) if material else None
        if chunk is None:
            return False
        for name, value in fields.items():
            setattr(chunk, name, value)
        material.content = "\n\n".join(c.content for c in material.chunks)
        material.updated_at = updated_at
        return True

    async def delete_material(self, material_id: str) -> bool:
        if self.materials.pop(material_id, None) is None:
            return False
        self.study_sessions = {
            k: s for k, s in self.study_sessions.items() if s.material_id != material_id
        }
        self.test_sessions = {
            k: s for k, s in self.test_sessions.items() if s.material_id != material_id
        }
        return True

    async def update_chunk_statistics(
        self,
        material_id: str,
        chunk_id: str,
        statistics: ChunkStatistics,
        expected_attempts: int,
    ) -> bool:
        material = self.materials.get(material_id)
        chunk = material.find_chunk(chunk_id) if material else None
        if chunk is None or chunk.statistics.attempts != expected_attempts:
            return False
        chunk.statistics = statistics.model_copy(deep=True)
        material.updated_at = material.last_studied_at = utcnow()
        return True

    async def insert_study_session(self, session: StudySession) -> None:
        self.study_sessions[session.id] = session.model_copy(deep=True)

    async def get_study_session(self, session_id: str) -> Optional[StudySession]:
        await asyncio.sleep(0)
        session = self.study_sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def complete_study_session(self, session: StudySession) -> bool:
        return self._complete(self.study_sessions, session)

    async def list_study_sessions(self, material_id: str) -> list[StudySession]:
        return [s for s in self.study_sessions.values() if s.material_id == material_id]

    async def insert_test_session(self, session: TestSession) -> None:
        self.test_sessions[session.id] = session.model_copy(deep=True)

    async def get_test_session(self, session_id: str) -> Optional[TestSession]:
        await asyncio.sleep(0)
        session = self.test_sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def complete_test_session(self, session: TestSession) -> bool:
        return self._complete(self.test_sessions, session)

    async def list_test_sessions(self, material_id: str) -> list[TestSession]:
        return [s for s in self.test_sessions.values() if s.material_id == material_id]

    @staticmethod
    def _complete(sessions: dict, session) -> bool:
        stored = sessions.get(session.id)
        if stored is None or stored.completed_at is not None:
            return False
        sessions[session.id] = session.model_copy(deep=True)
        return True


LEARNER = {"sub": "learner-1", "username": "alice"}
OTHER_LEARNER = {"sub": "learner-2", "username": "bob"}


@pytest.fixture
def learner() -> dict:
    return dict(LEARNER)


@pytest.fixture
def other_learner() -> dict:
    return dict(OTHER_LEARNER)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def app(store: InMemoryStore) -> FastAPI:
    return create_app(store)


@pytest.fixture
def login_as(app: FastAPI) -> Callable[[dict], None]:
    """Switch the authenticated learner for subsequent requests."""

    def _login(user: dict) -> None:
        app.dependency_overrides[get_current_user] = lambda: user

    return _login


@pytest.fixture
def client(app: FastAPI, login_as: Callable[[dict], None]) -> Iterator[TestClient]:
    login_as(LEARNER)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def material(client: TestClient) -> dict:
    """A two-chunk material owned by LEARNER."""
    rv = client.post(
        "/materials",
        json={
            "name": "Weather",
            "content": "今日は晴れです\n\n明日は雨です",
            "chunks": [
                {"name": "Today", "content": "今日は晴れです"},
                {"name": "Tomorrow", "content": "明日は雨です"},
            ],
        },
    )
    assert rv.status_code == 201
    return rv.json()
