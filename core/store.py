"""
Material store: the persistence boundary of the app.

Wraps the MongoDB collections and converts documents to validated records.
Routes never touch collections directly; they receive the store through
`get_store`, so tests can place any object with the same coroutines on
`app.state.store`.
"""

import logging
from datetime import datetime
from typing import Optional, TypeVar

from bson import ObjectId
from fastapi import Request
from pydantic import BaseModel

from core.database import materials_col, study_sessions_col, test_sessions_col, users_col
from models.schemas import ChunkStatistics, Material, StudySession, TestSession, User, utcnow

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _oid(value: str) -> Optional[ObjectId]:
    return ObjectId(value) if ObjectId.is_valid(value) else None


def _to_doc(record: BaseModel) -> dict:
    doc = record.model_dump()
    doc["_id"] = ObjectId(record.id)
    return doc


def _from_doc(model: type[M], doc: Optional[dict]) -> Optional[M]:
    if doc is None:
        return None
    return model.model_validate(doc)


class MaterialStore:
    """MongoDB-backed store for users, materials and study/test sessions."""

    async def create_indexes(self) -> None:
        """Run once on startup to ensure indexes exist."""
        await users_col().create_index("username", unique=True)
        await materials_col().create_index("owner_id")
        await study_sessions_col().create_index("material_id")
        await test_sessions_col().create_index("material_id")

    # ── Users ────────────────────────────────────────────────────────────────

    async def insert_user(self, user: User) -> None:
        await users_col().insert_one(_to_doc(user))

    async def find_user(self, username: str) -> Optional[User]:
        return _from_doc(User, await users_col().find_one({"username": username}))

    # ── Materials ────────────────────────────────────────────────────────────

    async def insert_material(self, material: Material) -> None:
        await materials_col().insert_one(_to_doc(material))

    async def list_materials(self, owner_id: str) -> list[Material]:
        cursor = materials_col().find({"owner_id": owner_id}, sort=[("created_at", -1)])
        return [Material.model_validate(doc) async for doc in cursor]

    async def get_material(self, material_id: str) -> Optional[Material]:
        oid = _oid(material_id)
        if oid is None:
            return None
        return _from_doc(Material, await materials_col().find_one({"_id": oid}))

    async def update_material(self, material_id: str, fields: dict) -> bool:
        """`$set` top-level fields only, leaving chunk statistics untouched."""
        result = await materials_col().update_one({"_id": ObjectId(material_id)}, {"$set": fields})
        return result.matched_count == 1

    async def update_chunk(
        self, material_id: str, chunk_id: str, fields: dict, updated_at: datetime
    ) -> bool:
        """
        Set fields of one chunk and rebuild `content` from every chunk's text,
        in a single document update so concurrent statistics writes survive.
        """
        edit = {name: {"$literal": value} for name, value in fields.items()}
        pipeline = [
            {
                "$set": {
                    "chunks": {
                        "$map": {
                            "input": "$chunks",
                            "as": "c",
                            "in": {
                                "$cond": [
                                    {"$eq": ["$$c.id", chunk_id]},
                                    {"$mergeObjects": ["$$c", edit]},
                                    "$$c",
                                ]
                            },
                        }
                    },
                    "updated_at": updated_at,
                }
            },
            {
                "$set": {
                    "content": {
                        "$reduce": {
                            "input": "$chunks.content",
                            "initialValue": None,
                            "in": {
                                "$cond": [
                                    {"$eq": ["$$value", None]},
                                    "$$this",
                                    {"$concat": ["$$value", "\n\n", "$$this"]},
                                ]
                            },
                        }
                    }
                }
            },
        ]
        result = await materials_col().update_one(
            {"_id": ObjectId(material_id), "chunks.id": chunk_id}, pipeline,
        )
        return result.matched_count == 1

    async def delete_material(self, material_id: str) -> bool:
        oid = _oid(material_id)
        if oid is None:
            return False
        result = await materials_col().delete_one({"_id": oid})
        if not result.deleted_count:
            return False
        await study_sessions_col().delete_many({"material_id": material_id})
        await test_sessions_col().delete_many({"material_id": material_id})
        logger.info("Deleted material %s and its sessions", material_id)
        return True

    async def update_chunk_statistics(
        self,
        material_id: str,
        chunk_id: str,
        statistics: ChunkStatistics,
        expected_attempts: int,
    ) -> bool:
        """
        Compare-and-set: write only while the chunk still has `expected_attempts`.
        Returns False when another attempt got there first; the caller re-reads.
        """
        now = utcnow()
        result = await materials_col().update_one(
            {
                "_id": ObjectId(material_id),
                "chunks": {"$elemMatch": {"id": chunk_id, "statistics.attempts": expected_attempts}},
            },
            {
                "$set": {
                    "chunks.$.statistics": statistics.model_dump(),
                    "updated_at": now,
                    "last_studied_at": now,
                }
            },
        )
        return result.matched_count == 1

    # ── Study sessions ───────────────────────────────────────────────────────

    async def insert_study_session(self, session: StudySession) -> None:
        await study_sessions_col().insert_one(_to_doc(session))

    async def get_study_session(self, session_id: str) -> Optional[StudySession]:
        oid = _oid(session_id)
        if oid is None:
            return None
        return _from_doc(StudySession, await study_sessions_col().find_one({"_id": oid}))

    async def complete_study_session(self, session: StudySession) -> bool:
        """Record the outcome unless the session was already completed."""
        return await _complete(study_sessions_col(), session)

    async def list_study_sessions(self, material_id: str) -> list[StudySession]:
        cursor = study_sessions_col().find({"material_id": material_id}, sort=[("started_at", -1)])
        return [StudySession.model_validate(doc) async for doc in cursor]

    # ── Test sessions ────────────────────────────────────────────────────────

    async def insert_test_session(self, session: TestSession) -> None:
        await test_sessions_col().insert_one(_to_doc(session))

    async def get_test_session(self, session_id: str) -> Optional[TestSession]:
        oid = _oid(session_id)
        if oid is None:
            return None
        return _from_doc(TestSession, await test_sessions_col().find_one({"_id": oid}))

    async def complete_test_session(self, session: TestSession) -> bool:
        return await _complete(test_sessions_col(), session)

    async def list_test_sessions(self, material_id: str) -> list[TestSession]:
        cursor = test_sessions_col().find({"material_id": material_id}, sort=[("scheduled_at", -1)])
        return [TestSession.model_validate(doc) async for doc in cursor]


async def _complete(collection, session: StudySession | TestSession) -> bool:
    result = await collection.update_one(
        {"_id": ObjectId(session.id), "completed_at": None},
        {
            "$set": {
                "completed_at": session.completed_at,
                "result": session.result.value,
                "accuracy": session.accuracy,
                "input_text": session.input_text,
            }
        },
    )
    return result.modified_count == 1


def get_store(request: Request) -> MaterialStore:
    """FastAPI dependency: the store the app was created with."""
    return request.app.state.store
