from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Annotated, Optional
from pydantic import BaseModel, Field, StringConstraints
from bson import ObjectId


# ─────────────────────────────────────────
#  Helpers
# ─────────────────────────────────────────

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_object_id() -> str:
    return str(ObjectId())


# Names and chunk text are stored trimmed; blank input fails validation
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
ChunkText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


# ─────────────────────────────────────────
#  Enums
# ─────────────────────────────────────────

class StudyLevel(IntEnum):
    with_hints = 1
    without_hints = 2


class StudyResult(str, Enum):
    perfect = "perfect"
    minor_errors = "minor_errors"
    retry = "retry"


# ─────────────────────────────────────────
#  Comparison results (value objects)
# ─────────────────────────────────────────

class TextDiff(BaseModel):
    correct: str = ""
    incorrect: str = ""
    missing: str = ""
    extra: str = ""


class ComparisonResult(BaseModel):
    accuracy: float = Field(ge=0, le=100)
    diff: TextDiff
    is_match: bool


# ─────────────────────────────────────────
#  Sub-documents (embedded)
# ─────────────────────────────────────────

class ChunkStatistics(BaseModel):
    attempts: int = Field(default=0, ge=0)
    successes: int = Field(default=0, ge=0)
    success_rate: float = Field(default=0.0, ge=0, le=100)
    average_time: float = Field(default=0.0, ge=0)   # seconds
    last_success_at: Optional[datetime] = None


class Chunk(BaseModel):
    id: str = Field(default_factory=new_object_id)
    name: str
    content: str
    order: int = Field(ge=0)
    statistics: ChunkStatistics = Field(default_factory=ChunkStatistics)


# ─────────────────────────────────────────
#  Top-level documents
# ─────────────────────────────────────────

class User(BaseModel):
    id: str = Field(default_factory=new_object_id)
    username: str
    password_hash: str
    created_at: datetime = Field(default_factory=utcnow)


class Material(BaseModel):
    id: str = Field(default_factory=new_object_id)
    owner_id: str
    name: str
    content: str
    chunks: list[Chunk] = []
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_studied_at: Optional[datetime] = None

    def find_chunk(self, chunk_id: str) -> Optional[Chunk]:
        return next((c for c in self.chunks if c.id == chunk_id), None)

    def full_text(self) -> str:
        """All chunk contents in chunk order, separated by a blank line."""
        ordered = sorted(self.chunks, key=lambda c: c.order)
        return "\n\n".join(c.content for c in ordered)


class StudySession(BaseModel):
    id: str = Field(default_factory=new_object_id)
    material_id: str
    chunk_id: str
    owner_id: str
    level: StudyLevel
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    result: StudyResult = StudyResult.retry
    input_text: str = ""
    accuracy: float = 0.0


class TestSession(BaseModel):
    __test__ = False  # not a pytest test class

    id: str = Field(default_factory=new_object_id)
    material_id: str
    owner_id: str
    level: StudyLevel
    scheduled_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    result: StudyResult = StudyResult.retry
    input_text: str = ""
    accuracy: float = 0.0


# ─────────────────────────────────────────
#  Request / Response schemas (API surface)
# ─────────────────────────────────────────

# Auth
class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=32)
    password: str = Field(min_length=6)


class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    username: str


# Compare
class CompareRequest(BaseModel):
    original: str
    input: str


class HintsRequest(BaseModel):
    text: str


class HintsResponse(BaseModel):
    hints: str


# Materials
class ChunkInput(BaseModel):
    name: Name
    content: ChunkText


class CreateMaterialRequest(BaseModel):
    name: Name
    content: str = Field(min_length=1)
    chunks: Optional[list[ChunkInput]] = None   # If omitted, content is split automatically


class UpdateMaterialRequest(BaseModel):
    name: Name


class UpdateChunkRequest(BaseModel):
    name: Optional[Name] = None
    content: Optional[ChunkText] = None   # Material content is rebuilt from the chunks


# Study / tests
class StartSessionRequest(BaseModel):
    level: StudyLevel = StudyLevel.with_hints


class AttemptRequest(BaseModel):
    input_text: str
    result: Optional[StudyResult] = None        # If omitted, derived from the comparison
    time_spent: Optional[float] = Field(default=None, ge=0)   # seconds


class StudySessionStart(BaseModel):
    session: StudySession
    chunk_name: str
    hints: str


class TestSessionStart(BaseModel):
    __test__ = False

    session: TestSession
    material_name: str
    hints: str


class AttemptResponse(BaseModel):
    session: StudySession
    comparison: ComparisonResult
    statistics: ChunkStatistics


class TestSubmitResponse(BaseModel):
    __test__ = False

    session: TestSession
    comparison: ComparisonResult


class SessionHistory(BaseModel):
    study_sessions: list[StudySession]
    test_sessions: list[TestSession]


# Progress
class MaterialProgress(BaseModel):
    material_id: str
    name: str
    progress: int
    chunk_count: int
    last_studied_at: Optional[datetime] = None


class ChunkSummary(BaseModel):
    material_id: str
    chunk_id: str
    name: str
    statistics: ChunkStatistics


class ProgressResponse(BaseModel):
    materials: list[MaterialProgress]
    completed_materials: int
    total_attempts: int
    total_successes: int
    success_rate: float
    weakest_chunks: list[ChunkSummary]
    review_chunks: list[ChunkSummary]
