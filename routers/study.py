import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status

from core.auth import get_current_user
from core.store import MaterialStore, get_store
from models.schemas import (
    StartSessionRequest, AttemptRequest, StudySessionStart, AttemptResponse,
    Chunk, ChunkStatistics, StudySession, StudyLevel, StudyResult, utcnow,
)
from routers.materials import ensure_within_limit, get_chunk_or_404, get_owned_material
from services.statistics import classify_result, update_statistics
from services.text_comparison import compare, line_hints

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Study"])

STATISTICS_RETRIES = 5


@router.post(
    "/materials/{material_id}/chunks/{chunk_id}/study",
    response_model=StudySessionStart,
    status_code=status.HTTP_201_CREATED,
)
async def start_study_session(
    material_id: str,
    chunk_id: str,
    body: StartSessionRequest,
    current_user: dict = Depends(get_current_user),
    store: MaterialStore = Depends(get_store),
):
    """Open a practice session for one chunk. Level 1 comes with per-line hints."""
    user_id = current_user["sub"]
    material = await get_owned_material(store, material_id, user_id)
    chunk = get_chunk_or_404(material, chunk_id)

    session = StudySession(
        material_id=material.id,
        chunk_id=chunk.id,
        owner_id=user_id,
        level=body.level,
        started_at=utcnow(),
    )
    await store.insert_study_session(session)

    hints = line_hints(chunk.content) if body.level == StudyLevel.with_hints else ""
    return StudySessionStart(session=session, chunk_name=chunk.name, hints=hints)


@router.post("/study-sessions/{session_id}/attempt", response_model=AttemptResponse)
async def submit_attempt(
    session_id: str,
    body: AttemptRequest,
    current_user: dict = Depends(get_current_user),
    store: MaterialStore = Depends(get_store),
):
    """
    Grade a recall attempt and close the session.
    - A session is graded once; later or concurrent attempts get 409.
    - Only `perfect` counts as a success for the chunk statistics.
    - Without an explicit result, one is derived from the accuracy.
    - Without `time_spent`, the time since the session started is used.
    """
    user_id = current_user["sub"]
    ensure_within_limit(body.input_text, "input_text")

    session = await store.get_study_session(session_id)
    if not session or session.owner_id != user_id:
        raise HTTPException(status_code=404, detail="Study session not found")
    if session.completed_at is not None:
        raise HTTPException(status_code=409, detail="Study session is already completed")

    material = await get_owned_material(store, session.material_id, user_id)
    chunk = get_chunk_or_404(material, session.chunk_id)

    comparison = compare(chunk.content, body.input_text)
    result = body.result or classify_result(comparison)

    now = utcnow()
    time_spent = body.time_spent
    if time_spent is None:
        time_spent = max(0.0, (now - session.started_at).total_seconds())

    session.completed_at = now
    session.result = result
    session.accuracy = comparison.accuracy
    session.input_text = body.input_text
    if not await store.complete_study_session(session):
        raise HTTPException(status_code=409, detail="Study session is already completed")

    statistics = await _record_attempt(
        store, material.id, chunk, result == StudyResult.perfect, time_spent, now,
    )

    logger.info(
        "Graded chunk %s of material %s: accuracy=%.2f result=%s",
        chunk.id, material.id, comparison.accuracy, result.value,
    )
    return AttemptResponse(session=session, comparison=comparison, statistics=statistics)


async def _record_attempt(
    store: MaterialStore,
    material_id: str,
    chunk: Chunk,
    success: bool,
    time_spent: float,
    now: datetime,
) -> ChunkStatistics:
    """Fold the attempt into the chunk's counters, re-reading when another attempt wins the write."""
    for _ in range(STATISTICS_RETRIES):
        statistics = update_statistics(chunk.statistics, success, time_spent, now=now)
        if await store.update_chunk_statistics(
            material_id, chunk.id, statistics, chunk.statistics.attempts,
        ):
            return statistics

        material = await store.get_material(material_id)
        chunk = material.find_chunk(chunk.id) if material else None
        if chunk is None:
            raise HTTPException(status_code=404, detail="Chunk not found in this material")

    logger.error("Gave up recording attempt on chunk %s after %d tries", chunk.id, STATISTICS_RETRIES)
    raise HTTPException(status_code=503, detail="Chunk statistics are busy, try again")
