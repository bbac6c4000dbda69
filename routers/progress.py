from fastapi import APIRouter, Depends

from core.auth import get_current_user
from core.store import MaterialStore, get_store
from models.schemas import ChunkSummary, MaterialProgress, ProgressResponse, utcnow
from services.statistics import material_progress, review_chunks, weakest_chunks
from services.text_comparison import round2

router = APIRouter(prefix="/progress", tags=["Progress"])

WEAKEST_LIMIT = 5


@router.get("", response_model=ProgressResponse)
async def get_progress(
    current_user: dict = Depends(get_current_user),
    store: MaterialStore = Depends(get_store),
):
    """Dashboard figures across every material the learner owns."""
    materials = await store.list_materials(current_user["sub"])

    per_material = [
        MaterialProgress(
            material_id=m.id,
            name=m.name,
            progress=material_progress(m.chunks),
            chunk_count=len(m.chunks),
            last_studied_at=m.last_studied_at,
        )
        for m in materials
    ]

    # Remember which material each chunk belongs to
    owner = {c.id: m.id for m in materials for c in m.chunks}
    all_chunks = [c for m in materials for c in m.chunks]

    def summarize(chunks) -> list[ChunkSummary]:
        return [
            ChunkSummary(material_id=owner[c.id], chunk_id=c.id, name=c.name, statistics=c.statistics)
            for c in chunks
        ]

    attempts = sum(c.statistics.attempts for c in all_chunks)
    successes = sum(c.statistics.successes for c in all_chunks)

    return ProgressResponse(
        materials=per_material,
        completed_materials=sum(1 for p in per_material if p.progress == 100),
        total_attempts=attempts,
        total_successes=successes,
        success_rate=round2(successes / attempts * 100) if attempts else 0.0,
        weakest_chunks=summarize(weakest_chunks(all_chunks, WEAKEST_LIMIT)),
        review_chunks=summarize(review_chunks(all_chunks, utcnow())),
    )
