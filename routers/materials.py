import logging

from fastapi import APIRouter, Depends, HTTPException, status

from core.auth import get_current_user
from core.config import settings
from core.store import MaterialStore, get_store
from models.schemas import (
    CreateMaterialRequest, UpdateMaterialRequest, UpdateChunkRequest,
    HintsResponse, SessionHistory, Material, Chunk, utcnow,
)
from services.statistics import initial_statistics
from services.text_comparison import chunk_name, line_hints, split_into_chunks

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/materials", tags=["Materials"])


# ── Helpers ──────────────────────────────────────────────────────────────────

def ensure_within_limit(text: str, field: str) -> None:
    if len(text) > settings.max_text_length:
        raise HTTPException(
            status_code=422,
            detail=f"{field} exceeds {settings.max_text_length} characters",
        )


async def get_owned_material(store: MaterialStore, material_id: str, user_id: str) -> Material:
    material = await store.get_material(material_id)
    if not material:
        raise HTTPException(status_code=404, detail="Material not found")
    if material.owner_id != user_id:
        raise HTTPException(status_code=403, detail="You do not own this material")
    return material


def get_chunk_or_404(material: Material, chunk_id: str) -> Chunk:
    chunk = material.find_chunk(chunk_id)
    if not chunk:
        raise HTTPException(status_code=404, detail="Chunk not found in this material")
    return chunk


def _build_chunks(body: CreateMaterialRequest) -> list[Chunk]:
    if body.chunks:
        pieces = [(c.name, c.content) for c in body.chunks]
    else:
        pieces = [(chunk_name(i, text), text) for i, text in enumerate(split_into_chunks(body.content))]

    return [
        Chunk(name=name, content=content, order=i, statistics=initial_statistics())
        for i, (name, content) in enumerate(pieces)
    ]


# ── Routes ───────────────────────────────────────────────────────────────────

@router.post("", response_model=Material, status_code=status.HTTP_201_CREATED)
async def create_material(
    body: CreateMaterialRequest,
    current_user: dict = Depends(get_current_user),
    store: MaterialStore = Depends(get_store),
):
    """
    Create a material from pasted text.
    Explicit chunks are kept in the given order; otherwise the text is split
    on its numbering or blank lines and every chunk gets a default name.
    """
    ensure_within_limit(body.content, "content")
    for i, chunk in enumerate(body.chunks or []):
        ensure_within_limit(chunk.content, f"chunks[{i}].content")

    chunks = _build_chunks(body)
    if not chunks:
        raise HTTPException(status_code=422, detail="Material needs at least one chunk")

    now = utcnow()
    material = Material(
        owner_id=current_user["sub"],
        name=body.name,
        content=body.content,
        chunks=chunks,
        created_at=now,
        updated_at=now,
    )
    await store.insert_material(material)
    logger.info("Created material %s with %d chunks", material.id, len(chunks))
    return material


@router.get("", response_model=list[Material])
async def list_materials(
    current_user: dict = Depends(get_current_user),
    store: MaterialStore = Depends(get_store),
):
    """Return the learner's materials, newest first."""
    return await store.list_materials(current_user["sub"])


@router.get("/{material_id}", response_model=Material)
async def get_material(
    material_id: str,
    current_user: dict = Depends(get_current_user),
    store: MaterialStore = Depends(get_store),
):
    return await get_owned_material(store, material_id, current_user["sub"])


@router.patch("/{material_id}", response_model=Material)
async def update_material(
    material_id: str,
    body: UpdateMaterialRequest,
    current_user: dict = Depends(get_current_user),
    store: MaterialStore = Depends(get_store),
):
    """Rename a material. Its text changes only through chunk edits."""
    material = await get_owned_material(store, material_id, current_user["sub"])
    await store.update_material(material.id, {"name": body.name, "updated_at": utcnow()})
    return await get_owned_material(store, material_id, current_user["sub"])


@router.patch("/{material_id}/chunks/{chunk_id}", response_model=Material)
async def update_chunk(
    material_id: str,
    chunk_id: str,
    body: UpdateChunkRequest,
    current_user: dict = Depends(get_current_user),
    store: MaterialStore = Depends(get_store),
):
    """
    Rename a chunk or replace its text. The material's text is rebuilt
    from all chunks joined by blank lines; statistics are kept.
    """
    material = await get_owned_material(store, material_id, current_user["sub"])
    get_chunk_or_404(material, chunk_id)

    fields = body.model_dump(exclude_none=True)
    if "content" in fields:
        ensure_within_limit(fields["content"], "content")

    if fields and not await store.update_chunk(material.id, chunk_id, fields, utcnow()):
        raise HTTPException(status_code=404, detail="Chunk not found in this material")
    return await get_owned_material(store, material_id, current_user["sub"])


@router.delete("/{material_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_material(
    material_id: str,
    current_user: dict = Depends(get_current_user),
    store: MaterialStore = Depends(get_store),
):
    """Delete a material together with its chunk statistics and sessions."""
    await get_owned_material(store, material_id, current_user["sub"])
    await store.delete_material(material_id)


@router.get("/{material_id}/hints", response_model=HintsResponse)
async def material_hints(
    material_id: str,
    current_user: dict = Depends(get_current_user),
    store: MaterialStore = Depends(get_store),
):
    material = await get_owned_material(store, material_id, current_user["sub"])
    return HintsResponse(hints=line_hints(material.content))


@router.get("/{material_id}/sessions", response_model=SessionHistory)
async def list_sessions(
    material_id: str,
    current_user: dict = Depends(get_current_user),
    store: MaterialStore = Depends(get_store),
):
    """Study and test sessions of a material, newest first."""
    await get_owned_material(store, material_id, current_user["sub"])
    return SessionHistory(
        study_sessions=await store.list_study_sessions(material_id),
        test_sessions=await store.list_test_sessions(material_id),
    )
