from fastapi import APIRouter

from models.schemas import CompareRequest, ComparisonResult, HintsRequest, HintsResponse
from routers.materials import ensure_within_limit
from services.text_comparison import compare, line_hints

router = APIRouter(prefix="/compare", tags=["Compare"])


@router.post("", response_model=ComparisonResult)
async def compare_texts(body: CompareRequest):
    """Grade `input` against `original` without touching any stored material."""
    ensure_within_limit(body.original, "original")
    ensure_within_limit(body.input, "input")
    return compare(body.original, body.input)


@router.post("/hints", response_model=HintsResponse)
async def hints(body: HintsRequest):
    ensure_within_limit(body.text, "text")
    return HintsResponse(hints=line_hints(body.text))
