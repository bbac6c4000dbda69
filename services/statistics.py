"""
Statistics service: per-chunk attempt counters and progress aggregation.

All functions are pure: they return new objects and never mutate their inputs.
"""

import math
from datetime import datetime, timedelta
from typing import Optional

from models.schemas import Chunk, ChunkStatistics, ComparisonResult, StudyResult, utcnow
from services.text_comparison import round2

MINOR_ERRORS_THRESHOLD = 80.0
REVIEW_WINDOW = (timedelta(days=3), timedelta(days=1))


def initial_statistics() -> ChunkStatistics:
    return ChunkStatistics(attempts=0, successes=0, success_rate=0.0, average_time=0.0)


def update_statistics(
    current: ChunkStatistics,
    success: bool,
    time_spent: float,
    now: Optional[datetime] = None,
) -> ChunkStatistics:
    """Fold one graded attempt into the running counters."""
    attempts = current.attempts + 1
    successes = current.successes + (1 if success else 0)
    total_time = current.average_time * current.attempts + time_spent

    return ChunkStatistics(
        attempts=attempts,
        successes=successes,
        success_rate=round2(successes / attempts * 100),
        average_time=round2(total_time / attempts),
        last_success_at=(now or utcnow()) if success else current.last_success_at,
    )


def classify_result(comparison: ComparisonResult) -> StudyResult:
    if comparison.is_match:
        return StudyResult.perfect
    if comparison.accuracy >= MINOR_ERRORS_THRESHOLD:
        return StudyResult.minor_errors
    return StudyResult.retry


def material_progress(chunks: list[Chunk]) -> int:
    """Percentage of chunks recalled successfully at least once."""
    if not chunks:
        return 0
    done = sum(1 for c in chunks if c.statistics.successes > 0)
    return math.floor(done / len(chunks) * 100 + 0.5)


def weakest_chunks(chunks: list[Chunk], limit: int = 3) -> list[Chunk]:
    attempted = [c for c in chunks if c.statistics.attempts > 0]
    attempted.sort(key=lambda c: (c.statistics.success_rate, -c.statistics.attempts))
    return attempted[:limit]


def review_chunks(chunks: list[Chunk], now: Optional[datetime] = None) -> list[Chunk]:
    """Chunks last recalled between three days and one day ago."""
    now = now or utcnow()
    oldest, newest = (now - delta for delta in REVIEW_WINDOW)
    return [
        c for c in chunks
        if c.statistics.last_success_at is not None
        and oldest <= c.statistics.last_success_at <= newest
    ]
