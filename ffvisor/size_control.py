from __future__ import annotations

from typing import List, Optional, Sequence

from .models import ChunkInfo

MIN_CHUNK_DURATION = 1.0  # seconds


def oversized_chunks(chunks: Sequence[ChunkInfo], max_bytes: int) -> List[ChunkInfo]:
    if max_bytes <= 0:
        return []
    return [c for c in chunks if c.file_size > max_bytes]


def next_chunk_duration(current: float) -> Optional[float]:
    """Halve the chunk duration for another planning round.

    Returns None once halving would go below MIN_CHUNK_DURATION; the caller
    keeps the last result at that point.
    """
    halved = current / 2.0
    if halved < MIN_CHUNK_DURATION:
        return None
    return halved
