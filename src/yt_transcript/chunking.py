"""
Chunk planning for long audio files.

Splits a source into time ranges that each satisfy the optional size and
duration limits, with a fixed overlap at every internal boundary so that no
word is lost at a cut. Planning is pure: nothing here touches the filesystem.
"""

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from yt_transcript.shared import ChunkPlanningError

DEFAULT_OVERLAP_SECONDS = 5.0


@dataclass(frozen=True)
class AudioChunk:
    """One time range of the source audio and the file it lives in."""
    file_path: Path
    chunk_index: int
    start_time: float
    end_time: float
    chunk_count: int = 1  # Size of the plan this chunk belongs to

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def label(self) -> str:
        return chunk_label(self.chunk_index, self.chunk_count, self.start_time, self.end_time)


def _millis(seconds: float) -> int:
    return int(round(seconds * 1000))


def chunk_label(chunk_index: int, chunk_count: int, start_time: float, end_time: float) -> str:
    """Name fragment that identifies a chunk within its plan.

    A lone chunk is the whole source and is always "chunk0". Otherwise the
    plan size and the time range are part of the name, so chunks cut under
    different limits or overlaps never share a file, object key, or cached
    transcription.
    """
    if chunk_count <= 1:
        return "chunk0"
    return (f"n{chunk_count}_chunk{chunk_index}_"
            f"{_millis(start_time)}-{_millis(end_time)}ms")


def chunk_path(source_path: Path, label: str) -> Path:
    """Derive the file name for a chunk: <stem>_<label><ext> beside the source."""
    source_path = Path(source_path)
    return source_path.with_name(f"{source_path.stem}_{label}{source_path.suffix}")


def count_chunks(total_size_bytes: int, total_duration: float,
                 max_size_bytes: Optional[int] = None,
                 max_duration: Optional[float] = None) -> int:
    """Number of chunks needed to satisfy both limits (an absent limit needs 1)."""
    for_size = math.ceil(total_size_bytes / max_size_bytes) if max_size_bytes else 1
    for_duration = math.ceil(total_duration / max_duration) if max_duration else 1
    return max(for_size, for_duration, 1)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def plan_chunks(source_path: Path, total_size_bytes: int, total_duration: float,
                max_size_bytes: Optional[int] = None,
                max_duration: Optional[float] = None,
                overlap: float = DEFAULT_OVERLAP_SECONDS) -> list[AudioChunk]:
    """Plan the chunks for a source of the given size and duration.

    With no limits, or limits the source already satisfies, the result is a
    single chunk covering the whole source and pointing at the source file
    itself. Otherwise the duration is divided into n equal segments and every
    internal boundary is widened by `overlap` seconds on both sides, clamped to
    [0, total_duration].
    """
    source_path = Path(source_path)
    if total_duration is None or total_duration <= 0:
        raise ChunkPlanningError(f"duration must be positive, got {total_duration}",
                                 key=str(source_path))
    if total_size_bytes is None or total_size_bytes < 0:
        raise ChunkPlanningError(f"size must not be negative, got {total_size_bytes}",
                                 key=str(source_path))
    if max_size_bytes is not None and max_size_bytes <= 0:
        raise ChunkPlanningError(f"max chunk size must be positive, got {max_size_bytes}",
                                 key=str(source_path))
    if max_duration is not None and max_duration <= 0:
        raise ChunkPlanningError(f"max chunk duration must be positive, got {max_duration}",
                                 key=str(source_path))
    if overlap < 0:
        raise ChunkPlanningError(f"overlap must not be negative, got {overlap}",
                                 key=str(source_path))

    n = count_chunks(total_size_bytes, total_duration, max_size_bytes, max_duration)
    if n <= 1:
        return [AudioChunk(source_path, 0, 0.0, float(total_duration))]

    segment = total_duration / n
    chunks = []
    for i in range(n):
        start = _clamp(i * segment - (overlap if i > 0 else 0), 0.0, total_duration)
        end = _clamp((i + 1) * segment + (overlap if i < n - 1 else 0), 0.0, total_duration)
        chunks.append(AudioChunk(
            file_path=chunk_path(source_path, chunk_label(i, n, start, end)),
            chunk_index=i,
            start_time=start,
            end_time=end,
            chunk_count=n,
        ))
    return chunks
