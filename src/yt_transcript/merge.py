"""
Merge per-chunk transcripts into one transcript.

Adjacent chunks share a few seconds of audio, so the start of each chunk's
text usually repeats the end of the previous one. The merge looks for the
longest run of words that ends the text so far and also begins the next
chunk, and drops that run from the next chunk before appending.
"""

import re
from dataclasses import dataclass, field

from yt_transcript.transcription import ChunkTranscription

MERGE_WINDOW_WORDS = 10

_WHITESPACE = re.compile(r"\s+")


@dataclass
class MergedTranscript:
    text: str
    raw_responses: list = field(default_factory=list)

    @property
    def word_count(self) -> int:
        return len(self.text.split())


def _overlap_length(previous_words: list[str], next_words: list[str]) -> int:
    """Largest j such that the last j previous words equal the first j next words.

    Only the last MERGE_WINDOW_WORDS of the previous text are considered and
    comparison ignores case.
    """
    tail = [w.lower() for w in previous_words[-MERGE_WINDOW_WORDS:]]
    head = [w.lower() for w in next_words[:MERGE_WINDOW_WORDS]]
    for j in range(min(len(tail), len(head)), 0, -1):
        if tail[-j:] == head[:j]:
            return j
    return 0


def merge_transcripts(chunks: list[ChunkTranscription]) -> str:
    """Join chunk texts in chunk order, removing words repeated across boundaries."""
    if not chunks:
        return ""
    if len(chunks) == 1:
        return chunks[0].text

    ordered = sorted(chunks, key=lambda c: c.chunk_index)
    merged = ordered[0].text
    for chunk in ordered[1:]:
        next_words = chunk.text.split()
        overlap = _overlap_length(merged.split(), next_words)
        merged = f"{merged} {' '.join(next_words[overlap:])}"
    return _WHITESPACE.sub(" ", merged).strip()


def merge_chunk_transcriptions(chunks: list[ChunkTranscription]) -> MergedTranscript:
    """Merge texts and keep the raw responses in chunk order."""
    ordered = sorted(chunks, key=lambda c: c.chunk_index)
    return MergedTranscript(
        text=merge_transcripts(ordered),
        raw_responses=[c.raw_response for c in ordered],
    )
