"""Tests for merge.py — overlap removal between chunk transcripts."""

from yt_transcript.merge import (
    MERGE_WINDOW_WORDS, _overlap_length, merge_chunk_transcriptions, merge_transcripts,
)
from yt_transcript.transcription import ChunkTranscription


def _chunks(*texts):
    return [ChunkTranscription(i, t, {"text": t}) for i, t in enumerate(texts)]


# ---------------------------------------------------------------------------
# merge_transcripts
# ---------------------------------------------------------------------------

class TestMergeTranscripts:
    def test_empty(self):
        assert merge_transcripts([]) == ""

    def test_single_chunk_unchanged(self):
        text = "  Hello   there,  world.  "
        assert merge_transcripts(_chunks(text)) == text

    def test_overlap_removed(self):
        merged = merge_transcripts(_chunks("the quick brown fox", "brown fox jumps over"))
        assert merged == "the quick brown fox jumps over"

    def test_case_insensitive(self):
        merged = merge_transcripts(_chunks("we talked about Scaling Laws", "scaling laws are empirical"))
        assert merged == "we talked about Scaling Laws are empirical"

    def test_no_overlap_plain_append(self):
        assert merge_transcripts(_chunks("first part", "second part")) == "first part second part"

    def test_orders_by_chunk_index(self):
        chunks = [
            ChunkTranscription(2, "over the lazy dog"),
            ChunkTranscription(0, "the quick brown fox"),
            ChunkTranscription(1, "brown fox jumps over"),
        ]
        assert merge_transcripts(chunks) == "the quick brown fox jumps over the lazy dog"

    def test_longest_match_wins(self):
        # "a b" (j=2) and "a b a b" (j=4) both match; the longer run is dropped
        merged = merge_transcripts(_chunks("x a b a b", "a b a b y"))
        assert merged == "x a b a b y"

    def test_overlap_limited_to_window(self):
        shared = " ".join(f"w{i}" for i in range(12))
        merged = merge_transcripts(_chunks(f"start {shared}", f"{shared} end"))
        # A 12-word overlap cannot be seen through a 10-word window
        assert merged == f"start {shared} {shared} end"

    def test_whitespace_collapsed(self):
        merged = merge_transcripts(_chunks("one  two\nthree", "three   four\tfive "))
        assert merged == "one two three four five"

    def test_punctuation_must_match(self):
        merged = merge_transcripts(_chunks("and that's it.", "it. Next topic"))
        assert merged == "and that's it. Next topic"
        assert merge_transcripts(_chunks("and that's it.", "it Next")) == "and that's it. it Next"


class TestOverlapLength:
    def test_window_constant(self):
        assert MERGE_WINDOW_WORDS == 10

    def test_no_match(self):
        assert _overlap_length(["a", "b"], ["c", "d"]) == 0

    def test_next_shorter_than_tail(self):
        assert _overlap_length(["x", "y", "z"], ["z"]) == 1


# ---------------------------------------------------------------------------
# merge_chunk_transcriptions
# ---------------------------------------------------------------------------

class TestMergeChunkTranscriptions:
    def test_keeps_raw_responses_in_order(self):
        chunks = [
            ChunkTranscription(1, "fox jumps", {"text": "fox jumps"}),
            ChunkTranscription(0, "quick brown fox", {"text": "quick brown fox"}),
        ]
        merged = merge_chunk_transcriptions(chunks)
        assert merged.text == "quick brown fox jumps"
        assert merged.raw_responses == [{"text": "quick brown fox"}, {"text": "fox jumps"}]
        assert merged.word_count == 4
