"""Tests for chunking.py — chunk counts, boundaries, and overlap."""

from pathlib import Path

import pytest

from yt_transcript.chunking import AudioChunk, chunk_label, chunk_path, count_chunks, plan_chunks
from yt_transcript.shared import ChunkPlanningError

SOURCE = Path("/cache/abc_16k.mp3")
MB = 1024 * 1024


# ---------------------------------------------------------------------------
# chunk_path / count_chunks
# ---------------------------------------------------------------------------

class TestChunkPath:
    def test_suffix_and_directory_kept(self):
        assert chunk_path(SOURCE, "n4_chunk3_0-1000ms") == Path("/cache/abc_16k_n4_chunk3_0-1000ms.mp3")

    def test_lone_chunk_label(self):
        assert chunk_label(0, 1, 0.0, 5400.0) == "chunk0"

    def test_label_carries_plan_and_range(self):
        assert chunk_label(1, 3, 78.3333, 171.6667) == "n3_chunk1_78333-171667ms"


class TestCountChunks:
    def test_no_limits(self):
        assert count_chunks(100 * MB, 3600) == 1

    def test_size_limit(self):
        assert count_chunks(100 * MB, 3600, max_size_bytes=25 * MB) == 4

    def test_duration_limit(self):
        assert count_chunks(10 * MB, 3600, max_duration=1000) == 4

    def test_larger_of_both_limits_wins(self):
        assert count_chunks(100 * MB, 3600, max_size_bytes=50 * MB, max_duration=600) == 6


# ---------------------------------------------------------------------------
# plan_chunks
# ---------------------------------------------------------------------------

class TestPlanChunks:
    def test_no_constraints_single_chunk(self):
        chunks = plan_chunks(SOURCE, 200 * MB, 5400.0)
        assert chunks == [AudioChunk(SOURCE, 0, 0.0, 5400.0)]

    def test_single_chunk_uses_source_file(self):
        chunks = plan_chunks(SOURCE, 10 * MB, 600.0, max_size_bytes=25 * MB, max_duration=3600)
        assert len(chunks) == 1
        assert chunks[0].file_path == SOURCE

    def test_size_two_and_a_half_times_limit_gives_three_chunks(self):
        total = 100 * MB
        chunks = plan_chunks(SOURCE, total, 3000.0, max_size_bytes=int(total / 2.5))
        assert len(chunks) == 3

    def test_boundaries_with_overlap(self):
        chunks = plan_chunks(SOURCE, 100, 300.0, max_duration=100, overlap=5.0)
        assert [(c.start_time, c.end_time) for c in chunks] == [
            (0.0, 105.0),
            (95.0, 205.0),
            (195.0, 300.0),
        ]

    def test_indices_dense_and_paths_derived(self):
        chunks = plan_chunks(SOURCE, 100, 400.0, max_duration=100)
        assert [c.chunk_index for c in chunks] == [0, 1, 2, 3]
        assert [c.file_path.name for c in chunks] == [
            "abc_16k_n4_chunk0_0-105000ms.mp3", "abc_16k_n4_chunk1_95000-205000ms.mp3",
            "abc_16k_n4_chunk2_195000-305000ms.mp3", "abc_16k_n4_chunk3_295000-400000ms.mp3",
        ]
        assert all(c.chunk_count == 4 for c in chunks)

    def test_different_plans_never_share_files(self):
        three = plan_chunks(SOURCE, 100, 250.0, max_duration=100)
        five = plan_chunks(SOURCE, 100, 250.0, max_duration=60)
        assert not {c.file_path for c in three} & {c.file_path for c in five}
        wider = plan_chunks(SOURCE, 100, 250.0, max_duration=100, overlap=10.0)
        assert not {c.file_path for c in three} & {c.file_path for c in wider}

    def test_adjacent_chunks_overlap_by_configured_amount(self):
        overlap = 7.5
        chunks = plan_chunks(SOURCE, 100, 1000.0, max_duration=150, overlap=overlap)
        assert chunks[0].start_time == 0.0
        assert chunks[-1].end_time == 1000.0
        for prev, nxt in zip(chunks, chunks[1:]):
            assert prev.end_time - nxt.start_time == pytest.approx(2 * overlap)
            assert nxt.start_time < prev.end_time

    def test_overlap_clamped_to_source(self):
        chunks = plan_chunks(SOURCE, 100, 10.0, max_duration=4, overlap=5.0)
        assert len(chunks) == 3
        for c in chunks:
            assert 0.0 <= c.start_time < c.end_time <= 10.0
        assert chunks[1].start_time == 0.0

    def test_zero_overlap_tiles_exactly(self):
        chunks = plan_chunks(SOURCE, 100, 90.0, max_duration=30, overlap=0)
        assert [(c.start_time, c.end_time) for c in chunks] == [
            (0.0, 30.0), (30.0, 60.0), (60.0, 90.0),
        ]

    def test_duration_property(self):
        chunk = AudioChunk(SOURCE, 0, 10.0, 25.5)
        assert chunk.duration == 15.5

    @pytest.mark.parametrize("kwargs", [
        {"total_duration": 0},
        {"total_duration": -5},
        {"total_size_bytes": -1},
        {"max_size_bytes": 0},
        {"max_duration": -10},
        {"overlap": -1},
    ])
    def test_invalid_inputs(self, kwargs):
        args = {"source_path": SOURCE, "total_size_bytes": 100, "total_duration": 60.0}
        args.update(kwargs)
        with pytest.raises(ChunkPlanningError) as exc:
            plan_chunks(**args)
        assert exc.value.stage == "plan"
        assert exc.value.key == str(SOURCE)
