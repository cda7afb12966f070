"""
Audio module for the podcast transcript pipeline.

Probes, resamples, and cuts audio files with ffprobe/ffmpeg. Every output is
derived from its input's file name, so an existing output is reused instead
of being produced again.
"""

import subprocess
from dataclasses import dataclass
from pathlib import Path

from yt_transcript.chunking import AudioChunk, plan_chunks
from yt_transcript.shared import (
    tprint as print,
    PipelineConfig, TranscodeError, SegmentCreationError,
    run_command, _print_reusing, format_duration, format_size,
)

PREPROCESS_SAMPLE_RATE = 16000
PREPROCESS_BITRATE = "32k"


@dataclass(frozen=True)
class AudioFileInfo:
    size_bytes: int
    duration_seconds: float


def preprocessed_path(audio_path: Path) -> Path:
    """Path of the 16 kHz mono copy of an audio file."""
    return audio_path.with_name(f"{audio_path.stem}_16k.mp3")


def get_audio_file_info(audio_path: Path, config: PipelineConfig) -> AudioFileInfo:
    """Read file size from the filesystem and duration from ffprobe."""
    if not audio_path.exists():
        raise TranscodeError("audio file not found", key=str(audio_path))
    try:
        result = run_command(
            ["ffprobe", "-v", "error", "-show_entries", "format=duration",
             "-of", "default=noprint_wrappers=1:nokey=1", str(audio_path)],
            f"probing {audio_path.name}",
            config.verbose,
        )
    except subprocess.CalledProcessError as e:
        raise TranscodeError("ffprobe failed", key=str(audio_path), cause=e) from e
    try:
        duration = float(result.stdout.strip())
    except ValueError as e:
        raise TranscodeError(f"unreadable duration {result.stdout.strip()!r}",
                             key=str(audio_path), cause=e) from e
    return AudioFileInfo(size_bytes=audio_path.stat().st_size, duration_seconds=duration)


def preprocess_audio(audio_path: Path, config: PipelineConfig) -> Path:
    """Resample to 16 kHz mono at 32 kbps, which is all speech-to-text needs."""
    output_path = preprocessed_path(audio_path)
    if output_path.exists():
        _print_reusing(output_path.name)
        return output_path

    print(f"  Preprocessing audio to {PREPROCESS_SAMPLE_RATE // 1000} kHz mono...")
    try:
        run_command(
            ["ffmpeg", "-y", "-i", str(audio_path),
             "-ar", str(PREPROCESS_SAMPLE_RATE), "-ac", "1", "-map", "0:a",
             "-b:a", PREPROCESS_BITRATE, str(output_path)],
            "preprocessing audio",
            config.verbose,
        )
    except subprocess.CalledProcessError as e:
        # ffmpeg may leave a truncated file behind, which would be reused next run
        if output_path.exists():
            output_path.unlink()
        raise TranscodeError("ffmpeg preprocessing failed", key=str(audio_path), cause=e) from e
    return output_path


def materialize_chunks(source_path: Path, chunks: list[AudioChunk],
                       config: PipelineConfig) -> list[AudioChunk]:
    """Cut each planned chunk out of the source with a stream copy.

    A single-chunk plan refers to the source itself and needs no cutting.
    Chunk files that already exist are kept as they are.
    """
    if len(chunks) <= 1:
        return chunks

    for chunk in chunks:
        if chunk.file_path.exists():
            _print_reusing(chunk.file_path.name)
            continue
        if config.verbose:
            print(f"  Creating chunk {chunk.chunk_index + 1}/{len(chunks)}: "
                  f"{format_duration(chunk.start_time)} - {format_duration(chunk.end_time)}")
        try:
            run_command(
                ["ffmpeg", "-y", "-i", str(source_path),
                 "-ss", f"{chunk.start_time:.3f}", "-t", f"{chunk.duration:.3f}",
                 "-c", "copy", str(chunk.file_path)],
                f"creating chunk {chunk.chunk_index}",
                config.verbose,
            )
        except subprocess.CalledProcessError as e:
            if chunk.file_path.exists():
                chunk.file_path.unlink()
            raise SegmentCreationError(
                f"ffmpeg failed to create chunk {chunk.chunk_index}",
                key=str(chunk.file_path), cause=e,
                chunk_index=chunk.chunk_index, stderr=e.stderr or "",
            ) from e
    return chunks


def split_audio(audio_path: Path, config: PipelineConfig) -> list[AudioChunk]:
    """Probe, plan, and materialize the chunks of an audio file."""
    info = get_audio_file_info(audio_path, config)
    chunks = plan_chunks(
        audio_path,
        info.size_bytes,
        info.duration_seconds,
        max_size_bytes=config.max_chunk_size_bytes,
        max_duration=config.max_chunk_duration_seconds,
        overlap=config.chunk_overlap_seconds,
    )
    if len(chunks) == 1:
        print(f"  Single chunk ({format_size(info.size_bytes)}, "
              f"{format_duration(info.duration_seconds)}), no split needed")
    else:
        print(f"  Splitting {format_size(info.size_bytes)} / "
              f"{format_duration(info.duration_seconds)} into {len(chunks)} chunks")
    return materialize_chunks(audio_path, chunks, config)
