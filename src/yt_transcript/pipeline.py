"""
Pipeline orchestration for one video.

Runs download -> preprocess -> split -> upload -> transcribe -> merge ->
persist. Every stage looks for its output first and reuses it, so a re-run
of a finished or half-finished video only does the work that is missing.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from yt_transcript import audio, records
from yt_transcript.chunking import AudioChunk
from yt_transcript.download import (
    VideoMetadata, download_audio, extract_video_id, fetch_video_metadata, youtube_url,
)
from yt_transcript.merge import MergedTranscript, merge_chunk_transcriptions
from yt_transcript.shared import (
    tprint as print,
    PipelineConfig, SchemaDecodeError, TranscriptionError,
    run_bounded, _print_reusing, _remove_files, format_duration,
)
from yt_transcript.storage import BucketStorage, chunk_object_key
from yt_transcript.transcription import (
    ChunkTranscription, TranscriptionClient, estimate_cost_cents,
    load_cached_transcription, save_cached_transcription, transcription_cache_path,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _unchanged(new, old, timestamp_field: str) -> bool:
    """True if two records differ at most in their timestamp field."""
    if old is None:
        return False
    return new.model_copy(update={timestamp_field: getattr(old, timestamp_field)}) == old


@dataclass
class PipelineResult:
    """What one pipeline run produced."""
    video_id: str
    skipped: bool = False
    metadata_path: Optional[Path] = None
    transcript_path: Optional[Path] = None
    chunk_count: int = 0
    word_count: int = 0
    estimated_cost_cents: float = 0.0
    removed_files: list = field(default_factory=list)


@dataclass
class _ChunkUpload:
    chunk: AudioChunk
    url: str


class TranscriptPipeline:
    """Turns a video URL into persisted metadata and transcript records.

    Collaborators are passed in so tests can substitute them; the clock
    supplies every timestamp written to a record.
    """

    def __init__(self, config: PipelineConfig, storage: BucketStorage,
                 transcriber: TranscriptionClient,
                 clock: Optional[Callable[[], datetime]] = None):
        self.config = config
        self.storage = storage
        self.transcriber = transcriber
        self.clock = clock or utc_now

    # ----- stages --------------------------------------------------------

    def _resolve(self, url_or_id: str) -> tuple[str, Optional[VideoMetadata],
                                                 Optional[records.PodcastMetadata]]:
        """Find the video to process: (url, fresh yt-dlp info, stored record).

        A bare id that already has a metadata record is served from that
        record and yt-dlp is not asked again; anything else is fetched.
        """
        candidate = url_or_id.strip()
        if extract_video_id(candidate) == candidate:
            if records.metadata_exists(candidate, self.config):
                stored = records.read_metadata(candidate, self.config)
                _print_reusing(records.metadata_path(candidate, self.config).name)
                return stored.youtube_url, None, stored
            candidate = youtube_url(candidate)
        return candidate, fetch_video_metadata(candidate, self.config), None

    def _download(self, url: str, video_id: str, title: str) -> Path:
        print()
        print(f"[download] {title}")
        return download_audio(url, video_id, self.config)

    def _preprocess(self, audio_path: Path) -> Path:
        print()
        print("[preprocess] Resampling audio...")
        return audio.preprocess_audio(audio_path, self.config)

    def _split(self, preprocessed: Path) -> list[AudioChunk]:
        print()
        print("[split] Planning chunks...")
        return audio.split_audio(preprocessed, self.config)

    def _upload(self, video_id: str, chunks: list[AudioChunk],
                pending: set[int]) -> dict[int, _ChunkUpload]:
        """Upload the chunks that still need transcribing."""
        todo = [c for c in chunks if c.chunk_index in pending]
        if not todo:
            return {}
        print()
        print(f"[upload] {len(todo)} chunk(s) to {self.storage.bucket}...")

        def upload_one(chunk: AudioChunk) -> _ChunkUpload:
            key = chunk_object_key(video_id, chunk.label)
            return _ChunkUpload(chunk, self.storage.upload_audio(chunk.file_path, key))

        uploads = run_bounded(upload_one, todo, self.config.chunk_concurrency)
        return {u.chunk.chunk_index: u for u in uploads}

    def _transcribe(self, video_id: str, chunks: list[AudioChunk]) -> list[ChunkTranscription]:
        print()
        print(f"[transcribe] {len(chunks)} chunk(s) with {self.config.transcription_model}...")
        model = self.config.transcription_model
        cached = {}
        for chunk in chunks:
            hit = load_cached_transcription(chunk.file_path, chunk.chunk_index, model)
            if hit is not None:
                cached[chunk.chunk_index] = hit

        pending = {c.chunk_index for c in chunks} - set(cached)
        uploads = self._upload(video_id, chunks, pending)

        def transcribe_one(upload: _ChunkUpload) -> ChunkTranscription:
            result = self.transcriber.transcribe_chunk(
                upload.url, upload.chunk.chunk_index, len(chunks),
                key=chunk_object_key(video_id, upload.chunk.label))
            save_cached_transcription(upload.chunk.file_path, model, result)
            return result

        fresh = run_bounded(transcribe_one, [uploads[i] for i in sorted(uploads)],
                            self.config.chunk_concurrency)
        for result in fresh:
            cached[result.chunk_index] = result
        return [cached[i] for i in sorted(cached)]

    def _merge(self, video_id: str, transcriptions: list[ChunkTranscription],
               chunk_count: int) -> MergedTranscript:
        print()
        print("[merge] Joining chunk transcripts...")
        missing = sorted(set(range(chunk_count)) - {t.chunk_index for t in transcriptions})
        if missing:
            raise TranscriptionError(
                f"missing transcriptions for chunks {missing}", key=video_id, stage="merge")
        merged = merge_chunk_transcriptions(transcriptions)
        print(f"  {merged.word_count:,} words")
        return merged

    def _previous_transcript(self, video_id: str) -> Optional[records.TranscriptRecord]:
        if not records.transcript_exists(video_id, self.config):
            return None
        try:
            return records.read_transcript(video_id, self.config)
        except SchemaDecodeError:
            return None  # Unreadable; overwritten by the new record

    def _persist(self, video_id: str, info: Optional[VideoMetadata],
                 stored: Optional[records.PodcastMetadata], merged: MergedTranscript,
                 original: Path, preprocessed: Path, chunk_count: int,
                 duration: float) -> tuple[Path, Path, float]:
        """Write the metadata and transcript records.

        A record whose content matches the one on disk apart from its
        timestamp is left untouched, so a re-run that changes nothing
        rewrites nothing.
        """
        print()
        print("[persist] Writing records...")
        now = self.clock()
        metadata_file = records.metadata_path(video_id, self.config)
        if info is not None:
            existing = stored
            if existing is None and records.metadata_exists(video_id, self.config):
                existing = records.read_metadata(video_id, self.config)
            metadata = records.PodcastMetadata.from_video(info, now, existing)
            if _unchanged(metadata, existing, "metadata_last_synced_at"):
                print(f"  Metadata unchanged: {metadata_file}")
            else:
                records.write_metadata(metadata, self.config)
                print(f"  Metadata: {metadata_file}")

        cost = estimate_cost_cents(duration, self.config.transcription_model)
        transcript = records.TranscriptRecord(
            video_id=video_id,
            created_at=records.isoformat(now),
            transcription_model=self.config.transcription_model,
            estimated_cost_cents=round(cost, 4),
            audio_metadata=records.AudioMetadata.build(
                original.stat().st_size, preprocessed.stat().st_size,
                duration, chunk_count),
            transcript=merged.text,
            raw_responses=merged.raw_responses,
        )
        transcript_file = records.transcript_path(video_id, self.config)
        if _unchanged(transcript, self._previous_transcript(video_id), "created_at"):
            print(f"  Transcript unchanged: {transcript_file}")
        else:
            records.write_transcript(transcript, self.config)
            print(f"  Transcript: {transcript_file}")
        return metadata_file, transcript_file, cost

    def _cleanup(self, original: Path, preprocessed: Path,
                 chunks: list[AudioChunk]) -> list[Path]:
        if self.config.keep_audio_cache:
            return []
        model = self.config.transcription_model
        paths = [original, preprocessed]
        for chunk in chunks:
            if chunk.file_path not in paths:
                paths.append(chunk.file_path)
            paths.append(transcription_cache_path(chunk.file_path, model))
        # Chunks and caches left behind by runs with a different chunk plan
        for stale in sorted(preprocessed.parent.glob(f"{preprocessed.stem}_n*_chunk*")):
            if stale not in paths:
                paths.append(stale)
        present = [p for p in paths if p.exists()]
        _remove_files(present, self.config.verbose)
        if present:
            print(f"  Removed {len(present)} cached audio file(s)")
        return present

    # ----- entry points --------------------------------------------------

    def process_video(self, url: str, skip_if_exists: bool = False) -> PipelineResult:
        """Run the full pipeline for one video URL or bare video id."""
        url, info, stored = self._resolve(url)
        video_id = info.id if info is not None else stored.youtube_video_id
        title = info.title if info is not None else stored.title
        if skip_if_exists and (stored is not None or records.metadata_exists(video_id, self.config)):
            print(f"  Skipping {video_id}: already processed")
            return PipelineResult(video_id=video_id, skipped=True)

        original = self._download(url, video_id, title)
        preprocessed = self._preprocess(original)
        chunks = self._split(preprocessed)
        transcriptions = self._transcribe(video_id, chunks)
        merged = self._merge(video_id, transcriptions, len(chunks))

        duration = chunks[-1].end_time
        metadata_file, transcript_file, cost = self._persist(
            video_id, info, stored, merged, original, preprocessed, len(chunks), duration)
        removed = self._cleanup(original, preprocessed, chunks)

        print(f"  Done: {video_id} ({format_duration(duration)}, "
              f"{len(chunks)} chunk(s), ~{cost:.2f} cents)")
        return PipelineResult(
            video_id=video_id,
            metadata_path=metadata_file,
            transcript_path=transcript_file,
            chunk_count=len(chunks),
            word_count=merged.word_count,
            estimated_cost_cents=cost,
            removed_files=removed,
        )

    def reprocess(self, video_id: str) -> PipelineResult:
        """Transcribe a tracked video again from its stored metadata record."""
        return self.process_video(video_id, skip_if_exists=False)

    def rebuild(self, video_id: str, force: bool = False) -> PipelineResult:
        """Produce a missing transcript for a video that has a metadata record."""
        if not force and records.transcript_exists(video_id, self.config):
            print(f"  Skipping {video_id}: transcript exists")
            return PipelineResult(video_id=video_id, skipped=True)
        return self.process_video(video_id, skip_if_exists=False)

    def update_metadata(self, video_id: str) -> PipelineResult:
        """Refresh a metadata record from yt-dlp; the transcript is untouched."""
        existing = records.read_metadata(video_id, self.config)
        info = fetch_video_metadata(existing.youtube_url, self.config)
        updated = records.PodcastMetadata.from_video(info, self.clock(), existing)
        path = records.write_metadata(updated, self.config)
        print(f"  Updated: {path.name}")
        return PipelineResult(video_id=video_id, metadata_path=path)
