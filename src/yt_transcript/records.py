"""
Persisted records: one podcast metadata file and one transcript file per video.

Both are pretty-printed JSON with camelCase keys and a schemaVersion literal,
and both are rewritten in full whenever they change.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from yt_transcript.download import VideoMetadata, youtube_url
from yt_transcript.shared import (
    PipelineConfig, PersistenceError, SchemaDecodeError,
    _save_json, _load_json, format_duration,
)

METADATA_SCHEMA_VERSION = "0.0.1"
TRANSCRIPT_SCHEMA_VERSION = "1.0.0"


def isoformat(moment: datetime) -> str:
    """UTC ISO-8601 timestamp with millisecond precision and a Z suffix."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def upload_date_to_iso(upload_date: Optional[str]) -> Optional[str]:
    """Convert yt-dlp's YYYYMMDD upload date to an ISO timestamp."""
    if not upload_date or len(upload_date) != 8 or not upload_date.isdigit():
        return None
    try:
        moment = datetime.strptime(upload_date, "%Y%m%d").replace(tzinfo=timezone.utc)
    except ValueError:
        return None
    return isoformat(moment)


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class PodcastMetadata(_Record):
    schema_version: Literal["0.0.1"] = METADATA_SCHEMA_VERSION
    youtube_video_id: str
    metadata_created_at: str
    metadata_last_synced_at: str
    title: str
    description: Optional[str] = None
    uploaded_at: Optional[str] = None
    duration_seconds: float
    view_count: Optional[int] = None
    like_count: Optional[int] = None
    comment_count: Optional[int] = None
    channel: str = ""
    channel_id: str = ""
    channel_url: str = ""
    channel_follower_count: Optional[int] = None
    thumbnail: Optional[str] = None
    categories: list[str] = []
    tags: list[str] = []
    availability: Optional[str] = None

    @property
    def youtube_url(self) -> str:
        return youtube_url(self.youtube_video_id)

    @classmethod
    def from_video(cls, info: VideoMetadata, now: datetime,
                   existing: Optional["PodcastMetadata"] = None) -> "PodcastMetadata":
        """Build a record from yt-dlp metadata.

        When refreshing an existing record its creation time is kept, and so
        is its upload date if yt-dlp no longer reports one.
        """
        synced_at = isoformat(now)
        uploaded_at = upload_date_to_iso(info.upload_date)
        if existing is not None and uploaded_at is None:
            uploaded_at = existing.uploaded_at
        return cls(
            youtube_video_id=info.id,
            metadata_created_at=existing.metadata_created_at if existing else synced_at,
            metadata_last_synced_at=synced_at,
            title=info.title,
            description=info.description or None,
            uploaded_at=uploaded_at,
            duration_seconds=info.duration or 0.0,
            view_count=info.view_count,
            like_count=info.like_count,
            comment_count=info.comment_count,
            channel=info.channel or info.uploader or "",
            channel_id=info.channel_id or "",
            channel_url=info.channel_url or "",
            channel_follower_count=info.channel_follower_count,
            thumbnail=info.thumbnail,
            categories=list(info.categories or []),
            tags=list(info.tags or []),
            availability=info.availability,
        )


class AudioMetadata(_Record):
    original_file_size_bytes: int
    preprocessed_file_size_bytes: int
    duration_seconds: float
    formatted_duration: str
    chunk_count: int

    @classmethod
    def build(cls, original_size: int, preprocessed_size: int,
              duration_seconds: float, chunk_count: int) -> "AudioMetadata":
        return cls(
            original_file_size_bytes=original_size,
            preprocessed_file_size_bytes=preprocessed_size,
            duration_seconds=duration_seconds,
            formatted_duration=format_duration(duration_seconds),
            chunk_count=chunk_count,
        )


class TranscriptRecord(_Record):
    schema_version: Literal["1.0.0"] = TRANSCRIPT_SCHEMA_VERSION
    video_id: str
    created_at: str
    transcription_model: str
    estimated_cost_cents: float
    audio_metadata: AudioMetadata
    transcript: str
    raw_responses: list = []


# ---------------------------------------------------------------------------
# Record files
# ---------------------------------------------------------------------------

def metadata_path(video_id: str, config: PipelineConfig) -> Path:
    return config.podcasts_metadata_dir / f"{video_id}.json"


def transcript_path(video_id: str, config: PipelineConfig) -> Path:
    return config.transcripts_dir / f"{video_id}.json"


def _read_record(path: Path, model):
    try:
        data = _load_json(path)
    except FileNotFoundError as e:
        raise PersistenceError("record not found", key=str(path), cause=e) from e
    except (OSError, json.JSONDecodeError) as e:
        raise PersistenceError("could not read record", key=str(path), cause=e) from e
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise SchemaDecodeError(f"invalid {model.__name__}", key=str(path), cause=e) from e


def _write_record(path: Path, record: _Record) -> Path:
    try:
        _save_json(path, record.to_json_dict())
    except OSError as e:
        raise PersistenceError("could not write record", key=str(path), cause=e) from e
    return path


def read_metadata(video_id: str, config: PipelineConfig) -> PodcastMetadata:
    return _read_record(metadata_path(video_id, config), PodcastMetadata)


def write_metadata(record: PodcastMetadata, config: PipelineConfig) -> Path:
    return _write_record(metadata_path(record.youtube_video_id, config), record)


def read_transcript(video_id: str, config: PipelineConfig) -> TranscriptRecord:
    return _read_record(transcript_path(video_id, config), TranscriptRecord)


def write_transcript(record: TranscriptRecord, config: PipelineConfig) -> Path:
    return _write_record(transcript_path(record.video_id, config), record)


def metadata_exists(video_id: str, config: PipelineConfig) -> bool:
    return metadata_path(video_id, config).exists()


def transcript_exists(video_id: str, config: PipelineConfig) -> bool:
    return transcript_path(video_id, config).exists()


def list_video_ids(config: PipelineConfig) -> list[str]:
    """Video ids with a metadata record, sorted."""
    directory = config.podcasts_metadata_dir
    if not directory.is_dir():
        return []
    return sorted(p.stem for p in directory.glob("*.json"))


def validate_directory(directory: Path, model) -> tuple[list[Path], list[tuple[Path, str]]]:
    """Check every JSON file in a directory against a record model.

    Returns (valid paths, [(invalid path, reason)]).
    """
    valid, invalid = [], []
    if not directory.is_dir():
        return valid, invalid
    for path in sorted(directory.glob("*.json")):
        try:
            _read_record(path, model)
        except (PersistenceError, SchemaDecodeError) as e:
            reason = str(e.cause) if e.cause is not None else e.message
            invalid.append((path, reason.splitlines()[0] if reason else e.message))
        else:
            valid.append(path)
    return valid, invalid
