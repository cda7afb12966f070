"""
Shared types and utilities for the podcast transcript pipeline.

Contains PipelineConfig, the pipeline error hierarchy, and utility functions
used by pipeline.py, batch.py, guest.py, and all pipeline stage modules.
"""

import json
import os
import shutil
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence

import builtins


def tprint(*args, **kwargs):
    """Print with [HH:MM:SS] timestamp prefix.

    Skips the timestamp for carriage-return progress lines (end != newline)
    so that in-place progress updates remain clean.
    """
    if kwargs.get("end", "\n") != "\n":
        builtins.print(*args, flush=True, **kwargs)
        return
    stamp = time.strftime("[%H:%M:%S]")
    builtins.print(stamp, *args, flush=True, **kwargs)


print = tprint

SECTION_SEPARATOR = "=" * 60

# Transcription models and their price in cents per hour of audio
TRANSCRIPTION_MODELS = {
    "whisper-large-v3": 11.1,
    "whisper-large-v3-turbo": 4.0,
}
DEFAULT_TRANSCRIPTION_MODEL = "whisper-large-v3"
BYTES_PER_MB = 1024 * 1024


def _env_str(environ, name: str, default: Optional[str] = None) -> Optional[str]:
    value = environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _env_float(environ, name: str, default: Optional[float] = None) -> Optional[float]:
    value = _env_str(environ, name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def _env_int(environ, name: str, default: int) -> int:
    value = _env_str(environ, name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


def _env_bool(environ, name: str, default: bool) -> bool:
    value = _env_str(environ, name)
    if value is None:
        return default
    lowered = value.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


@dataclass
class PipelineConfig:
    """Configuration for the podcast transcript pipeline.

    Built once at process start (usually with from_env) and passed to every
    component that needs it.
    """
    # Object storage
    s3_endpoint: Optional[str] = None
    s3_bucket: str = "podcast-audio"
    s3_region: str = "us-east-1"
    s3_access_key: Optional[str] = field(default=None, repr=False)
    s3_secret_key: Optional[str] = field(default=None, repr=False)
    use_presigned_links: bool = True
    presigned_url_expiry_seconds: int = 3600
    storage_timeout: float = 60.0  # seconds per storage request
    # Local layout
    audio_cache_dir: Path = Path("./audio-cache")
    podcasts_metadata_dir: Path = Path("./data/podcasts")
    transcripts_dir: Path = Path("./data/transcripts")
    llm_generated_dir: Path = Path("./data/llm-generated")
    keep_audio_cache: bool = False  # Keep downloaded/preprocessed/chunk audio after success
    # Chunking (None = constraint disabled)
    max_chunk_size_mb: Optional[float] = None
    max_chunk_duration_seconds: Optional[float] = None
    chunk_overlap_seconds: float = 5.0
    # Transcription
    groq_api_key: Optional[str] = field(default=None, repr=False)
    transcription_model: str = DEFAULT_TRANSCRIPTION_MODEL
    transcription_language: str = "en"
    transcription_timeout: float = 600.0  # seconds per transcription request
    transcription_max_retries: int = 0  # Retries inside the Groq SDK; 0 = fail the run on first error
    # Concurrency
    chunk_concurrency: int = 3  # Parallel uploads/transcriptions per source
    batch_concurrency: int = 1  # Parallel sources in a batch
    # LLM guest posts
    anthropic_api_key: Optional[str] = field(default=None, repr=False)
    openai_api_key: Optional[str] = field(default=None, repr=False)
    openrouter_api_key: Optional[str] = field(default=None, repr=False)
    google_api_key: Optional[str] = field(default=None, repr=False)
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    groq_base_url: str = "https://api.groq.com/openai/v1"
    google_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    llm_model: str = "claude-sonnet-4-20250514"
    llm_max_tokens: int = 8192
    api_max_retries: int = 5
    api_initial_backoff: int = 5  # seconds
    api_timeout: float = 120.0  # seconds per API attempt
    verbose: bool = False

    def __post_init__(self):
        for name in ("audio_cache_dir", "podcasts_metadata_dir",
                     "transcripts_dir", "llm_generated_dir"):
            setattr(self, name, Path(getattr(self, name)))
        if self.transcription_model not in TRANSCRIPTION_MODELS:
            raise ValueError(
                f"Unknown transcription model: {self.transcription_model} "
                f"(valid: {', '.join(TRANSCRIPTION_MODELS)})")
        for name in ("max_chunk_size_mb", "max_chunk_duration_seconds"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
        if self.chunk_overlap_seconds < 0:
            raise ValueError("chunk_overlap_seconds must not be negative")
        if self.chunk_concurrency < 1 or self.batch_concurrency < 1:
            raise ValueError("concurrency limits must be at least 1")

    @property
    def max_chunk_size_bytes(self) -> Optional[int]:
        if self.max_chunk_size_mb is None:
            return None
        return int(self.max_chunk_size_mb * BYTES_PER_MB)

    @classmethod
    def from_env(cls, environ=None, **overrides) -> "PipelineConfig":
        """Build a config from environment variables, then apply overrides."""
        env = os.environ if environ is None else environ
        defaults = cls.__dataclass_fields__
        values = dict(
            s3_endpoint=_env_str(env, "S3_ENDPOINT"),
            s3_bucket=_env_str(env, "S3_BUCKET", defaults["s3_bucket"].default),
            s3_region=_env_str(env, "S3_REGION", defaults["s3_region"].default),
            s3_access_key=_env_str(env, "S3_ACCESS_KEY"),
            s3_secret_key=_env_str(env, "S3_SECRET_KEY"),
            use_presigned_links=_env_bool(env, "USE_PRESIGNED_LINKS", True),
            presigned_url_expiry_seconds=_env_int(env, "PRESIGNED_URL_EXPIRY_SECONDS", 3600),
            storage_timeout=_env_float(env, "STORAGE_TIMEOUT_SECONDS", 60.0),
            audio_cache_dir=Path(_env_str(env, "AUDIO_CACHE_DIR", "./audio-cache")),
            podcasts_metadata_dir=Path(_env_str(env, "PODCASTS_METADATA_DIR", "./data/podcasts")),
            transcripts_dir=Path(_env_str(env, "TRANSCRIPTS_DIR", "./data/transcripts")),
            llm_generated_dir=Path(_env_str(env, "LLM_GENERATED_DIR", "./data/llm-generated")),
            keep_audio_cache=_env_bool(env, "KEEP_AUDIO_CACHE", False),
            max_chunk_size_mb=_env_float(env, "MAX_CHUNK_SIZE_MB"),
            max_chunk_duration_seconds=_env_float(env, "MAX_CHUNK_DURATION_SECONDS"),
            chunk_overlap_seconds=_env_float(env, "CHUNK_OVERLAP_SECONDS", 5.0),
            groq_api_key=_env_str(env, "GROQ_API_KEY"),
            transcription_model=_env_str(env, "TRANSCRIPTION_MODEL", DEFAULT_TRANSCRIPTION_MODEL),
            transcription_language=_env_str(env, "TRANSCRIPTION_LANGUAGE", "en"),
            transcription_timeout=_env_float(env, "TRANSCRIPTION_TIMEOUT_SECONDS", 600.0),
            transcription_max_retries=_env_int(env, "TRANSCRIPTION_MAX_RETRIES", 0),
            chunk_concurrency=_env_int(env, "CHUNK_CONCURRENCY", 3),
            batch_concurrency=_env_int(env, "BATCH_CONCURRENCY", 1),
            anthropic_api_key=_env_str(env, "ANTHROPIC_API_KEY"),
            openai_api_key=_env_str(env, "OPENAI_API_KEY"),
            openrouter_api_key=_env_str(env, "OPENROUTER_API_KEY"),
            google_api_key=_env_str(env, "GOOGLE_API_KEY"),
            openrouter_base_url=_env_str(env, "OPENROUTER_BASE_URL",
                                         defaults["openrouter_base_url"].default),
            llm_model=_env_str(env, "LLM_MODEL", defaults["llm_model"].default),
        )
        values.update(overrides)
        return cls(**values)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class PipelineError(Exception):
    """A pipeline stage failed.

    Carries the stage name, the key identifying what was being processed
    (video id, chunk file, object key, record path), and the underlying cause.
    """
    stage = "pipeline"

    def __init__(self, message: str, key: Optional[str] = None,
                 cause: Optional[BaseException] = None, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.key = key
        self.cause = cause
        if stage is not None:
            self.stage = stage

    def __str__(self):
        text = f"[{self.stage}] {self.message}"
        if self.key:
            text += f" ({self.key})"
        if self.cause is not None:
            text += f": {self.cause}"
        return text


class DownloadError(PipelineError):
    stage = "download"


class TranscodeError(PipelineError):
    stage = "transcode"


class SegmentCreationError(TranscodeError):
    """ffmpeg failed to cut one planned chunk."""
    stage = "split"

    def __init__(self, message: str, key: Optional[str] = None,
                 cause: Optional[BaseException] = None,
                 chunk_index: Optional[int] = None, stderr: str = ""):
        super().__init__(message, key=key, cause=cause)
        self.chunk_index = chunk_index
        self.stderr = stderr


class ChunkPlanningError(PipelineError):
    stage = "plan"


class UploadError(PipelineError):
    stage = "upload"


class TranscriptionError(PipelineError):
    stage = "transcribe"


class SchemaDecodeError(PipelineError):
    stage = "decode"


class PersistenceError(PipelineError):
    stage = "persist"


class GenerationError(PipelineError):
    stage = "generate"


# ---------------------------------------------------------------------------
# Pipeline utilities (used across download, audio, pipeline, guest)
# ---------------------------------------------------------------------------

def run_command(cmd: list[str], description: str, verbose: bool = False) -> subprocess.CompletedProcess:
    """Run a shell command with error handling."""
    if verbose:
        print(f"  Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        return result
    except subprocess.CalledProcessError as e:
        print(f"  Error: {description}")
        print(f"  {e.stderr}")
        raise


def _save_json(path: Path, data) -> None:
    """Write data to a JSON file with standard formatting."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(data, f, indent=2)
        f.write("\n")


def _load_json(path: Path):
    with open(path) as f:
        return json.load(f)


def _print_reusing(label: str) -> None:
    """Print a 'Reusing' message for a cached artifact."""
    print(f"  Reusing: {label}")


def _remove_files(paths, verbose: bool = False) -> int:
    """Delete local files that exist, returning how many were removed."""
    removed = 0
    for path in paths:
        if path is not None and path.exists():
            path.unlink()
            removed += 1
            if verbose:
                print(f"  Removed: {path.name}")
    return removed


def format_duration(seconds: float) -> str:
    """Format seconds as H:MM:SS (or M:SS under an hour)."""
    seconds = int(round(seconds))
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_size(num_bytes: int) -> str:
    return f"{num_bytes / BYTES_PER_MB:.1f} MB"


def run_bounded(fn: Callable, items: Sequence, max_workers: int) -> list:
    """Apply fn to every item with at most max_workers calls in flight.

    Each result is tagged with its item's position, so the returned list is
    in input order regardless of completion order. The first failure cancels
    work that has not started yet and is re-raised; calls already running
    are allowed to finish and their results are discarded.
    """
    if not items:
        return []
    results = [None] * len(items)
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(items)))) as executor:
        futures = {executor.submit(fn, item): i for i, item in enumerate(items)}
        try:
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        except BaseException:
            for future in futures:
                future.cancel()
            raise
    return results


def check_dependencies() -> dict[str, bool]:
    """Check for required external tools."""
    deps = {}
    for tool in ["yt-dlp", "ffmpeg", "ffprobe"]:
        deps[tool] = shutil.which(tool) is not None
    return deps
