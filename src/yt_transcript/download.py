"""
Download module for the podcast transcript pipeline.

Fetches video metadata and audio from video URLs using yt-dlp.
"""

import json
import re
import subprocess
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from yt_transcript.shared import (
    tprint as print,
    PipelineConfig, DownloadError, SchemaDecodeError,
    run_command, _print_reusing,
)

_VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")
_URL_ID_PATTERNS = [
    re.compile(r"[?&]v=([A-Za-z0-9_-]{11})"),
    re.compile(r"youtu\.be/([A-Za-z0-9_-]{11})"),
    re.compile(r"/(?:shorts|embed|live)/([A-Za-z0-9_-]{11})"),
]


class VideoMetadata(BaseModel):
    """The subset of yt-dlp's --dump-json document the pipeline uses."""
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    description: str = ""
    upload_date: Optional[str] = None
    duration: Optional[float] = None
    view_count: Optional[int] = None
    like_count: Optional[int] = None
    comment_count: Optional[int] = None
    channel: Optional[str] = None
    uploader: Optional[str] = None
    channel_id: Optional[str] = None
    channel_url: Optional[str] = None
    channel_follower_count: Optional[int] = None
    thumbnail: Optional[str] = None
    categories: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    webpage_url: Optional[str] = None
    availability: Optional[str] = None


def youtube_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def extract_video_id(url_or_id: str) -> Optional[str]:
    """Return the 11-character video id from a watch URL, short URL, or bare id."""
    candidate = url_or_id.strip()
    if _VIDEO_ID_PATTERN.match(candidate):
        return candidate
    for pattern in _URL_ID_PATTERNS:
        match = pattern.search(candidate)
        if match:
            return match.group(1)
    return None


def fetch_video_metadata(url: str, config: PipelineConfig) -> VideoMetadata:
    """Fetch metadata with yt-dlp without downloading any media."""
    print("  Fetching video info...")
    try:
        result = run_command(
            ["yt-dlp", "-j", "--skip-download", url],
            "fetching video info",
            config.verbose,
        )
    except subprocess.CalledProcessError as e:
        raise DownloadError("yt-dlp could not fetch video info", key=url, cause=e) from e
    try:
        return VideoMetadata.model_validate(json.loads(result.stdout))
    except (json.JSONDecodeError, ValidationError) as e:
        raise SchemaDecodeError("unexpected yt-dlp metadata", key=url, cause=e) from e


def audio_cache_path(video_id: str, config: PipelineConfig) -> Path:
    return config.audio_cache_dir / f"{video_id}.mp3"


def download_audio(url: str, video_id: str, config: PipelineConfig) -> Path:
    """Download the audio track as mp3 into the audio cache."""
    audio_path = audio_cache_path(video_id, config)
    if audio_path.exists():
        _print_reusing(audio_path.name)
        return audio_path

    config.audio_cache_dir.mkdir(parents=True, exist_ok=True)
    print("  Downloading audio...")
    try:
        run_command(
            ["yt-dlp", "-x", "--audio-format", "mp3",
             "-o", str(audio_path), url],
            "downloading audio",
            config.verbose,
        )
    except subprocess.CalledProcessError as e:
        raise DownloadError("yt-dlp audio download failed", key=url, cause=e) from e
    if not audio_path.exists():
        raise DownloadError(f"yt-dlp did not produce {audio_path.name}", key=url)
    return audio_path
