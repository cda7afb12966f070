"""Shared test fixtures and utilities."""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from yt_transcript.shared import PipelineConfig

FIXED_NOW = datetime(2025, 3, 1, 12, 30, 0, tzinfo=timezone.utc)


def make_openai_response(text="hello", prompt_tokens=10, completion_tokens=5):
    """Build a mock OpenAI ChatCompletion response."""
    msg = MagicMock()
    msg.content = text
    choice = MagicMock()
    choice.message = msg
    usage = MagicMock()
    usage.prompt_tokens = prompt_tokens
    usage.completion_tokens = completion_tokens
    resp = MagicMock()
    resp.choices = [choice]
    resp.usage = usage
    return resp


def make_anthropic_response(text="hello", input_tokens=10, output_tokens=5):
    """Build a mock Anthropic Message response."""
    block = MagicMock()
    block.text = text
    usage = MagicMock()
    usage.input_tokens = input_tokens
    usage.output_tokens = output_tokens
    resp = MagicMock()
    resp.content = [block]
    resp.usage = usage
    return resp


def make_video_info(video_id="abc123def45", **overrides):
    """A yt-dlp --dump-json document."""
    info = {
        "id": video_id,
        "title": "Dario Amodei – Scaling, safety, and what comes next",
        "description": "A long conversation.",
        "upload_date": "20240115",
        "duration": 7200,
        "view_count": 1000,
        "like_count": 50,
        "comment_count": 7,
        "channel": "Dwarkesh Patel",
        "channel_id": "UC123",
        "channel_url": "https://www.youtube.com/@DwarkeshPatel",
        "channel_follower_count": 500000,
        "thumbnail": "https://i.ytimg.com/vi/abc/maxres.jpg",
        "categories": ["Science & Technology"],
        "tags": ["ai", "podcast"],
        "webpage_url": f"https://www.youtube.com/watch?v={video_id}",
        "availability": "public",
        "formats": [{"format_id": "140"}],
    }
    info.update(overrides)
    return info


def make_transcription_response(text="hello world", duration=30.0):
    """A Groq verbose_json transcription payload."""
    return {
        "task": "transcribe",
        "language": "English",
        "duration": duration,
        "text": text,
        "segments": [{
            "id": 0, "seek": 0, "start": 0.0, "end": duration, "text": text,
            "tokens": [1, 2, 3], "temperature": 0.0, "avg_logprob": -0.2,
            "compression_ratio": 1.4, "no_speech_prob": 0.01,
        }],
        "x_groq": {"id": "req_1"},
    }


def yt_dlp_stdout(info):
    return MagicMock(stdout=json.dumps(info), stderr="")


@pytest.fixture
def config(tmp_path):
    """A config whose every directory lives under tmp_path."""
    return PipelineConfig(
        s3_endpoint="https://s3.example.com",
        s3_bucket="test-bucket",
        groq_api_key="gsk-test",
        audio_cache_dir=tmp_path / "audio-cache",
        podcasts_metadata_dir=tmp_path / "podcasts",
        transcripts_dir=tmp_path / "transcripts",
        llm_generated_dir=tmp_path / "llm-generated",
        api_initial_backoff=0,
    )
