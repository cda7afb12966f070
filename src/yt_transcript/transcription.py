"""
Transcription module for the podcast transcript pipeline.

Sends chunk URLs to Groq's hosted Whisper and decodes the verbose_json
responses. Raw responses are cached beside the chunk files so a re-run never
pays for the same chunk twice.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import groq
from groq import Groq
from pydantic import BaseModel, ConfigDict, ValidationError

from yt_transcript.shared import (
    tprint as print,
    PipelineConfig, TranscriptionError, SchemaDecodeError, TRANSCRIPTION_MODELS,
    _save_json, _load_json, _print_reusing,
)

RESPONSE_FORMAT = "verbose_json"


class WhisperSegment(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    seek: Optional[int] = None
    start: float
    end: float
    text: str
    tokens: Optional[list[int]] = None
    temperature: Optional[float] = None
    avg_logprob: Optional[float] = None
    compression_ratio: Optional[float] = None
    no_speech_prob: Optional[float] = None


class TranscriptionResponse(BaseModel):
    """A verbose_json transcription. Unknown fields are kept for the audit trail."""
    model_config = ConfigDict(extra="allow")

    text: str
    task: Optional[str] = None
    language: Optional[str] = None
    duration: Optional[float] = None
    segments: list[WhisperSegment] = []


@dataclass(frozen=True)
class ChunkTranscription:
    chunk_index: int
    text: str
    raw_response: dict = field(default_factory=dict, compare=False)


def decode_response(payload, key: Optional[str] = None) -> TranscriptionResponse:
    """Validate a raw response (SDK object, dict, or JSON text)."""
    if hasattr(payload, "model_dump"):
        payload = payload.model_dump()
    try:
        if isinstance(payload, (str, bytes)):
            return TranscriptionResponse.model_validate_json(payload)
        return TranscriptionResponse.model_validate(payload)
    except ValidationError as e:
        raise SchemaDecodeError("unexpected transcription response", key=key, cause=e) from e


def estimate_cost_cents(duration_seconds: float, model: str) -> float:
    """Transcription cost for audio of the given length, in cents."""
    if model not in TRANSCRIPTION_MODELS:
        raise ValueError(f"Unknown transcription model: {model}")
    return duration_seconds / 3600 * TRANSCRIPTION_MODELS[model]


def transcription_cache_path(chunk_path: Path, model: str) -> Path:
    return chunk_path.with_name(f"{chunk_path.stem}.{model}.json")


def load_cached_transcription(chunk_path: Path, chunk_index: int,
                              model: str) -> Optional[ChunkTranscription]:
    """Return the cached response for a chunk, or None if there is none."""
    cache_path = transcription_cache_path(chunk_path, model)
    if not cache_path.exists():
        return None
    try:
        raw = _load_json(cache_path)
    except json.JSONDecodeError:
        # Interrupted write; transcribe again
        return None
    response = decode_response(raw, key=str(cache_path))
    _print_reusing(cache_path.name)
    return ChunkTranscription(chunk_index, response.text, raw)


def save_cached_transcription(chunk_path: Path, model: str,
                              transcription: ChunkTranscription) -> Path:
    cache_path = transcription_cache_path(chunk_path, model)
    _save_json(cache_path, transcription.raw_response)
    return cache_path


class TranscriptionClient:
    """Speech-to-text client for audio that is reachable by URL."""

    def __init__(self, config: PipelineConfig, client=None):
        self.config = config
        self.model = config.transcription_model
        self._client = client

    @property
    def client(self):
        # Created on first use so commands that never transcribe need no API key
        if self._client is None:
            if not self.config.groq_api_key:
                raise TranscriptionError("GROQ_API_KEY is not set")
            self._client = Groq(
                api_key=self.config.groq_api_key,
                timeout=self.config.transcription_timeout,
                max_retries=self.config.transcription_max_retries,
            )
        return self._client

    def transcribe(self, url: str, language: Optional[str] = None,
                   key: Optional[str] = None) -> tuple[TranscriptionResponse, dict]:
        """Transcribe the audio at url, returning the decoded and raw responses."""
        try:
            response = self.client.audio.transcriptions.create(
                url=url,
                model=self.model,
                language=language or self.config.transcription_language,
                response_format=RESPONSE_FORMAT,
            )
        except groq.APIError as e:
            raise TranscriptionError("transcription request failed", key=key or url, cause=e) from e
        raw = response.model_dump() if hasattr(response, "model_dump") else response
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                raise SchemaDecodeError("transcription response is not JSON",
                                        key=key or url, cause=e) from e
        return decode_response(raw, key=key or url), raw

    def transcribe_chunk(self, url: str, chunk_index: int, total_chunks: int,
                         key: Optional[str] = None) -> ChunkTranscription:
        print(f"  Transcribing chunk {chunk_index + 1}/{total_chunks}...")
        response, raw = self.transcribe(url, key=key)
        if self.config.verbose:
            words = len(response.text.split())
            print(f"    Chunk {chunk_index + 1}: {words} words, "
                  f"{len(response.segments)} segments")
        return ChunkTranscription(chunk_index, response.text, raw)
