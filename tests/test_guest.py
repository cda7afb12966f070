"""Tests for guest.py — provider classification, LLM calls, and guest posts."""

from unittest.mock import MagicMock, patch

import anthropic
import httpx
import openai
import pytest

from conftest import FIXED_NOW, make_anthropic_response, make_openai_response, make_video_info

from yt_transcript import records
from yt_transcript.download import VideoMetadata
from yt_transcript.guest import (
    AnthropicModel, Generation, OpenAICompatibleModel, Provider,
    build_user_prompt, classify_model, estimate_generation_cost_cents,
    extract_guest_from_title, generate_guest_post, guest_post_path,
    language_model_for, list_guest_posts,
)
from yt_transcript.shared import GenerationError, PersistenceError

VIDEO_ID = "abc123def45"


def _seed_records(config, video_id=VIDEO_ID, with_transcript=True):
    info = VideoMetadata.model_validate(make_video_info(video_id))
    records.write_metadata(records.PodcastMetadata.from_video(info, FIXED_NOW), config)
    if with_transcript:
        records.write_transcript(records.TranscriptRecord(
            video_id=video_id,
            created_at=records.isoformat(FIXED_NOW),
            transcription_model="whisper-large-v3",
            estimated_cost_cents=1.0,
            audio_metadata=records.AudioMetadata.build(10, 5, 60.0, 1),
            transcript="one two three four five",
        ), config)


# ---------------------------------------------------------------------------
# classify_model
# ---------------------------------------------------------------------------

class TestClassifyModel:
    @pytest.mark.parametrize("model_id, provider, model", [
        ("claude-sonnet-4-20250514", Provider.ANTHROPIC, "claude-sonnet-4-20250514"),
        ("anthropic/claude-opus-4", Provider.ANTHROPIC, "claude-opus-4"),
        ("gpt-4.1", Provider.OPENAI, "gpt-4.1"),
        ("openai/gpt-4.1", Provider.OPENROUTER, "openai/gpt-4.1"),
        ("zhipu/glm-4-plus", Provider.OPENROUTER, "zhipu/glm-4-plus"),
        ("groq/llama-3.3-70b-versatile", Provider.GROQ, "llama-3.3-70b-versatile"),
        ("gemini-2.5-pro", Provider.GOOGLE, "gemini-2.5-pro"),
        ("google/gemini-2.5-flash", Provider.GOOGLE, "gemini-2.5-flash"),
    ])
    def test_routes(self, model_id, provider, model):
        spec = classify_model(model_id)
        assert spec.provider is provider
        assert spec.model == model
        assert spec.model_id == model_id

    def test_empty(self):
        with pytest.raises(ValueError):
            classify_model("  ")

    def test_language_model_for(self, config):
        assert isinstance(language_model_for(classify_model("claude-x"), config, MagicMock()),
                          AnthropicModel)
        for model_id in ("gpt-4o", "a/b", "groq/x", "gemini-x"):
            assert isinstance(language_model_for(classify_model(model_id), config, MagicMock()),
                              OpenAICompatibleModel)


# ---------------------------------------------------------------------------
# Language models
# ---------------------------------------------------------------------------

class TestAnthropicModel:
    def test_generate(self, config):
        client = MagicMock()
        client.messages.create.return_value = make_anthropic_response("# Post", 100, 20)
        gen = AnthropicModel(classify_model("anthropic/claude-sonnet-4"), config, client).generate(
            "system", "prompt")
        assert gen == Generation("# Post", 100, 20)
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-sonnet-4"
        assert kwargs["system"] == "system"
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]

    @patch("yt_transcript.guest.time.sleep")
    def test_retries_overloaded(self, mock_sleep, config):
        client = MagicMock()
        overloaded = anthropic.APIStatusError(
            "overloaded", response=MagicMock(status_code=529, headers={}), body=None)
        client.messages.create.side_effect = [overloaded, make_anthropic_response("ok")]
        gen = AnthropicModel(classify_model("claude-x"), config, client).generate("s", "p")
        assert gen.text == "ok"
        assert mock_sleep.call_count == 1

    @patch("yt_transcript.guest.time.sleep")
    def test_non_retryable_raises(self, mock_sleep, config):
        client = MagicMock()
        client.messages.create.side_effect = anthropic.APIStatusError(
            "bad request", response=MagicMock(status_code=400, headers={}), body=None)
        with pytest.raises(anthropic.APIStatusError):
            AnthropicModel(classify_model("claude-x"), config, client).generate("s", "p")
        mock_sleep.assert_not_called()

    def test_missing_key(self, config):
        with pytest.raises(GenerationError, match="ANTHROPIC_API_KEY"):
            AnthropicModel(classify_model("claude-x"), config)


class TestOpenAICompatibleModel:
    def test_generate(self, config):
        client = MagicMock()
        client.chat.completions.create.return_value = make_openai_response("text", 7, 3)
        gen = OpenAICompatibleModel(classify_model("gpt-4o"), config, client).generate("s", "p")
        assert gen == Generation("text", 7, 3)
        messages = client.chat.completions.create.call_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "s"}

    @patch("yt_transcript.guest.time.sleep")
    def test_timeout_retried_then_raised(self, mock_sleep, config):
        config.api_max_retries = 3
        client = MagicMock()
        client.chat.completions.create.side_effect = openai.APITimeoutError(
            request=httpx.Request("POST", "https://api.openai.com"))
        with pytest.raises(openai.APITimeoutError):
            OpenAICompatibleModel(classify_model("gpt-4o"), config, client).generate("s", "p")
        assert client.chat.completions.create.call_count == 3
        assert mock_sleep.call_count == 2

    @pytest.mark.parametrize("model_id, key_field, base_url", [
        ("vendor/model", "openrouter_api_key", "https://openrouter.ai/api/v1"),
        ("groq/llama", "groq_api_key", "https://api.groq.com/openai/v1"),
        ("gemini-2.5-pro", "google_api_key", "https://generativelanguage.googleapis.com/v1beta/openai/"),
    ])
    def test_client_base_urls(self, config, model_id, key_field, base_url):
        setattr(config, key_field, "key-123")
        model = OpenAICompatibleModel(classify_model(model_id), config)
        assert str(model.client.base_url).rstrip("/") == base_url.rstrip("/")
        assert model.client.api_key == "key-123"

    def test_missing_key(self, config):
        with pytest.raises(GenerationError, match="OPENROUTER_API_KEY"):
            OpenAICompatibleModel(classify_model("vendor/model"), config)


# ---------------------------------------------------------------------------
# Prompt / cost
# ---------------------------------------------------------------------------

class TestPrompt:
    @pytest.mark.parametrize("title, guest", [
        ("Dario Amodei – Scaling and safety", "Dario Amodei"),
        ("Ilya Sutskever - What comes next", "Ilya Sutskever"),
        ("A title without a guest", None),
    ])
    def test_extract_guest(self, title, guest):
        assert extract_guest_from_title(title) == guest

    def test_user_prompt(self):
        prompt = build_user_prompt("Dario Amodei – Scaling", None, "the transcript")
        assert "**Guest:** Dario Amodei" in prompt
        assert "**Description:** \n" in prompt
        assert "## Full Transcript\n\nthe transcript\n" in prompt


class TestCost:
    def test_sonnet(self):
        assert estimate_generation_cost_cents("claude-sonnet-4-20250514", 1000, 1000) == pytest.approx(1.8)

    def test_provider_prefix_ignored(self):
        assert estimate_generation_cost_cents("openai/gpt-4o", 1000, 0) == pytest.approx(0.25)


# ---------------------------------------------------------------------------
# generate_guest_post / list_guest_posts
# ---------------------------------------------------------------------------

class TestGenerateGuestPost:
    def test_writes_markdown_with_frontmatter(self, config):
        _seed_records(config)
        model = MagicMock()
        model.generate.return_value = Generation("# Title\n\nBody.\n", 1000, 500)
        result = generate_guest_post(VIDEO_ID, "openai/gpt-4.1", config, model=model,
                                     clock=lambda: FIXED_NOW)

        assert result.path == config.llm_generated_dir / f"{VIDEO_ID}--openai%2Fgpt-4.1.md"
        text = result.path.read_text()
        assert text.startswith("---\n")
        assert 'schemaVersion: "0.0.1"' in text
        assert f'youtubeVideoId: "{VIDEO_ID}"' in text
        assert 'llmModel: "openai/gpt-4.1"' in text
        assert 'createdAt: "2025-03-01T12:30:00.000Z"' in text
        assert "totalTokens: 1500" in text
        assert "systemPromptRevision: 1" in text
        assert "transcriptWordCount: 5" in text
        assert text.endswith("---\n\n# Title\n\nBody.\n")
        system, prompt = model.generate.call_args[0]
        assert "third guest" in system
        assert "one two three four five" in prompt

    def test_skips_existing(self, config):
        path = guest_post_path(VIDEO_ID, "gpt-4o", config)
        path.parent.mkdir(parents=True)
        path.write_text("existing")
        model = MagicMock()
        result = generate_guest_post(VIDEO_ID, "gpt-4o", config, model=model)
        assert result.skipped
        model.generate.assert_not_called()

    def test_missing_transcript(self, config):
        _seed_records(config, with_transcript=False)
        with pytest.raises(PersistenceError):
            generate_guest_post(VIDEO_ID, "gpt-4o", config, model=MagicMock())

    def test_llm_failure_wrapped(self, config):
        _seed_records(config)
        model = MagicMock()
        model.generate.side_effect = RuntimeError("socket closed")
        with pytest.raises(GenerationError) as exc:
            generate_guest_post(VIDEO_ID, "gpt-4o", config, model=model)
        assert exc.value.stage == "generate"

    def test_empty_response(self, config):
        _seed_records(config)
        model = MagicMock()
        model.generate.return_value = Generation("  ")
        with pytest.raises(GenerationError, match="empty"):
            generate_guest_post(VIDEO_ID, "gpt-4o", config, model=model)
        assert not guest_post_path(VIDEO_ID, "gpt-4o", config).exists()


class TestListGuestPosts:
    def test_rows(self, config):
        _seed_records(config, "aaaaaaaaaaa")
        _seed_records(config, "bbbbbbbbbbb")
        path = guest_post_path("bbbbbbbbbbb", "gpt-4o", config)
        path.parent.mkdir(parents=True)
        path.write_text("x")
        rows = list_guest_posts(config, "gpt-4o")
        assert [(r[0], r[2]) for r in rows] == [("aaaaaaaaaaa", False), ("bbbbbbbbbbb", True)]
        assert rows[0][1].startswith("Dario Amodei")
