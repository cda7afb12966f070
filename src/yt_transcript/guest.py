"""
"Third guest" posts: an LLM reads an episode transcript and writes a blog
post that extends the conversation.

A model id names its provider: `claude-*` and `anthropic/*` go to Anthropic,
`groq/*` to Groq, `gemini-*` and `google/*` to Google, other `vendor/model`
ids to OpenRouter, and bare ids to OpenAI. The provider is resolved once and
every provider is used through the same `generate` call.
"""

import enum
import json
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import quote

from yt_transcript import records
from yt_transcript.shared import (
    tprint as print,
    PipelineConfig, GenerationError, PipelineError,
)

GUEST_SCHEMA_VERSION = "0.0.1"

SYSTEM_PROMPTS_BY_REVISION = {
    1: """You are an AI researcher who has just finished listening to a conversation on the Dwarkesh Patel podcast. You've been invited to join as a "third guest" to expand the conversation into new territory.

Your role is to:
1. Identify the most fascinating threads from the conversation that deserve deeper exploration
2. Propose concrete research directions or experiments that could advance the ideas discussed
3. Challenge assumptions made by the guests with thoughtful counterarguments
4. Connect ideas from the conversation to recent developments in AI/ML that the guests may have overlooked
5. Speculate on implications that weren't fully explored

Write in a conversational but intellectually rigorous style. Be specific and technical where appropriate. Format your response as a blog post with clear sections. Include your own perspective and don't be afraid to disagree with the guests.

Output your response in markdown format with:
- A compelling title
- An introduction summarizing what you found most interesting
- 3-5 main sections exploring different threads
- A conclusion with your key takeaways
""",
}
LATEST_SYSTEM_PROMPT_REVISION = max(SYSTEM_PROMPTS_BY_REVISION)

# API pricing per 1K tokens, keyed by model family prefix
MODEL_PRICING = {
    "claude-opus-4":   {"input": 0.015, "output": 0.075},
    "claude-sonnet-4": {"input": 0.003, "output": 0.015},
    "claude-sonnet-3": {"input": 0.003, "output": 0.015},
    "claude-haiku-4":  {"input": 0.001, "output": 0.005},
    "claude-haiku-3":  {"input": 0.0008, "output": 0.004},
    "gpt-4o-mini":     {"input": 0.00015, "output": 0.0006},
    "gpt-4o":          {"input": 0.0025, "output": 0.01},
    "gpt-4.1-mini":    {"input": 0.0004, "output": 0.0016},
    "gpt-4.1":         {"input": 0.002, "output": 0.008},
    "gemini-2.5-flash": {"input": 0.0003, "output": 0.0025},
    "gemini-2.5-pro":  {"input": 0.00125, "output": 0.01},
}
DEFAULT_PRICING = MODEL_PRICING["claude-sonnet-4"]  # fallback


class Provider(enum.Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    OPENROUTER = "openrouter"
    GROQ = "groq"
    GOOGLE = "google"


@dataclass(frozen=True)
class ModelSpec:
    provider: Provider
    model: str  # Name sent to the provider's API
    model_id: str  # Name as the user wrote it; used in file names


def classify_model(model_id: str) -> ModelSpec:
    """Resolve which provider serves a model id."""
    model_id = model_id.strip()
    if not model_id:
        raise ValueError("model id must not be empty")
    if model_id.startswith("anthropic/"):
        return ModelSpec(Provider.ANTHROPIC, model_id[len("anthropic/"):], model_id)
    if model_id.startswith("claude-"):
        return ModelSpec(Provider.ANTHROPIC, model_id, model_id)
    if model_id.startswith("groq/"):
        return ModelSpec(Provider.GROQ, model_id[len("groq/"):], model_id)
    if model_id.startswith("google/"):
        return ModelSpec(Provider.GOOGLE, model_id[len("google/"):], model_id)
    if model_id.startswith("gemini-"):
        return ModelSpec(Provider.GOOGLE, model_id, model_id)
    if "/" in model_id:
        return ModelSpec(Provider.OPENROUTER, model_id, model_id)
    return ModelSpec(Provider.OPENAI, model_id, model_id)


def _get_model_pricing(model_name: str) -> dict:
    """Return {input, output} cost per 1K tokens for the given model name."""
    name = model_name.split("/")[-1]
    for prefix, pricing in MODEL_PRICING.items():
        if name.startswith(prefix):
            return pricing
    return DEFAULT_PRICING


def estimate_generation_cost_cents(model_name: str, input_tokens: int, output_tokens: int) -> float:
    pricing = _get_model_pricing(model_name)
    dollars = input_tokens / 1000 * pricing["input"] + output_tokens / 1000 * pricing["output"]
    return round(dollars * 100, 4)


# ---------------------------------------------------------------------------
# Language models
# ---------------------------------------------------------------------------

@dataclass
class Generation:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


def _retry_with_backoff(call_fn, config: PipelineConfig, timeout_exc, status_exc,
                        retryable_codes, label: str):
    """Call with exponential backoff on timeouts and retryable status codes."""
    delay = config.api_initial_backoff
    for attempt in range(1, config.api_max_retries + 1):
        try:
            return call_fn()
        except timeout_exc:
            if attempt < config.api_max_retries:
                print(f"    {label} timeout, retrying in {delay}s (attempt {attempt}/{config.api_max_retries})...")
                time.sleep(delay)
                delay *= 2
            else:
                raise
        except status_exc as e:
            if e.status_code in retryable_codes and attempt < config.api_max_retries:
                print(f"    {label} {e.status_code} error, retrying in {delay}s (attempt {attempt}/{config.api_max_retries})...")
                time.sleep(delay)
                delay *= 2
            else:
                raise


class LanguageModel:
    """Anything that can answer a system + user prompt with text."""

    def __init__(self, spec: ModelSpec, config: PipelineConfig, client=None):
        self.spec = spec
        self.config = config
        self.client = client if client is not None else self._create_client()

    def _create_client(self):
        raise NotImplementedError

    def generate(self, system: str, prompt: str) -> Generation:
        raise NotImplementedError


class AnthropicModel(LanguageModel):

    def _create_client(self):
        import anthropic
        if not self.config.anthropic_api_key:
            raise GenerationError("ANTHROPIC_API_KEY is not set", key=self.spec.model_id)
        return anthropic.Anthropic(api_key=self.config.anthropic_api_key)

    def generate(self, system: str, prompt: str) -> Generation:
        import anthropic

        def _call_anthropic():
            return self.client.messages.create(
                model=self.spec.model,
                max_tokens=self.config.llm_max_tokens,
                system=system,
                messages=[{"role": "user", "content": prompt}],
                timeout=self.config.api_timeout,
            )

        message = _retry_with_backoff(
            _call_anthropic, self.config, anthropic.APITimeoutError, anthropic.APIStatusError,
            (429, 529, 500), "API")
        text = "".join(getattr(block, "text", "") for block in message.content)
        return Generation(text, message.usage.input_tokens or 0, message.usage.output_tokens or 0)


class OpenAICompatibleModel(LanguageModel):
    """OpenAI itself, or a provider that speaks the OpenAI chat completions API."""

    def _credentials(self) -> tuple[Optional[str], Optional[str], str]:
        config = self.config
        if self.spec.provider is Provider.OPENROUTER:
            return config.openrouter_api_key, config.openrouter_base_url, "OPENROUTER_API_KEY"
        if self.spec.provider is Provider.GROQ:
            return config.groq_api_key, config.groq_base_url, "GROQ_API_KEY"
        if self.spec.provider is Provider.GOOGLE:
            return config.google_api_key, config.google_base_url, "GOOGLE_API_KEY"
        return config.openai_api_key, None, "OPENAI_API_KEY"

    def _create_client(self):
        from openai import OpenAI
        api_key, base_url, env_name = self._credentials()
        if not api_key:
            raise GenerationError(f"{env_name} is not set", key=self.spec.model_id)
        return OpenAI(api_key=api_key, base_url=base_url, timeout=self.config.api_timeout)

    def generate(self, system: str, prompt: str) -> Generation:
        from openai import APITimeoutError, APIStatusError

        def _call_openai():
            return self.client.chat.completions.create(
                model=self.spec.model,
                max_tokens=self.config.llm_max_tokens,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
            )

        response = _retry_with_backoff(
            _call_openai, self.config, APITimeoutError, APIStatusError,
            (429, 500, 502, 503), "LLM")
        text = response.choices[0].message.content or ""
        usage = response.usage
        return Generation(
            text,
            (usage.prompt_tokens or 0) if usage else 0,
            (usage.completion_tokens or 0) if usage else 0,
        )


def language_model_for(spec: ModelSpec, config: PipelineConfig, client=None) -> LanguageModel:
    if spec.provider is Provider.ANTHROPIC:
        return AnthropicModel(spec, config, client)
    return OpenAICompatibleModel(spec, config, client)


# ---------------------------------------------------------------------------
# Prompt and output
# ---------------------------------------------------------------------------

def extract_guest_from_title(title: str) -> Optional[str]:
    """Guest name from the common '<Guest> – <Episode title>' format."""
    for separator in ("–", "-"):
        parts = [p.strip() for p in title.split(separator)]
        if len(parts) >= 2 and parts[0]:
            return parts[0]
    return None


def build_user_prompt(title: str, description: Optional[str], transcript: str) -> str:
    guest = extract_guest_from_title(title)
    return f"""Here is the podcast episode:

**Title:** {title}
**Guest:** {guest or ''}
**Description:** {description or ''}

---

## Full Transcript

{transcript}

---

Now, as a third guest joining this conversation, what would you add? What research directions would you propose? What did the guests miss or get wrong?
"""


def guest_post_path(video_id: str, model_id: str, config: PipelineConfig) -> Path:
    return config.llm_generated_dir / f"{video_id}--{quote(model_id, safe='')}.md"


def render_guest_post(frontmatter: dict, body: str) -> str:
    """Markdown with a YAML frontmatter block; strings are emitted JSON-quoted."""
    lines = ["---"]
    for key, value in frontmatter.items():
        if value is None:
            continue
        lines.append(f"{key}: {json.dumps(value)}")
    lines.append("---")
    return "\n".join(lines) + "\n\n" + body.strip() + "\n"


@dataclass
class GuestPostResult:
    video_id: str
    model_id: str
    path: Path
    skipped: bool = False
    total_tokens: int = 0
    estimated_cost_cents: float = 0.0


def generate_guest_post(video_id: str, model_id: str, config: PipelineConfig,
                        skip_if_exists: bool = True,
                        model: Optional[LanguageModel] = None,
                        clock: Optional[Callable[[], datetime]] = None) -> GuestPostResult:
    """Write one guest post for a transcribed video."""
    out_path = guest_post_path(video_id, model_id, config)
    if skip_if_exists and out_path.exists():
        print(f"  Skipping {video_id} (output exists for {model_id})")
        return GuestPostResult(video_id, model_id, out_path, skipped=True)

    metadata = records.read_metadata(video_id, config)
    transcript = records.read_transcript(video_id, config)
    spec = classify_model(model_id)
    if model is None:
        model = language_model_for(spec, config)

    print(f"  Generating guest post for: {metadata.title} ({spec.provider.value}: {spec.model})")
    created_at = records.isoformat(clock() if clock else datetime.now().astimezone())
    system = SYSTEM_PROMPTS_BY_REVISION[LATEST_SYSTEM_PROMPT_REVISION]
    prompt = build_user_prompt(metadata.title, metadata.description, transcript.transcript)
    started = time.monotonic()
    try:
        generation = model.generate(system, prompt)
    except PipelineError:
        raise
    except Exception as e:
        raise GenerationError("LLM call failed", key=f"{video_id} {model_id}", cause=e) from e
    response_ms = int((time.monotonic() - started) * 1000)
    if not generation.text.strip():
        raise GenerationError("LLM returned an empty response", key=f"{video_id} {model_id}")

    cost = estimate_generation_cost_cents(spec.model, generation.input_tokens,
                                          generation.output_tokens)
    frontmatter = {
        "schemaVersion": GUEST_SCHEMA_VERSION,
        "youtubeVideoId": video_id,
        "llmModel": model_id,
        "createdAt": created_at,
        "responseTimeMs": response_ms,
        "inputTokens": generation.input_tokens,
        "outputTokens": generation.output_tokens,
        "totalTokens": generation.total_tokens,
        "estimatedCostCents": cost,
        "systemPromptRevision": LATEST_SYSTEM_PROMPT_REVISION,
        "transcriptWordCount": len(transcript.transcript.split()),
    }
    config.llm_generated_dir.mkdir(parents=True, exist_ok=True)
    out_path.write_text(render_guest_post(frontmatter, generation.text))
    print(f"  Saved: {out_path} (tokens: {generation.total_tokens}, est cost: {cost:.2f} cents)")
    return GuestPostResult(video_id, model_id, out_path,
                           total_tokens=generation.total_tokens, estimated_cost_cents=cost)


def list_guest_posts(config: PipelineConfig, model_id: str) -> list[tuple[str, str, bool]]:
    """(video id, title, has post) for every tracked video."""
    rows = []
    for video_id in records.list_video_ids(config):
        try:
            title = records.read_metadata(video_id, config).title
        except PipelineError:
            title = "(unreadable metadata)"
        rows.append((video_id, title, guest_post_path(video_id, model_id, config).exists()))
    return rows
