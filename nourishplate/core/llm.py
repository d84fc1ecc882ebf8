"""
NourishPlate — LLM Provider Abstraction.

Single public function `complete()` that routes to the configured provider.
Provider is selected at startup via the LLM_PROVIDER env var.
Supports: gemini (default, REST via httpx), anthropic, openai, cohere.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Raised when a provider cannot produce text for a request."""


@dataclass(frozen=True)
class GenerationConfig:
    """Sampling parameters for one generation request."""

    temperature: float = 0.7
    top_p: float | None = None
    top_k: int | None = None
    max_output_tokens: int = 2000
    candidate_count: int = 1

    def to_gemini(self) -> dict:
        config: dict = {
            "temperature": self.temperature,
            "maxOutputTokens": self.max_output_tokens,
            "candidateCount": self.candidate_count,
        }
        if self.top_p is not None:
            config["topP"] = self.top_p
        if self.top_k is not None:
            config["topK"] = self.top_k
        return config


@dataclass(frozen=True)
class InlineDocument:
    """Binary document (PDF, image) attached to a prompt."""

    mime_type: str
    data: bytes


# Type alias for provider implementations
_ProviderFn = Callable[
    [str, str, str, GenerationConfig, InlineDocument | None], Awaitable[str]
]

# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


def _gemini_request_body(
    prompt: str, config: GenerationConfig, document: InlineDocument | None,
) -> dict:
    parts: list[dict] = [{"text": prompt}]
    if document is not None:
        parts.append({
            "inline_data": {
                "mime_type": document.mime_type,
                "data": base64.b64encode(document.data).decode("ascii"),
            }
        })
    return {
        "contents": [{"parts": parts}],
        "generationConfig": config.to_gemini(),
    }


async def _complete_gemini(
    api_key: str, model: str, prompt: str,
    config: GenerationConfig, document: InlineDocument | None,
) -> str:
    from nourishplate.config import settings

    url = f"{settings.GEMINI_API_URL}/{model}:generateContent"
    async with httpx.AsyncClient(timeout=settings.LLM_TIMEOUT_SECONDS) as client:
        resp = await client.post(
            url,
            json=_gemini_request_body(prompt, config, document),
            headers={"X-goog-api-key": api_key},
        )
        resp.raise_for_status()
        data = resp.json()

    try:
        return data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise LLMError(f"Gemini response has no candidate text: {data!r:.200}") from exc


def _reject_document(provider: str, document: InlineDocument | None) -> None:
    if document is not None:
        raise LLMError(f"{provider} provider does not accept document attachments")


async def _complete_anthropic(
    api_key: str, model: str, prompt: str,
    config: GenerationConfig, document: InlineDocument | None,
) -> str:
    import anthropic

    _reject_document("anthropic", document)
    client = anthropic.AsyncAnthropic(api_key=api_key)
    response = await client.messages.create(
        model=model,
        max_tokens=config.max_output_tokens,
        temperature=config.temperature,
        messages=[{"role": "user", "content": prompt}],
    )
    return response.content[0].text


async def _complete_openai(
    api_key: str, model: str, prompt: str,
    config: GenerationConfig, document: InlineDocument | None,
) -> str:
    from openai import AsyncOpenAI

    _reject_document("openai", document)
    client = AsyncOpenAI(api_key=api_key)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=config.max_output_tokens,
        temperature=config.temperature,
        messages=[{"role": "user", "content": prompt}],
    )
    return response.choices[0].message.content


async def _complete_cohere(
    api_key: str, model: str, prompt: str,
    config: GenerationConfig, document: InlineDocument | None,
) -> str:
    import cohere

    _reject_document("cohere", document)
    client = cohere.AsyncClientV2(api_key=api_key)
    response = await client.chat(
        model=model,
        max_tokens=config.max_output_tokens,
        temperature=config.temperature,
        messages=[{"role": "user", "content": prompt}],
    )
    return response.message.content[0].text


# ---------------------------------------------------------------------------
# Provider selection (runs once at first call)
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "gemini":    (_complete_gemini,    "gemini-1.5-flash"),
    "anthropic": (_complete_anthropic, "claude-haiku-4-5-20251001"),
    "openai":    (_complete_openai,    "gpt-4o-mini"),
    "cohere":    (_complete_cohere,    "command-a-03-2025"),
}


def _select_provider() -> tuple[_ProviderFn, str, str]:
    """Read settings and return (provider_fn, model, api_key)."""
    from nourishplate.config import settings

    provider_name = settings.LLM_PROVIDER.lower()
    if provider_name not in _PROVIDERS:
        raise ValueError(
            f"Unknown LLM_PROVIDER={provider_name!r}. "
            f"Supported: {', '.join(_PROVIDERS)}"
        )

    fn, default_model = _PROVIDERS[provider_name]
    model = settings.LLM_MODEL or default_model
    api_key = settings.LLM_API_KEY

    logger.info("LLM provider: %s, model: %s", provider_name, model)
    return fn, model, api_key


# Lazy singleton, populated on first call to complete()
_provider_fn: _ProviderFn | None = None
_model: str = ""
_api_key: str = ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def complete(
    prompt: str,
    config: GenerationConfig | None = None,
    document: InlineDocument | None = None,
) -> str:
    """Send a prompt to the configured LLM provider and return the response text.

    Raises on API errors; callers should handle exceptions.
    """
    global _provider_fn, _model, _api_key

    if _provider_fn is None:
        _provider_fn, _model, _api_key = _select_provider()

    return await _provider_fn(
        _api_key, _model, prompt, config or GenerationConfig(), document,
    )


def clean_llm_response(raw_text: str) -> str:
    """Remove markdown code block delimiters from an LLM's raw response."""
    cleaned_text = raw_text.strip()
    for fence in ("```json", "```JSON", "```"):
        if cleaned_text.startswith(fence):
            cleaned_text = cleaned_text.removeprefix(fence)
            break
    cleaned_text = cleaned_text.strip()
    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text.removesuffix("```")
    return cleaned_text.strip()
