"""Tests for nourishplate.core.llm — provider abstraction and Gemini REST call."""

import base64

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from nourishplate.core import llm
from nourishplate.core.llm import (
    GenerationConfig,
    InlineDocument,
    LLMError,
    _complete_anthropic,
    _complete_gemini,
    _gemini_request_body,
    _select_provider,
    clean_llm_response,
    complete,
)

_PATCH_CLIENT = "nourishplate.core.llm.httpx.AsyncClient"


def _mock_client(json_data):
    mock_resp = MagicMock()
    mock_resp.json.return_value = json_data
    mock_resp.raise_for_status = MagicMock()

    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client.post = AsyncMock(return_value=mock_resp)
    return mock_client


class TestCleanLlmResponse:
    def test_strips_json_code_block(self):
        assert clean_llm_response('```json\n[{"a": 1}]\n```') == '[{"a": 1}]'

    def test_strips_uppercase_fence(self):
        assert clean_llm_response("```JSON\n[]\n```") == "[]"

    def test_strips_bare_fence(self):
        assert clean_llm_response("```\n{}\n```") == "{}"

    def test_no_code_block(self):
        assert clean_llm_response('  {"a": 1}  ') == '{"a": 1}'


class TestGenerationConfig:
    def test_minimal_config(self):
        assert GenerationConfig(temperature=0.3).to_gemini() == {
            "temperature": 0.3,
            "maxOutputTokens": 2000,
            "candidateCount": 1,
        }

    def test_sampling_keys_when_set(self):
        config = GenerationConfig(temperature=0.8, top_p=0.9, top_k=40).to_gemini()
        assert config["topP"] == 0.9
        assert config["topK"] == 40


class TestGeminiRequestBody:
    def test_text_only(self):
        body = _gemini_request_body("hello", GenerationConfig(), None)
        assert body["contents"] == [{"parts": [{"text": "hello"}]}]
        assert body["generationConfig"]["temperature"] == 0.7

    def test_inline_document(self):
        doc = InlineDocument(mime_type="application/pdf", data=b"%PDF-1.4")
        parts = _gemini_request_body("read this", GenerationConfig(), doc)["contents"][0]["parts"]
        assert parts[1]["inline_data"]["mime_type"] == "application/pdf"
        assert base64.b64decode(parts[1]["inline_data"]["data"]) == b"%PDF-1.4"


class TestCompleteGemini:
    @pytest.mark.asyncio
    async def test_returns_candidate_text(self):
        mock_client = _mock_client(
            {"candidates": [{"content": {"parts": [{"text": "hi there"}]}}]}
        )
        with patch(_PATCH_CLIENT, return_value=mock_client):
            text = await _complete_gemini("key", "gemini-1.5-flash", "hi", GenerationConfig(), None)

        assert text == "hi there"
        call = mock_client.post.call_args
        assert call.args[0].endswith("/gemini-1.5-flash:generateContent")
        assert call.kwargs["headers"] == {"X-goog-api-key": "key"}

    @pytest.mark.asyncio
    async def test_no_candidates_raises(self):
        mock_client = _mock_client({"candidates": []})
        with patch(_PATCH_CLIENT, return_value=mock_client):
            with pytest.raises(LLMError):
                await _complete_gemini("key", "m", "hi", GenerationConfig(), None)

    @pytest.mark.asyncio
    async def test_http_error_propagates(self):
        mock_client = _mock_client({})
        mock_client.post.return_value.raise_for_status.side_effect = RuntimeError("503")
        with patch(_PATCH_CLIENT, return_value=mock_client):
            with pytest.raises(RuntimeError):
                await _complete_gemini("key", "m", "hi", GenerationConfig(), None)


class TestOtherProviders:
    @pytest.mark.asyncio
    async def test_documents_rejected(self):
        doc = InlineDocument(mime_type="image/png", data=b"\x89PNG")
        with pytest.raises(LLMError, match="does not accept document"):
            await _complete_anthropic("key", "m", "hi", GenerationConfig(), doc)


class TestSelectProvider:
    def test_default_model(self):
        with patch("nourishplate.config.settings") as mock_settings:
            mock_settings.LLM_PROVIDER = "gemini"
            mock_settings.LLM_MODEL = ""
            mock_settings.LLM_API_KEY = "k"
            fn, model, api_key = _select_provider()
        assert fn is _complete_gemini
        assert model == "gemini-1.5-flash"
        assert api_key == "k"

    def test_explicit_model(self):
        with patch("nourishplate.config.settings") as mock_settings:
            mock_settings.LLM_PROVIDER = "OpenAI"
            mock_settings.LLM_MODEL = "gpt-4o"
            mock_settings.LLM_API_KEY = "k"
            _, model, _ = _select_provider()
        assert model == "gpt-4o"

    def test_unknown_provider(self):
        with patch("nourishplate.config.settings") as mock_settings:
            mock_settings.LLM_PROVIDER = "eliza"
            with pytest.raises(ValueError, match="Unknown LLM_PROVIDER"):
                _select_provider()


class TestComplete:
    @pytest.mark.asyncio
    async def test_routes_to_selected_provider(self):
        provider = AsyncMock(return_value="ok")
        with patch.object(llm, "_provider_fn", provider), \
             patch.object(llm, "_model", "m"), \
             patch.object(llm, "_api_key", "k"):
            result = await complete("prompt")

        assert result == "ok"
        args = provider.call_args.args
        assert args[:3] == ("k", "m", "prompt")
        assert isinstance(args[3], GenerationConfig)
        assert args[4] is None
