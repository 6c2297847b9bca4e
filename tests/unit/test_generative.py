"""
Unit tests for generative providers and the enricher
"""

import json
import httpx
import pytest
from core.config import Settings
from core.exceptions import GenerativeOutputError, GenerativeProviderError
from ingestion.connectors.generative import (
    CONTENT_FILTERED_MESSAGE,
    GenerativeEnricher,
    RESPONSE_SCHEMA,
    build_corrective_prompt,
    build_enrichment_prompt,
    parse_enrichment
)
from ingestion.connectors.providers import (
    AnthropicProvider,
    OpenAIProvider,
    build_generative_provider
)
from schemas.imports import GenerativeStatus


class ScriptedProvider:
    """Answers with queued texts (or raises queued exceptions); records messages"""

    name = "scripted"

    def __init__(self, answers):
        self.answers = list(answers)
        self.calls = []

    async def complete(self, system_prompt, messages):
        self.calls.append(list(messages))
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer


class TestProviders:

    def test_openai_request(self):
        provider = OpenAIProvider("sk-test", "gpt-4o-mini")
        request = provider.build_request("system", [{"role": "user", "content": "hi"}])

        assert request["headers"]["Authorization"] == "Bearer sk-test"
        assert request["json"]["messages"][0] == {"role": "system", "content": "system"}
        assert request["json"]["response_format"] == {"type": "json_object"}

    def test_anthropic_request(self):
        provider = AnthropicProvider("ak-test", "claude-test")
        request = provider.build_request("system", [{"role": "user", "content": "hi"}])

        assert request["headers"]["x-api-key"] == "ak-test"
        assert request["headers"]["anthropic-version"] == "2023-06-01"
        assert request["json"]["system"] == "system"
        assert request["json"]["messages"] == [{"role": "user", "content": "hi"}]

    def test_anthropic_strips_code_fences(self):
        provider = AnthropicProvider("ak-test", "claude-test")
        text = provider.extract_text({"content": [{"text": "```json\n{\"a\": 1}\n```"}]})
        assert text == '{"a": 1}'

    @pytest.mark.asyncio
    async def test_complete_returns_answer_text(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["authorization"] == "Bearer sk-test"
            return httpx.Response(200, json={"choices": [{"message": {"content": "{}"}}]})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = OpenAIProvider("sk-test", "gpt-4o-mini", client=client)
            assert await provider.complete("system", [{"role": "user", "content": "hi"}]) == "{}"

    @pytest.mark.asyncio
    async def test_complete_http_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, text="rate limited")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = OpenAIProvider("sk-test", "gpt-4o-mini", client=client)
            with pytest.raises(GenerativeProviderError) as exc_info:
                await provider.complete("system", [])

        assert exc_info.value.context["status_code"] == 429

    @pytest.mark.asyncio
    async def test_complete_empty_answer(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"content": [{"text": ""}]})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = AnthropicProvider("ak-test", "claude-test", client=client)
            with pytest.raises(GenerativeProviderError):
                await provider.complete("system", [])


class TestBuildGenerativeProvider:

    def test_auto_prefers_openai(self):
        config = Settings(GENERATIVE_PROVIDER="auto", OPENAI_API_KEY="sk", ANTHROPIC_API_KEY="ak")
        assert isinstance(build_generative_provider(config), OpenAIProvider)

    def test_auto_falls_back_to_anthropic(self):
        config = Settings(GENERATIVE_PROVIDER="auto", OPENAI_API_KEY=None, ANTHROPIC_API_KEY="ak")
        assert isinstance(build_generative_provider(config), AnthropicProvider)

    def test_explicit_provider_without_key(self):
        config = Settings(GENERATIVE_PROVIDER="anthropic", OPENAI_API_KEY="sk", ANTHROPIC_API_KEY=None)
        assert build_generative_provider(config) is None

    def test_disabled(self):
        config = Settings(GENERATIVE_PROVIDER="none", OPENAI_API_KEY="sk")
        assert build_generative_provider(config) is None


class TestParseEnrichment:

    def test_valid_answer(self, generative_payload):
        enrichment = parse_enrichment(json.dumps(generative_payload), "scripted", 1)
        assert enrichment.overview.startswith("Koffein")
        assert enrichment.sources == ["PubChem"]

    def test_invalid_json(self):
        with pytest.raises(GenerativeOutputError) as exc_info:
            parse_enrichment("not json", "scripted", 1)
        assert exc_info.value.message == "invalid JSON"

    def test_missing_fields(self):
        with pytest.raises(GenerativeOutputError) as exc_info:
            parse_enrichment(json.dumps({"overview": "x"}), "scripted", 2)
        assert "effects" in exc_info.value.message
        assert exc_info.value.context["attempt"] == 2

    def test_prompt_includes_chemical_context(self):
        prompt = build_enrichment_prompt(
            "Koffein",
            "Alkaloid",
            {"molecular_formula": "C8H10N4O2", "synonyms": ["caffeine", "Guaranine"]}
        )
        assert '"Koffein"' in prompt
        assert "C8H10N4O2" in prompt
        assert "caffeine, Guaranine" in prompt

    def test_corrective_prompt_keeps_schema_braces(self):
        prompt = build_corrective_prompt("invalid JSON")

        assert "(invalid JSON)" in prompt
        assert prompt.endswith(RESPONSE_SCHEMA)
        assert '"overview"' in prompt


class TestGenerativeEnricher:

    @pytest.mark.asyncio
    async def test_no_provider_is_skipped(self):
        result = await GenerativeEnricher(None).enrich("Koffein")

        assert result.status == GenerativeStatus.SKIPPED
        assert result.data is None
        assert result.error == "No generative provider configured"

    @pytest.mark.asyncio
    async def test_valid_answer_is_ok(self, generative_payload):
        provider = ScriptedProvider([json.dumps(generative_payload)])
        result = await GenerativeEnricher(provider).enrich("Koffein", "Alkaloid")

        assert result.status == GenerativeStatus.OK
        assert result.data.effects == generative_payload["effects"]
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_malformed_answer_is_retried_once(self, generative_payload):
        provider = ScriptedProvider(["Hier ist das JSON:", json.dumps(generative_payload)])
        result = await GenerativeEnricher(provider).enrich("Koffein")

        assert result.status == GenerativeStatus.OK
        assert len(provider.calls) == 2
        retry_messages = provider.calls[1]
        assert [m["role"] for m in retry_messages] == ["user", "assistant", "user"]
        assert retry_messages[1]["content"] == "Hier ist das JSON:"
        assert "invalid JSON" in retry_messages[2]["content"]

    @pytest.mark.asyncio
    async def test_second_malformed_answer_fails(self):
        provider = ScriptedProvider(["nope", "{\"overview\": \"x\"}"])
        result = await GenerativeEnricher(provider).enrich("Koffein")

        assert result.status == GenerativeStatus.FAILED
        assert result.data is None
        assert "schema mismatch" in result.error
        assert len(provider.calls) == 2
        assert provider.calls[1][-1]["content"].endswith(RESPONSE_SCHEMA)

    @pytest.mark.asyncio
    async def test_provider_error_is_not_retried(self):
        provider = ScriptedProvider([GenerativeProviderError("openai API error: 500", context={"provider": "openai"})])
        result = await GenerativeEnricher(provider).enrich("Koffein")

        assert result.status == GenerativeStatus.FAILED
        assert result.error == "openai API error: 500"
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_filtered_answer_fails_but_keeps_data(self, generative_payload):
        payload = dict(generative_payload)
        payload["harm_reduction"] = "Nicht allein konsumieren. Am besten beim Händler kaufen."
        provider = ScriptedProvider([json.dumps(payload)])

        result = await GenerativeEnricher(provider).enrich("Koffein")

        assert result.status == GenerativeStatus.FAILED
        assert result.error == CONTENT_FILTERED_MESSAGE
        assert result.data is not None
        assert result.data.harm_reduction == "Nicht allein konsumieren."
        assert result.data.overview == generative_payload["overview"]
