import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from interpress.errors import ConfigurationError, HttpError, NetworkError, ParseError
from interpress.providers import (
    EchoTranslationProvider,
    GeminiTranslationProvider,
    OpenAITranslationProvider,
    ProviderCredential,
    ProviderRequest,
    build_provider,
    strip_code_fence,
)

REQUEST = ProviderRequest(
    instructions="Translate into Spanish.",
    text="<p>Hello</p>",
    target_language="es",
)

GEMINI = ProviderCredential(provider="gemini", api_key="secret-key-1234", model="gemini-test")


def _gemini_call(handler, *, timeout=5.0):
    async def _inner():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = GeminiTranslationProvider(GEMINI, client=client)
            return await provider.complete(REQUEST, timeout=timeout)

    return asyncio.run(_inner())


def test_gemini_posts_prompt_and_returns_candidate():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": "<p>Hola</p>"}]}}]},
        )

    assert _gemini_call(handler) == "<p>Hola</p>"

    request = seen[0]
    assert request.url.path.endswith("/models/gemini-test:generateContent")
    assert request.url.params["key"] == "secret-key-1234"
    body = json.loads(request.content)
    assert body["contents"][0]["parts"][0]["text"] == REQUEST.render()
    assert body["generationConfig"] == {"temperature": 0.2, "topP": 0.8, "topK": 40}


def test_gemini_http_error_keeps_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="RESOURCE_EXHAUSTED")

    with pytest.raises(HttpError) as excinfo:
        _gemini_call(handler)

    assert excinfo.value.status_code == 429
    assert "RESOURCE_EXHAUSTED" in str(excinfo.value)


@pytest.mark.parametrize(
    "payload",
    [
        {"candidates": []},
        {"candidates": [{"content": {"parts": [{"text": "   "}]}}]},
        {"promptFeedback": {"blockReason": "SAFETY"}},
    ],
)
def test_gemini_malformed_responses_are_parse_errors(payload):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    with pytest.raises(ParseError):
        _gemini_call(handler)


def test_gemini_invalid_json_is_parse_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(ParseError, match="invalid JSON"):
        _gemini_call(handler)


def test_gemini_timeout_is_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(NetworkError, match="timed out"):
        _gemini_call(handler)


def test_gemini_requires_api_key():
    with pytest.raises(ConfigurationError):
        GeminiTranslationProvider(ProviderCredential(provider="gemini", api_key=""))


class _FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _fake_openai_client(content):
    completions = _FakeCompletions(content)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def test_openai_sends_instructions_as_system_message():
    client, completions = _fake_openai_client("<p>Hola</p>")
    provider = OpenAITranslationProvider(
        ProviderCredential(provider="openai", api_key="sk-test", model="gpt-test"),
        client=client,
    )

    result = asyncio.run(provider.complete(REQUEST, timeout=12.0))

    assert result == "<p>Hola</p>"
    call = completions.calls[0]
    assert call["model"] == "gpt-test"
    assert call["timeout"] == 12.0
    assert call["messages"] == [
        {"role": "system", "content": "Translate into Spanish."},
        {"role": "user", "content": "<p>Hello</p>"},
    ]


def test_openai_empty_content_is_parse_error():
    client, _ = _fake_openai_client("")
    provider = OpenAITranslationProvider(
        ProviderCredential(provider="openai", api_key="sk-test"),
        client=client,
    )

    with pytest.raises(ParseError):
        asyncio.run(provider.complete(REQUEST, timeout=1.0))


def test_echo_returns_text_unchanged():
    assert asyncio.run(EchoTranslationProvider().complete(REQUEST, timeout=1.0)) == "<p>Hello</p>"


def test_credential_label_masks_key():
    assert GEMINI.label == "gemini:...1234"
    assert ProviderCredential(provider="openai", api_key="abc").label == "openai:***"


def test_build_provider_dispatches_on_kind():
    assert isinstance(build_provider(GEMINI), GeminiTranslationProvider)
    assert isinstance(build_provider(ProviderCredential("mock", "")), EchoTranslationProvider)
    assert isinstance(
        build_provider(ProviderCredential("gpt", "sk-test")),
        OpenAITranslationProvider,
    )
    with pytest.raises(ConfigurationError, match="Unknown translation provider"):
        build_provider(ProviderCredential("deepl", "key"))


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("```html\n<p>Hola</p>\n```", "<p>Hola</p>"),
        ("```\nHola\n```", "Hola"),
        ("  Hola  ", "Hola"),
    ],
)
def test_strip_code_fence(raw, expected):
    assert strip_code_fence(raw) == expected
