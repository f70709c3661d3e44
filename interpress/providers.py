"""Translation provider abstractions."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx
import openai

from .errors import ConfigurationError, HttpError, NetworkError, ParseError

logger = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"


@dataclass(frozen=True)
class ProviderCredential:
    """One entry of the ordered credential list."""

    provider: str
    api_key: str
    model: Optional[str] = None
    api_url: Optional[str] = None

    @property
    def label(self) -> str:
        key = self.api_key or ""
        masked = f"...{key[-4:]}" if len(key) > 4 else "***"
        return f"{self.provider}:{masked}"


@dataclass(frozen=True)
class ProviderRequest:
    """Instructions plus the text they apply to."""

    instructions: str
    text: str
    target_language: str
    is_title: bool = False

    def render(self) -> str:
        return f"{self.instructions}\n\nContent to translate:\n{self.text}"


class TranslationProvider(ABC):
    """Abstract adapter for translation providers."""

    name = "provider"

    def __init__(self, *, debug: bool = False) -> None:
        self.debug = debug

    @property
    def label(self) -> str:
        return self.name

    @abstractmethod
    async def complete(self, request: ProviderRequest, *, timeout: float) -> str:
        """Return the single candidate text produced for ``request``."""

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit full request/response payloads when debugging is enabled."""

        if not self.debug:
            return
        try:
            if isinstance(payload, (dict, list)):
                message = json.dumps(payload, ensure_ascii=False, indent=2)
            else:
                message = str(payload)
        except (TypeError, ValueError):
            message = repr(payload)
        logger.debug("[%s] %s:\n%s", self.label, label, message)


class EchoTranslationProvider(TranslationProvider):
    """A provider that returns the original text (useful for dry runs)."""

    name = "echo"

    async def complete(self, request: ProviderRequest, *, timeout: float) -> str:
        return request.text


class GeminiTranslationProvider(TranslationProvider):
    """Calls the Gemini ``generateContent`` endpoint over httpx."""

    name = "gemini"
    DEFAULT_MODEL = "gemini-2.0-flash"
    GENERATION_CONFIG = {"temperature": 0.2, "topP": 0.8, "topK": 40}

    def __init__(
        self,
        credential: ProviderCredential,
        *,
        client: Optional[httpx.AsyncClient] = None,
        debug: bool = False,
    ) -> None:
        super().__init__(debug=debug)
        if not credential.api_key:
            raise ConfigurationError("Gemini credential is missing an API key.")
        self.credential = credential
        self.model = credential.model or self.DEFAULT_MODEL
        self.api_url = (credential.api_url or GEMINI_API_URL).rstrip("/")
        self._client = client

    @property
    def label(self) -> str:
        return self.credential.label

    async def complete(self, request: ProviderRequest, *, timeout: float) -> str:
        url = f"{self.api_url}/models/{self.model}:generateContent"
        body = {
            "contents": [{"parts": [{"text": request.render()}]}],
            "generationConfig": dict(self.GENERATION_CONFIG),
        }
        self._log_debug("request", body)

        if self._client is not None:
            response = await self._post(self._client, url, body, timeout)
        else:
            async with httpx.AsyncClient() as client:
                response = await self._post(client, url, body, timeout)

        if response.is_error:
            raise HttpError(response.status_code, response.text, service="Gemini")
        try:
            data = response.json()
        except ValueError as exc:
            raise ParseError(f"Gemini returned invalid JSON: {exc}") from exc
        self._log_debug("response", data)
        return self._extract_candidate(data)

    async def _post(
        self,
        client: httpx.AsyncClient,
        url: str,
        body: dict,
        timeout: float,
    ) -> httpx.Response:
        try:
            return await client.post(
                url,
                params={"key": self.credential.api_key},
                json=body,
                timeout=httpx.Timeout(timeout, connect=min(10.0, timeout)),
            )
        except httpx.TimeoutException as exc:
            raise NetworkError(f"Gemini request timed out after {timeout:.0f}s") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Gemini request failed: {exc}") from exc

    @staticmethod
    def _extract_candidate(data: Any) -> str:
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ParseError("Gemini response has no candidate text.") from exc
        if not isinstance(text, str) or not text.strip():
            raise ParseError("Gemini returned an empty candidate.")
        return text


class OpenAITranslationProvider(TranslationProvider):
    """Translation provider that uses OpenAI-compatible chat completions."""

    name = "openai"
    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        credential: ProviderCredential,
        *,
        client: Any = None,
        debug: bool = False,
    ) -> None:
        super().__init__(debug=debug)
        if not credential.api_key:
            raise ConfigurationError("OpenAI credential is missing an API key.")
        self.credential = credential
        self.model = credential.model or self.DEFAULT_MODEL
        self._client = client or self._build_client()

    @property
    def label(self) -> str:
        return self.credential.label

    def _build_client(self) -> Any:
        # Fallback to the next credential replaces SDK-level retries.
        return openai.AsyncOpenAI(
            api_key=self.credential.api_key,
            base_url=self.credential.api_url or None,
            max_retries=0,
        )

    async def complete(self, request: ProviderRequest, *, timeout: float) -> str:
        messages = [
            {"role": "system", "content": request.instructions},
            {"role": "user", "content": request.text},
        ]
        self._log_debug("request", messages)
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                temperature=0.2,
                messages=messages,
                timeout=timeout,
            )
        except openai.APITimeoutError as exc:
            raise NetworkError(f"OpenAI request timed out after {timeout:.0f}s") from exc
        except openai.APIConnectionError as exc:
            raise NetworkError(f"OpenAI request failed: {exc}") from exc
        except openai.APIStatusError as exc:
            body = getattr(exc.response, "text", "") or str(exc)
            raise HttpError(exc.status_code, body, service="OpenAI") from exc

        self._log_debug("response", _safe_dump_response(response))
        return self._extract_content(response)

    @staticmethod
    def _extract_content(response: Any) -> str:
        choices = getattr(response, "choices", None) or []
        for choice in choices:
            message = getattr(choice, "message", None)
            content = getattr(message, "content", None)
            if isinstance(content, str) and content.strip():
                return content
        raise ParseError("OpenAI response empty or unrecognised.")


def _safe_dump_response(response: Any) -> Any:
    """Best-effort conversion of SDK objects into JSON-friendly data."""

    dump = getattr(response, "model_dump", None)
    if callable(dump):
        try:
            return dump()
        except (TypeError, ValueError):
            pass
    return str(response)


def strip_code_fence(text: str) -> str:
    """Remove leading/trailing markdown code fences if present."""

    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped

    # Drop opening fence and optional language hint.
    first_newline = stripped.find("\n")
    if first_newline == -1:
        return stripped
    body = stripped[first_newline + 1 :]
    closing_index = body.rfind("```")
    if closing_index != -1:
        body = body[:closing_index]
    return body.strip()


def build_provider(
    credential: ProviderCredential,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    debug: bool = False,
) -> TranslationProvider:
    """Factory to create providers from a credential."""

    normalized = (credential.provider or "gemini").strip().lower()
    if normalized in {"gemini", "google", "default"}:
        return GeminiTranslationProvider(credential, client=http_client, debug=debug)
    if normalized in {"openai", "gpt", "openai-compatible"}:
        return OpenAITranslationProvider(credential, debug=debug)
    if normalized in {"echo", "noop", "mock"}:
        return EchoTranslationProvider(debug=debug)
    raise ConfigurationError(f"Unknown translation provider '{credential.provider}'.")
