"""Provider invocation with credential fallback and output normalisation."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import List, Optional, Sequence

import httpx

from .errors import ConfigurationError, InterpressError, NetworkError, ProviderExhausted
from .languages import get_language_name
from .providers import (
    ProviderCredential,
    ProviderRequest,
    TranslationProvider,
    build_provider,
    strip_code_fence,
)
from .structures import TranslationAttempt

logger = logging.getLogger(__name__)

TERMINAL_PUNCTUATION = (".", "!", "?", "。", "！", "？")

# Markup that may legitimately close a translated chunk after its last sentence.
TRAILING_MARKUP = re.compile(r"(?:\s*(?:<[^>]+>|\{\{HTML_ELEMENT_\d+\}\}))*\s*$")

TITLE_INSTRUCTIONS = (
    "You are a professional translator. Translate the following post title "
    "into {language}. Maintain the original meaning, tone, and style. "
    "Keep it concise and on a single line. "
    "Do not translate or modify any placeholder tags like {{{{HTML_ELEMENT_0}}}}. "
    "Return only the translated title, without quotes or commentary."
)

BODY_INSTRUCTIONS = (
    "You are a professional translator. Translate the following content "
    "into {language}. Maintain the original meaning, tone, and style. "
    "Keep sentence structure similar where possible and ensure each sentence "
    "ends with proper punctuation. Preserve paragraph breaks and keep every "
    "HTML tag and attribute exactly as provided, translating only the text. "
    "Do not translate or modify any placeholder tags like {{{{HTML_ELEMENT_0}}}}. "
    "Return only the translated content, without commentary."
)


def clean_source_text(text: str, *, keep_paragraphs: bool) -> str:
    """Normalise entities and whitespace before text is sent to a provider."""

    cleaned = text.replace("&nbsp;", " ").replace("\u00a0", " ")
    if not keep_paragraphs:
        return re.sub(r"\s+", " ", cleaned).strip()
    paragraphs = re.split(r"\n[ \t]*\n\s*", cleaned)
    collapsed = [re.sub(r"\s+", " ", paragraph).strip() for paragraph in paragraphs]
    return "\n\n".join(paragraph for paragraph in collapsed if paragraph)


def ensure_terminal_punctuation(text: str) -> str:
    """Make sure the last sentence of ``text`` ends with terminal punctuation.

    Trailing tags and placeholder tokens are skipped over; the period is
    inserted before them.
    """

    stripped = text.strip()
    if not stripped:
        return stripped
    match = TRAILING_MARKUP.search(stripped)
    split_at = match.start() if match else len(stripped)
    core, trailing = stripped[:split_at], stripped[split_at:]
    if not core.strip():
        return stripped
    core = core.rstrip()
    if core.endswith(TERMINAL_PUNCTUATION):
        return stripped
    return f"{core}.{trailing.lstrip()}" if trailing.strip() else f"{core}."


def build_request(text: str, target_language: str, *, is_title: bool) -> ProviderRequest:
    language = get_language_name(target_language) or target_language
    template = TITLE_INSTRUCTIONS if is_title else BODY_INSTRUCTIONS
    return ProviderRequest(
        instructions=template.format(language=language),
        text=text,
        target_language=target_language,
        is_title=is_title,
    )


class TranslationInvoker:
    """Translates one piece of text, falling back across providers in order."""

    def __init__(
        self,
        providers: Sequence[TranslationProvider],
        *,
        title_timeout: float = 30.0,
        body_timeout: float = 120.0,
    ) -> None:
        if not providers:
            raise ConfigurationError("At least one translation provider is required.")
        self.providers = list(providers)
        self.title_timeout = title_timeout
        self.body_timeout = body_timeout

    @classmethod
    def from_credentials(
        cls,
        credentials: Sequence[ProviderCredential],
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        title_timeout: float = 30.0,
        body_timeout: float = 120.0,
        debug: bool = False,
    ) -> "TranslationInvoker":
        providers = [
            build_provider(credential, http_client=http_client, debug=debug)
            for credential in credentials
        ]
        return cls(providers, title_timeout=title_timeout, body_timeout=body_timeout)

    async def translate(
        self,
        text: str,
        target_language: str,
        is_title: bool = False,
    ) -> str:
        cleaned = clean_source_text(text, keep_paragraphs=not is_title)
        if not cleaned:
            return ""

        request = build_request(cleaned, target_language, is_title=is_title)
        timeout = self.title_timeout if is_title else self.body_timeout
        attempts: List[TranslationAttempt] = []
        last_error: Optional[InterpressError] = None

        for index, provider in enumerate(self.providers):
            started = time.monotonic()
            try:
                raw = await asyncio.wait_for(
                    provider.complete(request, timeout=timeout), timeout=timeout
                )
            except asyncio.TimeoutError:
                error: InterpressError = NetworkError(
                    f"{provider.label} did not answer within {timeout:.0f}s"
                )
            except InterpressError as exc:
                error = exc
            else:
                attempts.append(
                    TranslationAttempt(
                        text=cleaned,
                        target_language=target_language,
                        credential_index=index,
                        credential_label=provider.label,
                        succeeded=True,
                        elapsed_seconds=time.monotonic() - started,
                    )
                )
                if index:
                    logger.info("Translated with fallback credential #%d (%s).", index, provider.label)
                return ensure_terminal_punctuation(strip_code_fence(raw))

            attempts.append(
                TranslationAttempt(
                    text=cleaned,
                    target_language=target_language,
                    credential_index=index,
                    credential_label=provider.label,
                    succeeded=False,
                    error_kind=error.kind,
                    error_message=str(error),
                    elapsed_seconds=time.monotonic() - started,
                )
            )
            logger.warning(
                "Provider %s failed (%s): %s", provider.label, error.kind.name.lower(), error
            )
            last_error = error

        raise ProviderExhausted(
            f"All {len(self.providers)} translation credentials failed. Last error: {last_error}",
            last_error=last_error,
            attempts=attempts,
        )
