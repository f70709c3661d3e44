"""Markup protection and paragraph chunking utilities."""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence, Tuple

from .errors import PlaceholderMismatch
from .structures import Chunk, PlaceholderMap, SegmentedBody

logger = logging.getLogger(__name__)

# Fragments that must reach the published post byte-for-byte.
DEFAULT_FRAGMENT_PATTERNS: Tuple[str, ...] = (
    r"<!--.*?-->",
    r"<img\b[^>]*>",
    r"<video\b[^>]*>.*?</video\s*>",
    r"<iframe\b[^>]*>.*?</iframe\s*>",
    r"<audio\b[^>]*>.*?</audio\s*>",
    r"<object\b[^>]*>.*?</object\s*>",
    r"<embed\b[^>]*>",
    r"<script\b[^>]*>.*?</script\s*>",
    r"<style\b[^>]*>.*?</style\s*>",
    r"<pre\b[^>]*>.*?</pre\s*>",
    r"<code\b[^>]*>.*?</code\s*>",
)

PLACEHOLDER_PATTERN = re.compile(r"\{\{HTML_ELEMENT_\d+\}\}")

# A blank line, or a line break right after a tag or a placeholder token.
PARAGRAPH_BOUNDARY = re.compile(r"\n[ \t]*\n\s*|(?<=[>}])[ \t]*\n\s*")
PARAGRAPH_SEPARATOR = "\n\n"

TAG_PATTERN = re.compile(r"<[^>]+>")


def compile_fragment_pattern(patterns: Sequence[str]) -> re.Pattern[str]:
    """Combine fragment patterns so matches are found in document order."""

    combined = "|".join(f"(?:{pattern})" for pattern in patterns)
    return re.compile(combined, re.DOTALL | re.IGNORECASE)


DEFAULT_FRAGMENT_REGEX = compile_fragment_pattern(DEFAULT_FRAGMENT_PATTERNS)


def extract_structural(
    html: str,
    pattern: re.Pattern[str] = DEFAULT_FRAGMENT_REGEX,
) -> Tuple[str, PlaceholderMap]:
    """Replace non-translatable fragments with indexed placeholder tokens."""

    if not html:
        return html, PlaceholderMap()
    placeholders = PlaceholderMap(reserved=set(PLACEHOLDER_PATTERN.findall(html)))

    def _substitute(match: re.Match[str]) -> str:
        return placeholders.add(match.group(0))

    stripped = pattern.sub(_substitute, html)
    return stripped, placeholders


def split_paragraphs(text: str) -> List[str]:
    """Split text on paragraph boundaries, dropping empty paragraphs."""

    return [part for part in PARAGRAPH_BOUNDARY.split(text) if part.strip()]


def split_to_chunks(text: str, max_length: int) -> List[str]:
    """Greedily pack paragraphs into chunks of at most ``max_length`` chars.

    A paragraph longer than ``max_length`` becomes a chunk of its own rather
    than being cut mid-sentence.
    """

    if not text or not text.strip():
        return []
    if len(text) <= max_length:
        return [text]

    chunks: List[str] = []
    current = ""
    for paragraph in split_paragraphs(text):
        if not current:
            current = paragraph
            continue
        candidate_length = len(current) + len(PARAGRAPH_SEPARATOR) + len(paragraph)
        if candidate_length > max_length:
            chunks.append(current)
            current = paragraph
        else:
            current = f"{current}{PARAGRAPH_SEPARATOR}{paragraph}"
    if current:
        chunks.append(current)
    return chunks


def find_placeholder_mismatch(
    text: str,
    placeholders: PlaceholderMap,
) -> Optional[PlaceholderMismatch]:
    """Compare the tokens present in ``text`` with the map they came from."""

    found = PLACEHOLDER_PATTERN.findall(text)
    unknown = sorted(
        {token for token in found if token not in placeholders and token not in placeholders.reserved}
    )
    missing = [token for token in placeholders if token not in found]
    duplicated = sorted(
        {token for token in found if token in placeholders and found.count(token) > 1}
    )
    if unknown or missing or duplicated:
        return PlaceholderMismatch(unknown=unknown, missing=missing, duplicated=duplicated)
    return None


def restore_structural(text: str, placeholders: PlaceholderMap) -> str:
    """Put the original fragments back in place of their tokens.

    Tokens with no entry in the map are left as they are; mismatches are
    logged rather than raised.
    """

    mismatch = find_placeholder_mismatch(text, placeholders)
    if mismatch is not None:
        logger.warning("%s", mismatch)

    def _substitute(match: re.Match[str]) -> str:
        token = match.group(0)
        fragment = placeholders.get(token)
        return token if fragment is None else fragment

    return PLACEHOLDER_PATTERN.sub(_substitute, text)


def has_translatable_text(text: str) -> bool:
    """Return True when text remains after removing tokens and tags."""

    remainder = PLACEHOLDER_PATTERN.sub("", text)
    remainder = TAG_PATTERN.sub("", remainder)
    remainder = remainder.replace("&nbsp;", " ")
    return bool(remainder.strip())


class Segmenter:
    """Turns an HTML body into translation-ready chunks and back."""

    def __init__(
        self,
        max_length: int,
        *,
        extra_patterns: Sequence[str] = (),
    ) -> None:
        self.max_length = max(1, max_length)
        if extra_patterns:
            self.pattern = compile_fragment_pattern(
                tuple(DEFAULT_FRAGMENT_PATTERNS) + tuple(extra_patterns)
            )
        else:
            self.pattern = DEFAULT_FRAGMENT_REGEX

    def segment(self, html: str) -> SegmentedBody:
        stripped, placeholders = extract_structural(html, self.pattern)
        chunks = [
            Chunk(
                index=idx,
                text=content,
                oversized=len(content) > self.max_length,
                translatable=has_translatable_text(content),
            )
            for idx, content in enumerate(split_to_chunks(stripped, self.max_length))
        ]
        oversized = sum(1 for chunk in chunks if chunk.oversized)
        logger.debug(
            "Segmented body into %d chunks (%d placeholders, %d oversized).",
            len(chunks),
            len(placeholders),
            oversized,
        )
        return SegmentedBody(chunks=chunks, placeholders=placeholders)

    def reassemble(
        self,
        translated_chunks: Sequence[str],
        placeholders: PlaceholderMap,
    ) -> str:
        joined = PARAGRAPH_SEPARATOR.join(
            chunk.strip() for chunk in translated_chunks if chunk.strip()
        )
        return restore_structural(joined, placeholders)
