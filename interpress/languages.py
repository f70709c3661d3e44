"""Supported target languages."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

LANGUAGES: List[Tuple[str, str]] = [
    ("zh", "Chinese (Simplified)"),
    ("es", "Spanish"),
    ("fr", "French"),
    ("de", "German"),
    ("it", "Italian"),
    ("ja", "Japanese"),
    ("ko", "Korean"),
    ("pt", "Portuguese"),
    ("ru", "Russian"),
    ("ar", "Arabic"),
]

_NAMES: Dict[str, str] = {code: name for code, name in LANGUAGES}


def normalise_language_code(code: Optional[str]) -> str:
    return (code or "").strip().lower()


def is_supported(code: Optional[str]) -> bool:
    return normalise_language_code(code) in _NAMES


def get_language_name(code: Optional[str]) -> Optional[str]:
    return _NAMES.get(normalise_language_code(code))


def supported_codes() -> List[str]:
    return [code for code, _ in LANGUAGES]
