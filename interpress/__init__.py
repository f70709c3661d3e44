"""Interpress: translate WordPress posts through a text-generation provider."""

from .errors import InterpressError
from .invoker import TranslationInvoker
from .segmenter import Segmenter
from .structures import BatchRun, ContentItem, ItemResult, TranslatedContent
from .translator import BatchOrchestrator, TranslationSummary

__version__ = "0.1.0"

__all__ = [
    "BatchOrchestrator",
    "BatchRun",
    "ContentItem",
    "InterpressError",
    "ItemResult",
    "Segmenter",
    "TranslatedContent",
    "TranslationInvoker",
    "TranslationSummary",
]
