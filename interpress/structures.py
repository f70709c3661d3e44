"""Core data structures for the Interpress translator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set, Tuple

from .errors import ErrorKind, ErrorRecord
from .states import ItemState, RunState

PLACEHOLDER_TEMPLATE = "{{{{HTML_ELEMENT_{index}}}}}"


@dataclass(frozen=True)
class ContentItem:
    """A post selected for translation."""

    item_id: int
    title: str
    body: str
    target_language: Optional[str] = None
    source_url: Optional[str] = None
    slug: Optional[str] = None


@dataclass
class PlaceholderMap:
    """Maps placeholder tokens to the markup fragments they replaced."""

    fragments: Dict[str, str] = field(default_factory=dict)
    # Tokens that already appear literally in the source; never issued.
    reserved: Set[str] = field(default_factory=set)

    def add(self, fragment: str) -> str:
        index = len(self.fragments)
        token = PLACEHOLDER_TEMPLATE.format(index=index)
        while token in self.reserved or token in self.fragments:
            index += 1
            token = PLACEHOLDER_TEMPLATE.format(index=index)
        self.fragments[token] = fragment
        return token

    def get(self, token: str) -> Optional[str]:
        return self.fragments.get(token)

    def tokens(self) -> List[str]:
        return list(self.fragments)

    def items(self) -> List[Tuple[str, str]]:
        return list(self.fragments.items())

    def __contains__(self, token: object) -> bool:
        return token in self.fragments

    def __iter__(self) -> Iterator[str]:
        return iter(self.fragments)

    def __len__(self) -> int:
        return len(self.fragments)


@dataclass
class Chunk:
    """An ordered slice of a body's text."""

    index: int
    text: str
    oversized: bool = False
    translatable: bool = True


@dataclass
class SegmentedBody:
    """Chunks derived from one body plus the placeholders they share."""

    chunks: List[Chunk]
    placeholders: PlaceholderMap


@dataclass
class TranslationAttempt:
    """One provider call made by the invoker."""

    text: str
    target_language: str
    credential_index: int
    credential_label: str
    succeeded: bool
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    elapsed_seconds: float = 0.0


@dataclass
class TranslatedContent:
    """Translated title and body for one item."""

    title: str
    body: str


@dataclass
class ItemResult:
    """Terminal state for one item of a batch."""

    item: ContentItem
    succeeded: bool
    attempts: int
    translated: Optional[TranslatedContent] = None
    published_id: Optional[int] = None
    last_error: Optional[str] = None
    errors: List[ErrorRecord] = field(default_factory=list)

    @property
    def state(self) -> ItemState:
        return ItemState.DONE if self.succeeded else ItemState.FAILED


@dataclass
class BatchRun:
    """Live orchestration state, owned and mutated by the orchestrator only."""

    items: List[ContentItem]
    target_language: str
    state: RunState = RunState.IDLE
    item_states: List[ItemState] = field(default_factory=list)
    current_index: int = 0
    progress: float = 0.0
    succeeded: int = 0
    failed: int = 0
    results: List[ItemResult] = field(default_factory=list)
    cancel_requested: bool = False

    def __post_init__(self) -> None:
        if not self.item_states:
            self.item_states = [ItemState.PENDING for _ in self.items]

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def completed_items(self) -> int:
        return len(self.results)

    def record(self, result: ItemResult) -> None:
        self.results.append(result)
        if result.succeeded:
            self.succeeded += 1
        else:
            self.failed += 1

    def tally(self) -> Dict[str, int]:
        return {"success": self.succeeded, "failed": self.failed}
