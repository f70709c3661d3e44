from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Sequence, Union

import pytest

from interpress.configuration import get_settings
from interpress.errors import PublishError
from interpress.providers import ProviderRequest, TranslationProvider
from interpress.structures import ContentItem, TranslatedContent

Outcome = Union[str, BaseException]


class ScriptedProvider(TranslationProvider):
    """Returns queued outcomes, then falls back to ``transform``."""

    def __init__(
        self,
        name: str = "fake",
        outcomes: Sequence[Outcome] = (),
        transform: Optional[Callable[[str], str]] = None,
        delay: float = 0.0,
    ) -> None:
        super().__init__()
        self.name = name
        self.outcomes: List[Outcome] = list(outcomes)
        self.transform = transform or (lambda text: f"[es] {text}")
        self.delay = delay
        self.requests: List[ProviderRequest] = []

    async def complete(self, request: ProviderRequest, *, timeout: float) -> str:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return self.transform(request.text)


class FakePublisher:
    """Records publish calls; fails a configured number of times per item."""

    def __init__(self, failures: Optional[Dict[int, int]] = None) -> None:
        self.failures = dict(failures or {})
        self.calls: List[int] = []
        self.published: Dict[int, TranslatedContent] = {}

    async def publish(
        self,
        item: ContentItem,
        translated: TranslatedContent,
        target_language: str,
    ) -> int:
        self.calls.append(item.item_id)
        remaining = self.failures.get(item.item_id, 0)
        if remaining:
            self.failures[item.item_id] = remaining - 1
            raise PublishError(f"host rejected post {item.item_id}")
        self.published[item.item_id] = translated
        return 1000 + item.item_id


@pytest.fixture
def make_items() -> Callable[[int], List[ContentItem]]:
    def _make(count: int) -> List[ContentItem]:
        return [
            ContentItem(
                item_id=index,
                title=f"Post {index}",
                body=(
                    f"<p>First paragraph of post {index}.</p>\n"
                    f'<img src="/img/{index}.png">\n'
                    f"<p>Second paragraph of post {index}.</p>"
                ),
                source_url=f"https://example.com/post-{index}",
                slug=f"post-{index}",
            )
            for index in range(1, count + 1)
        ]

    return _make


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
