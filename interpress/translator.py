"""Sequential batch orchestration: translate, publish, retry, report."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Sequence

from .errors import ConfigurationError, ErrorRecord, InterpressError
from .events import (
    BatchEvent,
    EventListener,
    ItemResolved,
    ItemStarted,
    ItemStateChanged,
    ProgressUpdated,
    RetryScheduled,
    RunFinished,
    RunStarted,
)
from .invoker import TranslationInvoker
from .languages import is_supported, normalise_language_code
from .policy import RetryPolicy
from .segmenter import Segmenter
from .states import ItemState, RunState, transition_item, transition_run
from .structures import BatchRun, ContentItem, ItemResult, TranslatedContent

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHUNK_LENGTH = 4000


class Publisher(Protocol):
    """Receives each translated item; returns the identifier of the new post."""

    async def publish(
        self,
        item: ContentItem,
        translated: TranslatedContent,
        target_language: str,
    ) -> int:
        ...


@dataclass
class TranslationSummary:
    """Report returned after a batch finishes."""

    state: RunState
    target_language: str
    total_items: int
    succeeded: int
    failed: int
    unprocessed: int
    progress: float
    elapsed_seconds: float
    error_messages: List[str] = field(default_factory=list)

    @classmethod
    def from_run(cls, run: BatchRun, elapsed_seconds: float) -> "TranslationSummary":
        return cls(
            state=run.state,
            target_language=run.target_language,
            total_items=run.total,
            succeeded=run.succeeded,
            failed=run.failed,
            unprocessed=run.total - run.completed_items,
            progress=run.progress,
            elapsed_seconds=elapsed_seconds,
            error_messages=[
                f"Post {result.item.item_id}: {result.last_error}"
                for result in run.results
                if not result.succeeded
            ],
        )


class BatchOrchestrator:
    """Drives items one at a time through translate -> publish."""

    def __init__(
        self,
        invoker: TranslationInvoker,
        publisher: Optional[Publisher],
        *,
        segmenter: Optional[Segmenter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        max_chunk_length: int = DEFAULT_MAX_CHUNK_LENGTH,
    ) -> None:
        self.invoker = invoker
        self.publisher = publisher
        self.segmenter = segmenter or Segmenter(max_chunk_length)
        self.retry_policy = retry_policy or RetryPolicy()
        self.run: Optional[BatchRun] = None
        self._listeners: List[EventListener] = []
        self._cancel_requested = False
        # Bound to the running loop; start() creates a fresh one per run.
        self._cancel_event: Optional[asyncio.Event] = None

    @property
    def state(self) -> RunState:
        return self.run.state if self.run is not None else RunState.IDLE

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register ``listener`` for batch events; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def cancel(self) -> None:
        """Request cooperative cancellation; in-flight calls are not interrupted."""

        if self.run is not None:
            self.run.cancel_requested = True
        if not self._cancel_requested:
            logger.info("Cancellation requested.")
        self._cancel_requested = True
        if self._cancel_event is not None:
            self._cancel_event.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    async def start(
        self,
        items: Sequence[ContentItem],
        target_language: Optional[str],
    ) -> BatchRun:
        language = self._check_preconditions(items, target_language)

        run = BatchRun(
            items=[dataclasses.replace(item, target_language=language) for item in items],
            target_language=language,
        )
        self._cancel_requested = False
        self._cancel_event = asyncio.Event()
        run.state = transition_run(run.state, RunState.RUNNING)
        self.run = run
        logger.info("Starting batch of %d posts into '%s'.", run.total, language)
        self._emit(RunStarted(total_items=run.total, target_language=language))

        try:
            for index, item in enumerate(run.items):
                if self._cancel_requested:
                    break
                run.current_index = index
                result = await self._process_item(run, index, item)
                if result is None:
                    break
                run.record(result)
                if result.succeeded:
                    logger.info(
                        "Post %s translated and published as %s (%d attempt(s)).",
                        item.item_id,
                        result.published_id,
                        result.attempts,
                    )
                else:
                    logger.error(
                        "Post %s failed after %d attempts: %s",
                        item.item_id,
                        result.attempts,
                        result.last_error,
                    )
                self._emit(ItemResolved(index=index, result=result))
                self._set_progress(run, run.completed_items / run.total * 100.0)
        finally:
            self._finish(run)
        return run

    def _finish(self, run: BatchRun) -> None:
        """Move ``run`` to its terminal state; items left unresolved abort it."""

        if run.completed_items < run.total:
            index = run.current_index
            if run.item_states[index] in (ItemState.TRANSLATING, ItemState.PUBLISHING):
                self._move_item(run, index, ItemState.PENDING)
            run.state = transition_run(run.state, RunState.ABORTED)
        else:
            run.state = transition_run(run.state, RunState.COMPLETED)
            self._set_progress(run, 100.0)

        logger.info(
            "Batch %s: %d succeeded, %d failed, %d not processed.",
            run.state.value,
            run.succeeded,
            run.failed,
            run.total - run.completed_items,
        )
        self._emit(
            RunFinished(
                state=run.state,
                succeeded=run.succeeded,
                failed=run.failed,
                progress=run.progress,
            )
        )

    def _check_preconditions(
        self,
        items: Sequence[ContentItem],
        target_language: Optional[str],
    ) -> str:
        if self.state is RunState.RUNNING:
            raise ConfigurationError("A translation batch is already running.")
        if not items:
            raise ConfigurationError("No posts selected for translation.")
        language = normalise_language_code(target_language)
        if not language:
            raise ConfigurationError("Please select a target language.")
        if not is_supported(language):
            raise ConfigurationError(f"Unsupported target language '{target_language}'.")
        if self.publisher is None:
            raise ConfigurationError("No active content host session.")
        return language

    async def _process_item(
        self,
        run: BatchRun,
        index: int,
        item: ContentItem,
    ) -> Optional[ItemResult]:
        """Run one item to a terminal state; ``None`` means it was abandoned."""

        attempts = 0
        errors: List[ErrorRecord] = []
        while True:
            attempts += 1
            self._emit(
                ItemStarted(index=index, item_id=item.item_id, title=item.title, attempt=attempts)
            )
            self._move_item(run, index, ItemState.TRANSLATING)
            try:
                translated = await self._translate_item(run, item)
                if translated is None:
                    logger.info("Discarding translation of post %s after cancellation.", item.item_id)
                    self._move_item(run, index, ItemState.PENDING)
                    return None
                self._move_item(run, index, ItemState.PUBLISHING)
                published_id = await self.publisher.publish(item, translated, run.target_language)
            except Exception as exc:
                if not isinstance(exc, InterpressError):
                    logger.exception("Unexpected error while processing post %s.", item.item_id)
                errors.append(ErrorRecord.from_exception(exc, attempt=attempts))
                if not self.retry_policy.should_retry(attempts):
                    self._move_item(run, index, ItemState.FAILED)
                    return ItemResult(
                        item=item,
                        succeeded=False,
                        attempts=attempts,
                        last_error=str(exc),
                        errors=errors,
                    )
                delay = self.retry_policy.delay_for(attempts)
                self._move_item(run, index, ItemState.PENDING)
                logger.warning(
                    "Could not process post %s (attempt %d of %d: %s). Retrying in %.1fs...",
                    item.item_id,
                    attempts,
                    self.retry_policy.max_retries + 1,
                    exc,
                    delay,
                )
                self._emit(
                    RetryScheduled(
                        index=index,
                        item_id=item.item_id,
                        attempt=attempts,
                        delay=delay,
                        error=str(exc),
                    )
                )
                if await self._wait_or_cancel(delay):
                    return None
                continue

            self._move_item(run, index, ItemState.DONE)
            return ItemResult(
                item=item,
                succeeded=True,
                attempts=attempts,
                translated=translated,
                published_id=published_id,
                errors=errors,
            )

    async def _translate_item(
        self,
        run: BatchRun,
        item: ContentItem,
    ) -> Optional[TranslatedContent]:
        segmented = self.segmenter.segment(item.body)
        # Title, each body chunk, then the publish step.
        units = len(segmented.chunks) + 2

        title = await self.invoker.translate(item.title, run.target_language, is_title=True)
        self._set_item_progress(run, 1 / units)

        pieces: List[str] = []
        for position, chunk in enumerate(segmented.chunks, start=2):
            if self._cancel_requested:
                return None
            if chunk.translatable:
                pieces.append(await self.invoker.translate(chunk.text, run.target_language))
            else:
                pieces.append(chunk.text)
            self._set_item_progress(run, position / units)

        if self._cancel_requested:
            return None
        body = self.segmenter.reassemble(pieces, segmented.placeholders)
        return TranslatedContent(title=title, body=body)

    async def _wait_or_cancel(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds; return True if cancelled meanwhile."""

        if self._cancel_requested:
            return True
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    def _move_item(self, run: BatchRun, index: int, target: ItemState) -> None:
        run.item_states[index] = transition_item(run.item_states[index], target)
        self._emit(
            ItemStateChanged(index=index, item_id=run.items[index].item_id, state=target)
        )

    def _set_item_progress(self, run: BatchRun, fraction: float) -> None:
        fraction = min(max(fraction, 0.0), 1.0)
        self._set_progress(run, (run.completed_items + fraction) / run.total * 100.0)

    def _set_progress(self, run: BatchRun, value: float) -> None:
        value = min(value, 100.0)
        # 100% is reserved for the Completed transition.
        if run.state is RunState.RUNNING and value >= 100.0:
            return
        if value <= run.progress:
            return
        run.progress = value
        self._emit(
            ProgressUpdated(
                progress=value,
                completed_items=run.completed_items,
                total_items=run.total,
            )
        )

    def _emit(self, event: BatchEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed on %s.", type(event).__name__)
