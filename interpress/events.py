"""Events the batch orchestrator publishes to its subscribers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Union

from .states import ItemState, RunState
from .structures import ItemResult


@dataclass(frozen=True)
class RunStarted:
    total_items: int
    target_language: str


@dataclass(frozen=True)
class ItemStarted:
    index: int
    item_id: int
    title: str
    attempt: int


@dataclass(frozen=True)
class ItemStateChanged:
    index: int
    item_id: int
    state: ItemState


@dataclass(frozen=True)
class ProgressUpdated:
    progress: float
    completed_items: int
    total_items: int


@dataclass(frozen=True)
class RetryScheduled:
    index: int
    item_id: int
    attempt: int
    delay: float
    error: str


@dataclass(frozen=True)
class ItemResolved:
    index: int
    result: ItemResult


@dataclass(frozen=True)
class RunFinished:
    state: RunState
    succeeded: int
    failed: int
    progress: float


BatchEvent = Union[
    RunStarted,
    ItemStarted,
    ItemStateChanged,
    ProgressUpdated,
    RetryScheduled,
    ItemResolved,
    RunFinished,
]

EventListener = Callable[[BatchEvent], None]
