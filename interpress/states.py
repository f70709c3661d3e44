"""Run and item state machines.

Transitions are pure functions: they validate a move and return the new
state, leaving the caller to store it.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet

from .errors import InvalidTransition


class RunState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class ItemState(Enum):
    PENDING = "pending"
    TRANSLATING = "translating"
    PUBLISHING = "publishing"
    DONE = "done"
    FAILED = "failed"


RUN_TRANSITIONS: Dict[RunState, FrozenSet[RunState]] = {
    RunState.IDLE: frozenset({RunState.RUNNING}),
    RunState.RUNNING: frozenset({RunState.COMPLETED, RunState.ABORTED}),
    # A finished run may be started again with a fresh item set.
    RunState.COMPLETED: frozenset({RunState.RUNNING}),
    RunState.ABORTED: frozenset({RunState.RUNNING}),
}

ITEM_TRANSITIONS: Dict[ItemState, FrozenSet[ItemState]] = {
    ItemState.PENDING: frozenset({ItemState.TRANSLATING}),
    ItemState.TRANSLATING: frozenset(
        {ItemState.PUBLISHING, ItemState.PENDING, ItemState.FAILED}
    ),
    ItemState.PUBLISHING: frozenset(
        {ItemState.DONE, ItemState.PENDING, ItemState.FAILED}
    ),
    ItemState.DONE: frozenset(),
    ItemState.FAILED: frozenset(),
}

TERMINAL_RUN_STATES = frozenset({RunState.COMPLETED, RunState.ABORTED})
TERMINAL_ITEM_STATES = frozenset({ItemState.DONE, ItemState.FAILED})


def transition_run(current: RunState, target: RunState) -> RunState:
    """Return ``target`` if the run may move there from ``current``."""

    if target not in RUN_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Run cannot move from {current.value} to {target.value}."
        )
    return target


def transition_item(current: ItemState, target: ItemState) -> ItemState:
    """Return ``target`` if an item may move there from ``current``."""

    if target not in ITEM_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Item cannot move from {current.value} to {target.value}."
        )
    return target
