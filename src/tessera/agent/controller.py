"""Hand-off of state snapshots (plan, token count) from the engine to the UI."""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Iterator

from tessera.core.schema import Plan

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10


@dataclass
class State:
    """A snapshot for the UI; fields left at their defaults were not part of the update."""

    plan: Plan | None = None
    token_count: int = 0
    model_name: str = ""


class StateController:
    """
    Bounded single-consumer queue of :class:`State` snapshots.

    Producers never drop updates: ``publish`` blocks while the queue is full, so the engine uses
    ``publish_async`` to keep a slow consumer from stalling a turn.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self.capacity = capacity
        self._queue: "queue.Queue[State]" = queue.Queue(maxsize=capacity)

    def publish(self, state: State) -> None:
        """Enqueue *state*, blocking while the queue is full."""
        self._queue.put(state)

    def publish_async(self, state: State) -> threading.Thread:
        """Publish from a daemon thread and return immediately."""
        thread = threading.Thread(target=self.publish, args=(state,), daemon=True)
        thread.start()
        return thread

    def subscribe(self) -> Iterator[State]:
        """Yield snapshots as they arrive; never ends."""
        while True:
            yield self._queue.get()

    def qsize(self) -> int:
        """Approximate number of pending snapshots."""
        return self._queue.qsize()
