"""Producer/consumer queue bridging the metadata and content stages."""

from __future__ import annotations

import logging
import queue
import threading
from collections import deque
from dataclasses import dataclass
from itertools import count
from typing import Deque, Generic, Iterator, TypeVar

from .targets import Target

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class QueueProtocolError(RuntimeError):
    """Raised when a caller breaks the single ``mark_complete`` contract."""


@dataclass(frozen=True, slots=True)
class WorkItem(Generic[T]):
    target: Target
    payload: T
    sequence: int


class PostQueue(Generic[T]):
    """Unbounded FIFO shared by one producer side and any number of consumers.

    ``dequeue`` returns ``None`` only once the queue has been marked complete
    and drained; that state is terminal.
    """

    def __init__(self, target: Target, name: str = "posts") -> None:
        self._target = target
        self._name = name
        self._items: Deque[WorkItem[T]] = deque()
        self._condition = threading.Condition()
        self._sequence = count(1)
        self._complete = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_complete(self) -> bool:
        with self._condition:
            return self._complete

    def __len__(self) -> int:
        with self._condition:
            return len(self._items)

    def enqueue(self, payload: T) -> WorkItem[T]:
        with self._condition:
            if self._complete:
                raise QueueProtocolError(f"Cannot enqueue into completed queue '{self._name}'")
            item = WorkItem(target=self._target, payload=payload, sequence=next(self._sequence))
            self._items.append(item)
            self._condition.notify()
        return item

    def dequeue(self, timeout: float | None = None) -> WorkItem[T] | None:
        """Return the next item, or ``None`` at end-of-stream.

        Raises ``queue.Empty`` when ``timeout`` elapses first.
        """

        with self._condition:
            available = self._condition.wait_for(
                lambda: self._items or self._complete,
                timeout=timeout,
            )
            if not available:
                raise queue.Empty
            if self._items:
                return self._items.popleft()
            return None

    def mark_complete(self) -> None:
        with self._condition:
            if self._complete:
                raise QueueProtocolError(f"Queue '{self._name}' was already marked complete")
            self._complete = True
            LOGGER.debug("Queue '%s' for %s marked complete with %d pending", self._name, self._target.name, len(self._items))
            self._condition.notify_all()

    def __iter__(self) -> Iterator[WorkItem[T]]:
        while True:
            item = self.dequeue()
            if item is None:
                return
            yield item
