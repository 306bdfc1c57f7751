"""Cooperative run controls shared by every stage of a pipeline."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

LOGGER = logging.getLogger(__name__)


class ProgressKind(str, Enum):
    PAGE = "page"
    QUEUED = "queued"
    DOWNLOADED = "downloaded"
    SKIPPED = "skipped"
    FAILED = "failed"
    FINISHED = "finished"


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    target: str
    kind: ProgressKind
    message: str
    sequence: int | None = None


class ProgressSink(Protocol):
    """Observer receiving progress events; ``report`` must not block."""

    def report(self, event: ProgressEvent) -> None:
        ...


class LoggingProgressSink:
    """Write progress events to the log."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or LOGGER

    def report(self, event: ProgressEvent) -> None:
        level = logging.WARNING if event.kind == ProgressKind.FAILED else logging.INFO
        self._logger.log(level, "[%s] %s: %s", event.target, event.kind.value, event.message)


class CancelSignal:
    """One-way cancellation flag; once set it stays set."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self._reason = reason
            LOGGER.info("Cancellation requested%s", f": {reason}" if reason else "")
            self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


class PauseSignal:
    """Gate that stops fetchers from starting new work while paused."""

    def __init__(self) -> None:
        self._running = threading.Event()
        self._running.set()

    def is_paused(self) -> bool:
        return not self._running.is_set()

    def pause(self) -> None:
        if self._running.is_set():
            LOGGER.info("Pausing crawl; in-flight items will complete")
            self._running.clear()

    def resume(self) -> None:
        if not self._running.is_set():
            LOGGER.info("Resuming crawl")
            self._running.set()

    def wait_until_resumed(self, cancel: CancelSignal, poll_interval: float = 0.2) -> bool:
        """Block while paused; return ``False`` if cancelled while waiting."""

        while not self._running.wait(poll_interval):
            if cancel.is_cancelled():
                return False
        return not cancel.is_cancelled()


@dataclass(slots=True)
class RuntimeControls:
    progress: ProgressSink = field(default_factory=LoggingProgressSink)
    pause: PauseSignal = field(default_factory=PauseSignal)
    cancel: CancelSignal = field(default_factory=CancelSignal)
