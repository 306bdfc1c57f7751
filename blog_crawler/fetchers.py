"""Metadata and content fetch stages.

Every stage runs the same cooperative loop: check the cancel signal, wait out
a pause, take one unit of work, do it, report progress. Producers always mark
their output queue complete on the way out so consumers see end-of-stream
even after a failure or cancellation.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Mapping
from urllib.parse import unquote, urlsplit

from .config import FailurePolicy
from .controls import ProgressEvent, ProgressKind, RuntimeControls
from .http_client import AuthenticationError, DownloadCancelledError, HttpSession, TransportError
from .index import Index
from .metadata import MetadataRenderer, MetadataSchema, parse_post
from .metadata.api import ApiPost, RecordError
from .parsers import MediaLinkParserSet, merge_unique
from .post_queue import PostQueue, WorkItem
from .sources import PostSource, SourcePage
from .targets import Target

LOGGER = logging.getLogger(__name__)
FETCH_FAILURE_LOG = "fetch_failures.ndjson"
MAX_FAILED_PAGES = 3


class PipelineFatalError(RuntimeError):
    """Terminal run-time failure that aborts the whole pipeline."""


@dataclass(frozen=True, slots=True)
class ContentItem:
    url: str
    filename: str
    post_id: str | None = None


@dataclass(slots=True)
class FetchStats:
    pages: int = 0
    records: int = 0
    queued: int = 0
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0


def content_filename(url: str, post_id: str | None = None) -> str:
    """Return the on-disk file name (and index identifier) for a media URL."""

    name = unquote(urlsplit(url).path.rsplit("/", 1)[-1])
    if name and "." in name:
        return name
    suffix = name or "media"
    return f"{post_id}_{suffix}" if post_id else suffix


def build_content_items(urls: list[str], post_id: str | None) -> list[ContentItem]:
    return [ContentItem(url=url, filename=content_filename(url, post_id), post_id=post_id) for url in urls]


class FailureTracker:
    """Decide when per-item transport failures escalate to pipeline-fatal."""

    def __init__(self, policy: FailurePolicy) -> None:
        self._policy = policy
        self._lock = threading.Lock()
        self._consecutive = 0
        self._auth_failures = 0

    def record_success(self) -> None:
        with self._lock:
            self._consecutive = 0

    def record_failure(self, exc: Exception) -> bool:
        """Return ``True`` when the pipeline should abort."""

        with self._lock:
            self._consecutive += 1
            if isinstance(exc, AuthenticationError):
                self._auth_failures += 1
                if self._auth_failures >= max(1, self._policy.auth_failure_threshold):
                    return True
            threshold = self._policy.consecutive_failure_threshold
            return threshold is not None and self._consecutive >= max(1, threshold)


class FailureLog:
    """Append per-item failures to an NDJSON file."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def record(self, target: Target, url: str | None, exc: Exception) -> None:
        payload = {
            "target": target.identity.name,
            "variant": target.variant.value,
            "url": url,
            "error": str(exc),
            "error_type": type(exc).__name__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            with self._lock:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as handle:
                    handle.write(json.dumps(payload, ensure_ascii=False) + "\n")
        except OSError as file_error:  # pragma: no cover - filesystem failure path
            LOGGER.warning("Failed to record fetch failure for %s: %s", url, file_error)


class _Stage:
    """Shared cancel/pause/progress plumbing for fetch loops."""

    def __init__(
        self,
        target: Target,
        controls: RuntimeControls,
        *,
        failures: FailureTracker,
        failure_log: FailureLog | None = None,
        poll_interval: float = 0.2,
    ) -> None:
        self._target = target
        self._controls = controls
        self._failures = failures
        self._failure_log = failure_log
        self._poll_interval = poll_interval
        self._stats_lock = threading.Lock()
        self.stats = FetchStats()

    @property
    def target(self) -> Target:
        return self._target

    def _cancelled(self) -> bool:
        return self._controls.cancel.is_cancelled()

    def _ready_for_work(self) -> bool:
        """Return ``False`` when the loop must unwind."""

        if self._cancelled():
            return False
        if self._controls.pause.is_paused():
            return self._controls.pause.wait_until_resumed(self._controls.cancel, self._poll_interval)
        return True

    def _report(self, kind: ProgressKind, message: str, sequence: int | None = None) -> None:
        self._controls.progress.report(
            ProgressEvent(target=self._target.identity.name, kind=kind, message=message, sequence=sequence)
        )

    def _count(self, field_name: str, amount: int = 1) -> None:
        with self._stats_lock:
            setattr(self.stats, field_name, getattr(self.stats, field_name) + amount)

    def _handle_item_error(self, url: str | None, exc: Exception, sequence: int | None = None) -> None:
        """Skip and report one failed item; escalate transport failures past the policy threshold."""

        LOGGER.error("Failed to fetch %s for %s: %s", url, self._target.identity.name, exc)
        self._count("failed")
        if self._failure_log is not None:
            self._failure_log.record(self._target, url, exc)
        self._report(ProgressKind.FAILED, f"{url}: {exc}", sequence)
        if isinstance(exc, TransportError) and self._failures.record_failure(exc):
            raise PipelineFatalError(f"Aborting crawl of {self._target.identity.name}: {exc}") from exc

    def _next_item(self, source: PostQueue) -> WorkItem | None:
        """Dequeue one item, polling so cancellation and pause are noticed while idle.

        An item taken just as a pause begins is held until the pause ends;
        ``None`` is returned if the run is cancelled first.
        """

        pause = self._controls.pause
        while True:
            if self._cancelled():
                return None
            if pause.is_paused():
                if not pause.wait_until_resumed(self._controls.cancel, self._poll_interval):
                    return None
                continue
            try:
                item = source.dequeue(timeout=self._poll_interval)
            except queue.Empty:
                continue
            if pause.is_paused() and not pause.wait_until_resumed(self._controls.cancel, self._poll_interval):
                return None
            return item


class _PagedProducer(_Stage):
    """Walk a paginated remote source and enqueue what each page yields."""

    def __init__(
        self,
        target: Target,
        controls: RuntimeControls,
        output: PostQueue,
        source: PostSource,
        *,
        max_pages: int | None = None,
        **kwargs,
    ) -> None:
        super().__init__(target, controls, **kwargs)
        self._output = output
        self._source = source
        self._max_pages = max_pages

    @property
    def output(self) -> PostQueue:
        return self._output

    def run(self) -> None:
        try:
            self._run_pages()
        finally:
            self._output.mark_complete()

    def _run_pages(self) -> None:
        page_number = 0
        failed_pages = 0
        while self._max_pages is None or page_number < self._max_pages:
            if not self._ready_for_work():
                LOGGER.info("Stopping page walk for %s at page %d", self._target.identity.name, page_number)
                return
            try:
                page = self._source.fetch_page(page_number)
            except TransportError as exc:
                self._handle_item_error(exc.url, exc)
                failed_pages += 1
                if self._cancelled():
                    return
                if failed_pages >= MAX_FAILED_PAGES:
                    LOGGER.warning("Giving up on %s after %d failed pages", self._target.identity.name, failed_pages)
                    return
                page_number += 1
                continue
            if self._cancelled():
                return

            failed_pages = 0
            self._failures.record_success()
            emitted = self._emit(page)
            self._count("pages")
            self._report(ProgressKind.PAGE, f"page {page_number + 1}: queued {emitted} items")
            if not page.has_more:
                return
            page_number += 1

    def _emit(self, page: SourcePage) -> int:  # pragma: no cover - interface only
        raise NotImplementedError


class MetadataFetcher(_PagedProducer):
    """Producer for blog variants: enqueue raw post records."""

    def _emit(self, page: SourcePage) -> int:
        for record in page.records:
            self._output.enqueue(record)
        self._count("records", len(page.records))
        return len(page.records)


class FeedFetcher(_PagedProducer):
    """Producer for feed variants: enqueue media found on each page directly."""

    def __init__(self, *args, parser_set: MediaLinkParserSet, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._parser_set = parser_set

    def _emit(self, page: SourcePage) -> int:
        emitted = 0
        for record in page.records:
            try:
                post = ApiPost.from_record(record)
            except RecordError as exc:
                LOGGER.warning("Skipping malformed post on %s: %s", self._target.identity.name, exc)
                continue
            urls = merge_unique([post.media_urls, self._parser_set.extract_all(post.body)])
            for item in build_content_items(urls, post.post_id):
                self._output.enqueue(item)
                emitted += 1
        for fragment in page.fragments:
            for item in build_content_items(self._parser_set.extract_all(fragment), None):
                self._output.enqueue(item)
                emitted += 1
        self._count("queued", emitted)
        return emitted


class MetadataWriter:
    """Append rendered metadata to the target's metadata file."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def write(self, payload: bytes) -> None:
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("ab") as handle:
                handle.write(payload)


class PostProcessor(_Stage):
    """Consume post records: persist their metadata and enqueue their media."""

    def __init__(
        self,
        target: Target,
        controls: RuntimeControls,
        source: PostQueue,
        output: PostQueue,
        *,
        schema: MetadataSchema,
        renderer: MetadataRenderer,
        writer: MetadataWriter,
        parser_set: MediaLinkParserSet,
        **kwargs,
    ) -> None:
        super().__init__(target, controls, **kwargs)
        self._source = source
        self._output = output
        self._schema = schema
        self._renderer = renderer
        self._writer = writer
        self._parser_set = parser_set

    def run(self) -> None:
        try:
            while self._ready_for_work():
                item = self._next_item(self._source)
                if item is None:
                    return
                self._process(item)
        finally:
            self._output.mark_complete()

    def _process(self, item: WorkItem[Mapping[str, object]]) -> None:
        try:
            post = parse_post(self._schema, item.payload)
            rendered = self._renderer.render(item.payload)
        except RecordError as exc:
            LOGGER.warning("Skipping malformed post #%d for %s: %s", item.sequence, self._target.identity.name, exc)
            self._count("failed")
            self._report(ProgressKind.FAILED, str(exc), item.sequence)
            return

        try:
            self._writer.write(rendered)
        except OSError as exc:
            self._handle_item_error(post.post_url or post.post_id, exc, item.sequence)
            return

        urls = merge_unique([post.media_urls, self._parser_set.extract_all(post.body)])
        for content in build_content_items(urls, post.post_id):
            self._output.enqueue(content)
        self._count("queued", len(urls))


class ContentFetcher(_Stage):
    """Consumer: download queued media into the target directory.

    ``run`` may be executed by several worker threads at once against the
    same queue.
    """

    def __init__(
        self,
        target: Target,
        controls: RuntimeControls,
        source: PostQueue,
        session: HttpSession,
        index: Index,
        destination: Path,
        *,
        recorder: Callable[[Target, str, str], object] | None = None,
        **kwargs,
    ) -> None:
        super().__init__(target, controls, **kwargs)
        self._source = source
        self._session = session
        self._index = index
        self._destination = destination
        self._recorder = recorder
        self._claimed: set[str] = set()
        self._claim_lock = threading.Lock()

    @property
    def source(self) -> PostQueue:
        return self._source

    def run(self) -> None:
        while self._ready_for_work():
            item = self._next_item(self._source)
            if item is None:
                return
            self._process(item)

    def _claim(self, filename: str) -> bool:
        with self._claim_lock:
            if filename in self._claimed:
                return False
            self._claimed.add(filename)
            return True

    def _process(self, item: WorkItem[ContentItem]) -> None:
        content = item.payload
        target_path = self._destination / content.filename
        if content.filename in self._index or target_path.exists() or not self._claim(content.filename):
            self._count("skipped")
            self._report(ProgressKind.SKIPPED, content.filename, item.sequence)
            return

        try:
            self._destination.mkdir(parents=True, exist_ok=True)
            _, bytes_written = self._session.stream_to_file(
                content.url, target_path, should_abort=self._controls.cancel.is_cancelled
            )
        except DownloadCancelledError:
            with self._claim_lock:
                self._claimed.discard(content.filename)
            LOGGER.debug("Abandoned %s for %s on cancellation", content.url, self._target.identity.name)
            return
        except (TransportError, OSError) as exc:
            with self._claim_lock:
                self._claimed.discard(content.filename)
            self._handle_item_error(content.url, exc, item.sequence)
            return

        self._failures.record_success()
        if self._recorder is not None:
            self._recorder(self._target, content.filename, content.filename)
        self._count("downloaded")
        self._report(ProgressKind.DOWNLOADED, f"{content.filename} ({bytes_written} bytes)", item.sequence)
