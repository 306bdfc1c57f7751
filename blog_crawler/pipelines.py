"""Variant-specific pipelines: the running object graph for one target."""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable

from .controls import ProgressEvent, ProgressKind, RuntimeControls
from .fetchers import (
    ContentFetcher,
    FeedFetcher,
    MetadataFetcher,
    PipelineFatalError,
    PostProcessor,
)
from .http_client import HttpSession
from .parsers import MediaLinkParserSet
from .post_queue import PostQueue
from .targets import Target

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PipelineResult:
    target: Target
    pages: int = 0
    queued: int = 0
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: bool = False


class Pipeline:
    """Queues, fetch stages and shared collaborators for one crawl run.

    Built unstarted by the dispatcher; :meth:`run` executes every stage on
    its own worker thread and blocks until the producers have finished and
    the content queue is drained, or the run is cancelled or aborts.
    """

    def __init__(
        self,
        target: Target,
        controls: RuntimeControls,
        *,
        session: HttpSession,
        parser_set: MediaLinkParserSet,
        content_queue: PostQueue,
        content_fetcher: ContentFetcher,
        content_workers: int = 1,
    ) -> None:
        self.target = target
        self.controls = controls
        self.session = session
        self.parser_set = parser_set
        self.content_queue = content_queue
        self.content_fetcher = content_fetcher
        self.content_workers = max(1, content_workers)

    @property
    def queues(self) -> tuple[PostQueue, ...]:
        return (self.content_queue,)

    def _producer_tasks(self) -> list[tuple[str, Callable[[], None]]]:  # pragma: no cover - interface only
        raise NotImplementedError

    def _stages(self) -> list:
        return [self.content_fetcher]

    def run(self) -> PipelineResult:
        name = self.target.identity.name
        tasks = self._producer_tasks()
        tasks += [(f"content-{index}", self.content_fetcher.run) for index in range(self.content_workers)]
        LOGGER.info("Starting %s pipeline for %s with %d stages", self.target.variant.value, name, len(tasks))

        fatal: BaseException | None = None
        try:
            with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix=f"crawl-{name}") as executor:
                futures: dict[Future[None], str] = {executor.submit(task): label for label, task in tasks}
                done, _ = wait(futures, return_when=FIRST_EXCEPTION)
                for future in done:
                    exc = future.exception()
                    if exc is not None:
                        fatal = exc
                        LOGGER.error("Stage %s of %s failed: %s", futures[future], name, exc)
                        self.controls.cancel.cancel(f"{name}: {exc}")
                        break
                # remaining stages observe the cancel signal and unwind
                wait(futures)
        finally:
            self.session.close()

        result = self._collect_result()
        if fatal is not None:
            self._report_finished(f"aborted: {fatal}")
            if isinstance(fatal, PipelineFatalError):
                raise fatal
            raise PipelineFatalError(f"Crawl of {name} failed: {fatal}") from fatal
        self._report_finished(
            f"{result.downloaded} downloaded, {result.skipped} skipped, {result.failed} failed"
            + (" (cancelled)" if result.cancelled else "")
        )
        return result

    def _collect_result(self) -> PipelineResult:
        result = PipelineResult(target=self.target, cancelled=self.controls.cancel.is_cancelled())
        for stage in self._stages():
            stats = stage.stats
            result.pages += stats.pages
            result.queued += stats.queued
            result.downloaded += stats.downloaded
            result.skipped += stats.skipped
            result.failed += stats.failed
        return result

    def _report_finished(self, message: str) -> None:
        self.controls.progress.report(
            ProgressEvent(target=self.target.identity.name, kind=ProgressKind.FINISHED, message=message)
        )


class _BlogPipeline(Pipeline):
    """Two-queue pipeline: post records -> metadata + media -> downloads."""

    def __init__(
        self,
        target: Target,
        controls: RuntimeControls,
        *,
        metadata_queue: PostQueue,
        metadata_fetcher: MetadataFetcher,
        post_processor: PostProcessor,
        **kwargs,
    ) -> None:
        super().__init__(target, controls, **kwargs)
        self.metadata_queue = metadata_queue
        self.metadata_fetcher = metadata_fetcher
        self.post_processor = post_processor

    @property
    def queues(self) -> tuple[PostQueue, ...]:
        return (self.metadata_queue, self.content_queue)

    def _producer_tasks(self) -> list[tuple[str, Callable[[], None]]]:
        return [("metadata", self.metadata_fetcher.run), ("posts", self.post_processor.run)]

    def _stages(self) -> list:
        return [self.metadata_fetcher, self.post_processor, self.content_fetcher]


class PublicBlogPipeline(_BlogPipeline):
    pass


class PrivateBlogPipeline(_BlogPipeline):
    pass


class _FeedPipeline(Pipeline):
    """Single-queue pipeline: result pages -> media -> downloads."""

    def __init__(self, target: Target, controls: RuntimeControls, *, feed_fetcher: FeedFetcher, **kwargs) -> None:
        super().__init__(target, controls, **kwargs)
        self.feed_fetcher = feed_fetcher

    def _producer_tasks(self) -> list[tuple[str, Callable[[], None]]]:
        return [("feed", self.feed_fetcher.run)]

    def _stages(self) -> list:
        return [self.feed_fetcher, self.content_fetcher]


class LikedFeedPipeline(_FeedPipeline):
    pass


class SearchPipeline(_FeedPipeline):
    pass


class TagSearchPipeline(_FeedPipeline):
    pass

