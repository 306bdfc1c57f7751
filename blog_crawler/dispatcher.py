"""Assemble the pipeline matching a target's variant."""

from __future__ import annotations

import logging
from typing import Dict

import httpx

from .config import CrawlerConfig
from .controls import RuntimeControls
from .fetchers import (
    FETCH_FAILURE_LOG,
    ContentFetcher,
    FailureLog,
    FailureTracker,
    FeedFetcher,
    MetadataFetcher,
    MetadataWriter,
    PostProcessor,
)
from .http_client import HttpSession
from .index import Index, IndexLoader, IndexRegistry, IndexStore
from .metadata import MetadataRenderer, MetadataSchema, resolve_renderer
from .parsers import MediaLinkParserSet, build_media_parser_set
from .pipelines import (
    LikedFeedPipeline,
    Pipeline,
    PrivateBlogPipeline,
    PublicBlogPipeline,
    SearchPipeline,
    TagSearchPipeline,
)
from .post_queue import PostQueue
from .sources import (
    ApiPostsSource,
    LikedPostsSource,
    PostSource,
    SearchPostsSource,
    SvcPostsSource,
    TaggedPostsSource,
)
from .targets import MetadataFormat, Target, TargetVariant, UnsupportedFormatError, UnsupportedTargetError

LOGGER = logging.getLogger(__name__)

_PIPELINE_TYPES: Dict[TargetVariant, type[Pipeline]] = {
    TargetVariant.PUBLIC_BLOG: PublicBlogPipeline,
    TargetVariant.PRIVATE_BLOG: PrivateBlogPipeline,
    TargetVariant.LIKED_FEED: LikedFeedPipeline,
    TargetVariant.SEARCH_RESULTS: SearchPipeline,
    TargetVariant.TAG_SEARCH_RESULTS: TagSearchPipeline,
}

_BLOG_SCHEMAS: Dict[TargetVariant, MetadataSchema] = {
    TargetVariant.PUBLIC_BLOG: MetadataSchema.API,
    TargetVariant.PRIVATE_BLOG: MetadataSchema.SVC,
}


def describe(variant: object) -> type[Pipeline]:
    """Return the pipeline type serving ``variant`` without building anything."""

    if not isinstance(variant, TargetVariant):
        raise UnsupportedTargetError(variant)
    try:
        return _PIPELINE_TYPES[variant]
    except KeyError as exc:  # pragma: no cover - every enum member is registered
        raise UnsupportedTargetError(variant) from exc


class PipelineDispatcher:
    """Build the object graph for one target run.

    Assembly validates the target, loads its index and wires queues, fetchers
    and parsers together. It never issues a network request; the caller runs
    the returned pipeline.
    """

    def __init__(
        self,
        config: CrawlerConfig,
        *,
        store: IndexStore | None = None,
        registry: IndexRegistry | None = None,
        parser_set: MediaLinkParserSet | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config
        self._store = store or IndexStore(config)
        self._index_loader = IndexLoader(self._store, registry)
        self._parser_set = parser_set or build_media_parser_set()
        self._transport = transport

    @property
    def store(self) -> IndexStore:
        return self._store

    def assemble(self, target: Target, controls: RuntimeControls) -> Pipeline:
        if controls is None:
            raise ValueError("Runtime controls are required to assemble a pipeline")

        pipeline_type = describe(target.variant)
        renderer = self._resolve_renderer(target)
        index = self._index_loader.load(target, self._config.load_all_indices)
        LOGGER.info(
            "Assembling %s for %s (%d known files)",
            pipeline_type.__name__,
            target.identity.name,
            len(index),
        )

        session = HttpSession(self._config, transport=self._transport)
        try:
            return self._build(target, controls, session, index, renderer)
        except Exception:
            session.close()
            raise

    def _resolve_renderer(self, target: Target) -> MetadataRenderer | None:
        if not isinstance(target.metadata_format, MetadataFormat):
            raise UnsupportedFormatError(target.metadata_format)
        if not target.variant.has_metadata_stage:
            return None
        return resolve_renderer(_BLOG_SCHEMAS[target.variant], target.metadata_format)

    def _build(
        self,
        target: Target,
        controls: RuntimeControls,
        session: HttpSession,
        index: Index,
        renderer: MetadataRenderer | None,
    ) -> Pipeline:
        config = self._config
        name = target.identity.name
        target_dir = config.target_directory(target)
        stage_options = {
            "failures": FailureTracker(config.failure_policy),
            "failure_log": FailureLog(target_dir / FETCH_FAILURE_LOG),
            "poll_interval": config.poll_interval,
        }

        content_queue: PostQueue = PostQueue(target, "content")
        content_fetcher = ContentFetcher(
            target,
            controls,
            content_queue,
            session,
            index,
            target_dir,
            recorder=self._store.record_download,
            **stage_options,
        )
        common = {
            "session": session,
            "parser_set": self._parser_set,
            "content_queue": content_queue,
            "content_fetcher": content_fetcher,
            "content_workers": config.content_workers,
        }

        variant = target.variant
        if variant == TargetVariant.PUBLIC_BLOG:
            source = ApiPostsSource(session, name, api_key=config.api_key, page_size=config.page_size)
            return self._build_blog(
                PublicBlogPipeline, target, controls, source, MetadataSchema.API, renderer, stage_options, common
            )
        elif variant == TargetVariant.PRIVATE_BLOG:
            source = SvcPostsSource(session, name, page_size=config.page_size)
            return self._build_blog(
                PrivateBlogPipeline, target, controls, source, MetadataSchema.SVC, renderer, stage_options, common
            )
        elif variant == TargetVariant.LIKED_FEED:
            source = LikedPostsSource(session, name)
            return self._build_feed(LikedFeedPipeline, target, controls, source, stage_options, common)
        elif variant == TargetVariant.SEARCH_RESULTS:
            source = SearchPostsSource(session, name)
            return self._build_feed(SearchPipeline, target, controls, source, stage_options, common)
        elif variant == TargetVariant.TAG_SEARCH_RESULTS:
            source = TaggedPostsSource(session, name, api_key=config.api_key)
            return self._build_feed(TagSearchPipeline, target, controls, source, stage_options, common)
        raise UnsupportedTargetError(variant)

    def _build_blog(
        self,
        pipeline_type: type[Pipeline],
        target: Target,
        controls: RuntimeControls,
        source: PostSource,
        schema: MetadataSchema,
        renderer: MetadataRenderer | None,
        stage_options: dict,
        common: dict,
    ) -> Pipeline:
        if renderer is None:  # pragma: no cover - resolved for every blog variant
            raise UnsupportedFormatError(target.metadata_format)
        metadata_queue: PostQueue = PostQueue(target, "metadata")
        metadata_fetcher = MetadataFetcher(
            target,
            controls,
            metadata_queue,
            source,
            max_pages=self._config.max_pages,
            **stage_options,
        )
        writer = MetadataWriter(self._config.target_directory(target) / f"metadata.{renderer.extension}")
        post_processor = PostProcessor(
            target,
            controls,
            metadata_queue,
            common["content_queue"],
            schema=schema,
            renderer=renderer,
            writer=writer,
            parser_set=self._parser_set,
            **stage_options,
        )
        return pipeline_type(
            target,
            controls,
            metadata_queue=metadata_queue,
            metadata_fetcher=metadata_fetcher,
            post_processor=post_processor,
            **common,
        )

    def _build_feed(
        self,
        pipeline_type: type[Pipeline],
        target: Target,
        controls: RuntimeControls,
        source: PostSource,
        stage_options: dict,
        common: dict,
    ) -> Pipeline:
        feed_fetcher = FeedFetcher(
            target,
            controls,
            common["content_queue"],
            source,
            max_pages=self._config.max_pages,
            parser_set=self._parser_set,
            **stage_options,
        )
        return pipeline_type(target, controls, feed_fetcher=feed_fetcher, **common)
