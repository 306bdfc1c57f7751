"""Per-target crawl pipelines for blogs, liked feeds and searches."""

from .dispatcher import PipelineDispatcher

__all__ = ["PipelineDispatcher"]
