"""Command-line entrypoint for crawling one target."""

from __future__ import annotations

import argparse
import logging
import signal
from pathlib import Path
from typing import Sequence

from .config import ConfigurationError, CrawlerConfig, FailurePolicy, ProxyConfig, load_cookies
from .controls import RuntimeControls
from .dispatcher import PipelineDispatcher
from .fetchers import PipelineFatalError
from .index import IndexLoadError, IndexRegistry, IndexStore
from .targets import MetadataFormat, Target, TargetVariant

LOGGER = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Download the media of a blog, feed or search")
    parser.add_argument("name", help="Blog name, search phrase or tag to crawl")
    parser.add_argument(
        "--variant",
        choices=[variant.value for variant in TargetVariant],
        default=TargetVariant.PUBLIC_BLOG.value,
        help="Fetch strategy for the target (default: public-blog)",
    )
    parser.add_argument("--target-id", type=int, default=0, help="Numeric id recorded with the target's index")
    parser.add_argument(
        "--metadata-format",
        choices=[fmt.value for fmt in MetadataFormat],
        default=MetadataFormat.TEXT.value,
        help="How post metadata is persisted for blog variants",
    )
    parser.add_argument(
        "--download-root",
        type=Path,
        default=CrawlerConfig().download_root,
        help="Base directory for downloaded media",
    )
    parser.add_argument("--index-dir", type=Path, default=None, help="Directory holding per-target index files")
    parser.add_argument(
        "--load-all-indices",
        action="store_true",
        help="Load every index at startup and share them read-only across targets",
    )
    parser.add_argument("--api-key", type=str, default=None, help="Consumer key for the public API")
    parser.add_argument("--cookies", type=Path, default=None, help="JSON file of session cookies for private content")
    parser.add_argument("--workers", type=int, default=2, help="Number of concurrent download workers")
    parser.add_argument("--page-size", type=int, default=50, help="Posts requested per API page")
    parser.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help="Maximum result pages to walk (0 or negative disables the limit)",
    )
    parser.add_argument("--proxy", type=str, help="Proxy endpoint in host:port[:user:password] format")
    parser.add_argument("--proxy-scheme", type=str, default="http", help="Proxy scheme (default: http)")
    parser.add_argument(
        "--auth-failure-threshold",
        type=int,
        default=FailurePolicy().auth_failure_threshold,
        help="Authentication failures tolerated before the crawl aborts (default: 1)",
    )
    parser.add_argument(
        "--max-consecutive-failures",
        type=int,
        default=None,
        help="Abort after this many consecutive failed requests (default: never)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _apply_limit(arg_value: int | None) -> int | None:
    if arg_value is None or arg_value <= 0:
        return None
    return arg_value


def build_config(args: argparse.Namespace) -> CrawlerConfig:
    download_root: Path = args.download_root
    config = CrawlerConfig(
        download_root=download_root,
        index_dir=args.index_dir or download_root / "index",
        load_all_indices=args.load_all_indices,
        api_key=args.api_key,
        content_workers=max(1, args.workers),
        page_size=max(1, args.page_size),
        max_pages=_apply_limit(args.max_pages),
        failure_policy=FailurePolicy(
            auth_failure_threshold=max(1, args.auth_failure_threshold),
            consecutive_failure_threshold=_apply_limit(args.max_consecutive_failures),
        ),
    )
    if args.cookies:
        config.cookies = load_cookies(args.cookies)
    if args.proxy:
        try:
            config.proxy = ProxyConfig.from_endpoint(args.proxy, scheme=args.proxy_scheme)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid proxy configuration: {exc}") from exc
    return config


def _install_interrupt_handler(controls: RuntimeControls) -> None:
    def _handle(signum, _frame) -> None:
        controls.cancel.cancel(f"received signal {signum}")

    signal.signal(signal.SIGINT, _handle)


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = build_config(args)
        target = Target.from_values(
            args.variant,
            args.name,
            target_id=args.target_id,
            metadata_format=args.metadata_format,
        )
    except ConfigurationError as exc:
        parser.error(str(exc))

    config.ensure_directories()
    store = IndexStore(config)
    registry = IndexRegistry.populate(store) if config.load_all_indices else None
    dispatcher = PipelineDispatcher(config, store=store, registry=registry)
    controls = RuntimeControls()

    try:
        pipeline = dispatcher.assemble(target, controls)
    except (ConfigurationError, IndexLoadError) as exc:
        LOGGER.error("Cannot crawl %s: %s", target.identity.name, exc)
        return 2

    _install_interrupt_handler(controls)
    try:
        result = pipeline.run()
    except PipelineFatalError as exc:
        LOGGER.error("%s", exc)
        return 1
    finally:
        store.close()

    LOGGER.info(
        "Crawled %s: %d pages, %d downloaded, %d skipped, %d failed%s",
        target.identity.name,
        result.pages,
        result.downloaded,
        result.skipped,
        result.failed,
        " (cancelled)" if result.cancelled else "",
    )
    return 0 if result.failed == 0 else 1


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
