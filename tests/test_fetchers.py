import json
import threading
import time
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from blog_crawler.config import FailurePolicy
from blog_crawler.controls import ProgressKind, RuntimeControls
from blog_crawler.fetchers import (
    ContentFetcher,
    ContentItem,
    FailureLog,
    FailureTracker,
    FeedFetcher,
    MAX_FAILED_PAGES,
    MetadataFetcher,
    MetadataWriter,
    PipelineFatalError,
    PostProcessor,
    content_filename,
)
from blog_crawler.http_client import AuthenticationError, DownloadCancelledError, TransportError
from blog_crawler.index import Index, IndexEntry
from blog_crawler.metadata import MetadataSchema
from blog_crawler.metadata.api import ApiTextRenderer
from blog_crawler.parsers import build_media_parser_set
from blog_crawler.post_queue import PostQueue
from blog_crawler.sources import SourcePage
from blog_crawler.targets import Target, TargetVariant

POLL = 0.01


class RecordingSink:
    def __init__(self) -> None:
        self.events = []
        self._lock = threading.Lock()

    def report(self, event) -> None:
        with self._lock:
            self.events.append(event)

    def kinds(self) -> list[ProgressKind]:
        return [event.kind for event in self.events]


class StubSource:
    """Serve ``pages`` in order; entries may be exceptions to raise."""

    def __init__(self, pages, on_fetch=None) -> None:
        self._pages = list(pages)
        self._on_fetch = on_fetch
        self.calls: list[int] = []

    def fetch_page(self, page_number: int) -> SourcePage:
        self.calls.append(page_number)
        if self._on_fetch is not None:
            self._on_fetch(page_number)
        page = self._pages[min(page_number, len(self._pages) - 1)]
        if isinstance(page, Exception):
            raise page
        return page


class EndlessSource:
    def __init__(self, on_fetch=None) -> None:
        self._on_fetch = on_fetch
        self.calls: list[int] = []

    def fetch_page(self, page_number: int) -> SourcePage:
        self.calls.append(page_number)
        if self._on_fetch is not None:
            self._on_fetch(page_number)
        return SourcePage(records=[{"id": page_number}], has_more=True)


class StubSession:
    def __init__(self, failures=None) -> None:
        self._failures = failures or {}
        self.calls: list[str] = []
        self.abort_checks = []
        self._lock = threading.Lock()

    def stream_to_file(self, url: str, target: Path, should_abort=None) -> tuple[str, int]:
        with self._lock:
            self.calls.append(url)
            self.abort_checks.append(should_abort)
        failure = self._failures.get(url)
        if failure is not None:
            raise failure
        target.write_bytes(url.encode("utf-8"))
        return "0" * 64, len(url)


def _tracker(**policy) -> FailureTracker:
    return FailureTracker(FailurePolicy(**policy))


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(POLL)
    return predicate()


class FlakyWriter(MetadataWriter):
    """Fail the first ``failures`` writes with a disk error."""

    def __init__(self, path: Path, failures: int = 1) -> None:
        super().__init__(path)
        self._failures = failures

    def write(self, payload: bytes) -> None:
        if self._failures > 0:
            self._failures -= 1
            raise OSError("No space left on device")
        super().write(payload)


class ContentFilenameTestCase(unittest.TestCase):
    def test_uses_last_path_segment(self) -> None:
        self.assertEqual(content_filename("https://64.media.tumblr.com/abc/s1280x1920/pic.jpg?x=1"), "pic.jpg")

    def test_extensionless_name_gets_post_prefix(self) -> None:
        self.assertEqual(content_filename("https://example.com/media/abc", "42"), "42_abc")


class FailureTrackerTestCase(unittest.TestCase):
    def test_ordinary_failures_never_escalate_by_default(self) -> None:
        tracker = _tracker()

        self.assertFalse(any(tracker.record_failure(TransportError("boom")) for _ in range(20)))

    def test_auth_failure_escalates_at_threshold(self) -> None:
        tracker = _tracker(auth_failure_threshold=2)

        self.assertFalse(tracker.record_failure(AuthenticationError("denied")))
        self.assertTrue(tracker.record_failure(AuthenticationError("denied")))

    def test_success_resets_consecutive_count(self) -> None:
        tracker = _tracker(consecutive_failure_threshold=2)

        self.assertFalse(tracker.record_failure(TransportError("boom")))
        tracker.record_success()
        self.assertFalse(tracker.record_failure(TransportError("boom")))
        self.assertTrue(tracker.record_failure(TransportError("boom")))


class MetadataFetcherTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.target = Target.from_values("public-blog", "example")
        self.sink = RecordingSink()
        self.controls = RuntimeControls(progress=self.sink)
        self.output: PostQueue = PostQueue(self.target, "metadata")

    def _fetcher(self, source, **kwargs) -> MetadataFetcher:
        return MetadataFetcher(
            self.target,
            self.controls,
            self.output,
            source,
            failures=kwargs.pop("failures", _tracker()),
            poll_interval=POLL,
            **kwargs,
        )

    def test_pages_are_enqueued_in_order_until_exhausted(self) -> None:
        source = StubSource(
            [
                SourcePage(records=[{"id": 1}, {"id": 2}], has_more=True),
                SourcePage(records=[{"id": 3}], has_more=False),
            ]
        )
        fetcher = self._fetcher(source)

        fetcher.run()

        self.assertEqual([item.payload["id"] for item in self.output], [1, 2, 3])
        self.assertTrue(self.output.is_complete)
        self.assertEqual(fetcher.stats.pages, 2)
        self.assertEqual(fetcher.stats.records, 3)
        self.assertEqual(self.sink.kinds().count(ProgressKind.PAGE), 2)

    def test_max_pages_bounds_the_walk(self) -> None:
        source = EndlessSource()

        self._fetcher(source, max_pages=3).run()

        self.assertEqual(source.calls, [0, 1, 2])
        self.assertEqual(len(self.output), 3)

    def test_cancel_stops_within_one_iteration(self) -> None:
        def cancel_on_second_page(page_number: int) -> None:
            if page_number == 1:
                self.controls.cancel.cancel("test")

        source = EndlessSource(on_fetch=cancel_on_second_page)

        self._fetcher(source).run()

        self.assertEqual(source.calls, [0, 1])
        self.assertEqual([item.payload["id"] for item in self.output], [0])
        self.assertTrue(self.output.is_complete)

    def test_cancel_before_start_issues_no_requests(self) -> None:
        source = EndlessSource()
        self.controls.cancel.cancel()

        self._fetcher(source).run()

        self.assertEqual(source.calls, [])
        self.assertTrue(self.output.is_complete)

    def test_pause_holds_new_pages_until_resumed(self) -> None:
        source = StubSource(
            [
                SourcePage(records=[{"id": 1}], has_more=True),
                SourcePage(records=[{"id": 2}], has_more=False),
            ]
        )
        fetcher = self._fetcher(source)
        self.controls.pause.pause()

        worker = threading.Thread(target=fetcher.run)
        worker.start()
        time.sleep(0.1)
        self.assertEqual(source.calls, [])
        self.assertTrue(worker.is_alive())

        self.controls.pause.resume()
        worker.join(timeout=2)

        self.assertFalse(worker.is_alive())
        self.assertEqual([item.payload["id"] for item in self.output], [1, 2])

    def test_failed_pages_are_skipped_then_walk_gives_up(self) -> None:
        source = StubSource([TransportError("down", url="https://api.example.com/posts")])
        fetcher = self._fetcher(source)

        fetcher.run()

        self.assertEqual(len(source.calls), MAX_FAILED_PAGES)
        self.assertEqual(fetcher.stats.failed, MAX_FAILED_PAGES)
        self.assertTrue(self.output.is_complete)

    def test_failed_page_is_skipped_and_walk_continues(self) -> None:
        source = StubSource(
            [
                TransportError("flaky", url="https://api.example.com/posts?offset=0"),
                SourcePage(records=[{"id": 2}], has_more=False),
            ]
        )
        fetcher = self._fetcher(source)

        fetcher.run()

        self.assertEqual([item.payload["id"] for item in self.output], [2])
        self.assertEqual(fetcher.stats.failed, 1)
        self.assertIn(ProgressKind.FAILED, self.sink.kinds())

    def test_auth_failure_is_fatal_and_still_completes_queue(self) -> None:
        source = StubSource([AuthenticationError("denied", url="https://www.example.com/svc", status_code=403)])

        with self.assertRaises(PipelineFatalError):
            self._fetcher(source).run()

        self.assertEqual(source.calls, [0])
        self.assertTrue(self.output.is_complete)
        self.assertIsNone(self.output.dequeue(timeout=POLL))


class FeedFetcherTestCase(unittest.TestCase):
    def test_records_and_fragments_become_content_items(self) -> None:
        target = Target.from_values("search-results", "sunsets")
        output: PostQueue = PostQueue(target, "content")
        source = StubSource(
            [
                SourcePage(
                    records=[
                        {
                            "id": 7,
                            "photos": [{"original_size": {"url": "https://64.media.tumblr.com/a/s1280x1920/one.jpg"}}],
                            "caption": "also https://i.imgur.com/AbCdE12.png",
                        },
                        {"blog_name": "no-id"},
                    ],
                    fragments=['<article><img src="https://64.media.tumblr.com/b/s640x960/two.png"></article>'],
                    has_more=False,
                )
            ]
        )
        fetcher = FeedFetcher(
            target,
            RuntimeControls(progress=RecordingSink()),
            output,
            source,
            parser_set=build_media_parser_set(),
            failures=_tracker(),
            poll_interval=POLL,
        )

        fetcher.run()

        items = [item.payload for item in output]
        self.assertEqual([item.filename for item in items], ["one.jpg", "AbCdE12.png", "two.png"])
        self.assertEqual(items[0].post_id, "7")
        self.assertIsNone(items[2].post_id)
        self.assertEqual(fetcher.stats.queued, 3)

    def test_mistyped_record_is_skipped_and_page_continues(self) -> None:
        target = Target.from_values("liked-feed", "example")
        output: PostQueue = PostQueue(target, "content")
        source = StubSource(
            [
                SourcePage(
                    records=[
                        {"id": 7, "photos": 5},
                        {"id": 8, "video_url": "https://va.media.tumblr.com/tumblr_clip.mp4"},
                    ],
                    has_more=False,
                )
            ]
        )
        fetcher = FeedFetcher(
            target,
            RuntimeControls(progress=RecordingSink()),
            output,
            source,
            parser_set=build_media_parser_set(),
            failures=_tracker(),
            poll_interval=POLL,
        )

        fetcher.run()

        self.assertEqual([item.payload.url for item in output], ["https://va.media.tumblr.com/tumblr_clip.mp4"])
        self.assertEqual(fetcher.stats.pages, 1)
        self.assertTrue(output.is_complete)


class PostProcessorTestCase(unittest.TestCase):
    def _processor(self, target, source: PostQueue, output: PostQueue, writer, controls=None) -> PostProcessor:
        return PostProcessor(
            target,
            controls or RuntimeControls(progress=RecordingSink()),
            source,
            output,
            schema=MetadataSchema.API,
            renderer=ApiTextRenderer(),
            writer=writer,
            parser_set=build_media_parser_set(),
            failures=_tracker(),
            poll_interval=POLL,
        )

    def test_mistyped_field_fails_one_record_only(self) -> None:
        target = Target.from_values("public-blog", "example")
        source: PostQueue = PostQueue(target, "metadata")
        output: PostQueue = PostQueue(target, "content")
        source.enqueue({"id": 1, "tags": 5})
        source.enqueue({"id": 2, "video_url": "https://va.media.tumblr.com/tumblr_clip.mp4"})
        source.mark_complete()

        with TemporaryDirectory() as tmpdir:
            writer = MetadataWriter(Path(tmpdir) / "metadata.txt")
            processor = self._processor(target, source, output, writer)

            processor.run()
            written = writer.path.read_text(encoding="utf-8")

        self.assertEqual([item.payload.url for item in output], ["https://va.media.tumblr.com/tumblr_clip.mp4"])
        self.assertTrue(output.is_complete)
        self.assertEqual(processor.stats.failed, 1)
        self.assertNotIn("Post ID: 1,", written)
        self.assertIn("Post ID: 2,", written)

    def test_write_error_fails_the_record_and_processing_continues(self) -> None:
        target = Target.from_values("public-blog", "example")
        sink = RecordingSink()
        source: PostQueue = PostQueue(target, "metadata")
        output: PostQueue = PostQueue(target, "content")
        source.enqueue({"id": 1, "video_url": "https://va.media.tumblr.com/tumblr_one.mp4"})
        source.enqueue({"id": 2, "video_url": "https://va.media.tumblr.com/tumblr_two.mp4"})
        source.mark_complete()

        with TemporaryDirectory() as tmpdir:
            writer = FlakyWriter(Path(tmpdir) / "metadata.txt")
            processor = self._processor(target, source, output, writer, RuntimeControls(progress=sink))

            processor.run()
            written = writer.path.read_text(encoding="utf-8")

        self.assertEqual([item.payload.url for item in output], ["https://va.media.tumblr.com/tumblr_two.mp4"])
        self.assertTrue(output.is_complete)
        self.assertEqual(processor.stats.failed, 1)
        self.assertIn(ProgressKind.FAILED, sink.kinds())
        self.assertIn("Post ID: 2,", written)

    def test_pause_mid_run_holds_records_until_resumed(self) -> None:
        target = Target.from_values("public-blog", "example")
        controls = RuntimeControls(progress=RecordingSink())
        source: PostQueue = PostQueue(target, "metadata")
        output: PostQueue = PostQueue(target, "content")
        urls = [f"https://va.media.tumblr.com/tumblr_clip{number}.mp4" for number in (1, 2, 3)]

        with TemporaryDirectory() as tmpdir:
            writer = MetadataWriter(Path(tmpdir) / "metadata.txt")
            processor = self._processor(target, source, output, writer, controls)
            worker = threading.Thread(target=processor.run)
            worker.start()

            source.enqueue({"id": 1, "video_url": urls[0]})
            self.assertTrue(_wait_for(lambda: len(output) == 1))
            controls.pause.pause()
            source.enqueue({"id": 2, "video_url": urls[1]})
            source.enqueue({"id": 3, "video_url": urls[2]})
            time.sleep(0.1)

            self.assertEqual(len(output), 1)
            self.assertNotIn("Post ID: 2,", writer.path.read_text(encoding="utf-8"))
            self.assertTrue(worker.is_alive())

            controls.pause.resume()
            source.mark_complete()
            worker.join(timeout=2)
            written = writer.path.read_text(encoding="utf-8")

        self.assertFalse(worker.is_alive())
        self.assertEqual([item.payload.url for item in output], urls)
        self.assertEqual(written.count("Post ID: 2,"), 1)
        self.assertEqual(written.count("Post ID: 3,"), 1)

    def test_metadata_is_written_and_media_enqueued(self) -> None:
        target = Target.from_values("public-blog", "example")
        controls = RuntimeControls(progress=RecordingSink())
        source: PostQueue = PostQueue(target, "metadata")
        output: PostQueue = PostQueue(target, "content")
        source.enqueue(
            {
                "id": 1,
                "photos": [{"original_size": {"url": "https://64.media.tumblr.com/a/s1280x1920/one.jpg"}}],
                "body": '<img src="https://64.media.tumblr.com/a/s400x600/one.jpg">',
            }
        )
        source.enqueue({"type": "broken"})
        source.enqueue({"id": 2, "video_url": "https://va.media.tumblr.com/tumblr_clip.mp4"})
        source.mark_complete()

        with TemporaryDirectory() as tmpdir:
            writer = MetadataWriter(Path(tmpdir) / "metadata.txt")
            processor = PostProcessor(
                target,
                controls,
                source,
                output,
                schema=MetadataSchema.API,
                renderer=ApiTextRenderer(),
                writer=writer,
                parser_set=build_media_parser_set(),
                failures=_tracker(),
                poll_interval=POLL,
            )

            processor.run()
            written = writer.path.read_text(encoding="utf-8")

        urls = [item.payload.url for item in output]
        self.assertEqual(
            urls,
            [
                "https://64.media.tumblr.com/a/s1280x1920/one.jpg",
                "https://64.media.tumblr.com/a/s400x600/one.jpg",
                "https://va.media.tumblr.com/tumblr_clip.mp4",
            ],
        )
        self.assertTrue(output.is_complete)
        self.assertIn("Post ID: 1,", written)
        self.assertIn("Post ID: 2,", written)
        self.assertEqual(processor.stats.failed, 1)

    def test_cancel_completes_output_without_processing(self) -> None:
        target = Target.from_values("public-blog", "example")
        controls = RuntimeControls(progress=RecordingSink())
        source: PostQueue = PostQueue(target, "metadata")
        output: PostQueue = PostQueue(target, "content")
        source.enqueue({"id": "1"})
        controls.cancel.cancel()

        with TemporaryDirectory() as tmpdir:
            writer = MetadataWriter(Path(tmpdir) / "metadata.txt")
            processor = PostProcessor(
                target,
                controls,
                source,
                output,
                schema=MetadataSchema.API,
                renderer=ApiTextRenderer(),
                writer=writer,
                parser_set=build_media_parser_set(),
                failures=_tracker(),
                poll_interval=POLL,
            )
            processor.run()

            self.assertFalse(writer.path.exists())
        self.assertTrue(output.is_complete)
        self.assertEqual(len(source), 1)


class ContentFetcherTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        self.root = Path(self._tmpdir.name)
        self.target = Target.from_values("liked-feed", "example")
        self.sink = RecordingSink()
        self.controls = RuntimeControls(progress=self.sink)
        self.queue: PostQueue = PostQueue(self.target, "content")
        self.recorded: list[str] = []

    def _fetcher(self, session, *, index=None, failures=None) -> ContentFetcher:
        return ContentFetcher(
            self.target,
            self.controls,
            self.queue,
            session,
            index or Index.empty("example", TargetVariant.LIKED_FEED),
            self.root / "example",
            recorder=lambda target, identifier, filename: self.recorded.append(identifier),
            failures=failures or _tracker(),
            failure_log=FailureLog(self.root / "example" / "fetch_failures.ndjson"),
            poll_interval=POLL,
        )

    def _enqueue(self, *names: str) -> None:
        for name in names:
            self.queue.enqueue(ContentItem(url=f"https://media.example.com/{name}", filename=name))

    def test_failed_item_is_skipped_and_logged(self) -> None:
        session = StubSession({"https://media.example.com/b.jpg": TransportError("timeout")})
        self._enqueue("a.jpg", "b.jpg", "c.jpg")
        self.queue.mark_complete()
        fetcher = self._fetcher(session)

        fetcher.run()

        self.assertEqual(fetcher.stats.downloaded, 2)
        self.assertEqual(fetcher.stats.failed, 1)
        self.assertEqual(self.recorded, ["a.jpg", "c.jpg"])
        self.assertTrue((self.root / "example" / "c.jpg").exists())
        lines = (self.root / "example" / "fetch_failures.ndjson").read_text(encoding="utf-8").splitlines()
        self.assertEqual(len(lines), 1)
        self.assertEqual(json.loads(lines[0])["url"], "https://media.example.com/b.jpg")

    def test_known_and_duplicate_files_are_skipped(self) -> None:
        index = Index("example", TargetVariant.LIKED_FEED, {"a.jpg": IndexEntry("a.jpg", TargetVariant.LIKED_FEED)})
        session = StubSession()
        self._enqueue("a.jpg", "b.jpg", "b.jpg")
        self.queue.mark_complete()
        fetcher = self._fetcher(session, index=index)

        fetcher.run()

        self.assertEqual(session.calls, ["https://media.example.com/b.jpg"])
        self.assertEqual(fetcher.stats.skipped, 2)
        self.assertEqual(fetcher.stats.downloaded, 1)

    def test_auth_failure_aborts(self) -> None:
        session = StubSession({"https://media.example.com/a.jpg": AuthenticationError("denied", status_code=401)})
        self._enqueue("a.jpg", "b.jpg")
        self.queue.mark_complete()

        with self.assertRaises(PipelineFatalError):
            self._fetcher(session).run()

        self.assertEqual(session.calls, ["https://media.example.com/a.jpg"])

    def test_consecutive_failures_escalate_when_configured(self) -> None:
        session = StubSession(
            {
                "https://media.example.com/a.jpg": TransportError("boom"),
                "https://media.example.com/b.jpg": TransportError("boom"),
            }
        )
        self._enqueue("a.jpg", "b.jpg", "c.jpg")
        self.queue.mark_complete()

        with self.assertRaises(PipelineFatalError):
            self._fetcher(session, failures=_tracker(consecutive_failure_threshold=2)).run()

        self.assertNotIn("https://media.example.com/c.jpg", session.calls)

    def test_idle_worker_notices_cancel(self) -> None:
        fetcher = self._fetcher(StubSession())
        worker = threading.Thread(target=fetcher.run)
        worker.start()
        time.sleep(0.05)

        self.controls.cancel.cancel("stop")
        worker.join(timeout=1)

        self.assertFalse(worker.is_alive())

    def test_parallel_workers_download_each_item_once(self) -> None:
        session = StubSession()
        names = [f"{index}.jpg" for index in range(40)]
        self._enqueue(*names)
        self.queue.mark_complete()
        fetcher = self._fetcher(session)

        workers = [threading.Thread(target=fetcher.run) for _ in range(4)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=5)

        self.assertEqual(sorted(session.calls), sorted(f"https://media.example.com/{name}" for name in names))
        self.assertEqual(fetcher.stats.downloaded, 40)

    def test_pause_then_resume_loses_nothing(self) -> None:
        session = StubSession()
        fetcher = self._fetcher(session)
        self.controls.pause.pause()
        worker = threading.Thread(target=fetcher.run)
        worker.start()

        self._enqueue("a.jpg", "b.jpg")
        time.sleep(0.05)
        self.assertEqual(session.calls, [])

        self.controls.pause.resume()
        self._enqueue("c.jpg")
        self.queue.mark_complete()
        worker.join(timeout=2)

        self.assertEqual(
            session.calls,
            [
                "https://media.example.com/a.jpg",
                "https://media.example.com/b.jpg",
                "https://media.example.com/c.jpg",
            ],
        )

    def test_pause_while_idle_blocks_new_downloads(self) -> None:
        session = StubSession()
        fetcher = self._fetcher(session)
        worker = threading.Thread(target=fetcher.run)
        worker.start()
        time.sleep(0.05)

        self.controls.pause.pause()
        self._enqueue("a.jpg")
        time.sleep(0.1)
        self.assertEqual(session.calls, [])
        self.assertTrue(worker.is_alive())

        self.controls.pause.resume()
        self.queue.mark_complete()
        worker.join(timeout=2)

        self.assertFalse(worker.is_alive())
        self.assertEqual(session.calls, ["https://media.example.com/a.jpg"])

    def test_pause_mid_run_delivers_each_item_once(self) -> None:
        session = StubSession()
        fetcher = self._fetcher(session)
        worker = threading.Thread(target=fetcher.run)
        worker.start()

        self._enqueue("a.jpg")
        self.assertTrue(_wait_for(lambda: fetcher.stats.downloaded == 1))
        self.controls.pause.pause()
        self._enqueue("b.jpg", "c.jpg")
        time.sleep(0.1)
        self.assertEqual(session.calls, ["https://media.example.com/a.jpg"])

        self.controls.pause.resume()
        self._enqueue("d.jpg")
        self.queue.mark_complete()
        worker.join(timeout=2)

        self.assertFalse(worker.is_alive())
        names = ["a.jpg", "b.jpg", "c.jpg", "d.jpg"]
        self.assertEqual(session.calls, [f"https://media.example.com/{name}" for name in names])
        self.assertEqual(sorted(self.recorded), names)
        self.assertEqual(fetcher.stats.downloaded, 4)

    def test_downloads_poll_the_cancel_signal(self) -> None:
        session = StubSession()
        self._enqueue("a.jpg")
        self.queue.mark_complete()

        self._fetcher(session).run()

        should_abort = session.abort_checks[0]
        self.assertFalse(should_abort())
        self.controls.cancel.cancel("stop")
        self.assertTrue(should_abort())

    def test_cancelled_download_is_neither_failed_nor_downloaded(self) -> None:
        url = "https://media.example.com/b.jpg"
        session = StubSession({url: DownloadCancelledError("cancelled", url=url)})
        self._enqueue("a.jpg", "b.jpg")
        self.queue.mark_complete()
        fetcher = self._fetcher(session)

        fetcher.run()

        self.assertEqual(fetcher.stats.downloaded, 1)
        self.assertEqual(fetcher.stats.failed, 0)
        self.assertEqual(self.recorded, ["a.jpg"])
        self.assertNotIn(ProgressKind.FAILED, self.sink.kinds())
        self.assertFalse((self.root / "example" / "fetch_failures.ndjson").exists())
        self.assertFalse((self.root / "example" / "b.jpg").exists())


if __name__ == "__main__":
    unittest.main()
