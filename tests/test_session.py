"""Tests for FeedSession navigation, comment loading and staleness handling."""
from __future__ import annotations

import asyncio
import tempfile
import threading
import time
import unittest
from pathlib import Path

from rfo.core.debug_store import MAIN_SNAPSHOT, VIEW_SNAPSHOT, DebugStore
from rfo.core.errors import FetchError
from rfo.core.links import comments_partial_url
from rfo.session import CommentsStatus, FeedSession, SessionState, ViewState

FIXTURES = Path(__file__).parent / "fixtures"
ATOM = (FIXTURES / "atom_feed.xml").read_text(encoding="utf-8")
COMMENTS_HTML = (FIXTURES / "comments_partial.html").read_text(encoding="utf-8")

POST0 = "https://www.reddit.com/r/books/comments/1abc234/weekly_reading_thread/"
POST2 = "https://www.reddit.com/r/books/comments/1ghi890/untitled/"
PARTIAL0 = comments_partial_url(POST0)
PARTIAL2 = comments_partial_url(POST2)

LATE_HTML = "<shreddit-comment author='zed'><p>Comment for the third post</p></shreddit-comment>"


class FakeFetcher:
    """In-memory Fetcher; URLs in ``gates`` block until their event is set."""

    def __init__(self, feed_xml: str = ATOM, pages: dict | None = None, failing: set | None = None):
        self.feed_xml = feed_xml
        self.pages = pages if pages is not None else {PARTIAL0: COMMENTS_HTML, POST0: "<html>post page</html>"}
        self.failing = failing or set()
        self.gates: dict[str, threading.Event] = {}
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def fetch_feed_xml(self, subreddit_or_url: str) -> str:
        with self._lock:
            self.calls.append(f"feed:{subreddit_or_url}")
        if "feed" in self.failing:
            raise FetchError(subreddit_or_url, "HTTP error! status: 503", 503)
        return self.feed_xml

    def fetch_html(self, url: str) -> str:
        with self._lock:
            self.calls.append(url)
        gate = self.gates.get(url)
        if gate is not None:
            gate.wait(timeout=5)
        if url in self.failing:
            raise FetchError(url, "HTTP error! status: 500", 500)
        return self.pages.get(url, "")

    def comment_fetches(self) -> list[str]:
        return [c for c in self.calls if "/svc/shreddit/comments/" in c]


class SlowStore(DebugStore):
    def persist(self, name, content):
        time.sleep(0.3)
        return super().persist(name, content)


class TestNavigation(unittest.TestCase):
    def setUp(self):
        self.session = FeedSession()
        self.session.load_feed(ATOM, subreddit="books")

    def test_initial_state(self):
        self.assertEqual(len(self.session.posts), 3)
        self.assertEqual(self.session.current_index, 0)
        self.assertEqual(self.session.state, SessionState.LOADED)
        self.assertEqual(self.session.comments, ())

    def test_previous_at_first_post_is_noop(self):
        self.assertFalse(self.session.previous())
        self.assertEqual(self.session.current_index, 0)

    def test_next_at_last_post_is_noop(self):
        self.assertTrue(self.session.set_current_index(2))
        self.assertFalse(self.session.next())
        self.assertEqual(self.session.current_index, 2)

    def test_out_of_range_index_ignored(self):
        self.assertFalse(self.session.set_current_index(3))
        self.assertFalse(self.session.set_current_index(-1))
        self.assertEqual(self.session.current_index, 0)

    def test_next_and_previous(self):
        self.assertTrue(self.session.next())
        self.assertEqual(self.session.current_post.title, "Library funding restored")
        self.assertTrue(self.session.previous())
        self.assertEqual(self.session.current_index, 0)

    def test_empty_feed_is_loaded_not_empty(self):
        session = FeedSession()
        self.assertEqual(session.state, SessionState.EMPTY)
        session.load_feed("<feed xmlns='http://www.w3.org/2005/Atom'></feed>")
        self.assertEqual(session.state, SessionState.LOADED)
        self.assertEqual(session.posts, ())
        self.assertIsNone(session.current_post)
        self.assertFalse(session.next())

    def test_without_event_loop_requests_are_queued(self):
        fetcher = FakeFetcher()
        session = FeedSession(fetcher=fetcher)
        session.load_feed(ATOM)
        self.assertEqual(len(session.pending_requests), 1)
        self.assertTrue(session.comments_loading)

        outcomes = asyncio.run(session.run_pending())
        self.assertTrue(outcomes[0].ok)
        self.assertEqual(len(session.comments), 3)
        self.assertEqual(session.pending_requests, [])

    def test_queued_requests_keep_only_the_current_post(self):
        session = FeedSession(fetcher=FakeFetcher())
        session.load_feed(ATOM)
        session.set_current_index(2)
        session.set_current_index(0)
        session.set_current_index(2)

        self.assertEqual(len(session.pending_requests), 1)
        self.assertEqual(session.pending_requests[0].index, 2)


class TestCommentLoading(unittest.IsolatedAsyncioTestCase):
    async def test_load_feed_requests_comments_for_first_discussion_post(self):
        fetcher = FakeFetcher()
        session = FeedSession(fetcher=fetcher)
        session.load_feed(ATOM, subreddit="books")
        self.assertEqual(session.state, SessionState.COMMENTS_LOADING)

        await session.wait_idle()

        self.assertEqual(fetcher.comment_fetches(), [PARTIAL0])
        self.assertIn(POST0, fetcher.calls)
        self.assertEqual(session.state, SessionState.COMMENTS_LOADED)
        self.assertEqual(len(session.comments), 3)
        self.assertTrue(all(c.link == POST0 for c in session.comments))
        self.assertEqual(session.page_html, "<html>post page</html>")

    async def test_moving_to_external_link_clears_comments_without_fetch(self):
        fetcher = FakeFetcher()
        session = FeedSession(fetcher=fetcher)
        session.load_feed(ATOM)
        await session.wait_idle()
        self.assertEqual(len(session.comments), 3)

        session.next()
        self.assertEqual(session.comments, ())
        await session.wait_idle()

        self.assertEqual(fetcher.comment_fetches(), [PARTIAL0])
        self.assertEqual(session.comments, ())
        self.assertEqual(session.page_html, "")
        self.assertEqual(session.state, SessionState.LOADED)

    async def test_stale_comments_are_discarded(self):
        fetcher = FakeFetcher()
        gate = threading.Event()
        fetcher.gates[PARTIAL0] = gate
        session = FeedSession(fetcher=fetcher)
        session.load_feed(ATOM)
        await asyncio.sleep(0)

        session.next()
        gate.set()
        await session.wait_idle()

        self.assertEqual(session.current_index, 1)
        self.assertEqual(session.comments, ())
        self.assertEqual(session.comments_status, CommentsStatus.IDLE)
        self.assertEqual(session.page_html, "")

    async def test_late_comments_do_not_overwrite_newer_post(self):
        fetcher = FakeFetcher(pages={PARTIAL0: COMMENTS_HTML, PARTIAL2: LATE_HTML})
        gate = threading.Event()
        fetcher.gates[PARTIAL0] = gate
        session = FeedSession(fetcher=fetcher)
        session.load_feed(ATOM)
        await asyncio.sleep(0)

        session.set_current_index(2)
        while len(fetcher.comment_fetches()) < 2 or session.comments_loading:
            await asyncio.sleep(0.01)
        gate.set()
        await session.wait_idle()

        self.assertEqual(session.current_index, 2)
        self.assertEqual([c.author for c in session.comments], ["zed"])
        self.assertTrue(all(c.link == POST2 for c in session.comments))

    async def test_comment_fetch_failure_is_recorded(self):
        fetcher = FakeFetcher(failing={PARTIAL0})
        session = FeedSession(fetcher=fetcher)
        session.load_feed(ATOM)
        await session.wait_idle()

        self.assertEqual(session.comments_status, CommentsStatus.ERROR)
        self.assertIn("500", session.comments_error)
        self.assertEqual(session.comments, ())
        self.assertEqual(session.state, SessionState.LOADED)

    async def test_page_failure_does_not_block_comments(self):
        fetcher = FakeFetcher(failing={POST0})
        session = FeedSession(fetcher=fetcher)
        session.load_feed(ATOM)
        await session.wait_idle()

        self.assertIn("500", session.page_error)
        self.assertEqual(len(session.comments), 3)

    async def test_refresh_comments_retries(self):
        fetcher = FakeFetcher(failing={PARTIAL0})
        session = FeedSession(fetcher=fetcher)
        session.load_feed(ATOM)
        await session.wait_idle()
        self.assertEqual(session.comments_status, CommentsStatus.ERROR)

        fetcher.failing.clear()
        self.assertIsNotNone(session.refresh_comments())
        await session.wait_idle()
        self.assertEqual(len(session.comments), 3)
        self.assertEqual(fetcher.comment_fetches(), [PARTIAL0, PARTIAL0])

    async def test_refresh_while_first_request_in_flight_applies_once(self):
        fetcher = FakeFetcher()
        gate = threading.Event()
        fetcher.gates[PARTIAL0] = gate
        session = FeedSession(fetcher=fetcher)
        session.load_feed(ATOM)
        while not fetcher.comment_fetches():
            await asyncio.sleep(0.01)

        with self.assertLogs("rfo.session", level="INFO") as logs:
            request = session.refresh_comments()
            self.assertIsNotNone(request)
            while len(fetcher.comment_fetches()) < 2:
                await asyncio.sleep(0.01)
            gate.set()
            await session.wait_idle()

        applied = [line for line in logs.output if "Loaded 3 comments" in line]
        self.assertEqual(len(applied), 1)
        self.assertTrue(session.is_current(request))
        self.assertEqual(len(session.comments), 3)
        self.assertEqual(session.comments_status, CommentsStatus.IDLE)
        self.assertEqual(session.state, SessionState.COMMENTS_LOADED)

    async def test_refresh_on_external_link_is_noop(self):
        session = FeedSession(fetcher=FakeFetcher())
        session.load_feed(ATOM)
        session.next()
        self.assertIsNone(session.refresh_comments())
        await session.wait_idle()


class TestFetchFeed(unittest.IsolatedAsyncioTestCase):
    async def test_fetch_feed_loads_posts(self):
        fetcher = FakeFetcher()
        session = FeedSession(fetcher=fetcher)
        outcome = await session.fetch_feed("books")
        await session.wait_idle()

        self.assertTrue(outcome.ok)
        self.assertEqual(fetcher.calls[0], "feed:books")
        self.assertEqual(session.subreddit, "books")
        self.assertEqual(len(session.posts), 3)
        self.assertIsNone(session.error)

    async def test_fetch_failure_surfaces_error(self):
        session = FeedSession(fetcher=FakeFetcher(failing={"feed"}))
        outcome = await session.fetch_feed("books")

        self.assertFalse(outcome.ok)
        self.assertIn("503", outcome.error)
        self.assertEqual(session.error, outcome.error)
        self.assertEqual(session.state, SessionState.EMPTY)

    async def test_fetch_failure_keeps_previous_posts(self):
        fetcher = FakeFetcher()
        session = FeedSession(fetcher=fetcher)
        await session.fetch_feed("books")
        await session.wait_idle()

        fetcher.failing.add("feed")
        outcome = await session.fetch_feed("python")
        self.assertFalse(outcome.ok)
        self.assertEqual(len(session.posts), 3)
        self.assertEqual(session.state, SessionState.LOADED)

    async def test_blank_subreddit_rejected(self):
        fetcher = FakeFetcher()
        outcome = await FeedSession(fetcher=fetcher).fetch_feed("  ")
        self.assertFalse(outcome.ok)
        self.assertEqual(fetcher.calls, [])

    async def test_no_fetcher(self):
        outcome = await FeedSession().fetch_feed("books")
        self.assertFalse(outcome.ok)


class TestSnapshots(unittest.IsolatedAsyncioTestCase):
    async def test_snapshots_written_and_restored(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DebugStore(Path(tmpdir))
            session = FeedSession(fetcher=FakeFetcher(), store=store)
            session.load_feed(ATOM, subreddit="books")
            await session.wait_idle()

            self.assertTrue((Path(tmpdir) / MAIN_SNAPSHOT).exists())
            self.assertTrue((Path(tmpdir) / VIEW_SNAPSHOT).exists())

            restored = FeedSession(store=store)
            outcome = restored.restore()

            self.assertTrue(outcome.ok)
            self.assertEqual(restored.subreddit, "books")
            self.assertEqual(restored.posts, session.posts)
            self.assertEqual(restored.current_index, 0)
            self.assertEqual(restored.page_html, "<html>post page</html>")

    async def test_slow_snapshot_writes_do_not_block_the_loop(self):
        gaps = []
        stop = asyncio.Event()

        async def ticker():
            last = time.monotonic()
            while not stop.is_set():
                await asyncio.sleep(0.02)
                now = time.monotonic()
                gaps.append(now - last)
                last = now

        with tempfile.TemporaryDirectory() as tmpdir:
            session = FeedSession(fetcher=FakeFetcher(), store=SlowStore(Path(tmpdir)))
            tick = asyncio.create_task(ticker())
            outcome = await session.fetch_feed("books")
            await session.wait_idle()
            stop.set()
            await tick

            self.assertTrue(outcome.ok)
            self.assertTrue((Path(tmpdir) / MAIN_SNAPSHOT).exists())
            self.assertTrue((Path(tmpdir) / VIEW_SNAPSHOT).exists())
        self.assertLess(max(gaps), 0.2)

    async def test_restore_requests_comments_for_discussion_post(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DebugStore(Path(tmpdir))
            session = FeedSession(store=store)
            session.load_feed(ATOM, subreddit="books")
            await session.wait_idle()

            fetcher = FakeFetcher()
            restored = FeedSession(fetcher=fetcher, store=store)
            self.assertTrue(restored.restore().ok)
            self.assertTrue(restored.comments_loading)
            await restored.wait_idle()

        self.assertEqual(fetcher.comment_fetches(), [PARTIAL0])
        self.assertEqual(len(restored.comments), 3)
        self.assertEqual(restored.state, SessionState.COMMENTS_LOADED)

    async def test_restore_without_snapshot(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            outcome = FeedSession(store=DebugStore(Path(tmpdir))).restore()
        self.assertFalse(outcome.ok)

    async def test_restore_without_store(self):
        self.assertFalse(FeedSession().restore().ok)


class TestViewState(unittest.TestCase):
    def test_zoom_is_clamped(self):
        view = ViewState()
        for _ in range(20):
            view.zoom_in()
        self.assertEqual(view.zoom, 2.0)
        for _ in range(20):
            view.zoom_out()
        self.assertEqual(view.zoom, 0.5)

    def test_views_are_independent(self):
        a, b = ViewState(), ViewState()
        a.toggle_comments()
        a.toggle_fullscreen()
        self.assertFalse(a.show_comments)
        self.assertTrue(b.show_comments)
        self.assertFalse(b.fullscreen)


if __name__ == "__main__":
    unittest.main()
