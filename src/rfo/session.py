"""Feed session: post list, cursor, and comments for the post under the cursor.

All mutation happens on the event loop thread. Network calls run in worker
threads and their results are checked against the current cursor before
they are applied, so a slow response for a post the user has already left
is dropped instead of being shown against the wrong post.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Set, Tuple

from rfo.core.comments import CommentExtractor
from rfo.core.debug_store import (
    MAIN_SNAPSHOT,
    VIEW_SNAPSHOT,
    DebugStore,
    MainSnapshot,
    parse_main_snapshot,
    parse_view_snapshot,
    render_main_snapshot,
    render_view_snapshot,
)
from rfo.core.errors import FetchError
from rfo.core.feed_parser import parse_feed
from rfo.core.links import comments_partial_url, is_discussion_url
from rfo.core.models import Comment, Post
from rfo.fetcher import Fetcher

logger = logging.getLogger(__name__)


class SessionState(Enum):
    EMPTY = "empty"
    LOADING = "loading"
    LOADED = "loaded"
    COMMENTS_LOADING = "comments_loading"
    COMMENTS_LOADED = "comments_loaded"


class CommentsStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"
    ERROR = "error"


@dataclass(frozen=True)
class Outcome:
    """Success/failure of a session operation; ``error`` is user-facing."""

    ok: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class CommentRequest:
    """A comments fetch tagged with the cursor position it was issued for."""

    generation: int
    index: int
    link: str


@dataclass
class ViewState:
    """Per-window presentation toggles. Never shared between windows."""

    show_comments: bool = True
    show_page: bool = False
    fullscreen: bool = False
    zoom: float = 1.0

    def zoom_in(self) -> float:
        self.zoom = round(min(self.zoom + 0.1, 2.0), 1)
        return self.zoom

    def zoom_out(self) -> float:
        self.zoom = round(max(self.zoom - 0.1, 0.5), 1)
        return self.zoom

    def toggle_comments(self) -> bool:
        self.show_comments = not self.show_comments
        return self.show_comments

    def toggle_page(self) -> bool:
        self.show_page = not self.show_page
        return self.show_page

    def toggle_fullscreen(self) -> bool:
        self.fullscreen = not self.fullscreen
        return self.fullscreen


class FeedSession:
    """Owns the posts of one feed and the comments of the current post."""

    def __init__(
        self,
        fetcher: Optional[Fetcher] = None,
        extractor: Optional[CommentExtractor] = None,
        store: Optional[DebugStore] = None,
    ):
        self._fetcher = fetcher
        self._extractor = extractor
        self._store = store

        self._posts: Tuple[Post, ...] = ()
        self._current_index = 0
        self._subreddit = ""
        self._state = SessionState.EMPTY
        self._error: Optional[str] = None

        self._comments: Tuple[Comment, ...] = ()
        self._comments_status = CommentsStatus.IDLE
        self._comments_error: Optional[str] = None
        self._page_html = ""
        self._page_error: Optional[str] = None

        # Bumped on every cursor move or feed load; tags in-flight requests.
        self._generation = 0
        self._feed_token = 0
        self._tasks: Set[asyncio.Task] = set()
        self.pending_requests: List[CommentRequest] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def posts(self) -> Tuple[Post, ...]:
        return self._posts

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_post(self) -> Optional[Post]:
        if not self._posts:
            return None
        return self._posts[self._current_index]

    @property
    def comments(self) -> Tuple[Comment, ...]:
        return self._comments

    @property
    def comments_loading(self) -> bool:
        return self._comments_status is CommentsStatus.LOADING

    @property
    def comments_status(self) -> CommentsStatus:
        return self._comments_status

    @property
    def comments_error(self) -> Optional[str]:
        return self._comments_error

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def subreddit(self) -> str:
        return self._subreddit

    @property
    def page_html(self) -> str:
        return self._page_html

    @property
    def page_error(self) -> Optional[str]:
        return self._page_error

    # ------------------------------------------------------------------
    # Feed loading
    # ------------------------------------------------------------------

    def load_feed(self, raw_xml: str, subreddit: str = "") -> Outcome:
        """Replace the post list with the posts parsed from *raw_xml*."""
        posts = parse_feed(raw_xml)
        self._feed_token += 1
        self._posts = tuple(posts)
        self._subreddit = subreddit
        self._error = None
        self._state = SessionState.LOADED
        self._move_cursor(0)
        logger.info("Loaded %d posts%s", len(posts), f" from r/{subreddit}" if subreddit else "")

        if self._store is not None:
            snapshot = MainSnapshot(posts=posts, current_index=0, subreddit=subreddit, rss_data=raw_xml)
            self._persist(MAIN_SNAPSHOT, render_main_snapshot(snapshot))
        return Outcome(ok=True)

    async def fetch_feed(self, subreddit_or_url: str) -> Outcome:
        """Fetch and load a feed. A failed fetch keeps the previous posts."""
        if self._fetcher is None:
            return Outcome(ok=False, error="No fetcher configured")
        if not subreddit_or_url or not subreddit_or_url.strip():
            return Outcome(ok=False, error="Please enter a subreddit name")

        self._feed_token += 1
        token = self._feed_token
        self._state = SessionState.LOADING
        self._error = None

        try:
            raw_xml = await asyncio.to_thread(self._fetcher.fetch_feed_xml, subreddit_or_url.strip())
        except FetchError as e:
            if token == self._feed_token:
                self._error = str(e)
                self._state = SessionState.LOADED if self._posts else SessionState.EMPTY
            logger.warning("Feed fetch failed for %s: %s", subreddit_or_url, e)
            return Outcome(ok=False, error=str(e))

        if token != self._feed_token:
            logger.debug("Discarding superseded feed response for %s", subreddit_or_url)
            return Outcome(ok=False, error="Superseded by a newer request")
        return self.load_feed(raw_xml, subreddit=subreddit_or_url.strip())

    def restore(self) -> Outcome:
        """Reload posts and the last discussion page from the debug snapshots.

        Reads run on the calling thread; this is meant for start-up, before
        the event loop is busy. Comments for a restored discussion post are
        requested like after any other cursor move.
        """
        if self._store is None:
            return Outcome(ok=False, error="Debug snapshots are not available")

        snapshot = parse_main_snapshot(self._store.load(MAIN_SNAPSHOT))
        if snapshot is None:
            return Outcome(ok=False, error="No saved feed found")

        self._feed_token += 1
        self._posts = tuple(snapshot.posts)
        self._subreddit = snapshot.subreddit
        self._error = None
        self._state = SessionState.LOADED
        index = min(max(snapshot.current_index, 0), max(len(self._posts) - 1, 0))
        self._generation += 1
        self._current_index = index
        self._reset_comments()

        view_html = parse_view_snapshot(self._store.load(VIEW_SNAPSHOT))
        if view_html:
            self._page_html = view_html
        logger.info("Restored %d posts from snapshot", len(self._posts))

        post = self.current_post
        if post is not None and is_discussion_url(post.link):
            self._request_comments(index)
        return Outcome(ok=True)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def set_current_index(self, index: int) -> bool:
        """Move the cursor; out-of-range indices are ignored."""
        if not 0 <= index < len(self._posts):
            return False
        self._move_cursor(index)
        return True

    def next(self) -> bool:
        return self.set_current_index(self._current_index + 1)

    def previous(self) -> bool:
        return self.set_current_index(self._current_index - 1)

    def refresh_comments(self) -> Optional[CommentRequest]:
        """Re-issue the comments request for the current post."""
        post = self.current_post
        if post is None or not is_discussion_url(post.link):
            return None
        self._generation += 1
        self._reset_comments()
        return self._request_comments(self._current_index)

    def _move_cursor(self, index: int) -> None:
        self._generation += 1
        self._current_index = index
        self._reset_comments()
        self._state = SessionState.LOADED
        if self._posts and is_discussion_url(self._posts[index].link):
            self._request_comments(index)

    def _reset_comments(self) -> None:
        self._comments = ()
        self._comments_status = CommentsStatus.IDLE
        self._comments_error = None
        self._page_html = ""
        self._page_error = None
        if self._state is SessionState.COMMENTS_LOADING or self._state is SessionState.COMMENTS_LOADED:
            self._state = SessionState.LOADED

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def _request_comments(self, index: int) -> Optional[CommentRequest]:
        if self._fetcher is None:
            logger.debug("No fetcher configured; not requesting comments for post %d", index)
            return None

        request = CommentRequest(generation=self._generation, index=index, link=self._posts[index].link)
        self._comments_status = CommentsStatus.LOADING
        self._state = SessionState.COMMENTS_LOADING

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.pending_requests = [r for r in self.pending_requests if self.is_current(r)]
            self.pending_requests.append(request)
            return request

        self._track(loop.create_task(self.run_request(request)))
        return request

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _persist(self, name: str, content: str) -> None:
        """Write a snapshot in a worker thread when an event loop is running."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._store.persist(name, content)
            return
        self._track(loop.create_task(asyncio.to_thread(self._store.persist, name, content)))

    def is_current(self, request: CommentRequest) -> bool:
        """True while *request* still describes the post under the cursor."""
        return (
            request.generation == self._generation
            and request.index == self._current_index
            and request.index < len(self._posts)
            and self._posts[request.index].link == request.link
        )

    async def run_request(self, request: CommentRequest) -> Outcome:
        """Fetch the page and comments for *request* and apply them if still current."""
        if not self.is_current(request):
            logger.debug("Dropping stale comments request for post %d", request.index)
            return Outcome(ok=False, error="stale")

        partial_url = comments_partial_url(request.link)
        if partial_url is None:
            page_html, page_error = await self._fetch_html(request.link)
            html, error = None, "Could not parse Reddit URL"
        else:
            (page_html, page_error), (html, error) = await asyncio.gather(
                self._fetch_html(request.link), self._fetch_html(partial_url)
            )

        if not self.is_current(request):
            logger.debug("Discarding stale comments for post %d (%s)", request.index, request.link)
            return Outcome(ok=False, error="stale")

        self._apply_page(request, page_html, page_error)

        if error is not None:
            self._comments_status = CommentsStatus.ERROR
            self._comments_error = error
            self._state = SessionState.LOADED
            return Outcome(ok=False, error=error)

        extractor = self._get_extractor()
        result = extractor.extract(html, request.link)
        self._comments = tuple(result.comments)
        self._comments_status = CommentsStatus.IDLE
        self._comments_error = None
        self._state = SessionState.COMMENTS_LOADED
        logger.info("Loaded %d comments for post %d", len(self._comments), request.index)
        return Outcome(ok=True)

    async def run_pending(self) -> List[Outcome]:
        """Run requests queued while no event loop was running."""
        pending, self.pending_requests = self.pending_requests, []
        return [await self.run_request(request) for request in pending]

    async def wait_idle(self) -> None:
        """Wait for every scheduled comments request and snapshot write to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _apply_page(self, request: CommentRequest, page_html: Optional[str], page_error: Optional[str]) -> None:
        if page_error is not None:
            self._page_error = page_error
            return
        self._page_html = page_html or ""
        if self._store is not None and page_html:
            title = self._posts[request.index].title
            self._persist(VIEW_SNAPSHOT, render_view_snapshot(page_html, request.link, title))

    async def _fetch_html(self, url: str) -> Tuple[Optional[str], Optional[str]]:
        try:
            return await asyncio.to_thread(self._fetcher.fetch_html, url), None
        except FetchError as e:
            logger.warning("Fetch failed for %s: %s", url, e)
            return None, str(e)

    def _get_extractor(self) -> CommentExtractor:
        if self._extractor is None:
            self._extractor = CommentExtractor()
        return self._extractor
