"""Best-effort on-disk snapshots of the last fetched feed and discussion page."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from rfo.core.models import Post

logger = logging.getLogger(__name__)

MAIN_SNAPSHOT = "last_main_content.txt"
VIEW_SNAPSHOT = "last_reddit_view.txt"

_MAIN_BODY_RE = re.compile(r"=== CONTENT ===\s*\n\n([\s\S]*)")
_VIEW_BODY_RE = re.compile(r"=== HTML CONTENT ===\s*\n\n([\s\S]*)")


@dataclass
class MainSnapshot:
    """Feed state as saved to ``last_main_content.txt``."""

    posts: List[Post] = field(default_factory=list)
    current_index: int = 0
    subreddit: str = ""
    rss_data: str = ""


class DebugStore:
    """Reads and writes named text artifacts in one directory.

    Every failure is logged and reported as ``None``; callers must work
    without the store.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def persist(self, name: str, content: str) -> Optional[Path]:
        path = self.directory / name
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            logger.warning("Could not save debug artifact %s: %s", path, e)
            return None
        logger.debug("Saved debug artifact %s (%d chars)", path, len(content))
        return path

    def load(self, name: str) -> Optional[str]:
        path = self.directory / name
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Could not read debug artifact %s: %s", path, e)
            return None


def render_main_snapshot(snapshot: MainSnapshot, saved_at: Optional[datetime] = None) -> str:
    saved_at = saved_at or datetime.now(timezone.utc)
    body: Dict[str, Any] = {
        "posts": [p.to_dict() for p in snapshot.posts],
        "currentIndex": snapshot.current_index,
        "subreddit": snapshot.subreddit,
        "rssData": snapshot.rss_data,
    }
    return (
        "=== RSS MAIN CONTENT ===\n"
        f"Saved at: {saved_at.isoformat()}\n"
        f"Subreddit: {snapshot.subreddit}\n"
        f"Posts count: {len(snapshot.posts)}\n"
        f"Current post: {snapshot.current_index + 1}\n"
        "=== CONTENT ===\n\n"
        + json.dumps(body, indent=2)
    )


def parse_main_snapshot(text: Optional[str]) -> Optional[MainSnapshot]:
    """Parse ``last_main_content.txt``; ``None`` if missing or corrupt."""
    if not text:
        return None
    match = _MAIN_BODY_RE.search(text)
    if not match:
        return None
    try:
        body = json.loads(match.group(1))
        posts = [Post.from_dict(p) for p in body.get("posts") or []]
        current_index = int(body.get("currentIndex") or 0)
    except (ValueError, TypeError, AttributeError) as e:
        logger.warning("Corrupt main snapshot: %s", e)
        return None
    return MainSnapshot(
        posts=posts,
        current_index=current_index,
        subreddit=body.get("subreddit") or "",
        rss_data=body.get("rssData") or "",
    )


def render_view_snapshot(html: str, url: str, post_title: str, saved_at: Optional[datetime] = None) -> str:
    saved_at = saved_at or datetime.now(timezone.utc)
    return (
        "=== REDDIT VIEW CONTENT ===\n"
        f"Saved at: {saved_at.isoformat()}\n"
        f"Post Title: {post_title}\n"
        f"URL: {url}\n"
        f"Content Length: {len(html)} characters\n"
        "=== HTML CONTENT ===\n\n"
        + html
    )


def parse_view_snapshot(text: Optional[str]) -> Optional[str]:
    """HTML body of ``last_reddit_view.txt``, or ``None``."""
    if not text:
        return None
    match = _VIEW_BODY_RE.search(text)
    if not match or not match.group(1):
        return None
    return match.group(1)
