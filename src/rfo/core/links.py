"""Classify and rewrite Reddit URLs."""
from __future__ import annotations

import re
from typing import Optional, Tuple

_DISCUSSION_RE = re.compile(r"reddit\.com/r/(\w+)/comments/(\w+)")

COMMENTS_PARTIAL_URL = (
    "https://www.reddit.com/svc/shreddit/comments/r/{subreddit}/t3_{post_id}"
    "?render-mode=partial&force_seo=1&seeker-session=true"
    "&referer=https%3A%2F%2Fwww.google.com%2F"
)
FEED_URL = "https://www.reddit.com/r/{subreddit}/.rss"


def is_discussion_url(url: Optional[str]) -> bool:
    """True if *url* looks like a Reddit discussion thread.

    Loose substring check only; it gates an optional content fetch and is
    not a URL validator.
    """
    if not url:
        return False
    return "reddit.com/r/" in url and "/comments/" in url


def parse_discussion_url(url: Optional[str]) -> Optional[Tuple[str, str]]:
    """Return ``(subreddit, post_id)`` for a discussion URL, else ``None``."""
    if not url:
        return None
    match = _DISCUSSION_RE.search(url)
    if not match:
        return None
    return match.group(1), match.group(2)


def comments_partial_url(url: Optional[str]) -> Optional[str]:
    """URL of the server-rendered comments fragment for a discussion thread."""
    ids = parse_discussion_url(url)
    if ids is None:
        return None
    subreddit, post_id = ids
    return COMMENTS_PARTIAL_URL.format(subreddit=subreddit, post_id=post_id)


def feed_url(subreddit_or_url: str) -> str:
    """Feed URL for a subreddit name (``books``, ``r/books``) or an explicit URL."""
    value = subreddit_or_url.strip()
    if value.startswith(("http://", "https://")):
        return value
    for prefix in ("/r/", "r/"):
        if value.startswith(prefix):
            value = value[len(prefix):]
            break
    return FEED_URL.format(subreddit=value.strip("/"))
