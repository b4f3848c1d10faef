"""Core data models for feed posts and scraped discussion comments."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict

NO_TITLE = "No title"
NO_LINK = "#"
NO_CONTENT = "No content"
NO_DESCRIPTION = "No description"
NO_DATE = "No date"
UNKNOWN_AUTHOR = "Unknown"
RSS_AUTHOR = "Reddit"
UNKNOWN_TIME = "Unknown time"


@dataclass(frozen=True)
class Post:
    """A single entry (Atom) or item (RSS) of a subreddit feed.

    ``id`` is the position in the feed, not a persistent identity.
    """

    id: int
    title: str = NO_TITLE
    link: str = NO_LINK
    content_html: str = NO_CONTENT
    pub_date: str = NO_DATE
    author: str = UNKNOWN_AUTHOR
    image_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Post":
        """Rebuild a post from a snapshot dict, ignoring unknown keys."""
        return cls(
            id=int(data.get("id", 0)),
            title=data.get("title") or NO_TITLE,
            link=data.get("link") or NO_LINK,
            content_html=data.get("content_html") or data.get("contentHtml") or NO_CONTENT,
            pub_date=data.get("pub_date") or data.get("pubDate") or NO_DATE,
            author=data.get("author") or UNKNOWN_AUTHOR,
            image_url=data.get("image_url") or data.get("imageUrl") or "",
        )


@dataclass(frozen=True)
class Comment:
    """A comment scraped from a discussion thread's HTML."""

    id: int
    author: str
    content_html: str
    pub_date: str
    link: str
    reddit_id: str

    @property
    def title(self) -> str:
        return f"Comment by {self.author}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
