"""Feed and comment extraction pipeline -- no UI, network or disk dependencies."""
from rfo.core.comments import CommentExtractor, DiscoveryMode, ExtractionResult, extract_comments
from rfo.core.feed_parser import parse_feed
from rfo.core.links import is_discussion_url
from rfo.core.models import Comment, Post

__all__ = [
    "Comment",
    "CommentExtractor",
    "DiscoveryMode",
    "ExtractionResult",
    "Post",
    "extract_comments",
    "is_discussion_url",
    "parse_feed",
]
