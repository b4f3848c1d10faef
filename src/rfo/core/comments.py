"""Heuristic comment extraction from Reddit's server-rendered comments HTML.

This is a best-effort scraper against markup Reddit does not version. The
selectors live in ``selectors.yaml`` so a markup change is a table edit.
"""
from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from bs4 import BeautifulSoup, Tag

from rfo.core.models import NO_CONTENT, UNKNOWN_AUTHOR, UNKNOWN_TIME, Comment

logger = logging.getLogger(__name__)

_UI_LABEL_RE = re.compile(r"^(Reply|Share|Save|Report)(?![a-z])\s*")
_WHITESPACE_RE = re.compile(r"\s+")
_BULLETS_ONLY_RE = re.compile(r"[0-9\s\-•·]+")
_USER_HREF_RE = re.compile(r"/user/([^/?#]+)")
_MARKUP_LEAKS = ("class=", "data-")


class DiscoveryMode(Enum):
    UNION = "union"
    CASCADE = "cascade"


@dataclass(frozen=True)
class NodeStage:
    """One family of selectors for candidate comment nodes."""

    name: str
    selector: str


@dataclass(frozen=True)
class SelectorTable:
    """Ordered selectors driving node discovery and field extraction."""

    version: int
    nodes: Tuple[NodeStage, ...]
    author_attributes: Tuple[str, ...]
    author_links: str
    thing_id_attribute: str
    content_slot: str
    thing_id_patterns: Tuple[str, ...]
    content_fallbacks: Tuple[str, ...]
    time_element: str
    time_fallback: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SelectorTable":
        try:
            content = data["content"]
            time = data["time"]
            return cls(
                version=int(data["version"]),
                nodes=tuple(NodeStage(name=n["name"], selector=n["selector"]) for n in data["nodes"]),
                author_attributes=tuple(data["author_attributes"]),
                author_links=" ".join(data["author_links"].split()),
                thing_id_attribute=data["thing_id_attribute"],
                content_slot=content["slot"],
                thing_id_patterns=tuple(content["thing_id_patterns"]),
                content_fallbacks=tuple(content["fallbacks"]),
                time_element=time["element"],
                time_fallback=time["fallback"],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid selector table: {e}") from e

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "SelectorTable":
        """Load the packaged table, or a replacement from *path*."""
        if path is None:
            text = resources.files("rfo.core").joinpath("selectors.yaml").read_text(encoding="utf-8")
        else:
            text = Path(path).read_text(encoding="utf-8")
        data = yaml.safe_load(text)
        if not isinstance(data, dict):
            raise ValueError("Invalid selector table: expected a mapping")
        return cls.from_dict(data)

    def node_selector(self, stage: Optional[str] = None) -> str:
        """Combined selector list for all stages, or the selector of one named stage."""
        if stage is None:
            return ", ".join(s.selector for s in self.nodes)
        for s in self.nodes:
            if s.name == stage:
                return s.selector
        raise KeyError(stage)


@dataclass
class ExtractionResult:
    """Outcome of one extraction pass over a comments fragment."""

    comments: List[Comment] = field(default_factory=list)
    candidates: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    stage: Optional[str] = None  # winning stage in cascade mode


class CommentExtractor:
    """Find comment-like nodes in an HTML fragment and pull out their fields."""

    def __init__(
        self,
        selectors: Optional[SelectorTable] = None,
        discovery: DiscoveryMode = DiscoveryMode.UNION,
    ):
        self.selectors = selectors or SelectorTable.load()
        self.discovery = discovery

    def extract(self, html_fragment: Optional[str], source_url: str) -> ExtractionResult:
        result = ExtractionResult()
        if not html_fragment or not html_fragment.strip():
            return result

        soup = BeautifulSoup(html_fragment, "html.parser")
        nodes, result.stage = self.find_candidates(soup)
        result.candidates = len(nodes)
        logger.debug("Found %d candidate comment nodes", len(nodes))

        for index, node in enumerate(nodes):
            try:
                comment = self._extract_node(node, index, source_url)
            except Exception as e:
                error_msg = f"Error extracting comment node {index}: {e}"
                logger.warning(error_msg)
                result.errors.append(error_msg)
                continue
            if comment is None:
                result.skipped += 1
                continue
            result.comments.append(comment)

        logger.info(
            "Extracted %d comments from %d candidates (%d skipped, %d errors)",
            len(result.comments), result.candidates, result.skipped, len(result.errors),
        )
        return result

    def find_candidates(self, soup: BeautifulSoup) -> Tuple[List[Tag], Optional[str]]:
        """Candidate nodes in document order, plus the winning stage name in cascade mode."""
        if self.discovery is DiscoveryMode.UNION:
            return soup.select(self.selectors.node_selector()), None

        for stage in self.selectors.nodes:
            matches = soup.select(stage.selector)
            if matches:
                return matches, stage.name
        return [], None

    def _extract_node(self, node: Tag, index: int, source_url: str) -> Optional[Comment]:
        author = self._author(node)
        content = self._content(node)
        thing_id = _attr(node, self.selectors.thing_id_attribute)

        has_valid_author = author != UNKNOWN_AUTHOR and len(author) > 1
        has_valid_content = content != NO_CONTENT and len(content) > 3 and not _leaks_markup(content)
        if not (has_valid_author or has_valid_content):
            logger.debug("Skipped comment node %d: author=%r content=%r", index, author, content[:30])
            return None

        return Comment(
            id=index,
            author=_strip_user_prefix(author),
            content_html=content,
            pub_date=self._timestamp(node),
            link=source_url,
            reddit_id=thing_id or f"t1_comment_{index}",
        )

    def _author(self, node: Tag) -> str:
        for name in self.selectors.author_attributes:
            value = _attr(node, name).strip()
            if value:
                return value

        author_el = node.select_one(self.selectors.author_links)
        if author_el is None:
            return UNKNOWN_AUTHOR
        text = author_el.get_text().strip()
        if text:
            return text
        match = _USER_HREF_RE.search(_attr(author_el, "href"))
        if match:
            return match.group(1)
        return UNKNOWN_AUTHOR

    def _content(self, node: Tag) -> str:
        content_el = self._content_element(node)
        if content_el is None:
            return NO_CONTENT
        return clean_comment_text(content_el)

    def _content_element(self, node: Tag) -> Optional[Tag]:
        content_el = node.select_one(self.selectors.content_slot)
        if content_el is not None:
            return content_el

        thing_id = _attr(node, self.selectors.thing_id_attribute)
        if thing_id:
            quoted = thing_id.replace("\\", "\\\\").replace('"', '\\"')
            for pattern in self.selectors.thing_id_patterns:
                content_el = node.select_one(pattern.format(thing_id=quoted))
                if content_el is not None:
                    return content_el

        for selector in self.selectors.content_fallbacks:
            content_el = node.select_one(selector)
            if content_el is not None:
                return content_el
        return None

    def _timestamp(self, node: Tag) -> str:
        time_el = node.select_one(self.selectors.time_element)
        if time_el is None:
            time_el = node.select_one(self.selectors.time_fallback)
        if time_el is None:
            return UNKNOWN_TIME
        return (
            _attr(time_el, "title")
            or time_el.get_text().strip()
            or _attr(time_el, "datetime")
            or _attr(time_el, "aria-label")
            or UNKNOWN_TIME
        )


def extract_comments(
    html_fragment: Optional[str],
    source_url: str,
    discovery: DiscoveryMode = DiscoveryMode.UNION,
) -> List[Comment]:
    """Extract comments with the packaged selector table."""
    return CommentExtractor(discovery=discovery).extract(html_fragment, source_url).comments


def clean_comment_text(el: Tag) -> str:
    """Visible text of *el* with scripts, styles, UI labels and extra whitespace removed.

    Returns the ``"No content"`` sentinel for empty text or text that looks
    like leaked markup or bare vote counts.
    """
    detached = copy.copy(el)
    for junk in detached.select("script, style"):
        junk.decompose()

    text = detached.get_text().strip()
    text = _WHITESPACE_RE.sub(" ", text)
    text = _UI_LABEL_RE.sub("", text, count=1).strip()

    if (
        text == NO_CONTENT
        or len(text) < 3
        or _leaks_markup(text)
        or _BULLETS_ONLY_RE.fullmatch(text)
    ):
        return NO_CONTENT
    return text


def _leaks_markup(text: str) -> bool:
    return any(marker in text for marker in _MARKUP_LEAKS)


def _strip_user_prefix(author: str) -> str:
    if author.startswith("u/"):
        return author[2:]
    return author


def _attr(el: Tag, name: str) -> str:
    """Attribute value as a string; html.parser lowercases attribute names."""
    value = el.get(name)
    if value is None:
        value = el.get(name.lower())
    if value is None:
        return ""
    if isinstance(value, list):
        return " ".join(value)
    return str(value)
