"""Parse subreddit RSS 2.0 / Atom XML into Post records."""
from __future__ import annotations

import html
import logging
import re
import xml.etree.ElementTree as ET
from typing import Iterator, List, Optional

from rfo.core.models import (
    NO_CONTENT,
    NO_DATE,
    NO_DESCRIPTION,
    NO_LINK,
    NO_TITLE,
    RSS_AUTHOR,
    UNKNOWN_AUTHOR,
    Post,
)

logger = logging.getLogger(__name__)

_IMG_SRC_RE = re.compile(r"""<img[^>]+src=["']([^"']+)["'][^>]*>""", re.IGNORECASE)


def parse_feed(xml: Optional[str]) -> List[Post]:
    """Parse raw feed text into posts, in document order.

    Atom ``entry`` elements take priority over RSS ``item`` elements when a
    document contains both. Malformed XML yields an empty list.
    """
    if not xml or not xml.strip():
        return []

    try:
        root = ET.fromstring(xml)
    except ET.ParseError as e:
        logger.warning("Could not parse feed XML: %s", e)
        return []

    entries = list(_iter_named(root, "entry"))
    if entries:
        posts = [_parse_atom_entry(entry, index) for index, entry in enumerate(entries)]
    else:
        items = list(_iter_named(root, "item"))
        posts = [_parse_rss_item(item, index) for index, item in enumerate(items)]

    logger.info("Parsed %d posts from feed", len(posts))
    return posts


def extract_image_url(content_html: str) -> str:
    """Return the ``src`` of the first ``<img>`` tag in *content_html*, or ``""``."""
    match = _IMG_SRC_RE.search(content_html or "")
    if not match:
        return ""
    return html.unescape(match.group(1))


def _parse_atom_entry(entry: ET.Element, index: int) -> Post:
    link_el = _first(entry, "link")
    content = _text_content(_first(entry, "content")) or NO_CONTENT
    return Post(
        id=index,
        title=_stripped(_first(entry, "title")) or NO_TITLE,
        link=(link_el.get("href", "").strip() if link_el is not None else "") or NO_LINK,
        content_html=content,
        pub_date=_stripped(_first(entry, "updated")) or NO_DATE,
        author=_atom_author(entry) or UNKNOWN_AUTHOR,
        image_url=extract_image_url(content),
    )


def _parse_rss_item(item: ET.Element, index: int) -> Post:
    description = _text_content(_first(item, "description")) or NO_DESCRIPTION
    author = _stripped(_first(item, "author")) or _stripped(_first(item, "creator"))
    return Post(
        id=index,
        title=_stripped(_first(item, "title")) or NO_TITLE,
        link=_stripped(_first(item, "link")) or NO_LINK,
        content_html=description,
        pub_date=_stripped(_first(item, "pubDate")) or NO_DATE,
        author=author or RSS_AUTHOR,
        image_url=extract_image_url(description),
    )


def _atom_author(entry: ET.Element) -> str:
    """Text of the first ``author > name`` descendant."""
    for author in _iter_named(entry, "author", include_self=False):
        name = _stripped(_first(author, "name"))
        if name:
            return name
    return ""


def _local_name(tag) -> str:
    # Comments and processing instructions have callable tags.
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _iter_named(parent: ET.Element, name: str, include_self: bool = True) -> Iterator[ET.Element]:
    """Yield elements whose local name is *name*, ignoring XML namespaces."""
    for el in parent.iter():
        if el is parent and not include_self:
            continue
        if _local_name(el.tag) == name:
            yield el


def _first(parent: ET.Element, name: str) -> Optional[ET.Element]:
    return next(_iter_named(parent, name, include_self=False), None)


def _text_content(el: Optional[ET.Element]) -> str:
    if el is None:
        return ""
    return "".join(el.itertext())


def _stripped(el: Optional[ET.Element]) -> str:
    return _text_content(el).strip()
