"""HTTP collaborator that retrieves feeds and discussion pages from Reddit."""
from __future__ import annotations

import logging
from typing import Optional, Protocol, runtime_checkable

import requests

from rfo.core.errors import FetchError
from rfo.core.links import feed_url

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "reddit-overlay-app/1.0"


@runtime_checkable
class Fetcher(Protocol):
    """Interface the session uses to reach the network."""

    def fetch_feed_xml(self, subreddit_or_url: str) -> str:
        """Return raw RSS/Atom text for a subreddit name or feed URL."""
        ...

    def fetch_html(self, url: str) -> str:
        """Return raw HTML for *url*."""
        ...


class RedditFetcher:
    """Plain ``requests`` client; one attempt per call, no retries."""

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers["User-Agent"] = user_agent

    def fetch_feed_xml(self, subreddit_or_url: str) -> str:
        url = feed_url(subreddit_or_url)
        logger.info("Fetching feed %s", url)
        return self._get(url)

    def fetch_html(self, url: str) -> str:
        logger.info("Fetching page %s", url)
        return self._get(url)

    def _get(self, url: str) -> str:
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as e:
            logger.warning("Request to %s failed: %s", url, e)
            raise FetchError(url, f"Request failed: {e}") from e

        if not response.ok:
            logger.warning("Request to %s returned HTTP %d", url, response.status_code)
            raise FetchError(url, f"HTTP error! status: {response.status_code}", response.status_code)

        logger.debug("Fetched %d characters from %s", len(response.text), url)
        return response.text

    def close(self) -> None:
        self._session.close()
