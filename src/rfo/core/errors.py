"""Exception types shared by the pipeline and its collaborators."""
from __future__ import annotations

from typing import Optional


class RfoError(Exception):
    """Base class for reddit-feed-overlay errors."""


class FetchError(RfoError):
    """A feed or page could not be retrieved."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.message = message
        self.status_code = status_code
        super().__init__(f"{message} ({url})")
