"""Configuration for reddit-feed-overlay.

Settings loaded from (in order of precedence):
1. Environment variables (RFO_SUBREDDIT, RFO_USER_AGENT, etc.)
2. Config file (~/.rfo/config.toml)
3. Defaults
"""
from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from rfo.core.comments import DiscoveryMode

RFO_DIR = Path.home() / ".rfo"

DEFAULT_CONFIG_PATH = RFO_DIR / "config.toml"
DEFAULT_DEBUG_DIR = RFO_DIR / "debug"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Application settings."""

    # Feed
    default_subreddit: str = "books"

    # HTTP
    user_agent: str = "reddit-overlay-app/1.0"
    request_timeout: float = 15.0

    # Debug snapshots (last_main_content.txt / last_reddit_view.txt)
    debug_dir: Path = field(default_factory=lambda: DEFAULT_DEBUG_DIR)
    debug_snapshots: bool = True

    # Comment scraping
    discovery_mode: DiscoveryMode = DiscoveryMode.UNION
    selectors_path: Optional[Path] = None  # None = packaged selectors.yaml

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Load settings from config file + environment variable overrides."""
        settings = cls()

        # Load from TOML config file
        path = config_path or DEFAULT_CONFIG_PATH
        if path.exists():
            with open(path, "rb") as f:
                data = tomllib.load(f)

            feed = data.get("feed", {})
            settings.default_subreddit = feed.get("subreddit", settings.default_subreddit)

            http = data.get("http", {})
            settings.user_agent = http.get("user_agent", settings.user_agent)
            settings.request_timeout = float(http.get("timeout", settings.request_timeout))

            debug = data.get("debug", {})
            if "dir" in debug:
                settings.debug_dir = Path(debug["dir"])
            settings.debug_snapshots = bool(debug.get("enabled", settings.debug_snapshots))

            comments = data.get("comments", {})
            if "discovery" in comments:
                settings.discovery_mode = DiscoveryMode(comments["discovery"])
            if "selectors" in comments:
                settings.selectors_path = Path(comments["selectors"])

        # Environment variable overrides (highest precedence)
        if v := os.environ.get("RFO_SUBREDDIT"):
            settings.default_subreddit = v
        if v := os.environ.get("RFO_USER_AGENT"):
            settings.user_agent = v
        if v := os.environ.get("RFO_TIMEOUT"):
            settings.request_timeout = float(v)
        if v := os.environ.get("RFO_DEBUG_DIR"):
            settings.debug_dir = Path(v)
        if v := os.environ.get("RFO_DEBUG_SNAPSHOTS"):
            settings.debug_snapshots = v.strip().lower() in _TRUE_VALUES
        if v := os.environ.get("RFO_DISCOVERY_MODE"):
            settings.discovery_mode = DiscoveryMode(v.strip().lower())
        if v := os.environ.get("RFO_SELECTORS"):
            settings.selectors_path = Path(v)

        return settings
