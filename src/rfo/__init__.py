"""reddit-feed-overlay: subreddit feed reader with discussion comment scraping."""

__version__ = "0.1.0"
