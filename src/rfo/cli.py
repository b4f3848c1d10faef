"""CLI entry point for reddit-feed-overlay."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import NoReturn, Optional, Sequence

import typer
import yaml
from bs4 import BeautifulSoup

from rfo import __version__
from rfo.config import Settings
from rfo.core.comments import CommentExtractor, DiscoveryMode, SelectorTable
from rfo.core.models import Comment, Post

app = typer.Typer(
    name="rfo",
    help="Read a subreddit feed and the discussion comments behind each post.",
    no_args_is_help=True,
)


def version_callback(value: bool):
    if value:
        typer.echo(f"reddit-feed-overlay {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(None, "--version", callback=version_callback, is_eager=True),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress and scraping details"),
):
    """reddit-feed-overlay: browse a subreddit feed with its discussion comments."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


# ---------------------------------------------------------------------------
# Builders and printers
# ---------------------------------------------------------------------------

_CONFIG_ERRORS = (ValueError, OSError, yaml.YAMLError)


def _fail(message: object) -> NoReturn:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


def _load_settings() -> Settings:
    # tomllib.TOMLDecodeError is a ValueError
    try:
        return Settings.load()
    except _CONFIG_ERRORS as e:
        _fail(e)


def _build_extractor(settings: Settings, discovery: Optional[str] = None) -> CommentExtractor:
    try:
        mode = DiscoveryMode(discovery) if discovery else settings.discovery_mode
        return CommentExtractor(selectors=SelectorTable.load(settings.selectors_path), discovery=mode)
    except _CONFIG_ERRORS as e:
        _fail(e)


def _build_session(settings: Settings) -> "FeedSession":  # noqa: F821
    from rfo.core.debug_store import DebugStore
    from rfo.fetcher import RedditFetcher
    from rfo.session import FeedSession

    store = DebugStore(settings.debug_dir) if settings.debug_snapshots else None
    return FeedSession(
        fetcher=RedditFetcher(user_agent=settings.user_agent, timeout=settings.request_timeout),
        extractor=_build_extractor(settings),
        store=store,
    )


def _plain(html: str, width: int) -> str:
    """First *width* characters of the visible text of *html*."""
    text = " ".join(BeautifulSoup(html, "html.parser").get_text(" ").split())
    if len(text) > width:
        return text[: width - 3] + "..."
    return text


def _print_posts(posts: Sequence[Post], limit: Optional[int] = None) -> None:
    shown = posts[:limit] if limit is not None else posts
    for post in shown:
        typer.echo(f"  {post.id + 1}. {post.title}")
        typer.echo(f"     {post.author} | {post.pub_date}")
        typer.echo(f"     {post.link}")
    if len(shown) < len(posts):
        typer.echo(f"  ... {len(posts) - len(shown)} more")


def _print_comments(comments: Sequence[Comment], width: int = 200) -> None:
    if not comments:
        typer.echo("  No comments extracted.")
        return
    for comment in comments:
        typer.echo(f"  [{comment.reddit_id}] {comment.author} -- {comment.pub_date}")
        typer.echo(f"      {_plain(comment.content_html, width)}")


def _print_post(session: "FeedSession", view: "ViewState") -> None:  # noqa: F821
    post = session.current_post
    if post is None:
        typer.echo("No posts.")
        return
    width = int(300 * view.zoom)
    typer.echo(f"\n[{session.current_index + 1}/{len(session.posts)}] {post.title}")
    typer.echo(f"r/{session.subreddit} | {post.author} | {post.pub_date}")
    typer.echo(post.link)
    if post.image_url:
        typer.echo(f"Image: {post.image_url}")
    typer.echo(f"\n{_plain(post.content_html, width)}\n")

    if view.show_page and session.page_html:
        typer.echo(f"Page: {_plain(session.page_html, width)}\n")
    elif view.show_page and session.page_error:
        typer.echo(f"Page error: {session.page_error}\n")

    if not view.show_comments:
        return
    if session.comments_loading:
        typer.echo("Loading comments... (/show to refresh)")
    elif session.comments_error:
        typer.echo(f"Comments error: {session.comments_error} (/reload to retry)")
    elif session.comments:
        typer.echo(f"Comments ({len(session.comments)}):")
        _print_comments(session.comments, width=int(200 * view.zoom))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def feed(
    subreddit: Optional[str] = typer.Argument(None, help="Subreddit name or feed URL"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=0, help="Maximum posts to list"),
):
    """Fetch a subreddit feed and list its posts."""
    from rfo.core.errors import FetchError
    from rfo.core.feed_parser import parse_feed
    from rfo.fetcher import RedditFetcher

    settings = _load_settings()
    target = subreddit or settings.default_subreddit

    fetcher = RedditFetcher(user_agent=settings.user_agent, timeout=settings.request_timeout)
    try:
        posts = parse_feed(fetcher.fetch_feed_xml(target))
    except FetchError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        fetcher.close()

    typer.echo(f"Found {len(posts)} posts in {target}")
    _print_posts(posts, limit=limit)


@app.command()
def parse(
    path: Path = typer.Argument(..., help="Local RSS or Atom file", exists=True, dir_okay=False),
):
    """Parse a saved RSS/Atom file and list its posts."""
    from rfo.core.feed_parser import parse_feed

    posts = parse_feed(path.read_text(encoding="utf-8"))
    typer.echo(f"Found {len(posts)} posts")
    _print_posts(posts)


@app.command()
def comments(
    url: str = typer.Argument(..., help="Reddit discussion URL"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Read the comments HTML from a file", exists=True),
    discovery: Optional[str] = typer.Option(None, "--discovery", help="Node discovery: union or cascade"),
):
    """Extract comments for a discussion thread."""
    from rfo.core.errors import FetchError
    from rfo.core.links import comments_partial_url
    from rfo.fetcher import RedditFetcher

    settings = _load_settings()
    extractor = _build_extractor(settings, discovery)

    if file is not None:
        html = file.read_text(encoding="utf-8")
    else:
        partial_url = comments_partial_url(url)
        if partial_url is None:
            typer.echo(f"Not a Reddit discussion URL: {url}", err=True)
            raise typer.Exit(1)
        fetcher = RedditFetcher(user_agent=settings.user_agent, timeout=settings.request_timeout)
        try:
            html = fetcher.fetch_html(partial_url)
        except FetchError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
        finally:
            fetcher.close()

    result = extractor.extract(html, url)
    typer.echo(f"Extracted {len(result.comments)} comments from {result.candidates} candidates")
    if result.errors:
        typer.echo(f"  ({len(result.errors)} extraction errors)", err=True)
    _print_comments(result.comments)


@app.command()
def restore():
    """List posts from the last saved feed snapshot."""
    from rfo.core.debug_store import DebugStore
    from rfo.session import FeedSession

    settings = _load_settings()
    session = FeedSession(store=DebugStore(settings.debug_dir))
    outcome = session.restore()
    if not outcome.ok:
        typer.echo(f"Error: {outcome.error}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Restored {len(session.posts)} posts from r/{session.subreddit}")
    _print_posts(session.posts)


_REPL_HELP = """\
Commands:
  /next, /prev      Move to the next or previous post
  /go N             Jump to post N
  /show             Show the current post again
  /reload           Fetch the current post's comments again
  /comments         Toggle the comments panel
  /page             Toggle the discussion page preview
  /zoom+, /zoom-    Longer or shorter previews
  /feed NAME        Load another subreddit
  /quit             Exit (or /exit)
"""


async def _browse(session: "FeedSession", target: str) -> None:  # noqa: F821
    from rfo.session import ViewState

    view = ViewState()
    outcome = await session.fetch_feed(target)
    if not outcome.ok:
        typer.echo(f"Error: {outcome.error} (/feed {target} to retry)")
    else:
        typer.echo(f"Loaded {len(session.posts)} posts from r/{session.subreddit}  --  type /help for commands")
        _print_post(session, view)

    while True:
        try:
            line = (await asyncio.to_thread(input, "rfo> ")).strip()
        except (EOFError, KeyboardInterrupt):
            typer.echo()
            break

        if not line:
            continue

        cmd, _, arg = line.partition(" ")
        cmd = cmd.lower()
        if cmd in ("/quit", "/exit"):
            break
        if cmd == "/help":
            typer.echo(_REPL_HELP)
            continue
        if cmd == "/next":
            if not session.next():
                typer.echo("Already at the last post.")
                continue
        elif cmd == "/prev":
            if not session.previous():
                typer.echo("Already at the first post.")
                continue
        elif cmd == "/go":
            if not arg.strip().isdigit() or not session.set_current_index(int(arg) - 1):
                typer.echo(f"No post {arg.strip() or '?'} (1-{len(session.posts)})")
                continue
        elif cmd == "/reload":
            if session.refresh_comments() is None:
                typer.echo("Current post is not a Reddit discussion.")
                continue
        elif cmd == "/comments":
            view.toggle_comments()
        elif cmd == "/page":
            view.toggle_page()
        elif cmd == "/zoom+":
            typer.echo(f"Zoom {view.zoom_in():.1f}x")
        elif cmd == "/zoom-":
            typer.echo(f"Zoom {view.zoom_out():.1f}x")
        elif cmd == "/feed":
            if not arg.strip():
                typer.echo("Usage: /feed NAME")
                continue
            outcome = await session.fetch_feed(arg.strip())
            if not outcome.ok:
                typer.echo(f"Error: {outcome.error}")
                continue
        elif cmd != "/show":
            typer.echo(f"Unknown command: {line}  (type /help)\n")
            continue
        _print_post(session, view)


@app.command()
def browse(
    subreddit: Optional[str] = typer.Argument(None, help="Subreddit name or feed URL"),
):
    """Interactively page through a subreddit feed and its comments."""
    settings = _load_settings()
    session = _build_session(settings)
    asyncio.run(_browse(session, subreddit or settings.default_subreddit))
