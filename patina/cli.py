"""CLI commands for Patina."""

from pathlib import Path
from typing import Optional

import click

from .controllers import (
    FeedAlreadyExistsError,
    FeedNotFoundError,
    InvalidFeedURLError,
    InvalidPatternError,
    add_feed,
    add_reading_pattern,
    get_articles,
    import_opml,
    mark_article_read,
    mark_article_unread,
    refresh_all_feeds,
    refresh_feed,
    remove_feed,
)
from .db import DEFAULT_DB_PATH, Database
from .logging_config import setup_logging
from .models import PATTERN_TYPES
from .opml import OpmlParseError
from .parser import FeedParseError, discover_feeds
from .serendipity import get_serendipity_articles


def _error(message: str) -> None:
    click.echo(click.style(f"Error: {message}", fg="red"))
    raise SystemExit(1)


@click.group()
@click.version_option(package_name="patina")
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="PATINA_DB",
    default=DEFAULT_DB_PATH,
    show_default=True,
    help="Path to the database file",
)
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="PATINA_LOG_DIR",
    help="Also write debug logs to this directory",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx: click.Context, db_path: Path, log_dir: Optional[Path], verbose: bool):
    """Patina - a feed reader that learns what you like."""
    setup_logging(log_dir=log_dir, verbose=verbose)
    ctx.obj = db_path


def _open_db(ctx: click.Context) -> Database:
    return Database(ctx.obj)


@cli.command()
@click.argument("url")
@click.pass_context
def add(ctx: click.Context, url: str):
    """Subscribe to a feed."""
    db = _open_db(ctx)
    try:
        feed = add_feed(db, url)
        click.echo(
            click.style(f"Added feed '{feed.title}' ({feed.unread_count} unread)", fg="green")
        )
    except (FeedAlreadyExistsError, InvalidFeedURLError, FeedParseError) as e:
        _error(str(e))
    finally:
        db.close()


@cli.command()
@click.argument("feed_id", type=int)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def remove(ctx: click.Context, feed_id: int, yes: bool):
    """Unsubscribe from a feed and delete its articles."""
    db = _open_db(ctx)
    try:
        feed = db.get_feed(feed_id)
        if not feed:
            _error(f"Feed {feed_id} not found")

        if not yes:
            click.confirm(f"Remove feed '{feed.title}' and all its articles?", abort=True)

        remove_feed(db, feed_id)
        click.echo(click.style(f"Removed feed '{feed.title}'", fg="green"))
    finally:
        db.close()


@cli.command()
@click.pass_context
def feeds(ctx: click.Context):
    """List subscribed feeds."""
    db = _open_db(ctx)
    try:
        feed_list = db.get_all_feeds()
        if not feed_list:
            click.echo("No feeds yet. Use 'patina add' to subscribe to one.")
            return

        click.echo(click.style(f"Feeds ({len(feed_list)}):", fg="cyan", bold=True))
        click.echo()

        for feed in feed_list:
            id_str = click.style(f"[{feed.id}]", fg="cyan")
            click.echo(f"  {id_str} " + click.style(feed.title, bold=True) + f" ({feed.unread_count} unread)")
            click.echo(f"       URL: {feed.url}")
            if feed.site_url:
                click.echo(f"       Site: {feed.site_url}")
            if feed.last_fetched_at:
                click.echo(f"       Last fetched: {feed.last_fetched_at.strftime('%Y-%m-%d %H:%M')}")
            click.echo()
    finally:
        db.close()


@cli.command()
@click.argument("feed_id", type=int, required=False)
@click.pass_context
def refresh(ctx: click.Context, feed_id: Optional[int]):
    """Fetch new articles.

    If FEED_ID is provided, only that feed is refreshed.
    """
    db = _open_db(ctx)
    try:
        if feed_id is not None:
            try:
                results = [refresh_feed(db, feed_id)]
            except (FeedNotFoundError, FeedParseError) as e:
                _error(str(e))
        else:
            results = refresh_all_feeds(db)
            if not results:
                click.echo("No feeds yet. Use 'patina add' to subscribe to one.")
                return

        total_new = 0
        for result in results:
            click.echo(click.style(f"  {result.feed.title}", bold=True))
            if result.error:
                click.echo(click.style(f"    Error: {result.error}", fg="red"))
            else:
                color = "green" if result.new_articles else "white"
                click.echo(
                    f"    Found: {result.total_found} | "
                    + click.style(f"New: {result.new_articles}", fg=color)
                )
            total_new += result.new_articles

        click.echo()
        if total_new:
            click.echo(click.style(f"Found {total_new} new article(s)!", fg="green", bold=True))
        else:
            click.echo(click.style("No new articles found.", fg="yellow"))
    finally:
        db.close()


@cli.command()
@click.option("--all", "-a", "show_all", is_flag=True, help="Include read articles")
@click.option("--feed", "-f", "feed_id", type=int, help="Only articles from this feed")
@click.option("--limit", "-n", type=int, help="Maximum number of articles")
@click.pass_context
def articles(ctx: click.Context, show_all: bool, feed_id: Optional[int], limit: Optional[int]):
    """List articles.

    By default, shows only unread articles.
    """
    db = _open_db(ctx)
    try:
        try:
            article_list = get_articles(db, feed_id=feed_id, show_all=show_all, limit=limit)
        except FeedNotFoundError as e:
            _error(str(e))

        if not article_list:
            click.echo("No articles found." if show_all else click.style("No unread articles!", fg="green"))
            return

        label = "Articles" if show_all else "Unread articles"
        click.echo(click.style(f"{label} ({len(article_list)}):", fg="cyan", bold=True))
        click.echo()
        for article in article_list:
            _print_article(article)
    finally:
        db.close()


def _print_article(article):
    """Print a single article."""
    status = click.style("[read]", fg="bright_black") if article.is_read else click.style("[new]", fg="yellow")
    id_str = click.style(f"[{article.id}]", fg="cyan")

    click.echo(f"  {id_str} {status} {article.title}")
    click.echo(f"       Feed: {article.feed_title or 'Unknown'}")
    click.echo(f"       URL: {article.url}")
    if article.published_at:
        click.echo(f"       Published: {article.published_at.strftime('%Y-%m-%d')}")
    click.echo()


@cli.command()
@click.argument("article_id", type=int)
@click.pass_context
def read(ctx: click.Context, article_id: int):
    """Mark an article as read."""
    db = _open_db(ctx)
    try:
        if not mark_article_read(db, article_id):
            _error(f"Article {article_id} not found")
        click.echo(click.style(f"Marked article {article_id} as read", fg="green"))
    finally:
        db.close()


@cli.command()
@click.argument("article_id", type=int)
@click.pass_context
def unread(ctx: click.Context, article_id: int):
    """Mark an article as unread."""
    db = _open_db(ctx)
    try:
        if not mark_article_unread(db, article_id):
            _error(f"Article {article_id} not found")
        click.echo(click.style(f"Marked article {article_id} as unread", fg="green"))
    finally:
        db.close()


@cli.command()
@click.argument("url")
def discover(url: str):
    """Look for feeds on a website."""
    try:
        candidates = discover_feeds(url)
    except FeedParseError as e:
        _error(str(e))

    click.echo(click.style(f"Candidate feeds ({len(candidates)}):", fg="cyan", bold=True))
    for candidate in candidates:
        suffix = f" - {candidate.title}" if candidate.title else ""
        click.echo(f"  {candidate.url}{suffix}")


@cli.command("import-opml")
@click.argument("opml_file", type=click.File("r", encoding="utf-8"))
@click.pass_context
def import_opml_command(ctx: click.Context, opml_file):
    """Subscribe to all feeds in an OPML file."""
    db = _open_db(ctx)
    try:
        try:
            result = import_opml(db, opml_file.read())
        except OpmlParseError as e:
            _error(str(e))

        click.echo(
            click.style(
                f"Imported {result.imported_feeds} of {result.total_feeds} feed(s)",
                fg="green" if not result.failed_feeds else "yellow",
            )
        )
        for message in result.errors:
            click.echo(click.style(f"  {message}", fg="red"))
    finally:
        db.close()


@cli.command()
@click.option("--limit", "-n", type=int, default=10, show_default=True, help="Number of articles")
@click.pass_context
def serendipity(ctx: click.Context, limit: int):
    """Suggest unread articles based on your reading patterns."""
    db = _open_db(ctx)
    try:
        suggestions = get_serendipity_articles(db, limit)
        if not suggestions:
            click.echo(click.style("No unread articles!", fg="green"))
            return

        click.echo(click.style(f"Suggested for you ({len(suggestions)}):", fg="cyan", bold=True))
        click.echo()
        for article in suggestions:
            _print_article(article)
    finally:
        db.close()


@cli.command()
@click.pass_context
def patterns(ctx: click.Context):
    """List reading patterns."""
    db = _open_db(ctx)
    try:
        pattern_list = db.get_reading_patterns()
        if not pattern_list:
            click.echo("No reading patterns yet. Read some articles or use 'patina pattern-add'.")
            return

        click.echo(click.style(f"Reading patterns ({len(pattern_list)}):", fg="cyan", bold=True))
        for pattern in pattern_list:
            id_str = click.style(f"[{pattern.id}]", fg="cyan")
            click.echo(
                f"  {id_str} {pattern.pattern_type}: {pattern.value} "
                f"(weight {pattern.weight:.1f}, {pattern.source})"
            )
    finally:
        db.close()


@cli.command("pattern-add")
@click.argument("pattern_type", type=click.Choice(PATTERN_TYPES))
@click.argument("value")
@click.pass_context
def pattern_add(ctx: click.Context, pattern_type: str, value: str):
    """Add a reading pattern (or strengthen an existing one)."""
    db = _open_db(ctx)
    try:
        try:
            pattern = add_reading_pattern(db, pattern_type, value)
        except InvalidPatternError as e:
            _error(str(e))
        click.echo(
            click.style(
                f"Pattern {pattern.pattern_type}: {pattern.value} (weight {pattern.weight:.1f})",
                fg="green",
            )
        )
    finally:
        db.close()


@cli.command("pattern-remove")
@click.argument("pattern_id", type=int)
@click.pass_context
def pattern_remove(ctx: click.Context, pattern_id: int):
    """Delete a reading pattern."""
    db = _open_db(ctx)
    try:
        if not db.delete_reading_pattern(pattern_id):
            _error(f"Pattern {pattern_id} not found")
        click.echo(click.style(f"Removed pattern {pattern_id}", fg="green"))
    finally:
        db.close()


@cli.command("patterns-reset")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def patterns_reset(ctx: click.Context, yes: bool):
    """Delete all reading patterns."""
    db = _open_db(ctx)
    try:
        if not yes:
            click.confirm("Delete all reading patterns?", abort=True)
        db.reset_reading_patterns()
        click.echo(click.style("Reading patterns cleared", fg="green"))
    finally:
        db.close()


if __name__ == "__main__":
    cli()
