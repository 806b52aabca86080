"""CLI for the forum vote and ranking engine."""

import json
import logging
from pathlib import Path

import click

from forumrank.api.engine import (
    comment_tree,
    create_board,
    create_comment,
    create_post,
    create_user,
    feed,
    subscribe,
    user_karma,
    vote,
)
from forumrank.core.audit import counters_hash, find_drift, repair_counters
from forumrank.core.config import DEFAULT_DB_PATH, EngineConfig
from forumrank.core.db import get_connection, init_db
from forumrank.core.errors import ForumRankError
from forumrank.core.models import CommentNode, FeedFilter, RankingPolicy
from forumrank.notify.webhook import WebhookNotifier

db_path_option = click.option(
    "--db-path",
    type=click.Path(),
    default=str(DEFAULT_DB_PATH),
    envvar="FORUMRANK_DB_PATH",
    show_default=True,
    help="Path to SQLite database file",
)


def _open(db_path: str):
    path = Path(db_path)
    if not path.exists():
        raise click.ClickException(f"Database not found: {path}. Run 'init-db' first")
    return get_connection(path)


def _print_tree(nodes: list[CommentNode], depth: int = 0) -> None:
    for node in nodes:
        c = node.comment
        author = c.author_id or "[removed]"
        click.echo(f"{'  ' * depth}[{c.id}] {author} ({c.score:+d}): {c.content}")
        _print_tree(node.replies, depth + 1)


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    envvar="FORUMRANK_LOG_LEVEL",
    help="Logging verbosity",
)
@click.option(
    "--default-page-size",
    default=20,
    envvar="FORUMRANK_DEFAULT_PAGE_SIZE",
    help="Page size when a feed request gives no --limit",
)
@click.option(
    "--max-page-size",
    default=100,
    envvar="FORUMRANK_MAX_PAGE_SIZE",
    help="Largest page a feed request may ask for",
)
@click.option(
    "--vote-attempts",
    default=3,
    envvar="FORUMRANK_VOTE_ATTEMPTS",
    help="Attempts per vote before giving up on lock conflicts",
)
@click.option(
    "--webhook-url",
    default=None,
    envvar="FORUMRANK_WEBHOOK_URL",
    help="Webhook that receives a message for every applied vote",
)
@click.option(
    "--webhook-timeout",
    default=10.0,
    envvar="FORUMRANK_WEBHOOK_TIMEOUT",
    help="Seconds to wait for the webhook before giving up",
)
@click.pass_context
def cli(
    ctx: click.Context,
    log_level: str,
    default_page_size: int,
    max_page_size: int,
    vote_attempts: int,
    webhook_url: str | None,
    webhook_timeout: float,
) -> None:
    """Forum vote and ranking engine CLI."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = EngineConfig(
        default_page_size=default_page_size,
        max_page_size=max_page_size,
        vote_max_attempts=vote_attempts,
        webhook_url=webhook_url,
        webhook_timeout=webhook_timeout,
    )


@cli.command("init-db")
@db_path_option
@click.option("--force", is_flag=True, help="Drop existing database if it exists")
def init_db_cmd(db_path: str, force: bool) -> None:
    """Initialize the database schema."""
    path = Path(db_path)

    if path.exists():
        if force:
            path.unlink()
            click.echo(f"Removed existing database: {path}")
        else:
            click.echo(f"Database already exists: {path}")
            click.echo("Use --force to recreate")
            return

    conn = init_db(path)
    conn.close()
    click.echo(f"Initialized database: {path}")


@cli.command("add-user")
@db_path_option
@click.argument("user_id")
@click.argument("username")
def add_user(db_path: str, user_id: str, username: str) -> None:
    """Register a user."""
    conn = _open(db_path)
    try:
        user = create_user(conn, user_id, username)
        click.echo(f"Created user {user.user_id} ({user.username})")
    except ForumRankError as e:
        raise click.ClickException(str(e)) from e
    finally:
        conn.close()


@cli.command("add-board")
@db_path_option
@click.argument("slug")
@click.argument("name")
@click.option("--description", default="", help="Board description")
def add_board(db_path: str, slug: str, name: str, description: str) -> None:
    """Create a board."""
    conn = _open(db_path)
    try:
        board = create_board(conn, slug, name, description)
        click.echo(f"Created board {board.slug} (id {board.id})")
    except ForumRankError as e:
        raise click.ClickException(str(e)) from e
    finally:
        conn.close()


@cli.command("subscribe")
@db_path_option
@click.argument("user_id")
@click.argument("board_slug")
def subscribe_cmd(db_path: str, user_id: str, board_slug: str) -> None:
    """Subscribe a user to a board."""
    conn = _open(db_path)
    try:
        subscribe(conn, user_id, board_slug)
        click.echo(f"{user_id} subscribed to {board_slug}")
    except ForumRankError as e:
        raise click.ClickException(str(e)) from e
    finally:
        conn.close()


@cli.command("add-post")
@db_path_option
@click.argument("author_id")
@click.argument("board_slug")
@click.argument("title")
@click.option("--url", default=None, help="Link target")
@click.option("--content", default=None, help="Text body")
@click.pass_obj
def add_post(
    config: EngineConfig,
    db_path: str,
    author_id: str,
    board_slug: str,
    title: str,
    url: str | None,
    content: str | None,
) -> None:
    """Create a post."""
    conn = _open(db_path)
    try:
        post = create_post(
            conn, author_id, board_slug, title, url=url, content=content, config=config
        )
        click.echo(f"Created post {post.id} (score {post.score})")
    except ForumRankError as e:
        raise click.ClickException(str(e)) from e
    finally:
        conn.close()


@cli.command("add-comment")
@db_path_option
@click.argument("author_id")
@click.argument("post_id", type=int)
@click.argument("content")
@click.option("--parent-id", type=int, default=None, help="Comment being replied to")
@click.pass_obj
def add_comment(
    config: EngineConfig,
    db_path: str,
    author_id: str,
    post_id: int,
    content: str,
    parent_id: int | None,
) -> None:
    """Comment on a post."""
    conn = _open(db_path)
    try:
        comment = create_comment(
            conn, author_id, post_id, content, parent_id=parent_id, config=config
        )
        click.echo(f"Created comment {comment.id} on post {post_id}")
    except ForumRankError as e:
        raise click.ClickException(str(e)) from e
    finally:
        conn.close()


@cli.command("vote")
@db_path_option
@click.argument("voter_id")
@click.argument("target_type", type=click.Choice(["post", "comment"]))
@click.argument("target_id", type=int)
@click.argument("value", type=click.IntRange(-1, 1))
@click.pass_obj
def vote_cmd(
    config: EngineConfig,
    db_path: str,
    voter_id: str,
    target_type: str,
    target_id: int,
    value: int,
) -> None:
    """Set a vote (-1, 0 or 1) on a post or comment."""
    conn = _open(db_path)
    listeners = []
    if config.webhook_url:
        listeners.append(WebhookNotifier(config.webhook_url, config.webhook_timeout))
    try:
        result = vote(
            conn, voter_id, target_type, target_id, value,
            config=config, listeners=listeners,
        )
        click.echo(
            f"{target_type} {target_id}: score {result.score}, "
            f"your vote {result.user_vote:+d}"
        )
    except ForumRankError as e:
        raise click.ClickException(str(e)) from e
    finally:
        conn.close()


@cli.command("feed")
@db_path_option
@click.option(
    "--policy",
    type=click.Choice([p.value for p in RankingPolicy]),
    default="hot",
    help="Ranking algorithm",
)
@click.option("--board", default=None, help="Only posts on this board")
@click.option("--subscriber", default=None, help="Only boards this user subscribes to")
@click.option("--author", default=None, help="Only posts by this user")
@click.option("--search", default=None, help="Text to match in title or content")
@click.option("--limit", default=None, type=int, help="Page size")
@click.option("--offset", default=0, help="Items to skip")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_obj
def feed_cmd(
    config: EngineConfig,
    db_path: str,
    policy: str,
    board: str | None,
    subscriber: str | None,
    author: str | None,
    search: str | None,
    limit: int | None,
    offset: int,
    json_output: bool,
) -> None:
    """Show a ranked page of posts."""
    conn = _open(db_path)
    try:
        page = feed(
            conn,
            policy,
            FeedFilter(
                board_slug=board, subscriber_id=subscriber, author_id=author, search=search
            ),
            limit=limit,
            offset=offset,
            config=config,
        )
    except ForumRankError as e:
        raise click.ClickException(str(e)) from e
    finally:
        conn.close()

    if json_output:
        click.echo(page.model_dump_json(indent=2))
        return

    click.echo(f"{'Pos':>4} {'Id':>6} {'Score':>6} {'Rank':>12} {'Title':<50}")
    click.echo("-" * 82)
    for item in page.items:
        post = item.votable
        click.echo(
            f"{item.position:>4} {post.id:>6} {post.score:>6} "
            f"{item.rank_key:>12.4f} {post.title[:50]:<50}"
        )
    click.echo(f"{len(page.items)} of {page.total} posts ({page.policy.value})")


@cli.command("comments")
@db_path_option
@click.argument("post_id", type=int)
@click.option("--json-output", is_flag=True, help="Output as JSON")
def comments_cmd(db_path: str, post_id: int, json_output: bool) -> None:
    """Show a post's comment threads."""
    conn = _open(db_path)
    try:
        forest = comment_tree(conn, post_id)
    except ForumRankError as e:
        raise click.ClickException(str(e)) from e
    finally:
        conn.close()

    if json_output:
        click.echo(json.dumps([node.model_dump() for node in forest], indent=2))
    elif not forest:
        click.echo("No comments")
    else:
        _print_tree(forest)


@cli.command("karma")
@db_path_option
@click.argument("user_id")
def karma_cmd(db_path: str, user_id: str) -> None:
    """Show a user's karma."""
    conn = _open(db_path)
    try:
        click.echo(f"{user_id}: {user_karma(conn, user_id)}")
    except ForumRankError as e:
        raise click.ClickException(str(e)) from e
    finally:
        conn.close()


@cli.command("audit")
@db_path_option
@click.option("--repair", is_flag=True, help="Rewrite drifted counters from the ledger")
def audit(db_path: str, repair: bool) -> None:
    """Check scores and karma against the vote ledger."""
    conn = _open(db_path)
    try:
        hash_before = counters_hash(conn)
        report = repair_counters(conn) if repair else find_drift(conn)
        hash_after = counters_hash(conn)
    finally:
        conn.close()

    if report.ok:
        click.echo("Counters match the ledger")
    else:
        for item in report.drift:
            click.echo(
                f"  {item.kind} {item.key}: cached {item.cached}, ledger {item.expected}"
            )
        click.echo(f"{len(report.drift)} drifted counter(s)")

    click.echo(f"Hash before: {hash_before[:16]}...")
    click.echo(f"Hash after:  {hash_after[:16]}...")
    if report.repaired and not report.ok:
        click.echo("Counters rebuilt")


if __name__ == "__main__":
    cli()
