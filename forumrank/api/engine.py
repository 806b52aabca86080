"""API-shaped in-process functions for the forum engine."""

import sqlite3
from typing import Iterable
from urllib.parse import urlparse

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from forumrank.core.comments import build_comment_tree
from forumrank.core.config import DEFAULT_CONFIG, EngineConfig
from forumrank.core.db import transaction
from forumrank.core.errors import InvalidInput, NotFound
from forumrank.core.feed import get_page
from forumrank.core.ledger import VoteListener, apply_vote, record_vote
from forumrank.core.models import (
    Board,
    Comment,
    CommentNode,
    FeedFilter,
    FeedPage,
    Post,
    TargetType,
    User,
    VoteResult,
    unix_now,
)
from forumrank.core.ranking import RANKING_VERSION, parse_policy
from forumrank.core.store import (
    count_candidates,
    get_board_by_slug,
    get_comment,
    get_post,
    get_user,
    insert_board,
    insert_comment,
    insert_post,
    insert_user,
    list_candidates,
    list_comments,
    subscribe_board,
    unsubscribe_board,
)

MAX_COMMENT_LENGTH = 10000


class PostDraft(BaseModel):
    """Request to create_post()."""

    title: str
    url: str | None = None
    content: str | None = None

    @field_validator("title")
    @classmethod
    def title_length(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3 or len(v) > 300:
            raise ValueError("Title must be between 3 and 300 characters")
        return v

    @field_validator("url")
    @classmethod
    def url_format(cls, v: str | None) -> str | None:
        if not v:
            return None
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("Invalid URL format")
        return v

    @model_validator(mode="after")
    def url_or_content(self) -> "PostDraft":
        if self.content is not None and not self.content.strip():
            self.content = None
        if self.url and self.content:
            raise ValueError("Post can have either URL or content, not both")
        if not self.url and not self.content:
            raise ValueError("Post must have either URL or content")
        return self


class CommentDraft(BaseModel):
    """Request to create_comment()."""

    content: str
    parent_id: int | None = None

    @field_validator("content")
    @classmethod
    def content_length(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Comment content is required")
        if len(v) > MAX_COMMENT_LENGTH:
            raise ValueError(
                f"Comment is too long (max {MAX_COMMENT_LENGTH} characters)"
            )
        return v


def _validation_message(error: ValidationError) -> str:
    return "; ".join(e["msg"].removeprefix("Value error, ") for e in error.errors())


def create_user(
    conn: sqlite3.Connection,
    user_id: str,
    username: str,
    now: int | None = None,
) -> User:
    """Register a user with zero karma."""
    if not user_id or not username:
        raise InvalidInput("User id and username are required")
    try:
        with transaction(conn):
            return insert_user(conn, user_id, username, now if now is not None else unix_now())
    except sqlite3.IntegrityError as e:
        raise InvalidInput(f"User {user_id} or username {username} already exists") from e


def create_board(
    conn: sqlite3.Connection, slug: str, name: str, description: str = ""
) -> Board:
    """Create a board addressed by slug."""
    if not slug or not name:
        raise InvalidInput("Board slug and name are required")
    try:
        with transaction(conn):
            return insert_board(conn, slug, name, description)
    except sqlite3.IntegrityError as e:
        raise InvalidInput(f"Board {slug} already exists") from e


def subscribe(
    conn: sqlite3.Connection, user_id: str, board_slug: str, now: int | None = None
) -> None:
    """Subscribe a user to a board."""
    with transaction(conn):
        get_user(conn, user_id)
        board = get_board_by_slug(conn, board_slug)
        if not subscribe_board(conn, user_id, board.id, now if now is not None else unix_now()):
            raise InvalidInput("Already subscribed to this board")


def unsubscribe(conn: sqlite3.Connection, user_id: str, board_slug: str) -> None:
    """Remove a user's board subscription."""
    with transaction(conn):
        board = get_board_by_slug(conn, board_slug)
        if not unsubscribe_board(conn, user_id, board.id):
            raise InvalidInput("Not subscribed to this board")


def create_post(
    conn: sqlite3.Connection,
    author_id: str,
    board_slug: str,
    title: str,
    url: str | None = None,
    content: str | None = None,
    now: int | None = None,
    config: EngineConfig | None = None,
) -> Post:
    """
    Create a post on a board.

    The author's own upvote is recorded through the ledger in the same
    transaction, so a new post starts at score 1 and its author gains 1 karma.
    """
    config = config or DEFAULT_CONFIG
    try:
        draft = PostDraft(title=title, url=url, content=content)
    except ValidationError as e:
        raise InvalidInput(_validation_message(e)) from e

    now = now if now is not None else unix_now()
    with transaction(conn, immediate=True):
        get_user(conn, author_id)
        board = get_board_by_slug(conn, board_slug)
        post = insert_post(conn, board.id, author_id, draft.title, draft.url, draft.content, now)
        if config.self_vote_on_create:
            record_vote(conn, author_id, TargetType.POST, post.id, 1, now)
        return get_post(conn, post.id)


def create_comment(
    conn: sqlite3.Connection,
    author_id: str,
    post_id: int,
    content: str,
    parent_id: int | None = None,
    now: int | None = None,
    config: EngineConfig | None = None,
) -> Comment:
    """Add a comment to a post, optionally as a reply to another comment."""
    config = config or DEFAULT_CONFIG
    try:
        draft = CommentDraft(content=content, parent_id=parent_id)
    except ValidationError as e:
        raise InvalidInput(_validation_message(e)) from e

    now = now if now is not None else unix_now()
    with transaction(conn, immediate=True):
        get_user(conn, author_id)
        get_post(conn, post_id)
        if draft.parent_id is not None:
            try:
                parent = get_comment(conn, draft.parent_id)
            except NotFound:
                parent = None
            if parent is None or parent.post_id != post_id:
                raise NotFound("Parent comment not found")

        comment = insert_comment(conn, post_id, draft.parent_id, author_id, draft.content, now)
        if config.self_vote_on_create:
            record_vote(conn, author_id, TargetType.COMMENT, comment.id, 1, now)
        return get_comment(conn, comment.id)


def vote(
    conn: sqlite3.Connection,
    voter_id: str,
    target_type: TargetType | str,
    target_id: int,
    value: int,
    now: int | None = None,
    config: EngineConfig | None = None,
    listeners: Iterable[VoteListener] = (),
) -> VoteResult:
    """Apply a vote and return the post-mutation score and the caller's vote."""
    config = config or DEFAULT_CONFIG
    return apply_vote(
        conn,
        voter_id,
        target_type,
        target_id,
        value,
        now=now,
        max_attempts=config.vote_max_attempts,
        listeners=listeners,
    )


def feed(
    conn: sqlite3.Connection,
    policy: str = "hot",
    feed_filter: FeedFilter | None = None,
    limit: int | None = None,
    offset: int = 0,
    now: int | None = None,
    config: EngineConfig | None = None,
) -> FeedPage:
    """
    Generate one page of a ranked post listing.

    Candidates are fetched through the store with the filter applied in SQL,
    then ranked and sliced in process.
    """
    config = config or DEFAULT_CONFIG
    parsed = parse_policy(policy)

    if limit is None:
        limit = config.default_page_size
    if limit < 0 or offset < 0:
        raise InvalidInput("limit and offset must be non-negative")
    limit = min(limit, config.max_page_size)

    now = now if now is not None else unix_now()
    feed_filter = feed_filter or FeedFilter()
    candidates = list_candidates(conn, feed_filter)
    items = get_page(candidates, parsed, now, limit, offset)

    return FeedPage(
        policy=parsed,
        items=items,
        limit=limit,
        offset=offset,
        total=count_candidates(conn, feed_filter),
        ranking_version=RANKING_VERSION,
    )


def comment_tree(conn: sqlite3.Connection, post_id: int) -> list[CommentNode]:
    """Load a post's comments as nested reply threads."""
    get_post(conn, post_id)
    return build_comment_tree(list_comments(conn, post_id))


def user_karma(conn: sqlite3.Connection, user_id: str) -> int:
    """Return a user's karma."""
    return get_user(conn, user_id).karma
