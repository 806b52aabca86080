"""SQLite-backed persistence for users, boards, votables and votes."""

import sqlite3
from typing import Any

from .errors import NotFound
from .models import Board, Comment, FeedFilter, Post, TargetType, User, Votable

_TABLES = {TargetType.POST: "posts", TargetType.COMMENT: "comments"}


def _table(target_type: TargetType) -> str:
    return _TABLES[TargetType(target_type)]


def _post_from_row(row: sqlite3.Row) -> Post:
    return Post(
        id=row["id"],
        board_id=row["board_id"],
        author_id=row["author_id"],
        title=row["title"],
        url=row["url"],
        content=row["content"],
        score=row["score"],
        comment_count=row["comment_count"],
        created_at=row["created_at"],
    )


def _comment_from_row(row: sqlite3.Row) -> Comment:
    return Comment(
        id=row["id"],
        post_id=row["post_id"],
        parent_id=row["parent_id"],
        author_id=row["author_id"],
        content=row["content"],
        score=row["score"],
        created_at=row["created_at"],
    )


# Users and boards


def insert_user(
    conn: sqlite3.Connection, user_id: str, username: str, created_at: int
) -> User:
    conn.execute(
        "INSERT INTO users (user_id, username, karma, created_at) VALUES (?, ?, 0, ?)",
        (user_id, username, created_at),
    )
    return User(user_id=user_id, username=username, karma=0, created_at=created_at)


def get_user(conn: sqlite3.Connection, user_id: str) -> User:
    row = conn.execute(
        "SELECT user_id, username, karma, created_at FROM users WHERE user_id = ?",
        (user_id,),
    ).fetchone()
    if row is None:
        raise NotFound(f"User {user_id} not found")
    return User(**dict(row))


def user_exists(conn: sqlite3.Connection, user_id: str) -> bool:
    """Check if a user exists."""
    row = conn.execute(
        "SELECT 1 FROM users WHERE user_id = ?", (user_id,)
    ).fetchone()
    return row is not None


def increment_karma(conn: sqlite3.Connection, user_id: str, delta: int) -> bool:
    """Add delta to a user's karma. Returns False when the user is gone."""
    cursor = conn.execute(
        "UPDATE users SET karma = karma + ? WHERE user_id = ?", (delta, user_id)
    )
    return cursor.rowcount > 0


def insert_board(
    conn: sqlite3.Connection, slug: str, name: str, description: str = ""
) -> Board:
    cursor = conn.execute(
        "INSERT INTO boards (slug, name, description) VALUES (?, ?, ?)",
        (slug, name, description),
    )
    return Board(id=cursor.lastrowid, slug=slug, name=name, description=description)


def get_board_by_slug(conn: sqlite3.Connection, slug: str) -> Board:
    row = conn.execute(
        "SELECT id, slug, name, description FROM boards WHERE slug = ?", (slug,)
    ).fetchone()
    if row is None:
        raise NotFound(f"Board {slug} not found")
    return Board(**dict(row))


def subscribe_board(
    conn: sqlite3.Connection, user_id: str, board_id: int, subscribed_at: int
) -> bool:
    """Subscribe a user to a board. Returns False if already subscribed."""
    cursor = conn.execute(
        """
        INSERT OR IGNORE INTO board_subscriptions (user_id, board_id, subscribed_at)
        VALUES (?, ?, ?)
        """,
        (user_id, board_id, subscribed_at),
    )
    return cursor.rowcount > 0


def unsubscribe_board(conn: sqlite3.Connection, user_id: str, board_id: int) -> bool:
    """Remove a subscription. Returns False if there was none."""
    cursor = conn.execute(
        "DELETE FROM board_subscriptions WHERE user_id = ? AND board_id = ?",
        (user_id, board_id),
    )
    return cursor.rowcount > 0


# Votables


def insert_post(
    conn: sqlite3.Connection,
    board_id: int,
    author_id: str,
    title: str,
    url: str | None,
    content: str | None,
    created_at: int,
) -> Post:
    """Insert a post with a zero score. Only the ledger moves scores."""
    cursor = conn.execute(
        """
        INSERT INTO posts (board_id, author_id, title, url, content, score,
                           comment_count, created_at)
        VALUES (?, ?, ?, ?, ?, 0, 0, ?)
        """,
        (board_id, author_id, title, url, content, created_at),
    )
    return Post(
        id=cursor.lastrowid,
        board_id=board_id,
        author_id=author_id,
        title=title,
        url=url,
        content=content,
        created_at=created_at,
    )


def insert_comment(
    conn: sqlite3.Connection,
    post_id: int,
    parent_id: int | None,
    author_id: str,
    content: str,
    created_at: int,
) -> Comment:
    """Insert a comment with a zero score and bump the post's comment count."""
    cursor = conn.execute(
        """
        INSERT INTO comments (post_id, parent_id, author_id, content, score, created_at)
        VALUES (?, ?, ?, ?, 0, ?)
        """,
        (post_id, parent_id, author_id, content, created_at),
    )
    conn.execute(
        "UPDATE posts SET comment_count = comment_count + 1 WHERE id = ?", (post_id,)
    )
    return Comment(
        id=cursor.lastrowid,
        post_id=post_id,
        parent_id=parent_id,
        author_id=author_id,
        content=content,
        created_at=created_at,
    )


def get_post(conn: sqlite3.Connection, post_id: int) -> Post:
    row = conn.execute("SELECT * FROM posts WHERE id = ?", (post_id,)).fetchone()
    if row is None:
        raise NotFound(f"Post {post_id} not found")
    return _post_from_row(row)


def get_comment(conn: sqlite3.Connection, comment_id: int) -> Comment:
    row = conn.execute(
        "SELECT * FROM comments WHERE id = ?", (comment_id,)
    ).fetchone()
    if row is None:
        raise NotFound(f"Comment {comment_id} not found")
    return _comment_from_row(row)


def get_votable(
    conn: sqlite3.Connection, target_type: TargetType, target_id: int
) -> Votable:
    """Load a post or comment, raising NotFound when it does not exist."""
    if TargetType(target_type) == TargetType.POST:
        return get_post(conn, target_id)
    return get_comment(conn, target_id)


def list_comments(conn: sqlite3.Connection, post_id: int) -> list[Comment]:
    """All comments on a post in chronological order."""
    rows = conn.execute(
        "SELECT * FROM comments WHERE post_id = ? ORDER BY created_at, id",
        (post_id,),
    ).fetchall()
    return [_comment_from_row(row) for row in rows]


# Votes and scores


def get_vote(
    conn: sqlite3.Connection, voter_id: str, target_type: TargetType, target_id: int
) -> int:
    """Return the voter's live vote on a target, or 0 if there is none."""
    row = conn.execute(
        """
        SELECT value FROM votes
        WHERE voter_id = ? AND target_type = ? AND target_id = ?
        """,
        (voter_id, TargetType(target_type).value, target_id),
    ).fetchone()
    return row["value"] if row is not None else 0


def write_vote(
    conn: sqlite3.Connection,
    voter_id: str,
    target_type: TargetType,
    target_id: int,
    value: int,
    now: int,
) -> None:
    """Upsert a vote row, or delete it when value is 0."""
    target = TargetType(target_type).value
    if value == 0:
        conn.execute(
            "DELETE FROM votes WHERE voter_id = ? AND target_type = ? AND target_id = ?",
            (voter_id, target, target_id),
        )
        return

    conn.execute(
        """
        INSERT INTO votes (voter_id, target_type, target_id, value, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT (voter_id, target_type, target_id)
        DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        """,
        (voter_id, target, target_id, value, now, now),
    )


def add_score(
    conn: sqlite3.Connection, target_type: TargetType, target_id: int, delta: int
) -> int:
    """Apply a score delta in place and return the new score."""
    table = _table(target_type)
    cursor = conn.execute(
        f"UPDATE {table} SET score = score + ? WHERE id = ?", (delta, target_id)
    )
    if cursor.rowcount == 0:
        raise NotFound(f"{TargetType(target_type).value.capitalize()} {target_id} not found")
    row = conn.execute(
        f"SELECT score FROM {table} WHERE id = ?", (target_id,)
    ).fetchone()
    return row["score"]


# Listings


def _escape_like(text: str) -> str:
    """Make %, _ and the escape character itself match literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _filter_sql(feed_filter: FeedFilter) -> tuple[str, list[Any]]:
    """FROM/WHERE fragment shared by the candidate query and its count."""
    query = " FROM posts p"
    clauses: list[str] = []
    params: list[Any] = []

    if feed_filter.board_slug:
        query += " JOIN boards b ON p.board_id = b.id"
        clauses.append("b.slug = ?")
        params.append(feed_filter.board_slug)

    if feed_filter.subscriber_id:
        clauses.append(
            "p.board_id IN (SELECT board_id FROM board_subscriptions WHERE user_id = ?)"
        )
        params.append(feed_filter.subscriber_id)

    if feed_filter.author_id:
        clauses.append("p.author_id = ?")
        params.append(feed_filter.author_id)

    if feed_filter.search:
        pattern = f"%{_escape_like(feed_filter.search.strip().lower())}%"
        clauses.append(
            "(LOWER(p.title) LIKE ? ESCAPE '\\'"
            " OR LOWER(COALESCE(p.content, '')) LIKE ? ESCAPE '\\')"
        )
        params.extend([pattern, pattern])

    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    return query, params


def list_candidates(conn: sqlite3.Connection, feed_filter: FeedFilter) -> list[Post]:
    """Get every post matching the filter, with filters applied in SQL."""
    fragment, params = _filter_sql(feed_filter)
    rows = conn.execute(
        f"SELECT p.*{fragment} ORDER BY p.created_at DESC, p.id ASC", params
    ).fetchall()
    return [_post_from_row(row) for row in rows]


def count_candidates(conn: sqlite3.Connection, feed_filter: FeedFilter) -> int:
    """Number of posts matching the filter."""
    fragment, params = _filter_sql(feed_filter)
    return conn.execute(f"SELECT COUNT(*){fragment}", params).fetchone()[0]
