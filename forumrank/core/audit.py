"""Verify and rebuild denormalized counters from the vote ledger."""

import hashlib
import json
import logging
import sqlite3

from pydantic import BaseModel, Field

from .db import transaction

logger = logging.getLogger(__name__)


class CounterDrift(BaseModel):
    """A cached counter that disagrees with the ledger."""

    kind: str  # "post", "comment" or "karma"
    key: str
    cached: int
    expected: int


class IntegrityReport(BaseModel):
    """Result of an integrity check or repair."""

    drift: list[CounterDrift] = Field(default_factory=list)
    repaired: bool = False

    @property
    def ok(self) -> bool:
        return not self.drift


_SCORE_DRIFT_SQL = """
SELECT t.id AS id, t.score AS cached, COALESCE(v.total, 0) AS expected
FROM {table} t
LEFT JOIN (
    SELECT target_id, SUM(value) AS total FROM votes
    WHERE target_type = ?
    GROUP BY target_id
) v ON v.target_id = t.id
WHERE t.score != COALESCE(v.total, 0)
ORDER BY t.id
"""

# Karma of a user = sum of live votes on every post and comment they wrote
_EXPECTED_KARMA_SQL = """
SELECT u.user_id AS user_id, u.karma AS cached,
       COALESCE(pv.total, 0) + COALESCE(cv.total, 0) AS expected
FROM users u
LEFT JOIN (
    SELECT p.author_id, SUM(v.value) AS total
    FROM votes v JOIN posts p ON v.target_type = 'post' AND v.target_id = p.id
    GROUP BY p.author_id
) pv ON pv.author_id = u.user_id
LEFT JOIN (
    SELECT c.author_id, SUM(v.value) AS total
    FROM votes v JOIN comments c ON v.target_type = 'comment' AND v.target_id = c.id
    GROUP BY c.author_id
) cv ON cv.author_id = u.user_id
"""


def find_drift(conn: sqlite3.Connection) -> IntegrityReport:
    """Compare cached scores and karma against the vote table."""
    drift: list[CounterDrift] = []

    for kind, table in (("post", "posts"), ("comment", "comments")):
        rows = conn.execute(_SCORE_DRIFT_SQL.format(table=table), (kind,)).fetchall()
        drift.extend(
            CounterDrift(
                kind=kind, key=str(row["id"]), cached=row["cached"], expected=row["expected"]
            )
            for row in rows
        )

    rows = conn.execute(
        f"SELECT * FROM ({_EXPECTED_KARMA_SQL}) WHERE cached != expected ORDER BY user_id"
    ).fetchall()
    drift.extend(
        CounterDrift(
            kind="karma", key=row["user_id"], cached=row["cached"], expected=row["expected"]
        )
        for row in rows
    )

    return IntegrityReport(drift=drift)


def repair_counters(conn: sqlite3.Connection) -> IntegrityReport:
    """Rewrite every drifted counter from the ledger in one transaction."""
    with transaction(conn, immediate=True):
        report = find_drift(conn)
        for item in report.drift:
            if item.kind == "karma":
                conn.execute(
                    "UPDATE users SET karma = ? WHERE user_id = ?",
                    (item.expected, item.key),
                )
            else:
                table = "posts" if item.kind == "post" else "comments"
                conn.execute(
                    f"UPDATE {table} SET score = ? WHERE id = ?",
                    (item.expected, int(item.key)),
                )
            logger.info(
                "Repaired %s %s: %d -> %d", item.kind, item.key, item.cached, item.expected
            )

    report.repaired = True
    return report


def counters_hash(conn: sqlite3.Connection) -> str:
    """Compute a deterministic hash of scores and karma for verification."""
    h = hashlib.sha256()

    queries = [
        "SELECT id, score FROM posts ORDER BY id",
        "SELECT id, score FROM comments ORDER BY id",
        "SELECT user_id, karma FROM users ORDER BY user_id",
    ]
    for query in queries:
        for row in conn.execute(query).fetchall():
            h.update(json.dumps(dict(row), sort_keys=True).encode())

    return h.hexdigest()
