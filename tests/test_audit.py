"""Tests for ledger integrity checks."""

from forumrank.api.engine import create_comment, create_post, vote
from forumrank.core.audit import counters_hash, find_drift, repair_counters

T0 = 1_700_000_000


def test_clean_database_has_no_drift(forum):
    post = create_post(forum, "alice", "general", "Clean", content="x", now=T0)
    create_comment(forum, "bob", post.id, "Reply", now=T0 + 1)
    vote(forum, "carol", "post", post.id, -1)

    report = find_drift(forum)

    assert report.ok
    assert report.drift == []


def test_detects_tampered_score_and_karma(forum):
    post = create_post(forum, "alice", "general", "Tampered", content="x", now=T0)
    vote(forum, "bob", "post", post.id, 1)

    forum.execute("UPDATE posts SET score = 40 WHERE id = ?", (post.id,))
    forum.execute("UPDATE users SET karma = 12 WHERE user_id = 'alice'")

    report = find_drift(forum)

    kinds = {(d.kind, d.key, d.cached, d.expected) for d in report.drift}
    assert kinds == {("post", str(post.id), 40, 2), ("karma", "alice", 12, 2)}


def test_repair_restores_counters(forum):
    post = create_post(forum, "alice", "general", "Repair me", content="x", now=T0)
    comment = create_comment(forum, "bob", post.id, "Reply", now=T0 + 1)
    vote(forum, "carol", "comment", comment.id, 1)
    hash_clean = counters_hash(forum)

    forum.execute("UPDATE comments SET score = 0 WHERE id = ?", (comment.id,))
    forum.execute("UPDATE users SET karma = 0 WHERE user_id = 'bob'")
    assert counters_hash(forum) != hash_clean

    report = repair_counters(forum)

    assert report.repaired
    assert len(report.drift) == 2
    assert find_drift(forum).ok
    assert counters_hash(forum) == hash_clean


def test_hash_is_deterministic(forum):
    create_post(forum, "alice", "general", "Stable", content="x", now=T0)
    assert counters_hash(forum) == counters_hash(forum)
