"""Tests for comment creation and thread building."""

import pytest

from forumrank.api.engine import comment_tree, create_comment, create_post
from forumrank.core.comments import build_comment_tree
from forumrank.core.errors import InvalidInput, NotFound
from forumrank.core.models import Comment
from forumrank.core.store import get_post

T0 = 1_700_000_000


def make_comment(comment_id, parent_id=None, created_at=T0):
    return Comment(
        id=comment_id,
        post_id=1,
        parent_id=parent_id,
        author_id="alice",
        content=f"Comment {comment_id}",
        created_at=created_at,
    )


def shape(nodes):
    return [(n.comment.id, shape(n.replies)) for n in nodes]


class TestBuildCommentTree:
    """Flat list to nested threads."""

    def test_orphan_promoted_to_root(self):
        comments = [make_comment(1), make_comment(2, parent_id=1), make_comment(3, parent_id=99)]

        tree = build_comment_tree(comments)

        assert shape(tree) == [(1, [(2, [])]), (3, [])]

    def test_order_preserved_at_every_level(self):
        comments = [
            make_comment(1),
            make_comment(2),
            make_comment(3, parent_id=1),
            make_comment(4, parent_id=2),
            make_comment(5, parent_id=1),
            make_comment(6, parent_id=3),
        ]

        tree = build_comment_tree(comments)

        assert shape(tree) == [
            (1, [(3, [(6, [])]), (5, [])]),
            (2, [(4, [])]),
        ]

    def test_reply_listed_before_parent_still_nests(self):
        tree = build_comment_tree([make_comment(2, parent_id=1), make_comment(1)])
        assert shape(tree) == [(1, [(2, [])])]

    def test_self_parent_becomes_root(self):
        tree = build_comment_tree([make_comment(1, parent_id=1)])
        assert shape(tree) == [(1, [])]

    def test_empty(self):
        assert build_comment_tree([]) == []


class TestCreateComment:
    """Comment creation through the engine."""

    @pytest.fixture
    def post(self, forum):
        return create_post(forum, "alice", "general", "Discussion", content="Talk here", now=T0)

    def test_comment_bumps_post_count(self, forum, post):
        create_comment(forum, "bob", post.id, "First", now=T0 + 1)
        create_comment(forum, "carol", post.id, "Second", now=T0 + 2)

        assert get_post(forum, post.id).comment_count == 2

    def test_thread_from_store(self, forum, post):
        c1 = create_comment(forum, "bob", post.id, "Top level", now=T0 + 1)
        c2 = create_comment(forum, "carol", post.id, "Reply", parent_id=c1.id, now=T0 + 2)
        c3 = create_comment(forum, "alice", post.id, "Another top level", now=T0 + 3)

        tree = comment_tree(forum, post.id)

        assert shape(tree) == [(c1.id, [(c2.id, [])]), (c3.id, [])]

    def test_deleted_parent_promotes_replies(self, forum, post):
        c1 = create_comment(forum, "bob", post.id, "Soon gone", now=T0 + 1)
        c2 = create_comment(forum, "carol", post.id, "Reply", parent_id=c1.id, now=T0 + 2)
        forum.execute("DELETE FROM comments WHERE id = ?", (c1.id,))

        tree = comment_tree(forum, post.id)

        assert shape(tree) == [(c2.id, [])]

    def test_blank_content_rejected(self, forum, post):
        with pytest.raises(InvalidInput):
            create_comment(forum, "bob", post.id, "   ")

    def test_overlong_content_rejected(self, forum, post):
        with pytest.raises(InvalidInput):
            create_comment(forum, "bob", post.id, "x" * 10001)

    def test_missing_post(self, forum):
        with pytest.raises(NotFound):
            create_comment(forum, "bob", 404, "Hello")
        with pytest.raises(NotFound):
            comment_tree(forum, 404)

    def test_parent_must_belong_to_post(self, forum, post):
        other = create_post(forum, "bob", "general", "Other thread", content="x", now=T0)
        foreign = create_comment(forum, "carol", other.id, "Elsewhere")

        with pytest.raises(NotFound):
            create_comment(forum, "bob", post.id, "Reply", parent_id=foreign.id)
        with pytest.raises(NotFound):
            create_comment(forum, "bob", post.id, "Reply", parent_id=12345)
        assert get_post(forum, post.id).comment_count == 0
