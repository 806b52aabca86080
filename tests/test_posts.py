"""Tests for post creation and user registration."""

import pytest

from forumrank.api.engine import create_post, create_user, user_karma
from forumrank.core.config import EngineConfig
from forumrank.core.errors import InvalidInput, NotFound

T0 = 1_700_000_000


class TestCreatePost:

    def test_text_post(self, forum):
        post = create_post(forum, "alice", "general", "  Hello world  ", content="Body", now=T0)

        assert post.title == "Hello world"
        assert post.url is None
        assert post.score == 1
        assert post.created_at == T0

    def test_link_post(self, forum):
        post = create_post(forum, "bob", "general", "A link", url="https://example.com/a", now=T0)
        assert post.url == "https://example.com/a"
        assert post.content is None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"title": "Hi", "content": "too short"},
            {"title": "x" * 301, "content": "too long"},
            {"title": "Both", "url": "https://example.com", "content": "and text"},
            {"title": "Neither"},
            {"title": "Blank body", "content": "   "},
            {"title": "Bad link", "url": "not a url"},
            {"title": "Wrong scheme", "url": "ftp://example.com/file"},
        ],
    )
    def test_invalid_drafts(self, forum, kwargs):
        with pytest.raises(InvalidInput):
            create_post(forum, "alice", "general", **kwargs)
        assert forum.execute("SELECT COUNT(*) FROM posts").fetchone()[0] == 0

    def test_unknown_board(self, forum):
        with pytest.raises(NotFound):
            create_post(forum, "alice", "nowhere", "Lost post", content="x")
        assert user_karma(forum, "alice") == 0

    def test_unknown_author(self, forum):
        with pytest.raises(NotFound):
            create_post(forum, "ghost", "general", "Spooky", content="boo")

    def test_self_vote_can_be_disabled(self, forum):
        config = EngineConfig(self_vote_on_create=False)
        post = create_post(forum, "alice", "general", "Quiet post", content="x", config=config)

        assert post.score == 0
        assert user_karma(forum, "alice") == 0


class TestCreateUser:

    def test_duplicate_user_rejected(self, forum):
        with pytest.raises(InvalidInput):
            create_user(forum, "alice", "someone-else")
        with pytest.raises(InvalidInput):
            create_user(forum, "alice2", "alice")

    def test_missing_fields_rejected(self, db_conn):
        with pytest.raises(InvalidInput):
            create_user(db_conn, "", "nobody")

    def test_karma_of_unknown_user(self, forum):
        with pytest.raises(NotFound):
            user_karma(forum, "ghost")
