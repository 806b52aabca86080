"""Domain models for votables, votes and ranked output."""

import time
from enum import Enum

from pydantic import BaseModel, Field


class TargetType(str, Enum):
    """Kinds of entity that accept votes."""

    POST = "post"
    COMMENT = "comment"


class RankingPolicy(str, Enum):
    """Named listing orders."""

    NEW = "new"
    TOP = "top"
    HOT = "hot"
    RISING = "rising"


VOTE_VALUES = (-1, 0, 1)


def unix_now() -> int:
    """Return the current time in whole unix seconds."""
    return int(time.time())


class User(BaseModel):
    """A forum member and their karma counter."""

    user_id: str
    username: str
    karma: int = 0
    created_at: int


class Board(BaseModel):
    """A topic board that groups posts."""

    id: int
    slug: str
    name: str
    description: str = ""


class Votable(BaseModel):
    """Anything that accumulates a score from up and down votes."""

    id: int
    target_type: TargetType
    author_id: str | None
    score: int = 0
    created_at: int


class Post(Votable):
    """A link or text post on a board."""

    target_type: TargetType = TargetType.POST
    board_id: int
    title: str
    url: str | None = None
    content: str | None = None
    comment_count: int = 0


class Comment(Votable):
    """A comment on a post, optionally replying to another comment."""

    target_type: TargetType = TargetType.COMMENT
    post_id: int
    parent_id: int | None = None
    content: str


class Vote(BaseModel):
    """A live vote. Retracted votes have no row, so value is never 0 here."""

    voter_id: str
    target_type: TargetType
    target_id: int
    value: int
    created_at: int
    updated_at: int


class VoteResult(BaseModel):
    """Outcome of apply_vote returned to the caller."""

    target_type: TargetType
    target_id: int
    score: int
    user_vote: int
    delta: int = 0


class VoteApplied(BaseModel):
    """Event dispatched to listeners after a vote changes a score."""

    voter_id: str
    target_type: TargetType
    target_id: int
    author_id: str | None
    previous_value: int
    value: int
    delta: int
    score: int
    karma_applied: bool
    created_at: int = Field(default_factory=unix_now)


class RankedItem(BaseModel):
    """A votable placed in a listing."""

    votable: Post | Comment
    rank_key: float
    position: int


class FeedFilter(BaseModel):
    """Candidate filter pushed down to the store."""

    board_slug: str | None = None
    subscriber_id: str | None = None
    author_id: str | None = None
    search: str | None = None


class FeedPage(BaseModel):
    """One page of a ranked listing."""

    policy: RankingPolicy
    items: list[RankedItem]
    limit: int
    offset: int
    total: int
    ranking_version: str


class CommentNode(BaseModel):
    """A comment together with its nested replies."""

    comment: Comment
    replies: list["CommentNode"] = Field(default_factory=list)


CommentNode.model_rebuild()
