"""Paginated, deterministic listings over a candidate set."""

from typing import Sequence

from .models import Comment, Post, RankedItem, RankingPolicy
from .ranking import rank_votables


def get_page(
    candidates: Sequence[Post | Comment],
    policy: RankingPolicy | str,
    now: int,
    limit: int,
    offset: int = 0,
) -> list[RankedItem]:
    """
    Rank candidates and return the slice [offset, offset + limit).

    Negative limit or offset is clamped to zero. Ordering depends only on
    the candidates and `now`, so consecutive pages line up as long as no
    vote lands in between.
    """
    limit = max(0, limit)
    offset = max(0, offset)

    ranked = rank_votables(candidates, policy, now)
    window = ranked[offset : offset + limit]

    return [
        RankedItem(votable=votable, rank_key=rank_key, position=offset + i)
        for i, (votable, rank_key) in enumerate(window)
    ]
