"""Deterministic ranking algorithms for listings."""

from typing import Sequence

from .errors import InvalidInput
from .models import RankingPolicy, Votable

SECONDS_PER_HOUR = 3600
# Keeps brand-new items from dividing by ~0 and dampens their early climb
AGE_OFFSET_HOURS = 2


def parse_policy(name: str | RankingPolicy) -> RankingPolicy:
    """Resolve a policy name such as 'hot' to a RankingPolicy."""
    try:
        return RankingPolicy(name)
    except ValueError as e:
        raise InvalidInput(f"Unknown ranking algorithm: {name}") from e


def age_hours(created_at: int, now: int) -> float:
    """Age in hours, clamped to zero when created_at is in the future."""
    return max(0.0, (now - created_at) / SECONDS_PER_HOUR)


def hot_score(score: int, created_at: int, now: int) -> float:
    """
    Rank by 'hot' algorithm.

    Key = (score - 1) / (age_hours + 2)

    Subtracting 1 discounts the author's own upvote, so an untouched post
    starts at zero and anything downvoted sinks below it.
    """
    return (score - 1) / (age_hours(created_at, now) + AGE_OFFSET_HOURS)


def rising_score(score: int, created_at: int, now: int) -> float:
    """Rank by 'rising': like hot, without the self-vote discount."""
    return score / (age_hours(created_at, now) + AGE_OFFSET_HOURS)


def compute_rank_key(
    score: int, created_at: int, policy: RankingPolicy | str, now: int
) -> float:
    """Compute the rank key for a single item. Higher ranks first."""
    policy = parse_policy(policy)
    if policy == RankingPolicy.NEW:
        return float(created_at)
    elif policy == RankingPolicy.TOP:
        return float(score)
    elif policy == RankingPolicy.HOT:
        return hot_score(score, created_at, now)
    else:
        return rising_score(score, created_at, now)


def sort_key(
    votable: Votable, rank_key: float, policy: RankingPolicy
) -> tuple[float, int, int]:
    """Descending rank key, then the policy tie-break, then id ascending."""
    if policy == RankingPolicy.TOP:
        return (-rank_key, -votable.created_at, votable.id)
    return (-rank_key, 0, votable.id)


def rank_votables(
    votables: Sequence[Votable], policy: RankingPolicy | str, now: int
) -> list[tuple[Votable, float]]:
    """Rank votables using the specified policy."""
    policy = parse_policy(policy)
    keyed = [
        (v, compute_rank_key(v.score, v.created_at, policy, now)) for v in votables
    ]
    keyed.sort(key=lambda pair: sort_key(pair[0], pair[1], policy))
    return keyed


RANKING_VERSION = "v2.0"
