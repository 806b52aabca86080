"""
Vote ledger: the only code path that changes scores and karma.

Each vote is a read-modify-write on one target, executed inside a
BEGIN IMMEDIATE transaction. SQLite grants the write lock to one
connection at a time, so two voters racing on the same target cannot both
read the same prior state. Contention that outlasts the busy timeout comes
back as ConflictRetryable and is retried a bounded number of times.
"""

import logging
import sqlite3
from typing import Callable, Iterable

from .db import savepoint, transaction
from .errors import ConflictRetryable, InvalidInput, NotFound, StoreUnavailable
from .models import VOTE_VALUES, TargetType, VoteApplied, VoteResult, unix_now
from .store import add_score, get_votable, get_vote, increment_karma, user_exists, write_vote

logger = logging.getLogger(__name__)

VoteListener = Callable[[VoteApplied], None]

DEFAULT_MAX_ATTEMPTS = 3

_LOCK_MESSAGES = ("database is locked", "database is busy", "database table is locked")


def validate_vote(target_type: TargetType | str, value: int) -> TargetType:
    """Check a vote request and return the parsed target type."""
    if isinstance(value, bool) or value not in VOTE_VALUES:
        raise InvalidInput(
            "Vote value must be 1 (upvote), -1 (downvote), or 0 (remove)"
        )
    try:
        return TargetType(target_type)
    except ValueError as e:
        raise InvalidInput(f"Unknown vote target type: {target_type}") from e


def record_vote(
    conn: sqlite3.Connection,
    voter_id: str,
    target_type: TargetType,
    target_id: int,
    value: int,
    now: int,
) -> tuple[VoteResult, VoteApplied | None]:
    """
    Apply a vote inside an already open transaction.

    Returns the result for the caller and, when the vote changed anything,
    the event to publish once the transaction has committed.
    """
    votable = get_votable(conn, target_type, target_id)
    if not user_exists(conn, voter_id):
        raise NotFound(f"User {voter_id} not found")

    existing = get_vote(conn, voter_id, target_type, target_id)
    delta = value - existing
    if delta == 0:
        result = VoteResult(
            target_type=target_type,
            target_id=target_id,
            score=votable.score,
            user_vote=existing,
        )
        return result, None

    write_vote(conn, voter_id, target_type, target_id, value, now)
    score = add_score(conn, target_type, target_id, delta)
    karma_applied = _apply_karma(conn, votable.author_id, delta)

    result = VoteResult(
        target_type=target_type,
        target_id=target_id,
        score=score,
        user_vote=value,
        delta=delta,
    )
    event = VoteApplied(
        voter_id=voter_id,
        target_type=target_type,
        target_id=target_id,
        author_id=votable.author_id,
        previous_value=existing,
        value=value,
        delta=delta,
        score=score,
        karma_applied=karma_applied,
        created_at=now,
    )
    return result, event


def _apply_karma(conn: sqlite3.Connection, author_id: str | None, delta: int) -> bool:
    """Best-effort karma update. A failure here never undoes the vote."""
    if author_id is None:
        logger.warning("Skipping karma update: votable author was removed")
        return False

    try:
        with savepoint(conn, "karma"):
            applied = increment_karma(conn, author_id, delta)
    except sqlite3.Error:
        logger.warning(
            "Karma update failed for %s (delta %+d)", author_id, delta, exc_info=True
        )
        return False

    if not applied:
        logger.warning("Skipping karma update: author %s no longer exists", author_id)
    return applied


def _is_lock_error(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return any(m in message for m in _LOCK_MESSAGES)


def _attempt_vote(
    conn: sqlite3.Connection,
    voter_id: str,
    target_type: TargetType,
    target_id: int,
    value: int,
    now: int,
) -> tuple[VoteResult, VoteApplied | None]:
    try:
        with transaction(conn, immediate=True):
            return record_vote(conn, voter_id, target_type, target_id, value, now)
    except sqlite3.OperationalError as e:
        if _is_lock_error(e):
            raise ConflictRetryable(str(e)) from e
        raise StoreUnavailable(f"Vote store error: {e}") from e
    except sqlite3.Error as e:
        raise StoreUnavailable(f"Vote store error: {e}") from e


def dispatch(listeners: Iterable[VoteListener], event: VoteApplied) -> None:
    """Deliver an event to each listener, isolating their failures."""
    for listener in listeners:
        try:
            listener(event)
        except Exception:
            logger.exception("Vote listener %r failed", listener)


def apply_vote(
    conn: sqlite3.Connection,
    voter_id: str,
    target_type: TargetType | str,
    target_id: int,
    value: int,
    now: int | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    listeners: Iterable[VoteListener] = (),
) -> VoteResult:
    """
    Set voter's vote on a target to value (-1, 0 or 1).

    Re-sending the current value is a no-op. Changing it moves the target
    score and the author's karma by the difference. Raises InvalidInput or
    NotFound for bad requests, StoreUnavailable once retries are exhausted.
    """
    parsed_type = validate_vote(target_type, value)
    if now is None:
        now = unix_now()

    for attempt in range(1, max_attempts + 1):
        try:
            result, event = _attempt_vote(
                conn, voter_id, parsed_type, target_id, value, now
            )
        except ConflictRetryable as e:
            logger.warning(
                "Vote conflict on %s %s (attempt %d/%d): %s",
                parsed_type.value, target_id, attempt, max_attempts, e,
            )
            continue

        if event is not None:
            logger.debug(
                "Vote applied: %s -> %s %s = %+d (score %d)",
                voter_id, parsed_type.value, target_id, value, result.score,
            )
            dispatch(listeners, event)
        return result

    raise StoreUnavailable(
        f"Vote on {parsed_type.value} {target_id} failed after {max_attempts} attempts"
    )
