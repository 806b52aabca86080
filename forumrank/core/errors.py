"""Error kinds raised by the vote and ranking engine."""


class ForumRankError(Exception):
    """Base class for engine errors."""


class NotFound(ForumRankError, LookupError):
    """A target, voter, board or parent comment does not exist."""


class InvalidInput(ForumRankError, ValueError):
    """A caller-supplied value is outside its allowed domain."""


class ConflictRetryable(ForumRankError):
    """The store rejected a write because of a concurrent writer."""


class StoreUnavailable(ForumRankError):
    """The store failed, or a conflict persisted past the retry bound."""
