"""Engine configuration."""

from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_DB_PATH = Path("forum.db")


class EngineConfig(BaseModel):
    """Tunables shared by the engine API and the CLI."""

    db_path: Path = DEFAULT_DB_PATH
    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    # Lock conflicts on the same database are retried this many times in total
    vote_max_attempts: int = Field(default=3, ge=1)

    # New posts and comments start with the author's own upvote
    self_vote_on_create: bool = True

    webhook_url: str | None = None
    webhook_timeout: float = 10.0


DEFAULT_CONFIG = EngineConfig()
