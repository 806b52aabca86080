"""Pytest fixtures for tests."""

import tempfile
from pathlib import Path

import pytest

from forumrank.api.engine import create_board, create_user
from forumrank.core.db import get_connection, init_db

T0 = 1_700_000_000


def _cleanup(db_path: Path) -> None:
    db_path.unlink(missing_ok=True)
    # Also remove WAL and SHM files
    Path(str(db_path) + "-wal").unlink(missing_ok=True)
    Path(str(db_path) + "-shm").unlink(missing_ok=True)


@pytest.fixture
def db_path():
    """Path to a freshly initialized temporary database."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = Path(f.name)

    init_db(path).close()

    yield path

    _cleanup(path)


@pytest.fixture
def db_conn(db_path):
    """Create a temporary database for testing."""
    conn = get_connection(db_path)

    yield conn

    conn.close()


@pytest.fixture
def forum(db_conn):
    """Three users and a board, with nobody holding any karma yet."""
    create_user(db_conn, "alice", "alice", now=T0)
    create_user(db_conn, "bob", "bob", now=T0)
    create_user(db_conn, "carol", "carol", now=T0)
    create_board(db_conn, "general", "General", "Anything goes")
    return db_conn
