"""SQLite connection helpers shared by the workflow stores."""

import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from .config import config

logger = logging.getLogger(__name__)


def ensure_parent_dir(db_path: str) -> None:
    db_dir = os.path.dirname(db_path)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)


def connect(db_path: str) -> sqlite3.Connection:
    """Open an autocommit connection; callers start transactions explicitly."""
    conn = sqlite3.connect(
        db_path, isolation_level=None, timeout=config.DB_TIMEOUT_SECONDS
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def immediate_transaction(db_path: str) -> Iterator[sqlite3.Connection]:
    """Run a block inside BEGIN IMMEDIATE on a fresh connection.

    The write lock is taken up front, so two concurrent transitions on the
    same row serialise and the loser's compare-and-set sees the new status.
    Any exception rolls the whole block back and propagates.
    """
    conn = connect(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()
