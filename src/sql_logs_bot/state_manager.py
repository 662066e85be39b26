"""
State Management for SQL log processing.
Manages the SQLite `state` table holding the last processed block per chain.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Iterable, List, Union

from .api.models import Cursor

logger = logging.getLogger(__name__)

CREATE_STATE_TABLE = """
CREATE TABLE IF NOT EXISTS state (
    chain_id INTEGER PRIMARY KEY,
    block_number INTEGER NOT NULL,
    timestamp INTEGER NOT NULL
);
"""


def connect(db_path: Union[str, Path]) -> sqlite3.Connection:
    """Open the state database."""
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Union[str, Path]) -> None:
    """
    Create the state database and an empty `state` table.

    Args:
        db_path: Path of the SQLite file to create
    """
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = connect(path)
    try:
        with conn:
            conn.execute(CREATE_STATE_TABLE)
    finally:
        conn.close()
    logger.info(f"Initialized empty state database at {path}")


def load_cursors(conn: sqlite3.Connection) -> List[Cursor]:
    """
    Load the last processed cursor for every chain.

    Returns:
        Cursors ordered by chain id; empty on the first ever run
    """
    rows = conn.execute(
        "SELECT chain_id, block_number, timestamp FROM state ORDER BY chain_id"
    ).fetchall()
    cursors = [Cursor(**dict(row)) for row in rows]
    logger.info(f"Loaded {len(cursors)} chain cursors from state")
    return cursors


def insert_cursors(conn: sqlite3.Connection, cursors: Iterable[Cursor]) -> int:
    """Insert cursors for chains that have no row yet."""
    rows = [(c.chain_id, c.block_number, c.timestamp) for c in cursors]
    conn.executemany(
        "INSERT INTO state (chain_id, block_number, timestamp) VALUES (?, ?, ?)",
        rows,
    )
    return len(rows)


def update_cursors(conn: sqlite3.Connection, cursors: Iterable[Cursor]) -> int:
    """Update the rows of chains already present in the table."""
    rows = [(c.block_number, c.timestamp, c.chain_id) for c in cursors]
    conn.executemany(
        "UPDATE state SET block_number = ?, timestamp = ? WHERE chain_id = ?",
        rows,
    )
    return len(rows)


def save_cursors(
    conn: sqlite3.Connection,
    previous: List[Cursor],
    diff: List[Cursor],
) -> None:
    """
    Persist the changed cursors in a single transaction.

    Chains with a previous cursor are updated in place; chains seen for the
    first time (all of them on a first run) are inserted, since `chain_id` is
    the primary key and an insert for a known chain would fail.

    Args:
        conn: Open state database
        previous: Cursors loaded at the start of the cycle
        diff: Cursors that changed since then
    """
    known_chains = {c.chain_id for c in previous}
    to_update = [c for c in diff if c.chain_id in known_chains]
    to_insert = [c for c in diff if c.chain_id not in known_chains]

    with conn:
        updated = update_cursors(conn, to_update) if to_update else 0
        inserted = insert_cursors(conn, to_insert) if to_insert else 0

    logger.info(f"Saved state: {updated} chains updated, {inserted} chains inserted")
