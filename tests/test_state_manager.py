"""
State Database Test Suite
"""

import sqlite3

import pytest

from sql_logs_bot.api.models import Cursor
from sql_logs_bot.state_manager import connect, init_db, load_cursors, save_cursors


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "data" / "state.db"
    init_db(path)
    return path


def cursor(chain_id, block_number, timestamp):
    return Cursor(chain_id=chain_id, block_number=block_number, timestamp=timestamp)


class TestStateDatabase:

    def test_init_creates_empty_table(self, db_path):
        assert db_path.exists()
        conn = connect(db_path)
        try:
            assert load_cursors(conn) == []
        finally:
            conn.close()

    def test_first_run_inserts(self, db_path):
        fresh = [cursor(2, 50, 500), cursor(1, 100, 1000)]
        conn = connect(db_path)
        try:
            save_cursors(conn, [], fresh)
            assert load_cursors(conn) == [cursor(1, 100, 1000), cursor(2, 50, 500)]
        finally:
            conn.close()

    def test_later_runs_update_in_place(self, db_path):
        conn = connect(db_path)
        try:
            save_cursors(conn, [], [cursor(1, 100, 1000), cursor(2, 50, 500)])
            previous = load_cursors(conn)

            save_cursors(conn, previous, [cursor(1, 105, 1005)])
            assert load_cursors(conn) == [cursor(1, 105, 1005), cursor(2, 50, 500)]
        finally:
            conn.close()

    def test_new_chain_after_first_run_is_inserted(self, db_path):
        conn = connect(db_path)
        try:
            save_cursors(conn, [], [cursor(1, 100, 1000)])
            previous = load_cursors(conn)

            save_cursors(conn, previous, [cursor(1, 101, 1001), cursor(3, 7, 70)])
            assert load_cursors(conn) == [cursor(1, 101, 1001), cursor(3, 7, 70)]
        finally:
            conn.close()

    def test_one_row_per_chain(self, db_path):
        conn = connect(db_path)
        try:
            save_cursors(conn, [], [cursor(1, 100, 1000)])
            with pytest.raises(sqlite3.IntegrityError):
                save_cursors(conn, [], [cursor(1, 101, 1001)])
            # Failed transaction leaves the stored cursor untouched
            assert load_cursors(conn) == [cursor(1, 100, 1000)]
        finally:
            conn.close()

    def test_state_survives_reopen(self, db_path):
        conn = connect(db_path)
        save_cursors(conn, [], [cursor(1, 100, 1000)])
        conn.close()

        conn = connect(db_path)
        try:
            assert load_cursors(conn) == [cursor(1, 100, 1000)]
        finally:
            conn.close()
