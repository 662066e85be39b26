"""
Poll Cycle Test Suite

Drives run_cycle with a real state database and signer, and mocked HTTP
clients, to check what is committed when a cycle succeeds or fails.
"""

from unittest.mock import MagicMock, patch

import pytest

from sql_logs_bot import main as bot_main
from sql_logs_bot.api.indexer_client import IndexerClient
from sql_logs_bot.api.models import BlockRange, Cursor, EnrichedEvent, SqlEventType
from sql_logs_bot.api.vault_client import VaultClient
from sql_logs_bot.exceptions import BootstrapError, TransportError
from sql_logs_bot.main import RunContext, main, run_cycle
from sql_logs_bot.state_manager import connect, init_db, load_cursors, save_cursors
from sql_logs_bot.utils.signing import Signer

from .conftest import TEST_PRIVATE_KEY


def cursor(chain_id, block_number, timestamp):
    return Cursor(chain_id=chain_id, block_number=block_number, timestamp=timestamp)


def enriched(table_name, block_number):
    return EnrichedEvent(
        chain_id=1,
        block_number=block_number,
        tx_hash=f"0xtx{block_number}",
        event_type=SqlEventType.RUN_SQL,
        table_id="5",
        statement="update rigs_1_5 set x = 1",
        table_name=table_name,
        base_url="http://mainnet.test/api/v1",
    )


def stored_cursors(db_path):
    conn = connect(db_path)
    try:
        return load_cursors(conn)
    finally:
        conn.close()


@pytest.fixture
def ctx(tmp_path, test_config):
    db_path = tmp_path / "state.db"
    init_db(db_path)
    return RunContext(
        config=test_config,
        signer=Signer(TEST_PRIVATE_KEY),
        indexer=MagicMock(spec=IndexerClient),
        vault_client=MagicMock(spec=VaultClient),
        vault="tbl_sql_logs.state",
        db_path=db_path,
        internal_tables=frozenset({"rigs_1_5"}),
    )


def seed(ctx, cursors):
    conn = connect(ctx.db_path)
    try:
        save_cursors(conn, [], cursors)
    finally:
        conn.close()


class TestRunCycle:

    def test_first_run_records_every_chain_without_fetching(self, ctx):
        fresh = [cursor(1, 100, 1000), cursor(80002, 50, 500)]
        ctx.indexer.fetch_latest_cursors.return_value = fresh

        with patch.object(bot_main, "send_all_notifications") as send:
            result = run_cycle(ctx)

        assert result.changed_chains == 2
        assert result.queried_ranges == 0
        ctx.indexer.fetch_events.assert_not_called()
        send.assert_not_called()
        assert stored_cursors(ctx.db_path) == fresh
        ctx.vault_client.write_file.assert_called_once()

    def test_new_blocks_are_fetched_classified_and_sent(self, ctx):
        seed(ctx, [cursor(1, 100, 1000), cursor(80002, 50, 500)])
        ctx.indexer.fetch_latest_cursors.return_value = [cursor(1, 105, 1005), cursor(80002, 50, 500)]
        ctx.indexer.fetch_events.return_value = [enriched("rigs_1_5", 101), enriched("users_1_7", 103)]

        with patch.object(bot_main, "send_all_notifications") as send:
            result = run_cycle(ctx)

        ctx.indexer.fetch_events.assert_called_once_with(BlockRange(chain_id=1, from_block=100, to_block=105))
        internal, external = send.call_args.args[:2]
        assert [e.block_number for e in internal] == [101]
        assert [e.block_number for e in external] == [103]
        assert result.queried_ranges == 1
        assert stored_cursors(ctx.db_path) == [cursor(1, 105, 1005), cursor(80002, 50, 500)]

    def test_mirror_is_signed_state_file(self, ctx):
        ctx.indexer.fetch_latest_cursors.return_value = [cursor(1, 100, 1000)]

        with patch.object(bot_main, "send_all_notifications"):
            run_cycle(ctx)

        vault, path, signature = ctx.vault_client.write_file.call_args.args
        assert vault == "tbl_sql_logs.state"
        assert path == ctx.db_path
        assert len(signature) == 130
        assert signature == ctx.signer.sign_file(ctx.db_path).hex()

    def test_unchanged_state_still_mirrors(self, ctx):
        seed(ctx, [cursor(1, 100, 1000)])
        ctx.indexer.fetch_latest_cursors.return_value = [cursor(1, 100, 1000)]

        with patch.object(bot_main, "send_all_notifications") as send:
            result = run_cycle(ctx)

        assert result.changed_chains == 0
        send.assert_not_called()
        ctx.vault_client.write_file.assert_called_once()

    def test_fetch_failure_commits_nothing(self, ctx):
        seed(ctx, [cursor(1, 100, 1000)])
        ctx.indexer.fetch_latest_cursors.return_value = [cursor(1, 105, 1005)]
        ctx.indexer.fetch_events.side_effect = TransportError("Error fetching data: 500", status_code=500)

        with patch.object(bot_main, "send_all_notifications") as send:
            with pytest.raises(TransportError):
                run_cycle(ctx)

        assert stored_cursors(ctx.db_path) == [cursor(1, 100, 1000)]
        ctx.vault_client.write_file.assert_not_called()
        send.assert_not_called()

    def test_mirror_failure_sends_nothing(self, ctx):
        seed(ctx, [cursor(1, 100, 1000)])
        ctx.indexer.fetch_latest_cursors.return_value = [cursor(1, 105, 1005)]
        ctx.indexer.fetch_events.return_value = [enriched("users_1_7", 103)]
        ctx.vault_client.write_file.side_effect = TransportError("HTTP error: 503", status_code=503)

        with patch.object(bot_main, "send_all_notifications") as send:
            with pytest.raises(TransportError):
                run_cycle(ctx)

        send.assert_not_called()

    def test_retry_after_failure_derives_same_range(self, ctx):
        seed(ctx, [cursor(1, 100, 1000)])
        ctx.indexer.fetch_latest_cursors.return_value = [cursor(1, 105, 1005)]
        ctx.indexer.fetch_events.side_effect = [TransportError("boom", status_code=502), []]

        with patch.object(bot_main, "send_all_notifications"):
            with pytest.raises(TransportError):
                run_cycle(ctx)
            run_cycle(ctx)

        expected = BlockRange(chain_id=1, from_block=100, to_block=105)
        assert [c.args[0] for c in ctx.indexer.fetch_events.call_args_list] == [expected, expected]


class TestMain:

    def test_success_returns_zero(self, ctx):
        ctx.indexer.fetch_latest_cursors.return_value = []
        with patch.object(bot_main, "initialize_state") as init, \
                patch.object(bot_main, "send_all_notifications"):
            assert main(ctx) == 0
        init.assert_called_once()

    def test_bootstrap_error_is_fatal(self, ctx):
        with patch.object(bot_main, "initialize_state", side_effect=BootstrapError("no db")):
            assert main(ctx) == 1
        ctx.indexer.fetch_latest_cursors.assert_not_called()

    def test_cycle_error_returns_nonzero(self, ctx):
        ctx.indexer.fetch_latest_cursors.side_effect = TransportError("down", status_code=500)
        with patch.object(bot_main, "initialize_state"):
            assert main(ctx) == 1
