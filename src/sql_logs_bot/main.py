"""
Main Orchestration Script for the SQL Logs Bot.

Each invocation:
1. Restores the state database from the vault (or starts a fresh one)
2. Compares the stored cursors with the validators' latest blocks
3. Fetches and classifies the SQL events in the new blocks
4. Saves the new cursors and mirrors the state database to the vault
5. Sends the events to the internal and external Discord webhooks
"""

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, List, Optional

from .api.indexer_client import IndexerClient
from .api.models import ClassifiedEvent, EnrichedEvent
from .api.vault_client import VaultClient
from .bootstrap import initialize_state
from .config import Config
from .event_processor import classify_events, find_state_diff, get_block_ranges, pending_ranges
from .exceptions import BootstrapError
from .logging_config import setup_logging
from .notifier import send_all_notifications
from .state_manager import connect, load_cursors, save_cursors
from .utils.signing import Signer, bytes_to_hex

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Everything a cycle needs, built once per process."""
    config: Config
    signer: Signer
    indexer: IndexerClient
    vault_client: VaultClient
    vault: str
    db_path: Path
    internal_tables: FrozenSet[str] = field(default_factory=frozenset)


@dataclass
class CycleResult:
    changed_chains: int
    queried_ranges: int
    internal: List[ClassifiedEvent]
    external: List[ClassifiedEvent]


def build_context(config: Optional[Config] = None) -> RunContext:
    config = config or Config()
    return RunContext(
        config=config,
        signer=Signer(config.PRIVATE_KEY),
        indexer=IndexerClient(config),
        vault_client=VaultClient(config),
        vault=config.VAULT_NAME,
        db_path=Path(config.STATE_DB_PATH),
        internal_tables=config.INTERNAL_TABLE_NAMES,
    )


def mirror_state(ctx: RunContext) -> None:
    """Sign the state database and append it to the vault as a new event."""
    # Runs every cycle, changed or not, so the cached snapshot never expires
    signature = bytes_to_hex(ctx.signer.sign_file(ctx.db_path))
    ctx.vault_client.write_file(ctx.vault, ctx.db_path, signature)


def run_cycle(ctx: RunContext) -> CycleResult:
    """
    Run one poll cycle.

    Events are fetched and classified before any cursor is saved, so a
    failure anywhere up to the save leaves no trace and the next run derives
    the same ranges again. Notifications are sent only after the new state
    is stored locally and in the vault.
    """
    conn = connect(ctx.db_path)
    try:
        previous = load_cursors(conn)
        fresh = ctx.indexer.fetch_latest_cursors()

        diff = find_state_diff(previous, fresh)
        ranges = pending_ranges(get_block_ranges(previous, diff))
        logger.info(f"{len(diff)} chains changed, {len(ranges)} block ranges to query")

        events: List[EnrichedEvent] = []
        for block_range in ranges:
            events.extend(ctx.indexer.fetch_events(block_range))

        internal, external = classify_events(events, ctx.internal_tables)

        save_cursors(conn, previous, diff)
    finally:
        conn.close()

    mirror_state(ctx)

    if internal or external:
        send_all_notifications(internal, external, ctx.config)
    else:
        logger.info("No new SQL logs to notify")

    return CycleResult(
        changed_chains=len(diff),
        queried_ranges=len(ranges),
        internal=internal,
        external=external,
    )


def main(ctx: Optional[RunContext] = None) -> int:
    """
    Run the bot once.

    Returns:
        Process exit code
    """
    try:
        logger.info("Starting SQL Logs Bot...")

        if ctx is None:
            problems = Config.validate()
            if problems:
                for problem in problems:
                    logger.error(f"Configuration error: {problem}")
                return 1
            ctx = build_context()

        logger.info("=" * 80)
        logger.info("STEP 1: Restoring state from vault")
        logger.info("=" * 80)

        initialize_state(
            ctx.signer,
            ctx.vault_client,
            ctx.vault,
            ctx.db_path,
            migrate=ctx.config.MIGRATE_STATE,
            cache_minutes=ctx.config.VAULT_CACHE_MINUTES,
        )

        logger.info("=" * 80)
        logger.info("STEP 2: Processing new SQL logs")
        logger.info("=" * 80)

        result = run_cycle(ctx)

        logger.info("=" * 80)
        logger.info(
            f"SQL Logs Bot completed successfully: {result.changed_chains} chains changed, "
            f"{len(result.internal)} internal and {len(result.external)} external events"
        )
        logger.info("=" * 80)
        return 0

    except BootstrapError as e:
        logger.error(f"FATAL: could not establish state database: {e}", exc_info=True)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user. Exiting gracefully...")
        return 0
    except Exception as e:
        logger.error("=" * 80)
        logger.error("ERROR in SQL Logs Bot cycle, state was not advanced")
        logger.error("=" * 80)
        logger.error(f"Error: {e}", exc_info=True)
        return 1


def run() -> None:
    """Console script entry point."""
    # Setup logging first
    setup_logging()

    sys.exit(main())


if __name__ == "__main__":
    run()
