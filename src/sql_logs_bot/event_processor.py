"""
Event Processing for SQL logs.
Works out which blocks are new since the last run and routes the events
found in them to the internal or external webhook.
"""

import logging
from typing import AbstractSet, Dict, List, Tuple

from .api.indexer_client import is_healthbot_statement
from .api.models import BlockRange, ClassifiedEvent, Cursor, Destination, EnrichedEvent

logger = logging.getLogger(__name__)


def find_state_diff(previous: List[Cursor], fresh: List[Cursor]) -> List[Cursor]:
    """
    Cursors in `fresh` that do not appear in `previous`.

    A cursor matches only when chain id, block number and timestamp are all
    equal, so a changed timestamp on the same block also counts as new.

    Args:
        previous: Cursors persisted by the last completed run
        fresh: Latest cursors reported by the validators

    Returns:
        Changed cursors, in the order of `fresh`
    """
    seen = {(c.chain_id, c.block_number, c.timestamp) for c in previous}
    diff = [c for c in fresh if (c.chain_id, c.block_number, c.timestamp) not in seen]
    logger.info(f"State diff: {len(diff)} of {len(fresh)} chains changed")
    return diff


def get_block_ranges(previous: List[Cursor], diff: List[Cursor]) -> List[BlockRange]:
    """
    Block ranges to query for each changed chain.

    The range starts after the chain's previous block. A chain with no
    previous cursor gets an empty range ending at its current block: there
    is nothing before the first observation worth reporting.
    """
    previous_by_chain: Dict[int, Cursor] = {c.chain_id: c for c in previous}
    ranges = []
    for cursor in diff:
        prior = previous_by_chain.get(cursor.chain_id)
        from_block = prior.block_number if prior is not None else cursor.block_number
        ranges.append(BlockRange(
            chain_id=cursor.chain_id,
            from_block=from_block,
            to_block=cursor.block_number,
        ))
    return ranges


def pending_ranges(ranges: List[BlockRange]) -> List[BlockRange]:
    """Drop zero-width ranges so they never turn into a query."""
    pending = []
    for block_range in ranges:
        if block_range.is_empty:
            logger.debug(
                f"Skipping empty range on chain {block_range.chain_id} "
                f"({block_range.from_block}, {block_range.to_block}]"
            )
            continue
        pending.append(block_range)
    return pending


def classify_event(event: EnrichedEvent, internal_tables: AbstractSet[str]) -> Destination:
    """
    Route an event by table name.

    Tables in `internal_tables` go to the internal webhook. Everything else,
    including events whose table could not be resolved, is external.
    """
    if event.table_name is not None and event.table_name in internal_tables:
        return Destination.INTERNAL
    return Destination.EXTERNAL


def classify_events(
    events: List[EnrichedEvent],
    internal_tables: AbstractSet[str],
) -> Tuple[List[ClassifiedEvent], List[ClassifiedEvent]]:
    """
    Split events into internal and external lists, keeping their order.

    Healthbot updates are discarded here as well as at fetch time.

    Returns:
        (internal, external)
    """
    internal: List[ClassifiedEvent] = []
    external: List[ClassifiedEvent] = []

    for event in events:
        if is_healthbot_statement(event.statement):
            continue

        destination = classify_event(event, internal_tables)
        classified = ClassifiedEvent(**event.model_dump(), destination=destination)
        if destination is Destination.INTERNAL:
            internal.append(classified)
        else:
            if event.table_name is None:
                logger.warning(
                    f"Event in tx {event.tx_hash} on chain {event.chain_id} has no table name "
                    f"(table {event.table_id} creation likely failed)"
                )
            external.append(classified)

    logger.info(f"Classified {len(internal)} internal and {len(external)} external events")
    return internal, external
