"""
API client for the Tableland validator's read API.
Fetches the latest processed blocks per chain and the SQL events in a block
range, with retries on rate limiting.
"""

import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import Config
from ..exceptions import NotFoundError, RateLimitedError, TransportError
from .models import BlockRange, Cursor, EnrichedEvent, RawEvent, SqlEventType

logger = logging.getLogger(__name__)

# Healthbot writes a liveness update every few minutes on every chain
HEALTHBOT_PATTERN = re.compile(r"update healthbot")


def is_healthbot_statement(statement: Optional[str]) -> bool:
    return bool(statement) and HEALTHBOT_PATTERN.search(statement) is not None


def latest_blocks_sql(excluded_chains=()) -> str:
    """
    SQL for the highest processed block per chain.

    Args:
        excluded_chains: Chain ids to leave out of the result
    """
    where = ""
    if excluded_chains:
        clauses = " AND ".join(f"chain_id != {int(chain_id)}" for chain_id in sorted(excluded_chains))
        where = f"WHERE {clauses} "
    return (
        "SELECT chain_id, max(block_number) AS block_number, timestamp "
        f"FROM system_evm_blocks {where}"
        "GROUP BY chain_id;"
    )


def sql_logs_sql(block_range: BlockRange) -> str:
    """SQL for the table events in (from_block, to_block] on one chain."""
    event_types = ", ".join(f"'{t.value}'" for t in SqlEventType)
    return (
        "SELECT chain_id, block_number, tx_hash, event_type, "
        "json_extract(event_json, '$.Caller') AS caller, "
        "json_extract(event_json, '$.TableId') AS table_id, "
        "json_extract(event_json, '$.Statement') AS statement "
        "FROM system_evm_events "
        f"WHERE block_number > {int(block_range.from_block)} "
        f"AND block_number <= {int(block_range.to_block)} "
        f"AND chain_id = {int(block_range.chain_id)} "
        f"AND event_type IN ({event_types}) "
        "ORDER BY block_number ASC;"
    )


class IndexerClient:
    """
    Client for the validator query, table and receipt endpoints.

    Every request is retried on HTTP 429 only, with exponential backoff
    starting at `backoff_seconds`. Any other non-2xx response raises at once.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        session: Optional[requests.Session] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or Config()
        self.session = session or self._create_session()
        self.max_retries = self.config.API_MAX_RETRIES if max_retries is None else max_retries
        self.backoff_seconds = self.config.API_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        self._retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff_seconds, exp_base=2),
            retry=retry_if_exception_type(RateLimitedError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=sleep,
            reraise=True,
        )
        # Network group that reported each chain in the last cursor fetch
        self._chain_networks: Dict[int, str] = {}

        logger.info("IndexerClient initialized")

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({"Accept": "application/json"})
        return session

    def _get_once(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        logger.debug(f"GET {url} params={params}")
        start_time = time.time()
        response = self.session.get(url, params=params, timeout=self.config.API_TIMEOUT)
        logger.debug(f"Request completed in {time.time() - start_time:.2f}s - Status: {response.status_code}")

        if response.status_code == 429:
            raise RateLimitedError(f"Rate limited by {url}", status_code=429)
        if response.status_code == 404:
            raise NotFoundError(f"Not found: {url}")
        if not response.ok:
            raise TransportError(f"Error fetching data: {response.status_code}", status_code=response.status_code)
        return response.json()

    def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET a JSON document, retrying while rate limited."""
        return self._retrying(self._get_once, url, params)

    def query(self, base_url: str, statement: str) -> List[Dict[str, Any]]:
        """Run a read query against a validator and return its rows."""
        rows = self.get_json(f"{base_url}/query", {"statement": statement})
        return rows or []

    def fetch_latest_cursors(self) -> List[Cursor]:
        """
        Latest processed block and timestamp per chain, across all network
        groups. Chain ids never overlap between groups.
        """
        cursors = []
        for network in self.config.POLLED_NETWORKS:
            excluded = self.config.DEPRECATED_TESTNET_CHAINS if network == "testnet" else ()
            rows = self.query(self.config.get_network_url(network), latest_blocks_sql(excluded))
            network_cursors = [Cursor(**row) for row in rows]
            for cursor in network_cursors:
                self._chain_networks[cursor.chain_id] = network
            logger.info(f"Fetched latest blocks for {len(network_cursors)} {network} chains")
            cursors.extend(network_cursors)
        return cursors

    def base_url_for(self, chain_id: int) -> str:
        """
        Validator base URL for a chain.

        Prefers the network group that reported the chain's latest block, so
        chains missing from the static table are still queried where they live.
        """
        network = self._chain_networks.get(chain_id)
        if network is not None:
            return self.config.get_network_url(network)
        return self.config.get_base_url(chain_id)

    def get_table_name(self, base_url: str, chain_id: int, table_id: str) -> Optional[str]:
        """
        Table name for a table id, or None if the table does not exist.

        A 404 here means the CREATE TABLE that emitted the event failed.
        """
        try:
            data = self.get_json(f"{base_url}/tables/{chain_id}/{table_id}")
        except NotFoundError:
            logger.info(f"Table {chain_id}/{table_id} not found, creation likely failed")
            return None
        return data.get("name")

    def get_receipt_error(self, base_url: str, chain_id: int, tx_hash: str) -> Optional[str]:
        """Execution error recorded on a transaction receipt, if any."""
        data = self.get_json(f"{base_url}/receipt/{chain_id}/{tx_hash}")
        return data.get("error") or None

    def fetch_events(self, block_range: BlockRange) -> List[EnrichedEvent]:
        """
        Table events in a block range, in ascending block order.

        Healthbot updates are dropped before the per-event table and receipt
        lookups so they cost no extra requests.
        """
        base_url = self.base_url_for(block_range.chain_id)
        rows = self.query(base_url, sql_logs_sql(block_range))

        events = []
        skipped = 0
        for row in rows:
            if is_healthbot_statement(row.get("statement")):
                skipped += 1
                continue
            raw = RawEvent(**row)
            table_name = self.get_table_name(base_url, raw.chain_id, raw.table_id)
            error = self.get_receipt_error(base_url, raw.chain_id, raw.tx_hash)
            events.append(EnrichedEvent(
                **raw.model_dump(),
                table_name=table_name,
                error=error,
                base_url=base_url,
            ))

        logger.info(
            f"Chain {block_range.chain_id} blocks ({block_range.from_block}, {block_range.to_block}]: "
            f"{len(events)} events, {skipped} healthbot updates skipped"
        )
        return events
