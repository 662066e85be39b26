"""
State bootstrap.
Restores the local state database from the latest vault snapshot, or starts
a fresh one on the first ever run, after a schema migration, or when the
snapshot is no longer downloadable.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from .api.vault_client import VaultClient
from .config import Config
from .exceptions import BootstrapError
from .state_manager import init_db
from .utils.signing import Signer

logger = logging.getLogger(__name__)


def initialize_state(
    signer: Signer,
    vault_client: VaultClient,
    vault: str,
    db_path: Union[str, Path],
    migrate: bool = False,
    cache_minutes: Optional[int] = None,
) -> Path:
    """
    Make sure a state database exists at `db_path`.

    The vault is the durable copy of the state; the local file is only a
    working copy and is always replaced.

    Args:
        signer: Signer whose address owns the vault
        vault_client: Client for the vault service
        vault: Vault name
        db_path: Where the state database should live
        migrate: Ignore any existing snapshot and start from an empty table
        cache_minutes: Cache TTL used if the vault has to be created

    Returns:
        Path of the state database

    Raises:
        BootstrapError: If no state database exists at the end
    """
    db_path = Path(db_path)
    cache_minutes = Config.VAULT_CACHE_MINUTES if cache_minutes is None else cache_minutes

    db_path.parent.mkdir(parents=True, exist_ok=True)
    if db_path.exists():
        logger.info(f"Removing stale state database at {db_path}")
        db_path.unlink()

    account = signer.address()
    logger.info(f"Vault owner account: {account}")

    vaults = vault_client.list_vaults(account)
    if not vault_client.vault_exists(vaults, vault):
        logger.info(f"Vault {vault} not found, creating it")
        vault_client.create_vault(vault, account, cache_minutes)

    events = vault_client.list_events(vault, latest=1)
    if not events:
        logger.info(f"Vault {vault} has no events yet, starting with empty state")
        init_db(db_path)
    elif migrate:
        logger.warning("State migration requested, ignoring existing vault snapshot")
        init_db(db_path)
    else:
        cid = events[0].cid
        try:
            vault_client.download_event(cid, db_path)
            logger.info(f"Restored state from vault event {cid}")
        except Exception as e:
            # TODO: pull the snapshot from cold storage once the vault API exposes it
            logger.warning(f"Could not download state from vault event {cid} ({e}), starting with empty state")
            init_db(db_path)

    if not db_path.exists():
        raise BootstrapError(f"failed to download state from vault {vault}")
    return db_path
