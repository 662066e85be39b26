"""
Configuration module for the SQL Logs Bot.
Centralizes all configuration settings and environment variables.
"""

import os
from typing import Dict, FrozenSet, List
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _env_set(name: str) -> FrozenSet[str]:
    raw = os.getenv(name, "")
    return frozenset(item.strip() for item in raw.split(",") if item.strip())


class Config:
    """Main configuration class for the bot."""

    # Signing / vault settings
    PRIVATE_KEY: str = os.getenv("PRIVATE_KEY", "")
    VAULT_NAME: str = os.getenv("VAULT_NAME", "tbl_sql_logs.state")
    VAULT_BASE_URL: str = os.getenv("VAULT_BASE_URL", "https://basin.tableland.xyz")
    # Runs occur every 15 minutes, so leave some buffer before the cache expires
    VAULT_CACHE_MINUTES: int = int(os.getenv("VAULT_CACHE_MINUTES", "30"))
    VAULT_MAX_RETRIES: int = int(os.getenv("VAULT_MAX_RETRIES", "5"))
    VAULT_BACKOFF_SECONDS: float = float(os.getenv("VAULT_BACKOFF_SECONDS", "1"))
    # Set when the `state` table schema changes and old snapshots must be ignored
    MIGRATE_STATE: bool = _env_flag("MIGRATE_STATE")

    # Local state
    STATE_DB_PATH: str = os.getenv("STATE_DB_PATH", "data/state.db")

    # Indexer API settings
    API_TIMEOUT: int = int(os.getenv("API_TIMEOUT", "30"))
    API_MAX_RETRIES: int = int(os.getenv("API_MAX_RETRIES", "5"))
    API_BACKOFF_SECONDS: float = float(os.getenv("API_BACKOFF_SECONDS", "0.3"))

    # Notification channels (Apprise URL format, e.g. discord://webhook_id/webhook_token)
    NOTIFICATION_CHANNELS: Dict[str, str] = {
        "internal": os.getenv("DISCORD_WEBHOOK_URL_INTERNAL", ""),  # Core team tables
        "external": os.getenv("DISCORD_WEBHOOK_URL_EXTERNAL", ""),  # Community tables
    }
    NOTIFICATION_TITLE: str = "New SQL Logs"
    STUDIO_TABLE_URL: str = "https://studio.tableland.xyz/table/{table_name}"

    # Tables owned by the core team; their events go to the internal webhook
    INTERNAL_TABLE_NAMES: FrozenSet[str] = _env_set("INTERNAL_TABLE_NAMES")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    LOG_FILE: str = os.getenv("LOG_FILE", "logs/sql_logs_bot.log")
    LOG_MAX_BYTES: int = int(os.getenv("LOG_MAX_BYTES", "10485760"))  # 10MB
    LOG_BACKUP_COUNT: int = int(os.getenv("LOG_BACKUP_COUNT", "5"))

    # Validator base URLs per network group
    NETWORK_BASE_URLS: Dict[str, str] = {
        "mainnet": "https://tableland.network/api/v1",
        "testnet": "https://testnets.tableland.network/api/v1",
        "local": "http://localhost:8080/api/v1",
    }

    # Groups polled for the latest processed blocks
    POLLED_NETWORKS: List[str] = ["testnet", "mainnet"]

    # Deprecated testnet chains still present in the validator's block table
    DEPRECATED_TESTNET_CHAINS: FrozenSet[int] = frozenset({421613, 5, 3141})

    CHAINS: Dict[int, Dict[str, str]] = {
        1: {"name": "mainnet", "network": "mainnet"},
        10: {"name": "optimism", "network": "mainnet"},
        137: {"name": "matic", "network": "mainnet"},
        314: {"name": "filecoin", "network": "mainnet"},
        8453: {"name": "base", "network": "mainnet"},
        42161: {"name": "arbitrum", "network": "mainnet"},
        42170: {"name": "arbitrum-nova", "network": "mainnet"},
        5: {"name": "goerli", "network": "testnet"},
        3141: {"name": "filecoin-hyperspace", "network": "testnet"},
        80001: {"name": "maticmum", "network": "testnet"},
        80002: {"name": "polygon-amoy", "network": "testnet"},
        84532: {"name": "base-sepolia", "network": "testnet"},
        314159: {"name": "filecoin-calibration", "network": "testnet"},
        421613: {"name": "arbitrum-goerli", "network": "testnet"},
        421614: {"name": "arbitrum-sepolia", "network": "testnet"},
        11155111: {"name": "sepolia", "network": "testnet"},
        11155420: {"name": "optimism-sepolia", "network": "testnet"},
        31337: {"name": "local-tableland", "network": "local"},
    }

    @classmethod
    def get_chain_name(cls, chain_id: int) -> str:
        """Human readable chain name, falling back to the numeric id."""
        chain = cls.CHAINS.get(int(chain_id))
        return chain["name"] if chain else str(chain_id)

    @classmethod
    def get_base_url(cls, chain_id: int) -> str:
        """
        Validator base URL serving a chain from the static chain table.

        Raises ValueError for chains missing from the table; guessing a
        network would query the wrong validator and find no events.
        """
        chain = cls.CHAINS.get(int(chain_id))
        if chain is None:
            raise ValueError(f"Unknown chain id: {chain_id}")
        return cls.NETWORK_BASE_URLS[chain["network"]]

    @classmethod
    def get_network_url(cls, network: str) -> str:
        if network not in cls.NETWORK_BASE_URLS:
            raise ValueError(f"Unknown network group: {network}")
        return cls.NETWORK_BASE_URLS[network]

    @classmethod
    def validate(cls) -> List[str]:
        """
        Return a list of problems with the current settings.

        An empty list means the bot has everything it needs to run.
        """
        problems = []
        if not cls.PRIVATE_KEY:
            problems.append("PRIVATE_KEY is not set")
        if not cls.VAULT_NAME or "." not in cls.VAULT_NAME:
            problems.append("VAULT_NAME must look like <namespace>.<name>")
        if cls.VAULT_CACHE_MINUTES < 30:
            problems.append("VAULT_CACHE_MINUTES should be at least twice the 15 minute poll interval")
        return problems


# Create singleton instance
config = Config()
