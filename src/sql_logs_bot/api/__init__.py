"""API client package for the SQL Logs Bot."""

from .indexer_client import IndexerClient
from .vault_client import VaultClient
from .models import (
    BlockRange,
    ClassifiedEvent,
    Cursor,
    Destination,
    EnrichedEvent,
    RawEvent,
    SqlEventType,
    VaultEvent
)

__all__ = [
    "IndexerClient",
    "VaultClient",
    "BlockRange",
    "ClassifiedEvent",
    "Cursor",
    "Destination",
    "EnrichedEvent",
    "RawEvent",
    "SqlEventType",
    "VaultEvent"
]
