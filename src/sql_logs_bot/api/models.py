"""
Pydantic models for indexer rows, vault responses and reconciled state.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class SqlEventType(str, Enum):
    """Event types emitted by the registry contract that we report on."""
    CREATE_TABLE = "ContractCreateTable"
    RUN_SQL = "ContractRunSQL"


class Destination(str, Enum):
    """Webhook a classified event is routed to."""
    INTERNAL = "internal"
    EXTERNAL = "external"


class Cursor(BaseModel):
    """Last fully processed block for one chain."""
    model_config = ConfigDict(frozen=True)

    chain_id: int
    block_number: int
    timestamp: int


CursorSet = List[Cursor]


class BlockRange(BaseModel):
    """Blocks to fetch for a chain: from_block exclusive, to_block inclusive."""
    model_config = ConfigDict(frozen=True)

    chain_id: int
    from_block: int
    to_block: int

    @property
    def is_empty(self) -> bool:
        return self.from_block >= self.to_block


class RawEvent(BaseModel):
    """A row returned by the `system_evm_events` range query."""
    chain_id: int
    block_number: int
    tx_hash: str
    event_type: SqlEventType
    caller: Optional[str] = None
    table_id: str
    statement: Optional[str] = None  # NULL when the event JSON carries no statement

    @field_validator("table_id", mode="before")
    @classmethod
    def _table_id_to_str(cls, value):
        # json_extract returns numbers for small ids and strings for big ones
        return str(value)


class EnrichedEvent(RawEvent):
    """A raw event with its table name and receipt error looked up."""
    table_name: Optional[str] = None  # None when the CREATE TABLE itself failed
    error: Optional[str] = None
    base_url: str


class ClassifiedEvent(EnrichedEvent):
    """An enriched event with its routing decision."""
    destination: Destination


class VaultEvent(BaseModel):
    """Descriptor of a stored vault event."""
    model_config = ConfigDict(extra="ignore")

    cid: str
    timestamp: Optional[int] = None
    is_archived: Optional[bool] = None
    cache_expiry: Optional[str] = None


class SignedBlob(BaseModel):
    """Keccak-256 digest and the 65 byte r || s || v signature over it."""
    model_config = ConfigDict(frozen=True)

    payload_hash: bytes
    signature: bytes
