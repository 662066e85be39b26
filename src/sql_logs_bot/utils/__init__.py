"""Utility functions for the SQL Logs Bot."""

from .formatters import (
    bold,
    code_block,
    format_address,
    format_sql,
    hyperlink,
    truncate
)
from .signing import (
    Signer,
    bytes_to_hex
)

__all__ = [
    "bold",
    "code_block",
    "format_address",
    "format_sql",
    "hyperlink",
    "truncate",
    "Signer",
    "bytes_to_hex"
]
