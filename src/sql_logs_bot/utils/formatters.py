"""
Data formatting utilities for Discord messages.
"""

import logging
from typing import Optional

import sqlparse
from sqlparse.exceptions import SQLParseError

logger = logging.getLogger(__name__)

# Discord caps an embed field at 1024 characters; leave room for the code fence
STATEMENT_MAX_LENGTH = 1013
TRUNCATION_MARKER = "..."


def truncate(text: str, length: int = STATEMENT_MAX_LENGTH) -> str:
    """
    Cut text down to `length` characters, appending a marker when cut.

    Args:
        text: Text to truncate
        length: Maximum number of characters kept from the original text

    Returns:
        Original text or its prefix followed by "..."
    """
    if len(text) > length:
        return text[:length] + TRUNCATION_MARKER
    return text


def format_sql(statement: str) -> str:
    """
    Pretty-print a SQL statement.

    Only call this for statements that executed without error; invalid SQL
    is returned as sqlparse sees fit, which is not always readable.
    """
    try:
        return sqlparse.format(statement, reindent=True, keyword_case="upper").strip()
    except SQLParseError as e:
        logger.warning(f"Could not format SQL statement, using raw text: {e}")
        return statement


def format_address(address: Optional[str], placeholder: str = "N/A") -> str:
    """
    Format an Ethereum address for display.

    Args:
        address: Ethereum address or None
        placeholder: Text shown when the address is missing

    Returns:
        Lowercase 0x-prefixed address or the placeholder
    """
    if not address:
        return placeholder

    address = address.lower()
    if not address.startswith("0x"):
        address = f"0x{address}"
    return address


def bold(text: str) -> str:
    return f"**{text}**"


def hyperlink(text: str, url: str) -> str:
    return f"[{text}]({url})"


def code_block(text: str, language: str = "") -> str:
    return f"```{language}\n{text}\n```"
