"""
Notification System using Apprise.
Sends Discord notifications for new Tableland SQL logs.
"""

import logging
from typing import Dict, List, Optional

import apprise

from .api.models import ClassifiedEvent, SqlEventType
from .config import Config
from .utils.formatters import (
    bold,
    code_block,
    format_address,
    format_sql,
    hyperlink,
    truncate,
)

logger = logging.getLogger(__name__)


def format_event_message(event: ClassifiedEvent, config: Optional[Config] = None) -> str:
    """
    Format a classified event into a notification message.

    The statement is pretty-printed only when the transaction succeeded; a
    failed statement may not even parse, so it is shown as submitted next to
    the error. Successful statements get a link to inspect the table instead.

    Args:
        event: Classified event to render
        config: Settings providing chain names and the Studio URL

    Returns:
        Markdown formatted message
    """
    config = config or Config()
    table_url = f"{event.base_url}/tables/{event.chain_id}/{event.table_id}"
    receipt_url = f"{event.base_url}/receipt/{event.chain_id}/{event.tx_hash}"
    statement_kind = "table creation" if event.event_type == SqlEventType.CREATE_TABLE else "mutating query"

    if event.statement is None:
        statement = "N/A"
    elif event.error is not None:
        statement = truncate(event.statement)
    else:
        statement = truncate(format_sql(event.statement))

    message_lines = [
        f"{bold('Chain')}: {config.get_chain_name(event.chain_id)}",
        f"{bold('Table ID')}: {hyperlink(event.table_id, table_url)}",
        f"{bold('Table Name')}: {event.table_name if event.table_name is not None else 'N/A'}",
        f"{bold('Block')}: {event.block_number}",
        f"{bold('Transaction')}: {hyperlink(event.tx_hash, receipt_url)}",
        f"{bold('Caller')}: {format_address(event.caller)}",
        "",
        f"{bold(f'Statement ({statement_kind})')}:",
        code_block(statement, "sql"),
    ]

    if event.error is not None:
        message_lines.extend([
            f"{bold('Error')}:",
            code_block(truncate(event.error)),
        ])
    elif event.table_name is not None:
        studio_url = config.STUDIO_TABLE_URL.format(table_name=event.table_name)
        message_lines.append(f"{bold('Inspect table data on the Studio:')} {hyperlink('here', studio_url)}")

    return "\n".join(message_lines)


def channel_notifier(channel: str, config: Optional[Config] = None) -> Optional[apprise.Apprise]:
    """
    Apprise object for a notification channel.

    Returns None when the channel has no webhook configured. Raises
    ValueError for an unknown channel or a URL apprise cannot load.
    """
    config = config or Config()
    if channel not in config.NOTIFICATION_CHANNELS:
        raise ValueError(f"Unknown notification channel: {channel}")

    channel_url = config.NOTIFICATION_CHANNELS[channel]
    if not channel_url:
        return None

    apobj = apprise.Apprise()
    if not apobj.add(channel_url):
        raise ValueError(f"Failed to add notification service for channel '{channel}'")
    return apobj


def send_events(
    events: List[ClassifiedEvent],
    channel: str,
    config: Optional[Config] = None
) -> Dict[str, int]:
    """
    Send one message per event to a channel, in the order given.

    A failed send is logged and the remaining events are still attempted.
    An unconfigured channel logs each message and counts it as sent.
    """
    config = config or Config()
    try:
        apobj = channel_notifier(channel, config)
    except ValueError as e:
        logger.error(f"{e}, dropping {len(events)} notifications")
        return {"sent": 0, "failed": len(events)}

    if apobj is None:
        logger.warning(f"Notification channel '{channel}' not configured, logging messages instead")

    sent = 0
    failed = 0
    for event in events:
        message = format_event_message(event, config)
        if apobj is None:
            logger.info(f"Message that would be sent:\n{message}")
            sent += 1
            continue

        delivered = apobj.notify(
            body=message,
            title=config.NOTIFICATION_TITLE,
            body_format=apprise.NotifyFormat.MARKDOWN
        )
        if delivered:
            sent += 1
        else:
            failed += 1
            logger.warning(
                f"Failed to send notification to '{channel}' for tx {event.tx_hash} "
                f"at block {event.block_number} on chain {event.chain_id}"
            )
    return {"sent": sent, "failed": failed}


def send_all_notifications(
    internal: List[ClassifiedEvent],
    external: List[ClassifiedEvent],
    config: Optional[Config] = None
) -> Dict[str, Dict[str, int]]:
    """
    Deliver internal and external events to their own webhooks.

    Each partition is delivered independently, so a broken internal webhook
    never holds back external notifications or the other way round.

    Returns:
        Per-channel counts of sent and failed notifications
    """
    summary = {}
    for channel, events in (("internal", internal), ("external", external)):
        if not events:
            logger.info(f"No {channel} events to notify")
            summary[channel] = {"sent": 0, "failed": 0}
            continue

        logger.info(f"Sending {len(events)} {channel} notifications")
        summary[channel] = send_events(events, channel, config)

    logger.info(
        "Notification summary: "
        + ", ".join(f"{channel} {counts['sent']} sent / {counts['failed']} failed" for channel, counts in summary.items())
    )
    return summary
