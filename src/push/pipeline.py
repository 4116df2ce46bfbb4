"""Fetch -> persist -> acknowledge, one cycle at a time.

The cycle tolerates partial failure:

1. A failed fetch aborts the cycle before anything is written or
   acknowledged.
2. A failed persist becomes ``IngestResult.warning``; the fetched messages
   are still returned and acknowledgment still runs.
3. A failed acknowledgment becomes ``IngestResult.ack_warning``.

The two warnings are independent.  A persist warning means local history
may be missing messages; an ack warning means the same messages will be
delivered again on the next cycle (harmless, the store upserts).
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from push.client.models import FetchResult, ReceivedMessage
from push.db.models import MessageRecord, to_utc_naive, utcnow
from push.errors import PushError

logger = logging.getLogger(__name__)


class _Receiver(Protocol):
    async def fetch_messages(self) -> FetchResult: ...

    async def delete_messages(self, up_to_id: int) -> None: ...


class _Persister(Protocol):
    async def persist_messages(self, records: Sequence[MessageRecord]) -> int: ...


@dataclass
class IngestResult:
    """Outcome of one cycle; warnings are empty strings when absent."""

    fetched: int
    returned: int
    persisted: int
    acked_up_to: int
    messages: list[ReceivedMessage] = field(default_factory=list)
    warning: str = ""
    ack_warning: str = ""

    def limited(self, limit: int) -> IngestResult:
        """Copy with at most *limit* messages; ``limit <= 0`` keeps all."""
        if limit <= 0 or len(self.messages) <= limit:
            return dataclasses.replace(self, messages=list(self.messages))
        kept = self.messages[:limit]
        return dataclasses.replace(self, messages=kept, returned=len(kept))

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["count"] = self.fetched
        return data


def records_from_received(
    messages: Iterable[ReceivedMessage], received_at: datetime | None = None
) -> list[MessageRecord]:
    """Convert API messages into store rows stamped with one receipt time."""
    stamp = to_utc_naive(received_at) if received_at else utcnow()
    return [_record(msg, stamp) for msg in messages]


def _sent_at(date: int) -> datetime | None:
    """Unix seconds to naive UTC; zero or out-of-range values give ``None``."""
    if date <= 0:
        return None
    try:
        return datetime.fromtimestamp(date, tz=timezone.utc).replace(tzinfo=None)
    except (ValueError, OverflowError, OSError):
        logger.debug("Ignoring out-of-range message date %d", date)
        return None


def _record(msg: ReceivedMessage, stamp: datetime) -> MessageRecord:
    return MessageRecord(
        pushover_id=msg.id,
        umid=msg.umid,
        title=msg.title,
        message=msg.message,
        app=msg.app,
        aid=msg.aid,
        icon=msg.icon,
        received_at=stamp,
        sent_at=_sent_at(msg.date),
        priority=msg.priority,
        url=msg.url,
        url_title=msg.url_title,
        acked=msg.acked,
        html=msg.html,
    )


def ack_cursor(result: FetchResult) -> int:
    """Highest id to acknowledge: the larger of the explicit cursor and the
    highest id in the batch.  ``0`` means there is nothing to acknowledge.
    """
    highest = max((msg.id for msg in result.messages), default=0)
    return max(result.last_message_id, highest, 0)


async def ingest(
    client: _Receiver,
    store: _Persister,
    *,
    received_at: datetime | None = None,
) -> IngestResult:
    """Run one fetch-persist-acknowledge cycle.

    Raises whatever the fetch raises; never raises for persist or
    acknowledgment failures.
    """
    result = await client.fetch_messages()
    messages = list(result.messages)

    persisted = 0
    warning = ""
    if messages:
        try:
            persisted = await store.persist_messages(
                records_from_received(messages, received_at)
            )
        except Exception as exc:
            warning = f"failed to persist messages: {exc}"
            logger.warning("Persisting %d fetched message(s) failed: %s", len(messages), exc)

    cursor = ack_cursor(result)
    ack_warning = ""
    acked_up_to = 0
    if cursor > 0:
        try:
            await client.delete_messages(cursor)
            acked_up_to = cursor
        except PushError as exc:
            ack_warning = f"unable to ack messages: {exc}"
            logger.warning("Acknowledging up to %d failed: %s", cursor, exc)

    return IngestResult(
        fetched=len(messages),
        returned=len(messages),
        persisted=persisted,
        acked_up_to=acked_up_to,
        messages=messages,
        warning=warning,
        ack_warning=ack_warning,
    )
