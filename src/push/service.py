"""PushService -- the operations the CLI and MCP layers call.

Owns one :class:`PushoverClient` and one :class:`MessageStore` built from a
:class:`Config`.  Sending and logging the sent record are independent: a
failed log never turns a successful send into an error.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from push.client.api import PushoverClient
from push.client.models import FetchResult, SendParams
from push.client.transport import Transport
from push.config import Config, validate_priority
from push.db.models import MessageRecord, SentRecord, utcnow
from push.db.store import DEFAULT_QUERY_LIMIT, MessageStore
from push.errors import InvalidParameterError, PushError
from push.pipeline import IngestResult, ingest

logger = logging.getLogger(__name__)

DEFAULT_CHECK_LIMIT = 10


@dataclass
class SendOutcome:
    message: str
    title: str
    device: str
    priority: int
    request_id: str
    receipt: str = ""
    logged: bool = False
    warning: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PushService:
    """High-level send / check / history / mark-read operations.

    Usage::

        async with PushService(cfg, db_path) as service:
            outcome = await service.send_notification("Backup finished")
            result = await service.check_messages(limit=5)
    """

    def __init__(
        self,
        config: Config,
        database: str | Path,
        *,
        transport: Transport | None = None,
        config_path: str | Path | None = None,
    ) -> None:
        self.config = config
        self.database = database
        self.config_path = config_path
        self.client = PushoverClient(config.credentials(), transport=transport)
        self.store = MessageStore(database)

    async def open(self) -> None:
        await self.store.open()

    async def _open_store_quietly(self) -> None:
        # send and ingest must not fail because local history is unavailable
        try:
            await self.store.open()
        except (SQLAlchemyError, OSError, ValueError) as exc:
            logger.warning("Opening message store %s failed: %s", self.database, exc)

    async def close(self) -> None:
        await self.store.close()
        await self.client.aclose()

    async def __aenter__(self) -> PushService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -- Send ----------------------------------------------------------------

    async def send_notification(
        self,
        message: str,
        *,
        title: str = "",
        device: str = "",
        priority: int | None = None,
        url: str = "",
        url_title: str = "",
        sound: str = "",
    ) -> SendOutcome:
        """Send, then log the sent record; a logging failure is a warning."""
        self.config.validate_send()
        message = message.strip()
        if not message:
            raise InvalidParameterError("message cannot be empty")
        if priority is None:
            priority = self.config.default_priority
        validate_priority(priority)
        device = device or self.config.default_device

        resp = await self.client.send(
            SendParams(
                message=message,
                title=title,
                device=device,
                priority=priority,
                url=url,
                url_title=url_title,
                sound=sound,
            )
        )
        outcome = SendOutcome(
            message=message,
            title=title,
            device=device,
            priority=priority,
            request_id=resp.request,
            receipt=resp.receipt,
        )

        await self._open_store_quietly()
        try:
            await self.store.log_sent(
                SentRecord(
                    message=message,
                    title=title,
                    device=device,
                    priority=priority,
                    sent_at=utcnow(),
                    request_id=resp.request,
                )
            )
            outcome.logged = True
        except (PushError, SQLAlchemyError, OSError) as exc:
            outcome.warning = f"failed to log history: {exc}"
            logger.warning("Logging sent notification failed: %s", exc)
        return outcome

    # -- Receive -------------------------------------------------------------

    async def check_messages(self, limit: int = DEFAULT_CHECK_LIMIT) -> IngestResult:
        """One ingestion cycle, trimmed to the *limit* newest-fetched messages."""
        self.config.validate_receive()
        if limit <= 0:
            limit = DEFAULT_CHECK_LIMIT
        await self._open_store_quietly()
        result = await ingest(self.client, self.store)
        return result.limited(limit)

    async def peek_unread(self) -> FetchResult:
        """Fetch unread messages without persisting or acknowledging them."""
        self.config.validate_receive()
        return await self.client.fetch_messages()

    async def mark_read(self, message_id: int) -> int:
        """Acknowledge everything up to and including *message_id*."""
        self.config.validate_receive()
        if message_id <= 0:
            raise InvalidParameterError("message_id must be positive")
        await self.client.delete_messages(message_id)
        return message_id

    # -- History -------------------------------------------------------------

    async def list_history(
        self,
        limit: int = DEFAULT_QUERY_LIMIT,
        since: datetime | None = None,
        search: str = "",
    ) -> list[MessageRecord]:
        await self.open()
        return await self.store.query_messages(limit=limit, since=since, search=search)

    async def list_sent(
        self,
        limit: int = DEFAULT_QUERY_LIMIT,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[SentRecord]:
        await self.open()
        return await self.store.query_sent(limit=limit, since=since, until=until)

    def status(self) -> dict[str, Any]:
        cfg = self.config
        return {
            "config": {
                "path": str(self.config_path) if self.config_path else None,
                "has_app_token": bool(cfg.app_token),
                "has_user_key": bool(cfg.user_key),
                "device_configured": cfg.device_configured,
                "default_device": cfg.default_device,
                "default_priority": cfg.default_priority,
            },
            "database": {"path": str(self.database), "open": self.store.is_open},
        }
