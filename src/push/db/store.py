"""MessageStore -- durable record of received and sent notifications.

Usage::

    async with MessageStore(path) as store:
        await store.persist_messages(records)
        history = await store.query_messages(limit=5, search="error")

Every operation raises :class:`~push.errors.StoreNotInitializedError` when
the store was never opened or has been closed, so callers can tell a
programming error apart from an I/O failure (``SQLAlchemyError``).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import or_
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, col, select

from push.db.engine import create_async_engine_for
from push.db.models import MessageRecord, SentRecord, to_utc_naive, utcnow
from push.errors import StoreNotInitializedError

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT = 20

# Columns overwritten when a pushover_id is ingested again.
_UPSERT_COLUMNS = (
    "umid",
    "title",
    "message",
    "app",
    "aid",
    "icon",
    "received_at",
    "sent_at",
    "priority",
    "url",
    "url_title",
    "acked",
    "html",
)


class MessageStore:
    """SQLite-backed store with one upsert stream and one append-only stream."""

    def __init__(self, target: str | Path) -> None:
        self._target = target
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_open(self) -> bool:
        return self._sessions is not None

    async def open(self) -> None:
        """Create the engine and the tables.  Idempotent."""
        if self._engine is not None:
            return
        engine = create_async_engine_for(self._target)
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        self._engine = engine
        self._sessions = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )

    async def close(self) -> None:
        """Dispose the engine.  Safe to call more than once."""
        self._sessions = None
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    async def __aenter__(self) -> MessageStore:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _factory(self) -> async_sessionmaker[AsyncSession]:
        if self._sessions is None:
            raise StoreNotInitializedError()
        return self._sessions

    # -- Received stream -----------------------------------------------------

    @staticmethod
    def _upsert(record: MessageRecord) -> Any:
        values = record.model_dump(exclude={"id"})
        if values.get("received_at") is None:
            values["received_at"] = utcnow()
        else:
            values["received_at"] = to_utc_naive(values["received_at"])
        if values.get("sent_at") is not None:
            values["sent_at"] = to_utc_naive(values["sent_at"])

        stmt = sqlite_insert(MessageRecord.__table__).values(**values)  # type: ignore[attr-defined]
        return stmt.on_conflict_do_update(
            index_elements=["pushover_id"],
            set_={name: stmt.excluded[name] for name in _UPSERT_COLUMNS},
        )

    async def persist_messages(self, records: Sequence[MessageRecord]) -> int:
        """Upsert *records* by ``pushover_id`` in a single transaction.

        Either every row is applied or none is.  Within a batch, a later
        record with the same ``pushover_id`` wins.  Returns the number of
        records applied.
        """
        factory = self._factory()
        if not records:
            return 0

        async with factory() as session:
            async with session.begin():
                for record in records:
                    await session.execute(self._upsert(record))
        logger.debug("Persisted %d received message(s)", len(records))
        return len(records)

    async def query_messages(
        self,
        limit: int = DEFAULT_QUERY_LIMIT,
        since: datetime | None = None,
        search: str = "",
        until: datetime | None = None,
    ) -> list[MessageRecord]:
        """Received messages, newest ``received_at`` first.

        ``limit <= 0`` means :data:`DEFAULT_QUERY_LIMIT`.  *since* and
        *until* are inclusive bounds.  *search* is a substring match over
        message and title with SQLite ``LIKE`` semantics (ASCII
        case-insensitive); ``%`` and ``_`` in it match literally.
        """
        factory = self._factory()
        if limit <= 0:
            limit = DEFAULT_QUERY_LIMIT

        stmt = select(MessageRecord)
        if since is not None:
            stmt = stmt.where(col(MessageRecord.received_at) >= to_utc_naive(since))
        if until is not None:
            stmt = stmt.where(col(MessageRecord.received_at) <= to_utc_naive(until))
        if search:
            stmt = stmt.where(
                or_(
                    col(MessageRecord.message).contains(search, autoescape=True),
                    col(MessageRecord.title).contains(search, autoescape=True),
                )
            )
        stmt = stmt.order_by(
            col(MessageRecord.received_at).desc(), col(MessageRecord.id).desc()
        ).limit(limit)

        async with factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_message(self, pushover_id: int) -> MessageRecord | None:
        """Look up one received message by its remote identity."""
        factory = self._factory()
        stmt = select(MessageRecord).where(MessageRecord.pushover_id == pushover_id)
        async with factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    # -- Sent stream ---------------------------------------------------------

    async def log_sent(self, record: SentRecord) -> SentRecord:
        """Append a sent-notification entry."""
        factory = self._factory()
        entry = SentRecord(
            message=record.message,
            title=record.title,
            device=record.device,
            priority=record.priority,
            sent_at=to_utc_naive(record.sent_at) if record.sent_at else utcnow(),
            request_id=record.request_id,
        )
        async with factory() as session:
            session.add(entry)
            await session.commit()
            await session.refresh(entry)
        return entry

    async def query_sent(
        self,
        limit: int = DEFAULT_QUERY_LIMIT,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[SentRecord]:
        """Sent entries, newest first, with inclusive *since*/*until* bounds."""
        factory = self._factory()
        if limit <= 0:
            limit = DEFAULT_QUERY_LIMIT

        stmt = select(SentRecord)
        if since is not None:
            stmt = stmt.where(col(SentRecord.sent_at) >= to_utc_naive(since))
        if until is not None:
            stmt = stmt.where(col(SentRecord.sent_at) <= to_utc_naive(until))
        stmt = stmt.order_by(
            col(SentRecord.sent_at).desc(), col(SentRecord.id).desc()
        ).limit(limit)

        async with factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())
