"""SQLModel table definitions for the local message store.

Two independent streams:

- ``messages`` -- received notifications, unique on ``pushover_id`` so a
  re-fetched message overwrites its row instead of duplicating it.
- ``sent`` -- append-only log of notifications this client sent.

All datetimes are stored as naive UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Current time as naive UTC (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    """Normalise *value* to naive UTC; naive input is taken as UTC already."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class MessageRecord(SQLModel, table=True):
    """A received notification as persisted locally."""

    __tablename__ = "messages"

    id: int | None = Field(default=None, primary_key=True)
    pushover_id: int = Field(unique=True)
    umid: str = ""
    title: str = ""
    message: str
    app: str = ""
    aid: str = ""
    icon: str = ""
    received_at: datetime = Field(default_factory=utcnow, index=True)
    sent_at: datetime | None = None
    priority: int = 0
    url: str = ""
    url_title: str = ""
    acked: bool = False
    html: bool = False


class SentRecord(SQLModel, table=True):
    """One successful send; ``request_id`` is kept for traceability only."""

    __tablename__ = "sent"

    id: int | None = Field(default=None, primary_key=True)
    message: str
    title: str = ""
    device: str = ""
    priority: int = 0
    sent_at: datetime = Field(default_factory=utcnow, index=True)
    request_id: str = ""
