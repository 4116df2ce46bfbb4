"""Async engine factory for the local SQLite store.

Creates SQLAlchemy ``AsyncEngine`` instances backed by ``aiosqlite``.
Accepts either a filesystem path or a ``sqlite://`` URL; the async driver
is filled in when missing and the database directory is created.

Usage::

    from push.db.engine import create_async_engine_for

    engine = create_async_engine_for("~/.local/share/push/push.db")
    engine = create_async_engine_for("sqlite+aiosqlite://")   # in-memory
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    create_async_engine as _create_async_engine,
)

logger = logging.getLogger(__name__)

#: Seconds a writer waits on a locked database before failing.
BUSY_TIMEOUT: float = 5.0


def database_url(target: str | Path) -> str:
    """Turn a path or URL into an ``sqlite+aiosqlite`` URL.

    Raises
    ------
    ValueError
        If *target* is empty or a URL for a different backend.
    """
    text = str(target).strip()
    if not text:
        raise ValueError("database path is empty")

    if "://" in text:
        if not text.startswith("sqlite"):
            raise ValueError(f"Unsupported database URL scheme: {text}")
        if "+aiosqlite" not in text.split("://", 1)[0]:
            text = text.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return text

    path = Path(text).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite+aiosqlite:///{path}"


def create_async_engine_for(target: str | Path, **kwargs: Any) -> AsyncEngine:
    """Create an ``AsyncEngine`` for *target* (path or URL).

    ``**kwargs`` are forwarded to ``sqlalchemy.ext.asyncio.create_async_engine``
    and override the defaults set here.
    """
    url = database_url(target)

    merged: dict[str, Any] = {"echo": False}
    merged.setdefault("connect_args", {})
    merged["connect_args"]["check_same_thread"] = False
    # concurrent writers wait instead of failing with "database is locked"
    merged["connect_args"].setdefault("timeout", BUSY_TIMEOUT)
    merged.update(kwargs)

    logger.info("Creating async engine for %s", url)
    return _create_async_engine(url, **merged)
