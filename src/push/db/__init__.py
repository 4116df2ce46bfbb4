"""push database package.

Re-exports the table classes, the engine factory and the store::

    from push.db import MessageStore, MessageRecord, SentRecord
"""

from push.db.engine import create_async_engine_for, database_url
from push.db.models import MessageRecord, SentRecord, to_utc_naive, utcnow
from push.db.store import DEFAULT_QUERY_LIMIT, MessageStore

__all__ = [
    # Engine
    "create_async_engine_for",
    "database_url",
    # Models
    "MessageRecord",
    "SentRecord",
    "to_utc_naive",
    "utcnow",
    # Store
    "DEFAULT_QUERY_LIMIT",
    "MessageStore",
]
