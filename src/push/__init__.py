"""push -- Pushover send / receive / persist / acknowledge.

Top-level convenience re-exports::

    from push import PushoverClient, MessageStore, ingest
    from push.errors import TwoFactorRequiredError
"""

__version__ = "0.1.0"

from push.client import PushoverClient
from push.db.store import MessageStore
from push.pipeline import IngestResult, ingest

__all__ = ["__version__", "IngestResult", "MessageStore", "PushoverClient", "ingest"]
