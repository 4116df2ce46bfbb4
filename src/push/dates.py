"""Free-form date parsing for ``--since`` / ``--until`` and the MCP tools.

Accepts whatever ``dateutil`` understands: ISO 8601, ``2024-05-01 14:30``,
``May 1 2024``, ``01/05/2024 2pm``, ``Wed, 01 May 2024 12:00:00 +0200``.
Values without an offset are local time.
"""

from __future__ import annotations

from datetime import datetime

from dateutil import parser as date_parser


def parse_datetime(text: str) -> datetime:
    """Parse *text* into a timezone-aware datetime.

    Raises ``ValueError`` when *text* is not a recognisable date.
    """
    value = text.strip()
    if not value:
        raise ValueError("empty date")
    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"unrecognised date {text!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed
