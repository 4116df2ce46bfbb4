"""push MCP server -- exposes Pushover send/receive as MCP tools.

Tools:

  - **send_notification**: send a push notification and log it locally
  - **check_messages**: fetch, persist and acknowledge unread messages
  - **list_history**: query persisted message history
  - **mark_read**: acknowledge messages up to an id

Resources:

  - ``push://unread``  -- unread messages (no persistence or acknowledgment)
  - ``push://history`` -- the 20 most recent persisted messages
  - ``push://status``  -- credential and database summary

Uses the ``mcp`` package (FastMCP).  All tools wrap one module-level
:class:`push.service.PushService`, built lazily from the config file and
data directory (``PUSH_CONFIG`` / ``PUSH_DATA_DIR`` are honoured).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from mcp.server.fastmcp import FastMCP

from push.config import Config, config_path, database_path
from push.dates import parse_datetime
from push.errors import PushError
from push.service import DEFAULT_CHECK_LIMIT, PushService

logger = logging.getLogger(__name__)

HISTORY_RESOURCE_LIMIT = 20


def _safe_error(exc: Exception) -> str:
    """Return an error string that never leaks credentials.

    push errors carry messages written by this package (or the service's own
    error list) and are passed through; anything else is reduced to its class
    name.  The full traceback is logged server-side.
    """
    if isinstance(exc, (PushError, ValueError)):
        return f"{type(exc).__name__}: {exc}"
    return f"{type(exc).__name__}: An internal error occurred. Check server logs for details."


def _dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, default=str)


# Module-level cached service (lazy-initialized)
_service: PushService | None = None


def set_service(service: PushService | None) -> None:
    """Install the service the tools use (CLI wiring and tests)."""
    global _service
    _service = service


def _get_service() -> PushService:
    global _service
    if _service is None:
        cfg_path = config_path()
        _service = PushService(Config.load(cfg_path), database_path(), config_path=cfg_path)
    return _service


# ---------------------------------------------------------------------------
# Tool functions (module-level for direct import in tests)
# ---------------------------------------------------------------------------


async def send_notification(
    message: str,
    title: str = "",
    priority: int | None = None,
    url: str = "",
    sound: str = "",
    device: str = "",
) -> str:
    """Send a push notification through Pushover.

    Args:
        message: Body of the notification.
        title: Optional title.
        priority: -2 (lowest) to 2 (highest). Defaults to the config value.
        url: Supplementary URL.
        sound: Notification sound.
        device: Target device name. Defaults to the config's default_device.

    Returns:
        JSON with the request id, optional receipt and whether the send was
        logged locally, or an error description.
    """
    try:
        service = _get_service()
        outcome = await service.send_notification(
            message, title=title, priority=priority, url=url, sound=sound, device=device
        )
        return _dumps(outcome.to_dict())
    except Exception as exc:
        logger.exception("send_notification failed")
        return f"Error sending notification: {_safe_error(exc)}"


async def check_messages(limit: int = DEFAULT_CHECK_LIMIT) -> str:
    """Poll Pushover, persist new messages, acknowledge them, return the newest.

    Args:
        limit: Maximum number of messages in the response (default 10).

    Returns:
        JSON with counts, the acknowledged id, messages and any warnings.
    """
    try:
        service = _get_service()
        result = await service.check_messages(limit=limit)
        payload = result.to_dict()
        payload["limit"] = limit if limit > 0 else DEFAULT_CHECK_LIMIT
        return _dumps(payload)
    except Exception as exc:
        logger.exception("check_messages failed")
        return f"Error checking messages: {_safe_error(exc)}"


async def list_history(limit: int = 20, since: str = "", search: str = "") -> str:
    """Query persisted message history from the local database.

    Args:
        limit: Number of rows to return (default 20).
        since: Date such as "2024-05-01" or "May 1 14:00"; only messages
            received at or after it. Values without an offset are local time.
        search: Substring to look for in message and title.

    Returns:
        JSON with the matching messages, newest first.
    """
    try:
        since_dt = parse_datetime(since) if since else None
        service = _get_service()
        records = await service.list_history(limit=limit, since=since_dt, search=search)
        return _dumps(
            {
                "count": len(records),
                "limit": limit if limit > 0 else 20,
                "since": since_dt.isoformat() if since_dt else None,
                "search": search,
                "messages": [json.loads(r.model_dump_json()) for r in records],
            }
        )
    except Exception as exc:
        logger.exception("list_history failed")
        return f"Error listing history: {_safe_error(exc)}"


async def mark_read(message_id: int) -> str:
    """Delete unread messages from Pushover up to (and including) an id.

    Args:
        message_id: Highest Pushover message id to acknowledge.
    """
    try:
        service = _get_service()
        acked = await service.mark_read(message_id)
        return _dumps({"message_id": acked, "status": "acknowledged"})
    except Exception as exc:
        logger.exception("mark_read failed")
        return f"Error marking messages read: {_safe_error(exc)}"


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


def _resource(uri: str, data: Any, count: int, links: dict[str, str] | None = None) -> str:
    payload: dict[str, Any] = {
        "metadata": {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "resource_uri": uri,
            "count": count,
        },
        "data": data,
    }
    if links:
        payload["links"] = links
    return _dumps(payload)


async def unread_resource() -> str:
    """Current unread messages fetched directly from Pushover."""
    result = await _get_service().peek_unread()
    return _resource(
        "push://unread", [m.to_dict() for m in result.messages], len(result.messages)
    )


async def history_resource() -> str:
    """Last 20 persisted messages from the local database."""
    records = await _get_service().list_history(limit=HISTORY_RESOURCE_LIMIT)
    return _resource(
        "push://history", [json.loads(r.model_dump_json()) for r in records], len(records)
    )


async def status_resource() -> str:
    """Credential and database health summary."""
    return _resource(
        "push://status",
        _get_service().status(),
        1,
        links={"history": "push://history", "unread": "push://unread"},
    )


# ---------------------------------------------------------------------------
# Server factory and entry point
# ---------------------------------------------------------------------------


def create_server(service: PushService | None = None) -> FastMCP:
    """Create a FastMCP server with the push tools and resources.

    Registers the module-level functions on a fresh FastMCP instance without
    starting any transport.
    """
    if service is not None:
        set_service(service)
    mcp = FastMCP("push")
    mcp.tool()(send_notification)
    mcp.tool()(check_messages)
    mcp.tool()(list_history)
    mcp.tool()(mark_read)
    mcp.resource("push://unread", name="Unread Messages", mime_type="application/json")(unread_resource)
    mcp.resource("push://history", name="Recent History", mime_type="application/json")(history_resource)
    mcp.resource("push://status", name="Push Status", mime_type="application/json")(status_resource)
    return mcp


def main() -> None:
    """Entry point for the ``push-mcp`` console script (stdio transport)."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    server = create_server()
    server.run(transport="stdio")


if __name__ == "__main__":
    main()
