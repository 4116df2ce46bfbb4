"""Data objects exchanged with the Pushover API.

Everything here is a plain dataclass; wire parsing is tolerant of missing
keys because the Open Client API omits fields it has no value for.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


def _as_int(value: Any) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        return int(value)
    return int(value)


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


@dataclass(frozen=True)
class ReceivedMessage:
    """An unread message returned by ``GET /messages.json``.

    ``id`` is assigned by Pushover and increases monotonically per device;
    it is the identity used for upserts and for acknowledgment.
    """

    id: int
    message: str
    umid: str = ""
    title: str = ""
    app: str = ""
    aid: str = ""
    icon: str = ""
    priority: int = 0
    url: str = ""
    url_title: str = ""
    acked: bool = False
    html: bool = False
    date: int = 0

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> ReceivedMessage:
        """Build from one element of the API's ``messages`` array."""
        return cls(
            id=_as_int(data.get("id")),
            message=_as_str(data.get("message")),
            # umid arrives as a number or a string depending on the endpoint
            umid=_as_str(data.get("umid_str") or data.get("umid") or ""),
            title=_as_str(data.get("title")),
            app=_as_str(data.get("app")),
            aid=_as_str(data.get("aid")),
            icon=_as_str(data.get("icon")),
            priority=_as_int(data.get("priority")),
            url=_as_str(data.get("url")),
            url_title=_as_str(data.get("url_title")),
            acked=bool(_as_int(data.get("acked"))),
            html=bool(_as_int(data.get("html"))),
            date=_as_int(data.get("date") or data.get("timestamp")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class FetchResult:
    """A batch of unread messages plus the service's cursor metadata."""

    messages: list[ReceivedMessage] = field(default_factory=list)
    last_message_id: int = 0
    request_id: str = ""


@dataclass
class SendParams:
    """Fields accepted by the Message API."""

    message: str
    title: str = ""
    device: str = ""
    priority: int = 0
    url: str = ""
    url_title: str = ""
    sound: str = ""
    timestamp: datetime | None = None
    html: bool = False
    monospace: bool = False

    def to_form(self, token: str, user: str) -> dict[str, str]:
        """Encode as form fields, leaving unset optionals out."""
        form = {"token": token, "user": user, "message": self.message}
        if self.title:
            form["title"] = self.title
        if self.device:
            form["device"] = self.device
        if self.priority != 0:
            form["priority"] = str(self.priority)
        if self.url:
            form["url"] = self.url
        if self.url_title:
            form["url_title"] = self.url_title
        if self.sound:
            form["sound"] = self.sound
        if self.timestamp is not None:
            form["timestamp"] = str(int(self.timestamp.timestamp()))
        if self.html:
            form["html"] = "1"
        if self.monospace:
            form["monospace"] = "1"
        return form


@dataclass
class SendResponse:
    status: int
    request: str
    receipt: str = ""
    errors: list[str] = field(default_factory=list)


@dataclass
class DeviceInfo:
    id: str
    name: str = ""


@dataclass
class LoginResponse:
    """Result of ``POST /users/login.json``; ``secret`` is never empty."""

    status: int
    request: str
    secret: str
    devices: list[DeviceInfo] = field(default_factory=list)


@dataclass
class DeviceRegistration:
    """Result of ``POST /devices.json``.

    ``id`` falls back to the requested device name when the service does
    not echo an explicit identifier.
    """

    status: int
    request: str
    id: str
    secret: str = ""
    name: str = ""
