"""Shared fixtures: an in-process fake of api.pushover.net behind
``httpx.MockTransport``, a client wired to it, and a temporary store.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qsl

import httpx
import pytest

from push.client.api import PushoverClient
from push.client.transport import API_BASE_URL, Credentials, Transport
from push.db.store import MessageStore

Reply = Any


class FakePushover:
    """Scripted stand-in for the Pushover API.

    ``add(method, path, *replies)`` queues replies for an endpoint.  Replies
    are consumed in order and the last one repeats.  A reply is a JSON dict
    (200), a ``(status, body)`` tuple, an exception to raise, or a callable
    taking the request.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Reply]] = {}

    def add(self, method: str, path: str, *replies: Reply) -> None:
        self._routes.setdefault((method, "/1" + path), []).extend(replies)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.requests if r.method == method and r.url.path == "/1" + path
        ]

    def handler(self, request: httpx.Request) -> Any:
        self.requests.append(request)
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"status": 0, "errors": ["not found"]})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            return httpx.Response(200, json=reply)
        if isinstance(reply, tuple):
            status, body = reply
            if isinstance(body, (dict, list)):
                return httpx.Response(status, json=body)
            return httpx.Response(status, text=body)
        return reply(request)

    @staticmethod
    def form(request: httpx.Request) -> dict[str, str]:
        """Decode a form-encoded request body."""
        return dict(parse_qsl(request.content.decode()))


def make_http_client(fake: FakePushover) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.MockTransport(fake.handler), base_url=API_BASE_URL
    )


@pytest.fixture()
def fake_api() -> FakePushover:
    return FakePushover()


@pytest.fixture()
def http_factory(fake_api):
    """Build httpx clients routed to the fake API (one per event loop)."""
    return lambda: make_http_client(fake_api)


@pytest.fixture()
def credentials() -> Credentials:
    return Credentials(
        app_token="app-token",
        user_key="user-key",
        device_id="dev-1",
        device_secret="dev-secret",
    )


@pytest.fixture()
async def transport(fake_api, credentials):
    """Transport routed to the fake API with no retry delay."""
    http = make_http_client(fake_api)
    yield Transport(credentials, http_client=http, retry_delay=0)
    await http.aclose()


@pytest.fixture()
def client(transport) -> PushoverClient:
    return PushoverClient(transport=transport)


@pytest.fixture()
async def store(tmp_path):
    """An open MessageStore backed by a temporary SQLite file."""
    async with MessageStore(tmp_path / "push.db") as s:
        yield s
