"""PushoverClient -- the five API operations on top of :class:`Transport`.

Message API (needs app token + user key):

- :meth:`PushoverClient.send`

Open Client API (login needs nothing; the rest need device credentials):

- :meth:`PushoverClient.login`
- :meth:`PushoverClient.register_device`
- :meth:`PushoverClient.fetch_messages`
- :meth:`PushoverClient.delete_messages`
"""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from push.client.models import (
    DeviceInfo,
    DeviceRegistration,
    FetchResult,
    LoginResponse,
    ReceivedMessage,
    SendParams,
    SendResponse,
)
from push.client.transport import (
    DEFAULT_REQUEST_ATTEMPTS,
    Credentials,
    Transport,
    raise_for_api_error,
)
from push.errors import (
    EmptyCredentialError,
    InvalidParameterError,
    ProtocolError,
)

logger = logging.getLogger(__name__)

#: Platform tag sent on device registration ("O" = Open Client).
DEVICE_OS = "O"


class PushoverClient:
    """Typed wrapper over the Pushover endpoints.

    Usage::

        async with PushoverClient(Credentials(app_token, user_key)) as client:
            resp = await client.send(SendParams(message="hello"))

    Every operation checks its credential set before any request is built.
    """

    def __init__(
        self,
        credentials: Credentials | None = None,
        *,
        transport: Transport | None = None,
        attempts: int = DEFAULT_REQUEST_ATTEMPTS,
    ) -> None:
        if transport is None:
            transport = Transport(credentials)
        elif credentials is not None:
            transport.credentials = credentials
        self.transport = transport
        self._attempts = attempts

    @property
    def credentials(self) -> Credentials:
        return self.transport.credentials

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> PushoverClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -- Message API ---------------------------------------------------------

    async def send(self, params: SendParams) -> SendResponse:
        """Dispatch a push notification via ``POST /messages.json``."""
        creds = self.credentials
        creds.ensure_send()
        if not params.message.strip():
            raise InvalidParameterError("message cannot be empty")

        form = params.to_form(creds.app_token, creds.user_key)
        payload = await self.transport.request_json(
            lambda c: c.build_request("POST", "/messages.json", data=form),
            what="send",
            max_attempts=self._attempts,
        )
        response = SendResponse(
            status=int(payload.get("status") or 0),
            request=str(payload.get("request") or ""),
            receipt=str(payload.get("receipt") or ""),
            errors=[str(e) for e in payload.get("errors") or []],
        )
        logger.info("Notification sent (request=%s)", response.request)
        return response

    # -- Authentication ------------------------------------------------------

    async def login(
        self, email: str, password: str, code: str | None = None
    ) -> LoginResponse:
        """Exchange account credentials for a login secret.

        Raises :class:`~push.errors.TwoFactorRequiredError` when the account
        needs a second-factor ``code``; the caller prompts and calls again.
        """
        if not email.strip() or not password:
            raise EmptyCredentialError("email and password are required")

        form = {"email": email, "password": password}
        if code:
            form["code"] = code

        payload = await self.transport.request_json(
            lambda c: c.build_request("POST", "/users/login.json", data=form),
            what="login",
            max_attempts=self._attempts,
        )
        secret = str(payload.get("secret") or "")
        if not secret:
            raise ProtocolError("pushover login did not return a secret")

        devices = [
            DeviceInfo(id=str(d.get("id") or ""), name=str(d.get("name") or ""))
            for d in payload.get("devices") or []
            if isinstance(d, dict)
        ]
        return LoginResponse(
            status=int(payload.get("status") or 0),
            request=str(payload.get("request") or ""),
            secret=secret,
            devices=devices,
        )

    async def register_device(self, secret: str, name: str) -> DeviceRegistration:
        """Register this client as an Open Client device."""
        if not secret:
            raise InvalidParameterError("secret is required")
        if not name.strip():
            raise InvalidParameterError("device name is required")

        form = {"secret": secret, "name": name, "os": DEVICE_OS}
        payload = await self.transport.request_json(
            lambda c: c.build_request("POST", "/devices.json", data=form),
            what="device",
            max_attempts=self._attempts,
        )
        returned_name = str(payload.get("name") or "")
        device_id = str(payload.get("id") or "") or returned_name or name
        return DeviceRegistration(
            status=int(payload.get("status") or 0),
            request=str(payload.get("request") or ""),
            id=device_id,
            secret=str(payload.get("secret") or ""),
            name=returned_name or name,
        )

    # -- Open Client receive -------------------------------------------------

    async def fetch_messages(self) -> FetchResult:
        """Retrieve every unread message for the configured device."""
        creds = self.credentials
        creds.ensure_receive()

        params = {"secret": creds.device_secret, "device_id": creds.device_id}
        payload = await self.transport.request_json(
            lambda c: c.build_request("GET", "/messages.json", params=params),
            what="fetch",
            max_attempts=self._attempts,
        )
        messages = [
            ReceivedMessage.from_wire(m)
            for m in payload.get("messages") or []
            if isinstance(m, dict)
        ]
        result = FetchResult(
            messages=messages,
            last_message_id=int(payload.get("last") or 0),
            request_id=str(payload.get("request") or ""),
        )
        logger.debug(
            "Fetched %d message(s) (last=%d)", len(messages), result.last_message_id
        )
        return result

    async def delete_messages(self, up_to_id: int) -> None:
        """Acknowledge (delete server-side) every message up to *up_to_id*."""
        creds = self.credentials
        creds.ensure_receive()
        if up_to_id <= 0:
            raise InvalidParameterError("message id must be positive")

        form = {"secret": creds.device_secret, "message": str(up_to_id)}
        path = f"/devices/{quote(creds.device_id, safe='')}/update_highest_message.json"

        def build(c: httpx.AsyncClient) -> httpx.Request:
            return c.build_request("POST", path, data=form)

        response = await self.transport.execute(build, self._attempts)
        raise_for_api_error(response)
        logger.info("Acknowledged messages up to id %d", up_to_id)
