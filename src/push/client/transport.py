"""HTTP transport to the Pushover API via httpx.

One :class:`Transport` owns a single ``httpx.AsyncClient`` (connection
pooling) and a fixed-capacity ``asyncio.Semaphore`` that caps the number of
in-flight exchanges across every operation issued through it.

Retry policy is flat: network-level failures
(``httpx.TransportError``, which covers timeouts) are retried up to
``max_attempts`` with a fixed delay between attempts.  Every other httpx
failure is wrapped in a push error at once, so callers only ever see
:class:`~push.errors.PushError`.  Responses with a
status >= 400 are never retried here -- they are classified by
:func:`raise_for_api_error`.

Cancellation is plain asyncio task cancellation: waiting for a slot and
waiting out the retry delay are both awaits, so ``task.cancel()`` or an
enclosing ``asyncio.timeout()`` aborts either immediately.
"""

from __future__ import annotations

import asyncio
import json
import logging
import platform
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from push import __version__
from push.errors import (
    APIError,
    DeviceCredentialsMissingError,
    MissingCredentialsError,
    ProtocolError,
    RequestFailedError,
    TwoFactorRequiredError,
)

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.pushover.net/1"
RETRY_DELAY: float = 5.0
MAX_CONCURRENT_REQUESTS: int = 2
DEFAULT_REQUEST_ATTEMPTS: int = 2
DEFAULT_TIMEOUT: float = 15.0

#: Builds a fresh request on every attempt so a consumed body is never reused.
RequestBuilder = Callable[[httpx.AsyncClient], httpx.Request]


@dataclass
class Credentials:
    """The four secrets the API needs.

    ``app_token`` and ``user_key`` are enough to send.  Receiving also needs
    the device-scoped ``device_id`` and ``device_secret`` obtained from the
    login handshake.
    """

    app_token: str = ""
    user_key: str = ""
    device_id: str = ""
    device_secret: str = ""

    def ensure_send(self) -> None:
        if not self.app_token.strip():
            raise MissingCredentialsError("pushover: app token not configured")
        if not self.user_key.strip():
            raise MissingCredentialsError("pushover: user key not configured")

    def ensure_receive(self) -> None:
        self.ensure_send()
        if not self.device_id.strip() or not self.device_secret.strip():
            raise DeviceCredentialsMissingError(
                "pushover: device credentials missing, run 'push login'"
            )


def default_user_agent() -> str:
    return f"push/{__version__} ({platform.system().lower() or 'unknown'})"


class Transport:
    """Bounded-concurrency, bounded-retry executor for Pushover requests.

    Usage::

        async with Transport(credentials) as transport:
            resp = await transport.execute(
                lambda c: c.build_request("GET", "/messages.json"),
            )

    Tests inject ``http_client`` (an ``httpx.AsyncClient`` backed by
    ``httpx.MockTransport``) and ``retry_delay=0``.
    """

    def __init__(
        self,
        credentials: Credentials | None = None,
        *,
        base_url: str = API_BASE_URL,
        http_client: httpx.AsyncClient | None = None,
        max_concurrency: int = MAX_CONCURRENT_REQUESTS,
        retry_delay: float = RETRY_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str | None = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.credentials = credentials or Credentials()
        self._base_url = base_url
        self._client = http_client
        self._owns_client = http_client is None
        self._limiter = asyncio.Semaphore(max_concurrency)
        self._retry_delay = retry_delay
        self._timeout = timeout
        self.user_agent = user_agent or default_user_agent()

    @property
    def client(self) -> httpx.AsyncClient:
        """The shared ``httpx.AsyncClient``, created on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the httpx client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> Transport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -- Execution -----------------------------------------------------------

    async def execute(
        self,
        build: RequestBuilder,
        max_attempts: int = DEFAULT_REQUEST_ATTEMPTS,
    ) -> httpx.Response:
        """Run one logical exchange, retrying network failures.

        Returns the response whatever its status code.  Raises
        :class:`RequestFailedError` (chained to the last
        ``httpx.TransportError``) once every attempt has failed.  A body
        that cannot be decoded raises :class:`ProtocolError`; any other
        httpx failure (too many redirects, stream errors) raises
        :class:`RequestFailedError` without a retry.
        """
        attempts = max(max_attempts, 1)
        attempt = 1

        while True:
            request = build(self.client)
            request.headers["User-Agent"] = self.user_agent
            try:
                return await self._send_once(request)
            except httpx.TransportError as exc:
                if attempt >= attempts:
                    logger.error(
                        "Request %s %s exhausted %d attempt(s): %s",
                        request.method,
                        request.url.path,
                        attempts,
                        exc,
                    )
                    raise RequestFailedError(
                        f"pushover: request failed after {attempts} attempt(s): {exc}",
                        attempts=attempts,
                    ) from exc
                logger.warning(
                    "Request %s %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    request.method,
                    request.url.path,
                    attempt,
                    attempts,
                    self._retry_delay,
                    exc,
                )
            except httpx.DecodingError as exc:
                logger.error(
                    "Response to %s %s could not be decoded: %s",
                    request.method,
                    request.url.path,
                    exc,
                )
                raise ProtocolError(f"pushover: undecodable response body: {exc}") from exc
            except httpx.HTTPError as exc:
                logger.error("Request %s %s failed: %s", request.method, request.url.path, exc)
                raise RequestFailedError(
                    f"pushover: request failed: {exc}", attempts=attempt
                ) from exc

            await asyncio.sleep(self._retry_delay)
            attempt += 1

    async def _send_once(self, request: httpx.Request) -> httpx.Response:
        async with self._limiter:
            return await self.client.send(request)

    async def request_json(
        self,
        build: RequestBuilder,
        *,
        what: str,
        max_attempts: int = DEFAULT_REQUEST_ATTEMPTS,
    ) -> dict[str, Any]:
        """Execute, classify errors, and decode a JSON object body."""
        response = await self.execute(build, max_attempts)
        raise_for_api_error(response)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProtocolError(f"decode {what} response: {exc}") from exc
        if not isinstance(payload, dict):
            raise ProtocolError(f"decode {what} response: expected a JSON object")
        return payload


# ---------------------------------------------------------------------------
# Response classification
# ---------------------------------------------------------------------------


def _error_messages(raw: Any) -> list[str]:
    if isinstance(raw, list):
        return [str(item) for item in raw]
    if isinstance(raw, dict):
        return [f"{key}: {value}" for key, value in raw.items()]
    if raw:
        return [str(raw)]
    return []


def raise_for_api_error(response: httpx.Response) -> None:
    """Raise the structured error for a >= 400 response, else return.

    HTTP 412 means the login needs a second-factor code and maps to
    :class:`TwoFactorRequiredError` rather than :class:`APIError`.
    """
    if response.status_code < 400:
        return

    if response.status_code == httpx.codes.PRECONDITION_FAILED:
        raise TwoFactorRequiredError()

    body = response.text
    payload: dict[str, Any] = {}
    if body:
        try:
            decoded = json.loads(body)
        except ValueError:
            decoded = None
        if isinstance(decoded, dict):
            payload = decoded

    messages = _error_messages(payload.get("errors"))
    if not messages and body.strip():
        messages = [body.strip()]

    try:
        status = int(payload.get("status") or 0)
    except (TypeError, ValueError):
        status = 0
    # Pushover reports status=0 in the body for failures
    if status == 0:
        status = response.status_code

    raise APIError(
        status=status,
        request_id=str(payload.get("request") or ""),
        messages=messages,
    )
