"""Tests for Transport: concurrency cap, flat retry, error classification."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from push.client.transport import API_BASE_URL, Credentials, Transport
from push.errors import (
    APIError,
    DeviceCredentialsMissingError,
    MissingCredentialsError,
    ProtocolError,
    RequestFailedError,
    TwoFactorRequiredError,
)


def _get(c: httpx.AsyncClient) -> httpx.Request:
    return c.build_request("GET", "/messages.json")


class TestExecute:
    async def test_user_agent_on_every_request(self, transport, fake_api):
        fake_api.add("GET", "/messages.json", {"status": 1})

        await transport.execute(_get)
        await transport.execute(_get)

        assert len(fake_api.requests) == 2
        for request in fake_api.requests:
            assert request.headers["User-Agent"].startswith("push/")

    async def test_relative_paths_join_api_base(self, transport, fake_api):
        fake_api.add("GET", "/messages.json", {"status": 1})
        await transport.execute(_get)
        assert str(fake_api.requests[0].url) == "https://api.pushover.net/1/messages.json"

    async def test_builder_called_fresh_on_each_attempt(self, transport, fake_api):
        fake_api.add(
            "POST",
            "/messages.json",
            httpx.ConnectError("connection refused"),
            {"status": 1, "request": "req-2"},
        )
        built: list[httpx.Request] = []

        def build(c: httpx.AsyncClient) -> httpx.Request:
            req = c.build_request("POST", "/messages.json", data={"message": "hi"})
            built.append(req)
            return req

        resp = await transport.execute(build, max_attempts=2)

        assert resp.status_code == 200
        assert len(built) == 2
        assert built[0] is not built[1]
        assert fake_api.form(fake_api.requests[1]) == {"message": "hi"}

    async def test_exhausted_retries_raise_last_error(self, transport, fake_api):
        fake_api.add("GET", "/messages.json", httpx.ConnectError("connection refused"))

        with pytest.raises(RequestFailedError) as exc_info:
            await transport.execute(_get, max_attempts=2)

        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert len(fake_api.requests) == 2

    async def test_timeout_is_retried(self, transport, fake_api):
        fake_api.add(
            "GET", "/messages.json", httpx.ReadTimeout("slow"), {"status": 1}
        )
        resp = await transport.execute(_get)
        assert resp.status_code == 200
        assert len(fake_api.requests) == 2

    async def test_non_positive_attempts_means_one(self, transport, fake_api):
        fake_api.add("GET", "/messages.json", httpx.ConnectError("down"))
        with pytest.raises(RequestFailedError):
            await transport.execute(_get, max_attempts=0)
        assert len(fake_api.requests) == 1

    async def test_api_errors_are_not_retried(self, transport, fake_api):
        fake_api.add("GET", "/messages.json", (500, {"status": 0, "errors": ["boom"]}))

        with pytest.raises(APIError):
            await transport.request_json(_get, what="fetch")

        assert len(fake_api.requests) == 1


class TestConcurrency:
    async def test_never_more_than_two_in_flight(self, fake_api, credentials):
        in_flight = 0
        peak = 0

        async def slow(request: httpx.Request) -> httpx.Response:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.02)
            in_flight -= 1
            return httpx.Response(200, json={"status": 1})

        fake_api.add("GET", "/messages.json", slow)
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(fake_api.handler), base_url=API_BASE_URL
        ) as http:
            transport = Transport(credentials, http_client=http, retry_delay=0)
            responses = await asyncio.gather(
                *(transport.execute(_get) for _ in range(7))
            )

        assert len(responses) == 7
        assert peak == 2

    async def test_waiting_for_a_slot_is_cancellable(self, fake_api, credentials):
        release = asyncio.Event()

        async def blocked(request: httpx.Request) -> httpx.Response:
            await release.wait()
            return httpx.Response(200, json={"status": 1})

        fake_api.add("GET", "/messages.json", blocked)
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(fake_api.handler), base_url=API_BASE_URL
        ) as http:
            transport = Transport(credentials, http_client=http, retry_delay=0)
            first = asyncio.create_task(transport.execute(_get))
            second = asyncio.create_task(transport.execute(_get))
            third = asyncio.create_task(transport.execute(_get))
            await asyncio.sleep(0.02)

            assert len(fake_api.requests) == 2
            third.cancel()
            with pytest.raises(asyncio.CancelledError):
                await third

            release.set()
            await asyncio.gather(first, second)

        assert len(fake_api.requests) == 2

    async def test_retry_delay_is_cancellable(self, fake_api, credentials):
        fake_api.add("GET", "/messages.json", httpx.ConnectError("down"))
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(fake_api.handler), base_url=API_BASE_URL
        ) as http:
            transport = Transport(credentials, http_client=http, retry_delay=60)
            task = asyncio.create_task(transport.execute(_get, max_attempts=3))
            await asyncio.sleep(0.02)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert len(fake_api.requests) == 1

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            Transport(max_concurrency=0)


class TestClassification:
    async def test_api_error_fields(self, transport, fake_api):
        fake_api.add(
            "GET",
            "/messages.json",
            (400, {"status": 0, "request": "req-9", "errors": ["user key is invalid"]}),
        )

        with pytest.raises(APIError) as exc_info:
            await transport.request_json(_get, what="fetch")

        err = exc_info.value
        assert err.status == 400
        assert err.request_id == "req-9"
        assert err.messages == ["user key is invalid"]
        assert str(err) == "pushover API error: user key is invalid"

    async def test_plain_text_body_becomes_message(self, transport, fake_api):
        fake_api.add("GET", "/messages.json", (503, "  Service Unavailable \n"))

        with pytest.raises(APIError) as exc_info:
            await transport.request_json(_get, what="fetch")

        assert exc_info.value.status == 503
        assert exc_info.value.messages == ["Service Unavailable"]

    async def test_empty_error_body(self, transport, fake_api):
        fake_api.add("GET", "/messages.json", (404, ""))

        with pytest.raises(APIError) as exc_info:
            await transport.request_json(_get, what="fetch")

        assert exc_info.value.messages == []
        assert "status=404" in str(exc_info.value)

    async def test_undecodable_body_is_protocol_error(self, transport, fake_api):
        fake_api.add(
            "GET",
            "/messages.json",
            lambda request: httpx.Response(
                200, headers={"Content-Encoding": "gzip"}, content=b"not-gzip"
            ),
        )

        with pytest.raises(ProtocolError) as exc_info:
            await transport.execute(_get)

        assert isinstance(exc_info.value.__cause__, httpx.DecodingError)
        assert len(fake_api.requests) == 1

    async def test_other_httpx_errors_are_not_retried(self, transport, fake_api):
        fake_api.add("GET", "/messages.json", httpx.TooManyRedirects("redirect loop"))

        with pytest.raises(RequestFailedError) as exc_info:
            await transport.execute(_get, max_attempts=3)

        assert exc_info.value.attempts == 1
        assert isinstance(exc_info.value.__cause__, httpx.TooManyRedirects)
        assert len(fake_api.requests) == 1

    async def test_412_is_two_factor_challenge(self, transport, fake_api):
        fake_api.add("GET", "/messages.json", (412, {"status": 0, "errors": ["need code"]}))

        with pytest.raises(TwoFactorRequiredError) as exc_info:
            await transport.request_json(_get, what="login")

        assert not isinstance(exc_info.value, APIError)


class TestCredentials:
    def test_send_requires_app_token(self):
        with pytest.raises(MissingCredentialsError, match="app token"):
            Credentials(user_key="u").ensure_send()

    def test_send_requires_user_key(self):
        with pytest.raises(MissingCredentialsError, match="user key"):
            Credentials(app_token="a").ensure_send()

    def test_send_ok_without_device(self):
        Credentials(app_token="a", user_key="u").ensure_send()

    def test_receive_requires_device_credentials(self):
        with pytest.raises(DeviceCredentialsMissingError):
            Credentials(app_token="a", user_key="u", device_id="d").ensure_receive()

    def test_receive_checks_app_credentials_first(self):
        with pytest.raises(MissingCredentialsError) as exc_info:
            Credentials(device_id="d", device_secret="s").ensure_receive()
        assert not isinstance(exc_info.value, DeviceCredentialsMissingError)
