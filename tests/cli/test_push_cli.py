"""Tests for the push CLI using click's CliRunner."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime

import httpx
import pytest
from click.testing import CliRunner

import push.cli.main as cli_main
from push.cli.main import cli
from push.client.api import PushoverClient
from push.client.transport import Transport
from push.config import Config
from push.db.models import MessageRecord
from push.db.store import MessageStore
from push.service import PushService

ACK_PATH = "/devices/dev-1/update_highest_message.json"


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def paths(tmp_path):
    return tmp_path / "config.toml", tmp_path / "data"


@pytest.fixture()
def configured(paths):
    cfg_path, _ = paths
    Config(
        app_token="app-token",
        user_key="user-key",
        device_id="dev-1",
        device_secret="dev-secret",
    ).save(cfg_path)
    return cfg_path


@pytest.fixture()
def fake_service(monkeypatch, http_factory):
    """Route every PushService the CLI builds to the fake API."""

    def build(cfg, database, **kwargs):
        transport = Transport(cfg.credentials(), http_client=http_factory(), retry_delay=0)
        return PushService(cfg, database, transport=transport, **kwargs)

    monkeypatch.setattr(cli_main, "PushService", build)


def _invoke(runner, paths, *args, **kwargs):
    cfg_path, data = paths
    return runner.invoke(
        cli, ["--config", str(cfg_path), "--data", str(data), *args], **kwargs
    )


def test_help_lists_commands(runner):
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    for command in ("login", "logout", "send", "messages", "mark-read", "history", "sent", "mcp"):
        assert command in result.output


class TestSend:
    def test_send(self, runner, paths, configured, fake_service, fake_api):
        fake_api.add("POST", "/messages.json", {"status": 1, "request": "req-77"})

        result = _invoke(runner, paths, "send", "-t", "ci", "build", "passed")

        assert result.exit_code == 0, result.output
        assert "Notification sent. Request ID: req-77" in result.output
        form = fake_api.form(fake_api.requests[0])
        assert form["message"] == "build passed"
        assert form["title"] == "ci"

    def test_send_is_logged(self, runner, paths, configured, fake_service, fake_api):
        fake_api.add("POST", "/messages.json", {"status": 1, "request": "req-1"})
        _invoke(runner, paths, "send", "hello")

        result = _invoke(runner, paths, "sent", "--json")

        assert result.exit_code == 0, result.output
        rows = json.loads(result.output)
        assert [r["message"] for r in rows] == ["hello"]

    def test_send_without_credentials(self, runner, paths, fake_service, fake_api):
        result = _invoke(runner, paths, "send", "hello")

        assert result.exit_code == 1
        assert "app token not configured" in result.output
        assert fake_api.requests == []

    def test_send_invalid_priority(self, runner, paths, configured, fake_service, fake_api):
        result = _invoke(runner, paths, "send", "-p", "5", "hello")

        assert result.exit_code == 1
        assert "priority must be between -2 and 2" in result.output

    def test_send_undecodable_reply(self, runner, paths, configured, fake_service, fake_api):
        fake_api.add(
            "POST",
            "/messages.json",
            lambda request: httpx.Response(
                200, headers={"Content-Encoding": "gzip"}, content=b"not-gzip"
            ),
        )

        result = _invoke(runner, paths, "send", "hello")

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "Error: pushover: undecodable response body" in result.output


class TestLogin:
    def test_login_with_second_factor(self, runner, paths, monkeypatch, http_factory, fake_api):
        fake_api.add(
            "POST",
            "/users/login.json",
            (412, {"status": 0, "errors": ["code required"]}),
            {"status": 1, "secret": "login-secret"},
        )
        fake_api.add("POST", "/devices.json", {"status": 1, "id": "dev-new"})

        def client_factory(credentials):
            transport = Transport(credentials, http_client=http_factory(), retry_delay=0)
            return PushoverClient(credentials, transport=transport)

        monkeypatch.setattr(cli_main, "PushoverClient", client_factory)

        result = _invoke(
            runner,
            paths,
            "login",
            "--device-name",
            "laptop",
            input="app-token\nuser-key\nme@example.com\nhunter2\n123456\n",
        )

        assert result.exit_code == 0, result.output
        assert "Logged in. Device 'dev-new' registered." in result.output
        saved = Config.load(paths[0])
        assert saved.app_token == "app-token"
        assert saved.device_id == "dev-new"
        assert saved.device_secret == "login-secret"
        assert saved.default_device == "laptop"
        assert fake_api.form(fake_api.requests[1])["code"] == "123456"

    def test_logout(self, runner, paths, configured):
        result = _invoke(runner, paths, "logout")

        assert result.exit_code == 0
        assert "Device credentials removed." in result.output
        saved = Config.load(configured)
        assert saved.device_id == ""
        assert saved.app_token == "app-token"

        again = _invoke(runner, paths, "logout")
        assert "No device credentials were stored." in again.output

    def test_logout_save_failure(self, runner, paths, configured, monkeypatch):
        def fail(self, path):
            raise OSError("read-only file system")

        monkeypatch.setattr(Config, "save", fail)

        result = _invoke(runner, paths, "logout")

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "Error: saving config: read-only file system" in result.output


class TestReceive:
    def test_messages(self, runner, paths, configured, fake_service, fake_api):
        fake_api.add(
            "GET",
            "/messages.json",
            {"status": 1, "last": 2, "messages": [
                {"id": 1, "message": "first"},
                {"id": 2, "message": "second", "title": "nas"},
            ]},
        )
        fake_api.add("POST", ACK_PATH, {"status": 1})

        result = _invoke(runner, paths, "messages")

        assert result.exit_code == 0, result.output
        assert "[1] first" in result.output
        assert "[2] second" in result.output
        assert "Title: nas" in result.output
        assert fake_api.form(fake_api.calls("POST", ACK_PATH)[0])["message"] == "2"

    def test_no_messages(self, runner, paths, configured, fake_service, fake_api):
        fake_api.add("GET", "/messages.json", {"status": 1, "messages": []})

        result = _invoke(runner, paths, "messages")

        assert result.exit_code == 0
        assert "No new messages." in result.output

    def test_messages_requires_login(self, runner, paths, fake_service):
        Config(app_token="a", user_key="u").save(paths[0])

        result = _invoke(runner, paths, "messages")

        assert result.exit_code == 1
        assert "push login" in result.output

    def test_mark_read(self, runner, paths, configured, fake_service, fake_api):
        fake_api.add("POST", ACK_PATH, {"status": 1})

        result = _invoke(runner, paths, "mark-read", "9")

        assert result.exit_code == 0
        assert "Acknowledged messages up to 9." in result.output


class TestHistory:
    @pytest.fixture()
    def seeded(self, paths):
        async def seed():
            async with MessageStore(paths[1] / "push.db") as store:
                await store.persist_messages(
                    [
                        MessageRecord(pushover_id=1, message="disk ok", received_at=datetime(2024, 1, 1)),
                        MessageRecord(pushover_id=2, message="disk failing", received_at=datetime(2024, 1, 2)),
                    ]
                )

        asyncio.run(seed())

    def test_history(self, runner, paths, seeded):
        result = _invoke(runner, paths, "history")

        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert lines[0] == "2024-01-02T00:00:00Z [2] disk failing"
        assert lines[1] == "2024-01-01T00:00:00Z [1] disk ok"

    def test_history_search_json(self, runner, paths, seeded):
        result = _invoke(runner, paths, "history", "--search", "FAILING", "--json")

        rows = json.loads(result.output)
        assert [r["pushover_id"] for r in rows] == [2]

    def test_history_since_free_form_date(self, runner, paths, seeded):
        result = _invoke(
            runner, paths, "history", "--since", "January 1, 2024 12:00 UTC", "--json"
        )

        assert result.exit_code == 0, result.output
        assert [r["pushover_id"] for r in json.loads(result.output)] == [2]

    def test_history_since_rejects_garbage(self, runner, paths):
        result = _invoke(runner, paths, "history", "--since", "not a date at all")

        assert result.exit_code == 2
        assert "unrecognised date" in result.output

    def test_empty_history(self, runner, paths):
        result = _invoke(runner, paths, "history")

        assert result.exit_code == 0
        assert "No history found." in result.output


def test_config_show_masks_secrets(runner, paths, configured):
    result = _invoke(runner, paths, "config", "show")

    assert result.exit_code == 0
    assert "app-token" not in result.output
    assert "app-..." in result.output
    assert "dev-1" in result.output
