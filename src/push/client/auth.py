"""Login handshake: account credentials -> login secret -> device credentials.

State machine::

    START -> LOGIN_SUBMITTED -> LOGIN_SUCCEEDED -> DEVICE_REGISTERED
                             \\-> TWO_FACTOR_CHALLENGED
                                   -> LOGIN_RETRIED_WITH_CODE -> LOGIN_SUCCEEDED

The handshake never prompts on its own.  When the service asks for a
second factor, :meth:`LoginHandshake.submit` raises
:class:`~push.errors.TwoFactorRequiredError` and leaves the handshake in
``TWO_FACTOR_CHALLENGED``; the caller obtains a code however it likes and
calls :meth:`LoginHandshake.submit_code`.  :func:`authenticate` wires the
two steps together around a code-provider callback.
"""

from __future__ import annotations

import enum
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from push.client.api import PushoverClient
from push.client.models import DeviceRegistration, LoginResponse
from push.errors import TwoFactorRequiredError

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_NAME = "push-cli"


class LoginState(str, enum.Enum):
    START = "start"
    LOGIN_SUBMITTED = "login_submitted"
    TWO_FACTOR_CHALLENGED = "two_factor_challenged"
    LOGIN_RETRIED_WITH_CODE = "login_retried_with_code"
    LOGIN_SUCCEEDED = "login_succeeded"
    DEVICE_REGISTERED = "device_registered"


@dataclass(frozen=True)
class DeviceCredentials:
    """Durable receive credentials produced by a completed handshake."""

    device_id: str
    device_secret: str
    device_name: str


class LoginHandshake:
    """Drives one login + device registration against a :class:`PushoverClient`."""

    def __init__(self, client: PushoverClient) -> None:
        self._client = client
        self._email = ""
        self._password = ""
        self.state = LoginState.START
        self.login: LoginResponse | None = None
        self.registration: DeviceRegistration | None = None

    def _require(self, *allowed: LoginState) -> None:
        if self.state not in allowed:
            raise RuntimeError(
                f"login handshake is in state {self.state.value!r}; "
                f"expected one of {[s.value for s in allowed]}"
            )

    async def submit(self, email: str, password: str) -> LoginResponse:
        """First login attempt without a second-factor code."""
        self._require(LoginState.START)
        self._email = email
        self._password = password
        self.state = LoginState.LOGIN_SUBMITTED
        try:
            self.login = await self._client.login(email, password)
        except TwoFactorRequiredError:
            self.state = LoginState.TWO_FACTOR_CHALLENGED
            logger.info("Login requires a two-factor code")
            raise
        except Exception:
            self.state = LoginState.START
            raise
        self.state = LoginState.LOGIN_SUCCEEDED
        return self.login

    async def submit_code(self, code: str) -> LoginResponse:
        """Resubmit the same credentials with a second-factor *code*."""
        self._require(LoginState.TWO_FACTOR_CHALLENGED)
        self.state = LoginState.LOGIN_RETRIED_WITH_CODE
        try:
            self.login = await self._client.login(self._email, self._password, code)
        except Exception:
            # wrong code or failed request: another code may be submitted
            self.state = LoginState.TWO_FACTOR_CHALLENGED
            raise
        self.state = LoginState.LOGIN_SUCCEEDED
        return self.login

    async def register(self, device_name: str = DEFAULT_DEVICE_NAME) -> DeviceCredentials:
        """Register the device with the login secret."""
        self._require(LoginState.LOGIN_SUCCEEDED)
        login = self.login
        if login is None:
            raise RuntimeError("login handshake has no login secret")
        self.registration = await self._client.register_device(login.secret, device_name)
        self.state = LoginState.DEVICE_REGISTERED
        logger.info("Device %r registered", self.registration.id)
        return DeviceCredentials(
            device_id=self.registration.id,
            device_secret=login.secret,
            device_name=self.registration.name or device_name,
        )


CodeProvider = Callable[[], "str | Awaitable[str]"]


async def authenticate(
    client: PushoverClient,
    email: str,
    password: str,
    *,
    device_name: str = DEFAULT_DEVICE_NAME,
    code_provider: CodeProvider | None = None,
) -> DeviceCredentials:
    """Run the full handshake, asking *code_provider* for a 2FA code if needed.

    Without a *code_provider* a two-factor challenge propagates to the caller.
    """
    handshake = LoginHandshake(client)
    try:
        await handshake.submit(email, password)
    except TwoFactorRequiredError:
        if code_provider is None:
            raise
        code = code_provider()
        if inspect.isawaitable(code):
            code = await code
        await handshake.submit_code(str(code).strip())
    return await handshake.register(device_name)
