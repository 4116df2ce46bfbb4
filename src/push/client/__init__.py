"""Pushover API client layer."""

from push.client.api import PushoverClient
from push.client.auth import (
    DeviceCredentials,
    LoginHandshake,
    LoginState,
    authenticate,
)
from push.client.models import (
    DeviceRegistration,
    FetchResult,
    LoginResponse,
    ReceivedMessage,
    SendParams,
    SendResponse,
)
from push.client.transport import Credentials, Transport, raise_for_api_error

__all__ = [
    "Credentials",
    "DeviceCredentials",
    "DeviceRegistration",
    "FetchResult",
    "LoginHandshake",
    "LoginResponse",
    "LoginState",
    "PushoverClient",
    "ReceivedMessage",
    "SendParams",
    "SendResponse",
    "Transport",
    "authenticate",
    "raise_for_api_error",
]
