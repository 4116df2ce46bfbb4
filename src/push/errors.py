"""push exception hierarchy.

All push-specific exceptions inherit from :class:`PushError`.  The tree
mirrors how callers are expected to react:

- :class:`PreconditionError` -- detected before any network or storage
  call; never retried.
- :class:`RequestFailedError` -- network-level failure after the retry
  attempts were spent.
- :class:`APIError` -- the service answered with status >= 400.
- :class:`TwoFactorRequiredError` -- the service wants a second factor;
  the login caller must prompt and resubmit.
- :class:`ProtocolError` -- the service answered 2xx with a body that
  cannot be used.
- :class:`StoreNotInitializedError` -- persistence used while closed.
"""

from __future__ import annotations


class PushError(Exception):
    """Base exception for all push errors."""


class PreconditionError(PushError):
    """Raised when a call is rejected before touching the network or store."""


class MissingCredentialsError(PreconditionError):
    """Raised when the app token or user key is not configured."""


class DeviceCredentialsMissingError(MissingCredentialsError):
    """Raised when receiving is attempted without device id and secret."""


class EmptyCredentialError(PreconditionError):
    """Raised when login is attempted with a blank email or password."""


class InvalidParameterError(PreconditionError):
    """Raised on an empty body, out-of-range priority, non-positive id, etc."""


class RequestFailedError(PushError):
    """Raised when every attempt of a request failed at the network level."""

    def __init__(self, message: str, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class APIError(PushError):
    """Raised when the Pushover API returns an error response."""

    def __init__(
        self,
        status: int,
        request_id: str = "",
        messages: list[str] | None = None,
    ) -> None:
        self.status = status
        self.request_id = request_id
        self.messages = list(messages or [])
        super().__init__(str(self))

    def __str__(self) -> str:
        if not self.messages:
            return (
                f"pushover API error (status={self.status}, "
                f"request={self.request_id})"
            )
        return f"pushover API error: {'; '.join(self.messages)}"


class TwoFactorRequiredError(PushError):
    """Raised when login answers HTTP 412: a second-factor code is needed."""

    def __init__(self, message: str = "pushover: two-factor authentication required") -> None:
        super().__init__(message)


class ProtocolError(PushError):
    """Raised when a successful response cannot be decoded or is incomplete."""


class StoreNotInitializedError(PushError):
    """Raised when the message store is used before open() or after close()."""

    def __init__(self, message: str = "database not initialized") -> None:
        super().__init__(message)
