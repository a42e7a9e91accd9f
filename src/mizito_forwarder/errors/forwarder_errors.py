"""Forwarder exception classes.

``ForwarderError`` is the base for everything the service raises on purpose.
Three families hang off it:

- ``PersistenceError`` — the token file could not be read or written.
- ``AuthError`` — the login exchange failed (one subclass per failure kind).
- ``DeliveryError`` — sending a chat message failed.
"""

from __future__ import annotations


class ForwarderError(Exception):
    """Base error for all forwarder operations.

    Attributes:
        message: Human-readable error description.
        status_code: Suggested HTTP status code.
        code: Machine-readable error code string.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 500,
        code: str = "forwarder-error",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


# -- Persistence -----------------------------------------------------------


class PersistenceError(ForwarderError):
    """Token file is unreadable, corrupt or unwritable."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=500, code="persistence-error")


# -- Login exchange --------------------------------------------------------


class AuthError(ForwarderError):
    """Base class for login exchange failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 502,
        code: str = "auth-error",
    ) -> None:
        super().__init__(message, status_code=status_code, code=code)


class LoginTransportError(AuthError):
    """The login request never produced an HTTP response."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=504, code="login-transport-error")


class LoginHTTPError(AuthError):
    """The identity endpoint answered with a non-200 status."""

    def __init__(self, http_status: int) -> None:
        super().__init__(
            f"login request failed with status: {http_status}",
            code="login-http-error",
        )
        self.http_status = http_status


class LoginResponseError(AuthError):
    """The login response body could not be understood."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="login-response-error")


class UpstreamAuthError(AuthError):
    """The identity endpoint rejected the credentials."""

    def __init__(self, upstream_status: int, upstream_message: str = "") -> None:
        if upstream_message:
            message = f"login failed with status {upstream_status}: {upstream_message}"
        else:
            message = f"login failed with status: {upstream_status}"
        super().__init__(message, code="upstream-auth-error")
        self.upstream_status = upstream_status
        self.upstream_message = upstream_message


# -- Delivery --------------------------------------------------------------


class DeliveryError(ForwarderError):
    """Base class for message delivery failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 502,
        code: str = "delivery-error",
    ) -> None:
        super().__init__(message, status_code=status_code, code=code)


class TransportError(DeliveryError):
    """The send request failed at the network level (connect, timeout, read)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=504, code="transport-error")


class AuthorizationExpired(DeliveryError):
    """The chat API answered 401: the session token was rejected."""

    def __init__(self, message: str = "message send failed with unauthorized status") -> None:
        super().__init__(message, status_code=502, code="authorization-expired")


class UpstreamDeliveryError(DeliveryError):
    """The chat API rejected the message for a non-authorization reason."""

    def __init__(
        self,
        message: str,
        *,
        http_status: int = 200,
        upstream_status: int | None = None,
    ) -> None:
        super().__init__(message, code="upstream-delivery-error")
        self.http_status = http_status
        self.upstream_status = upstream_status


class MalformedResponseError(DeliveryError):
    """The chat API response matched none of the known encodings."""

    def __init__(self, body: str) -> None:
        super().__init__(
            "message send failed: unexpected response format",
            code="malformed-response",
        )
        self.body = body


class RetriesExhaustedError(DeliveryError):
    """Every attempt was answered with 401, even after refreshing the token."""

    def __init__(self, attempts: int, last_error: Exception | None = None) -> None:
        message = f"message send failed with unauthorized status after {attempts} attempts"
        if last_error is not None:
            message = f"{message}, last error: {last_error}"
        super().__init__(message, code="retries-exhausted")
        self.attempts = attempts
        self.last_error = last_error


class CredentialUnavailableError(DeliveryError):
    """No session token could be obtained."""

    def __init__(self, message: str = "no session token available") -> None:
        super().__init__(message, status_code=503, code="credential-unavailable")
