"""Error hierarchy for the forwarder."""

from __future__ import annotations

from mizito_forwarder.errors.forwarder_errors import (
    AuthError,
    AuthorizationExpired,
    CredentialUnavailableError,
    DeliveryError,
    ForwarderError,
    LoginHTTPError,
    LoginResponseError,
    LoginTransportError,
    MalformedResponseError,
    PersistenceError,
    RetriesExhaustedError,
    TransportError,
    UpstreamAuthError,
    UpstreamDeliveryError,
)

__all__ = [
    "AuthError",
    "AuthorizationExpired",
    "CredentialUnavailableError",
    "DeliveryError",
    "ForwarderError",
    "LoginHTTPError",
    "LoginResponseError",
    "LoginTransportError",
    "MalformedResponseError",
    "PersistenceError",
    "RetriesExhaustedError",
    "TransportError",
    "UpstreamAuthError",
    "UpstreamDeliveryError",
]
