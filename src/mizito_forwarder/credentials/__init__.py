"""Credentials — session token storage, login exchange and supervision."""

from __future__ import annotations

from mizito_forwarder.credentials.login import LoginExchange, LoginRequest, LoginResponse
from mizito_forwarder.credentials.store import Credential, CredentialStore, mask_token
from mizito_forwarder.credentials.supervisor import CredentialSupervisor

__all__ = [
    "Credential",
    "CredentialStore",
    "CredentialSupervisor",
    "LoginExchange",
    "LoginRequest",
    "LoginResponse",
    "mask_token",
]
