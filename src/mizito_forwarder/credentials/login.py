"""Login exchange — trade username/password for a Mizito session token.

POST ``/capi/session/create`` with::

    {"username": ..., "password": ..., "loginCode": str|null, "regId": str|null}

Success is HTTP 200 *and* ``status == 1`` in the body, which then carries
``token`` and ``last_login_uid``. Nothing here retries; the caller decides.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from mizito_forwarder.errors import (
    LoginHTTPError,
    LoginResponseError,
    LoginTransportError,
    UpstreamAuthError,
)

if TYPE_CHECKING:
    from mizito_forwarder.config.settings import MizitoConfig
    from mizito_forwarder.credentials.store import Credential, CredentialStore

logger = logging.getLogger(__name__)

# Body ``status`` value that signals success.
STATUS_SUCCESS = 1


@dataclass(frozen=True)
class LoginRequest:
    """Login request body. ``None`` optional fields serialize to JSON null."""

    username: str
    password: str
    login_code: str | None = None
    reg_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "password": self.password,
            "loginCode": self.login_code,
            "regId": self.reg_id,
        }


@dataclass(frozen=True)
class LoginResponse:
    """Parsed login response body."""

    status: int
    token: str = ""
    last_login_uid: str = ""
    message: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoginResponse:
        """Parse a login body.

        Raises:
            ValueError: If ``status`` is missing or not an integer.
        """
        status = data.get("status")
        if isinstance(status, bool) or not isinstance(status, int):
            msg = "missing numeric status field"
            raise ValueError(msg)
        token = data.get("token")
        uid = data.get("last_login_uid")
        message = data.get("message")
        return cls(
            status=status,
            token=token if isinstance(token, str) else "",
            last_login_uid=str(uid) if uid is not None else "",
            message=message if isinstance(message, str) else "",
        )


class LoginExchange:
    """Async client for the Mizito identity endpoint.

    Usage::

        login = LoginExchange(config.mizito, store)
        await login.connect()
        try:
            credential = await login.login()
        finally:
            await login.close()
    """

    def __init__(
        self,
        config: MizitoConfig,
        store: CredentialStore,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the login exchange.

        Args:
            config: Mizito configuration (login URL, credentials, timeout).
            store: Store that receives the fresh credential.
            client: Pre-built HTTP client; one is created on ``connect`` otherwise.
        """
        self._config = config
        self._store = store
        self._client = client

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(timeout=self._config.timeout)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    def build_request(
        self,
        username: str | None = None,
        password: str | None = None,
        login_code: str | None = None,
        reg_id: str | None = None,
    ) -> LoginRequest:
        """Build a login request, falling back to configured values."""
        return LoginRequest(
            username=username if username is not None else self._config.username,
            password=password if password is not None else self._config.password,
            login_code=login_code if login_code is not None else self._config.login_code,
            reg_id=reg_id if reg_id is not None else self._config.reg_id,
        )

    async def login(
        self,
        username: str | None = None,
        password: str | None = None,
        *,
        login_code: str | None = None,
        reg_id: str | None = None,
    ) -> Credential:
        """Authenticate against Mizito and persist the resulting token.

        Returns:
            The credential now held by the store.

        Raises:
            LoginTransportError: The request failed before a response arrived.
            LoginHTTPError: The endpoint answered with a non-200 status.
            LoginResponseError: The body was not a usable login response.
            UpstreamAuthError: Mizito rejected the credentials.
            PersistenceError: The token could not be stored.
        """
        client = self._ensure_connected()
        request = self.build_request(username, password, login_code, reg_id)
        logger.info("Attempting to authenticate with Mizito API as %s", request.username)

        try:
            response = await client.post(
                self._config.login_url,
                json=request.to_dict(),
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            raise LoginTransportError(f"login request failed: {exc}") from exc

        logger.debug("Login response status: %d", response.status_code)
        if response.status_code != httpx.codes.OK:
            raise LoginHTTPError(response.status_code)

        parsed = self._parse(response)
        if parsed.status != STATUS_SUCCESS:
            raise UpstreamAuthError(parsed.status, parsed.message)
        if not parsed.token:
            raise LoginResponseError("login response did not contain a token")

        # fsync must not stall the event loop.
        loop = asyncio.get_running_loop()
        credential = await loop.run_in_executor(
            None, self._store.save, parsed.token, parsed.last_login_uid
        )
        logger.info("Successfully authenticated with Mizito API")
        return credential

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json;charset=UTF-8",
            "Accept": "application/json, text/plain, */*",
            "Origin": self._config.origin,
            "Referer": f"{self._config.origin}/",
        }

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "login exchange not connected. Call connect() first."
            raise LoginTransportError(msg)
        return self._client

    @staticmethod
    def _parse(response: httpx.Response) -> LoginResponse:
        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise LoginResponseError(f"failed to parse login response: {exc}") from exc
        if not isinstance(body, dict):
            raise LoginResponseError("failed to parse login response: not a JSON object")
        try:
            return LoginResponse.from_dict(body)
        except ValueError as exc:
            raise LoginResponseError(f"failed to parse login response: {exc}") from exc
