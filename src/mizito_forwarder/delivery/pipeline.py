"""Delivery pipeline — send a chat message, recovering from token rejection.

Each delivery runs a small state machine::

    SENDING --succeeded---------> DONE
    SENDING --unauthorized------> REFRESHING --refreshed------> SENDING
    SENDING --retries_exhausted-> FAILED      REFRESHING --refresh_failed--> FAILED
    SENDING --failed------------> FAILED

Only a 401 from the chat API leads to ``REFRESHING``. Transport errors,
non-auth rejections and unparsable responses end the delivery at once.
The payload is built once, so every attempt carries the same ``randomId``.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from mizito_forwarder.credentials.store import mask_token
from mizito_forwarder.delivery.payload import PayloadBuilder
from mizito_forwarder.errors import (
    AuthError,
    AuthorizationExpired,
    CredentialUnavailableError,
    DeliveryError,
    ForwarderError,
    MalformedResponseError,
    PersistenceError,
    RetriesExhaustedError,
    TransportError,
    UpstreamDeliveryError,
)

if TYPE_CHECKING:
    from mizito_forwarder.config.settings import MizitoConfig
    from mizito_forwarder.credentials.supervisor import CredentialSupervisor
    from mizito_forwarder.metrics.collector import ForwarderMetrics

logger = logging.getLogger(__name__)

# Body ``status`` value that signals success.
STATUS_SUCCESS = 1

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/142.0.0.0 Safari/537.36"
)


class MessageSender(Protocol):
    """What the HTTP layer needs from the delivery core."""

    async def send_message(self, text: str) -> None: ...


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class DeliveryState(enum.StrEnum):
    """States of a single delivery."""

    SENDING = "sending"
    REFRESHING = "refreshing"
    DONE = "done"
    FAILED = "failed"


class DeliveryEvent(enum.StrEnum):
    """Outcomes that move a delivery between states."""

    SUCCEEDED = "succeeded"
    UNAUTHORIZED = "unauthorized"
    RETRIES_EXHAUSTED = "retries_exhausted"
    FAILED = "failed"
    REFRESHED = "refreshed"
    REFRESH_FAILED = "refresh_failed"


TRANSITIONS: dict[tuple[DeliveryState, DeliveryEvent], DeliveryState] = {
    (DeliveryState.SENDING, DeliveryEvent.SUCCEEDED): DeliveryState.DONE,
    (DeliveryState.SENDING, DeliveryEvent.UNAUTHORIZED): DeliveryState.REFRESHING,
    (DeliveryState.SENDING, DeliveryEvent.RETRIES_EXHAUSTED): DeliveryState.FAILED,
    (DeliveryState.SENDING, DeliveryEvent.FAILED): DeliveryState.FAILED,
    (DeliveryState.REFRESHING, DeliveryEvent.REFRESHED): DeliveryState.SENDING,
    (DeliveryState.REFRESHING, DeliveryEvent.REFRESH_FAILED): DeliveryState.FAILED,
}

TERMINAL_STATES = frozenset({DeliveryState.DONE, DeliveryState.FAILED})


@dataclass
class DeliveryAttempt:
    """Ephemeral state of one ``deliver`` call."""

    payload: dict[str, Any]
    token: str
    max_retries: int
    attempts: int = 0
    state: DeliveryState = DeliveryState.SENDING
    error: ForwarderError | None = None
    history: list[DeliveryState] = field(default_factory=list)

    @property
    def retries_remaining(self) -> int:
        return self.max_retries + 1 - self.attempts

    def apply(self, event: DeliveryEvent) -> DeliveryState:
        """Move to the next state.

        Raises:
            RuntimeError: If *event* is not allowed in the current state.
        """
        nxt = TRANSITIONS.get((self.state, event))
        if nxt is None:
            msg = f"invalid delivery transition: {self.state} --{event}-->"
            raise RuntimeError(msg)
        self.history.append(self.state)
        self.state = nxt
        return nxt


# ---------------------------------------------------------------------------
# Response classification
# ---------------------------------------------------------------------------


def parse_send_response(body: bytes | str) -> None:
    """Check a 200 response body from the chat API.

    Accepts a bare ``true`` or an object with ``status == 1``.

    Raises:
        UpstreamDeliveryError: ``false`` or a non-success ``status``.
        MalformedResponseError: Any other shape.
    """
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise MalformedResponseError(text) from exc

    if isinstance(data, bool):
        if data:
            return
        msg = "message send failed: received false response"
        raise UpstreamDeliveryError(msg)

    if isinstance(data, dict):
        status = data.get("status")
        if isinstance(status, int) and not isinstance(status, bool):
            if status == STATUS_SUCCESS:
                return
            message = data.get("message") or ""
            msg = f"message send failed with status: {status}, message: {message}"
            raise UpstreamDeliveryError(msg, upstream_status=status)

    raise MalformedResponseError(text)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class DeliveryPipeline:
    """Sends chat messages to Mizito with bounded refresh-and-retry.

    Usage::

        pipeline = DeliveryPipeline(config.mizito, supervisor)
        await pipeline.connect()
        try:
            await pipeline.deliver("disk almost full")
        finally:
            await pipeline.close()
    """

    def __init__(
        self,
        config: MizitoConfig,
        supervisor: CredentialSupervisor,
        *,
        builder: PayloadBuilder | None = None,
        metrics: ForwarderMetrics | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Mizito configuration (chat URL, retry limit, timeout).
            supervisor: Source of session tokens.
            builder: Payload builder; one is derived from *config* otherwise.
            metrics: Optional Prometheus metrics.
            client: Pre-built HTTP client; one is created on ``connect`` otherwise.
        """
        self._config = config
        self._supervisor = supervisor
        self._builder = builder or PayloadBuilder(config)
        self._metrics = metrics
        self._client = client
        self._max_retries = config.max_retries

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        if self._client is None:
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

    @property
    def max_retries(self) -> int:
        return self._max_retries

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send_message(self, text: str) -> None:
        """Alias of :meth:`deliver` used by the HTTP layer."""
        await self.deliver(text)

    async def deliver(self, text: str) -> None:
        """Deliver *text* to the configured dialog.

        Returns only after the chat API confirmed success.

        Raises:
            RetriesExhaustedError: Every attempt was answered with 401.
            UpstreamDeliveryError: Mizito rejected the message.
            TransportError: The send request failed at the network level.
            MalformedResponseError: The response body was not understood.
            AuthError: No token could be obtained (login failed).
        """
        logger.info("Sending message to Mizito chat (%d chars)", len(text))
        if self._metrics is None:
            attempt = await self._run(text)
        else:
            with self._metrics.track_delivery():
                attempt = await self._run(text)
            self._metrics.record_delivery(
                attempt.state.value if attempt.error is None else attempt.error.code,
                attempt.attempts,
            )

        if attempt.state is DeliveryState.DONE:
            logger.info("Message sent successfully to Mizito chat (attempts=%d)", attempt.attempts)
            return

        error = attempt.error
        if error is None:  # pragma: no cover - FAILED always records an error
            error = DeliveryError("message send failed")
        logger.error("Message delivery failed after %d attempt(s): %s", attempt.attempts, error)
        if isinstance(error, RetriesExhaustedError):
            raise error from error.last_error
        raise error

    # ------------------------------------------------------------------
    # State machine driver
    # ------------------------------------------------------------------

    async def _run(self, text: str) -> DeliveryAttempt:
        payload = self._builder.build(text).to_dict()
        attempt = DeliveryAttempt(payload=payload, token="", max_retries=self._max_retries)

        try:
            attempt.token = await self._supervisor.current_token()
        except (AuthError, PersistenceError, CredentialUnavailableError) as exc:
            attempt.error = exc
            attempt.state = DeliveryState.FAILED
            return attempt

        while attempt.state not in TERMINAL_STATES:
            if attempt.state is DeliveryState.SENDING:
                event = await self._on_sending(attempt)
            else:
                event = await self._on_refreshing(attempt)
            attempt.apply(event)
        return attempt

    async def _on_sending(self, attempt: DeliveryAttempt) -> DeliveryEvent:
        attempt.attempts += 1
        try:
            await self._post(attempt.payload, attempt.token)
        except AuthorizationExpired as exc:
            if attempt.retries_remaining > 0:
                logger.warning(
                    "Unauthorized response, will retry with fresh token (attempt %d/%d)",
                    attempt.attempts,
                    self._max_retries + 1,
                )
                attempt.error = exc
                return DeliveryEvent.UNAUTHORIZED
            attempt.error = RetriesExhaustedError(attempt.attempts, exc)
            return DeliveryEvent.RETRIES_EXHAUSTED
        except DeliveryError as exc:
            attempt.error = exc
            return DeliveryEvent.FAILED
        attempt.error = None
        return DeliveryEvent.SUCCEEDED

    async def _on_refreshing(self, attempt: DeliveryAttempt) -> DeliveryEvent:
        try:
            await self._supervisor.refresh()
            attempt.token = await self._supervisor.current_token()
        except (AuthError, PersistenceError, CredentialUnavailableError) as exc:
            logger.warning("Failed to refresh token on retry: %s", exc)
            attempt.error = exc
            return DeliveryEvent.REFRESH_FAILED
        logger.info("Retrying message send with refreshed token %s", mask_token(attempt.token))
        return DeliveryEvent.REFRESHED

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "delivery pipeline not connected. Call connect() first."
            raise TransportError(msg)
        return self._client

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json;charset=UTF-8",
            "Accept": "application/json, text/plain, */*",
            "Referer": f"{self._config.origin}/",
            "User-Agent": _USER_AGENT,
            "x-token": token,
        }

    async def _post(self, payload: dict[str, Any], token: str) -> None:
        """Send one attempt and classify the response.

        Raises:
            TransportError, AuthorizationExpired, UpstreamDeliveryError,
            MalformedResponseError
        """
        client = self._ensure_connected()
        try:
            response = await client.post(
                self._config.chat_api_url,
                json=payload,
                headers=self._headers(token),
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"message request failed: {exc}") from exc

        logger.debug("Message response status: %d", response.status_code)
        if response.status_code == httpx.codes.UNAUTHORIZED:
            raise AuthorizationExpired
        if response.status_code != httpx.codes.OK:
            msg = f"message send failed with status: {response.status_code}, body: {response.text}"
            raise UpstreamDeliveryError(msg, http_status=response.status_code)

        parse_send_response(response.content)
