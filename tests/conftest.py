"""Shared test fixtures for the mizito-forwarder test suite."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from mizito_forwarder.config.settings import AppConfig, MetricsConfig, MizitoConfig, TokenConfig
from mizito_forwarder.credentials.login import LoginExchange
from mizito_forwarder.credentials.store import CredentialStore
from mizito_forwarder.credentials.supervisor import CredentialSupervisor
from mizito_forwarder.delivery.pipeline import DeliveryPipeline
from mizito_forwarder.metrics.collector import ForwarderMetrics

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

LOGIN_URL = "https://mizito.test/capi/session/create"
CHAT_URL = "https://mizito.test/api/chat/send"


class FakeClock:
    """Settable clock for expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeMizito:
    """Scriptable stand-in for the Mizito login and chat endpoints.

    Scripted responses are consumed in order; once a script runs out the
    login endpoint issues ``T1``, ``T2``, ... and the chat endpoint answers
    ``true``. A scripted item may also be an exception to raise.
    """

    def __init__(
        self,
        *,
        login: list[httpx.Response | Exception] | None = None,
        send: list[httpx.Response | Exception] | None = None,
        login_delay: float = 0.0,
    ) -> None:
        self.login_requests: list[httpx.Request] = []
        self.send_requests: list[httpx.Request] = []
        self._login = list(login or [])
        self._send = list(send or [])
        self.login_delay = login_delay
        self._issued = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/session/create"):
            self.login_requests.append(request)
            if self.login_delay:
                await asyncio.sleep(self.login_delay)
            if self._login:
                return self._next(self._login)
            self._issued += 1
            return httpx.Response(
                200,
                json={
                    "status": 1,
                    "token": f"T{self._issued}",
                    "last_login_uid": f"U{self._issued}",
                },
            )
        if request.url.path.endswith("/chat/send"):
            self.send_requests.append(request)
            if self._send:
                return self._next(self._send)
            return httpx.Response(200, json=True)
        return httpx.Response(404)

    def script_login(self, *items: httpx.Response | Exception) -> None:
        self._login.extend(items)

    def script_send(self, *items: httpx.Response | Exception) -> None:
        self._send.extend(items)

    @staticmethod
    def _next(script: list[httpx.Response | Exception]) -> httpx.Response:
        item = script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def sent_tokens(self) -> list[str]:
        return [r.headers["x-token"] for r in self.send_requests]

    @property
    def sent_bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.send_requests]


@pytest.fixture
def mizito_config() -> MizitoConfig:
    return MizitoConfig(
        username="bot@example.com",
        password="hunter2",
        dialog_id="dialog-42",
        from_user_id="user-7",
        login_url=LOGIN_URL,
        chat_api_url=CHAT_URL,
        login_code=None,
        reg_id=None,
    )


@pytest.fixture
def token_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "token.json"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(token_path: Path, clock: FakeClock) -> CredentialStore:
    return CredentialStore(token_path, clock=clock)


@pytest.fixture
def fake_mizito() -> FakeMizito:
    return FakeMizito()


@pytest.fixture
async def http_client(fake_mizito: FakeMizito) -> AsyncIterator[httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_mizito))
    yield client
    await client.aclose()


@pytest.fixture
def metrics() -> ForwarderMetrics:
    return ForwarderMetrics()


@pytest.fixture
def login(
    mizito_config: MizitoConfig, store: CredentialStore, http_client: httpx.AsyncClient
) -> LoginExchange:
    return LoginExchange(mizito_config, store, client=http_client)


@pytest.fixture
def supervisor(
    store: CredentialStore, login: LoginExchange, metrics: ForwarderMetrics
) -> CredentialSupervisor:
    return CredentialSupervisor(store, login, metrics=metrics)


@pytest.fixture
def pipeline(
    mizito_config: MizitoConfig,
    supervisor: CredentialSupervisor,
    metrics: ForwarderMetrics,
    http_client: httpx.AsyncClient,
) -> DeliveryPipeline:
    return DeliveryPipeline(mizito_config, supervisor, metrics=metrics, client=http_client)


@pytest.fixture
def app_config(mizito_config: MizitoConfig, token_path: Path) -> AppConfig:
    """Provide a test AppConfig with safe defaults."""
    return AppConfig(
        app_token="",
        mizito=mizito_config,
        token=TokenConfig(file=token_path),
        metrics=MetricsConfig(enabled=True),
    )
