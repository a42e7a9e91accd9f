"""Credential supervisor — "give me a usable token".

Reconciles the locally predicted expiry kept by :class:`CredentialStore`
with what the server actually accepts: ``ensure_valid`` trusts the local
expiry, ``refresh`` is called when the server rejected a token early.

Concurrent logins are coalesced: while one login is in flight every other
caller that needs a login awaits the same task instead of starting its own.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from mizito_forwarder.errors import AuthError, CredentialUnavailableError, PersistenceError

if TYPE_CHECKING:
    from mizito_forwarder.credentials.login import LoginExchange
    from mizito_forwarder.credentials.store import Credential, CredentialStore
    from mizito_forwarder.metrics.collector import ForwarderMetrics

logger = logging.getLogger(__name__)


class CredentialSupervisor:
    """Façade over the login exchange and the credential store."""

    def __init__(
        self,
        store: CredentialStore,
        login: LoginExchange,
        *,
        metrics: ForwarderMetrics | None = None,
    ) -> None:
        self._store = store
        self._login = login
        self._metrics = metrics
        self._inflight: asyncio.Task[Credential] | None = None

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def login_in_flight(self) -> bool:
        """Whether an upstream login is currently running."""
        return self._inflight is not None

    async def ensure_valid(self) -> None:
        """Make sure the store holds a non-expired token.

        Returns immediately, without any I/O, when the in-memory token is
        still valid. Otherwise tries the token file, then logs in.

        Raises:
            AuthError: The login exchange failed.
            PersistenceError: A fresh token could not be saved.
        """
        if self._store.is_valid():
            logger.debug("Session token is still valid")
            return

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._store.load)
        except PersistenceError as exc:
            logger.warning("Failed to load existing token: %s", exc)

        if self._store.is_valid():
            logger.info("Loaded existing session token")
            return

        logger.info("No valid session token found, authenticating")
        await self._login_once(clear_first=False)

    async def refresh(self) -> None:
        """Drop the current token and log in again.

        Raises:
            AuthError: The login exchange failed.
            PersistenceError: A fresh token could not be saved.
        """
        logger.info("Refreshing session token")
        if self._metrics is not None:
            self._metrics.record_refresh()
        await self._login_once(clear_first=True)

    async def current_token(self) -> str:
        """Return a usable token, logging in first if needed.

        Raises:
            CredentialUnavailableError: No token became available.
            AuthError: The login exchange failed.
        """
        await self.ensure_valid()
        token, present = self._store.get()
        if not present:
            raise CredentialUnavailableError
        return token

    # ------------------------------------------------------------------
    # Single-flight login
    # ------------------------------------------------------------------

    async def _login_once(self, *, clear_first: bool) -> Credential:
        """Join the in-flight login, or start one.

        The shared task is shielded so a cancelled waiter does not abort
        the login for everyone else.
        """
        task = self._inflight
        if task is None:
            task = asyncio.get_running_loop().create_task(self._do_login(clear_first=clear_first))
            task.add_done_callback(self._forget)
            self._inflight = task
        else:
            logger.debug("Joining in-flight login")
        return await asyncio.shield(task)

    async def _do_login(self, *, clear_first: bool) -> Credential:
        if clear_first:
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, self._store.clear)
            except PersistenceError as exc:
                logger.warning("Failed to clear existing token: %s", exc)
        try:
            credential = await self._login.login()
        except (AuthError, PersistenceError):
            self._record_login("failure")
            raise
        self._record_login("success")
        return credential

    def _forget(self, task: asyncio.Task[Credential]) -> None:
        if self._inflight is task:
            self._inflight = None
        # Mark the exception retrieved when every waiter was cancelled.
        if not task.cancelled():
            task.exception()

    def _record_login(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.record_login(outcome)
