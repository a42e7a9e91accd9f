"""Credential store — one session token record, in memory and on disk.

The in-memory record is guarded by a readers-writer lock: ``get`` and
``is_valid`` share it, ``load`` / ``save`` / ``clear`` take it exclusively.
Disk operations are serialised by a separate file lock so readers never
wait on file I/O. The file is written to a temp file in the same
directory and moved into place with ``os.replace``; a concurrent reader
sees either the old record or the new one, never a partial write.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import re
import tempfile
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from mizito_forwarder.errors import PersistenceError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=24)

_FILE_MODE = 0o600
_DIR_MODE = 0o700

# Fractional seconds longer than microseconds (e.g. Go's RFC3339Nano).
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def mask_token(token: str, prefix_len: int = 8, suffix_len: int = 4) -> str:
    """Mask a token for safe logging."""
    if not token:
        return "<empty>"
    if len(token) <= prefix_len + suffix_len:
        return "*" * len(token)
    return f"{token[:prefix_len]}...{token[-suffix_len:]}"


def _parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is given."""
    if not isinstance(value, str):
        msg = f"expected ISO-8601 string, got {type(value).__name__}"
        raise ValueError(msg)
    text = _FRACTION_RE.sub(r"\1", value.strip())
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


# ---------------------------------------------------------------------------
# Credential record
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Credential:
    """A session token plus its metadata.

    Attributes:
        token: Opaque session token sent in the ``x-token`` header.
        last_login_uid: Identity the upstream associated with the login.
        issued_at: When the token was obtained (persisted as ``updated_at``).
        expires_at: Locally predicted expiry.
    """

    token: str
    last_login_uid: str
    issued_at: datetime
    expires_at: datetime

    def __post_init__(self) -> None:
        if not self.token:
            msg = "credential token must not be empty"
            raise ValueError(msg)
        if self.expires_at <= self.issued_at:
            msg = "credential must expire after it was issued"
            raise ValueError(msg)

    def is_valid_at(self, now: datetime) -> bool:
        """Whether *now* is strictly before the expiry."""
        return now < self.expires_at

    def to_dict(self) -> dict[str, str]:
        return {
            "token": self.token,
            "last_login_uid": self.last_login_uid,
            "expires_at": self.expires_at.isoformat(),
            "updated_at": self.issued_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Credential:
        """Build a credential from a persisted record.

        Raises:
            ValueError: If a field is missing or malformed.
        """
        token = data.get("token")
        if not isinstance(token, str):
            msg = "token field missing"
            raise ValueError(msg)
        uid = data.get("last_login_uid", "")
        return cls(
            token=token,
            last_login_uid=uid if isinstance(uid, str) else str(uid),
            issued_at=_parse_timestamp(data.get("updated_at")),
            expires_at=_parse_timestamp(data.get("expires_at")),
        )


# ---------------------------------------------------------------------------
# Readers-writer lock
# ---------------------------------------------------------------------------


class _ReadWriteLock:
    """Many readers or one writer. Writers are preferred once waiting."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextlib.contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextlib.contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class CredentialStore:
    """Owns the current session token and its on-disk mirror.

    The file is the source of truth only at startup (``load``); afterwards
    the in-memory record is authoritative and the file follows it.

    Usage::

        store = CredentialStore(Path("data/token.json"))
        store.load()
        if not store.is_valid():
            ...  # log in and call store.save(token, uid)
    """

    def __init__(
        self,
        path: str | Path,
        *,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the store.

        Args:
            path: Location of the persisted token record.
            ttl: Validity window applied by ``save``.
            clock: Returns the current aware datetime (overridable in tests).
        """
        self._path = Path(path)
        self._ttl = ttl
        self._clock = clock
        self._record: Credential | None = None
        self._lock = _ReadWriteLock()
        self._file_lock = threading.Lock()

    @property
    def path(self) -> Path:
        """Return the token file location."""
        return self._path

    @property
    def credential(self) -> Credential | None:
        """Snapshot of the current record, if any."""
        with self._lock.read_locked():
            return self._record

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> Credential | None:
        """Load the persisted record into memory.

        A missing file is not an error: the store is left unchanged and
        ``None`` is returned.

        Raises:
            PersistenceError: If the file exists but cannot be read or parsed.
        """
        with self._file_lock:
            try:
                raw = self._path.read_text(encoding="utf-8")
            except FileNotFoundError:
                logger.info("No existing token file found at %s", self._path)
                return None
            except OSError as exc:
                msg = f"failed to read token file: {exc}"
                raise PersistenceError(msg) from exc

            try:
                data = json.loads(raw)
                if not isinstance(data, dict):
                    msg = "token file does not contain a JSON object"
                    raise ValueError(msg)
                record = Credential.from_dict(data)
            except ValueError as exc:
                msg = f"failed to parse token data: {exc}"
                raise PersistenceError(msg) from exc

            with self._lock.write_locked():
                self._record = record

        logger.info(
            "Session token loaded (expires_at=%s, updated_at=%s)",
            record.expires_at.isoformat(),
            record.issued_at.isoformat(),
        )
        return record

    def save(self, token: str, last_login_uid: str) -> Credential:
        """Persist a freshly issued token and make it current.

        Args:
            token: The session token returned by the login exchange.
            last_login_uid: Identity associated with the login.

        Returns:
            The stored credential.

        Raises:
            PersistenceError: If the token is empty or the file cannot be written.
        """
        now = self._clock()
        try:
            record = Credential(
                token=token,
                last_login_uid=last_login_uid,
                issued_at=now,
                expires_at=now + self._ttl,
            )
        except ValueError as exc:
            msg = f"refusing to save token: {exc}"
            raise PersistenceError(msg) from exc

        payload = json.dumps(record.to_dict(), indent=2)
        with self._file_lock:
            self._write_atomic(payload)
            with self._lock.write_locked():
                self._record = record

        logger.info("Session token saved (expires_at=%s)", record.expires_at.isoformat())
        return record

    def clear(self) -> None:
        """Delete the persisted record and drop the in-memory one.

        Raises:
            PersistenceError: If the file exists but cannot be removed.
        """
        with self._file_lock:
            try:
                self._path.unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                msg = f"failed to remove token file: {exc}"
                raise PersistenceError(msg) from exc
            with self._lock.write_locked():
                self._record = None
        logger.info("Session token cleared")

    # ------------------------------------------------------------------
    # Reads (no I/O)
    # ------------------------------------------------------------------

    def get(self) -> tuple[str, bool]:
        """Return ``(token, present)`` from memory."""
        with self._lock.read_locked():
            if self._record is None:
                return "", False
            return self._record.token, True

    def get_with_identity(self) -> tuple[str, str, bool]:
        """Return ``(token, last_login_uid, present)`` from memory."""
        with self._lock.read_locked():
            if self._record is None:
                return "", "", False
            return self._record.token, self._record.last_login_uid, True

    def is_valid(self) -> bool:
        """True only if a record exists and now is strictly before its expiry."""
        now = self._clock()
        with self._lock.read_locked():
            return self._record is not None and self._record.is_valid_at(now)

    def is_expired(self) -> bool:
        """True if there is no record or its expiry has passed."""
        return not self.is_valid()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _write_atomic(self, payload: str) -> None:
        """Write *payload* to the token file via temp file + rename."""
        directory = self._path.parent
        try:
            directory.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"failed to create token directory: {exc}"
            raise PersistenceError(msg) from exc

        tmp_name = ""
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=directory, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_name, _FILE_MODE)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
            msg = f"failed to write token file: {exc}"
            raise PersistenceError(msg) from exc
