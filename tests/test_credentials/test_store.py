"""Tests for the credential store — memory record, token file, expiry."""

from __future__ import annotations

import json
import os
import stat
import threading
from datetime import UTC, datetime, timedelta

import pytest

from mizito_forwarder.credentials.store import (
    Credential,
    CredentialStore,
    _parse_timestamp,
    mask_token,
)
from mizito_forwarder.errors import PersistenceError

# ---------------------------------------------------------------------------
# Credential record
# ---------------------------------------------------------------------------


class TestCredential:
    def test_rejects_empty_token(self):
        now = datetime(2025, 1, 1, tzinfo=UTC)
        with pytest.raises(ValueError, match="must not be empty"):
            Credential(token="", last_login_uid="U1", issued_at=now, expires_at=now + timedelta(1))

    def test_rejects_expiry_before_issue(self):
        now = datetime(2025, 1, 1, tzinfo=UTC)
        with pytest.raises(ValueError, match="expire after"):
            Credential(token="T1", last_login_uid="U1", issued_at=now, expires_at=now)

    def test_validity_is_strict(self):
        now = datetime(2025, 1, 1, tzinfo=UTC)
        cred = Credential("T1", "U1", now, now + timedelta(hours=1))
        assert cred.is_valid_at(now + timedelta(minutes=59)) is True
        assert cred.is_valid_at(now + timedelta(hours=1)) is False

    def test_to_dict_field_names(self):
        now = datetime(2025, 1, 1, tzinfo=UTC)
        data = Credential("T1", "U1", now, now + timedelta(hours=24)).to_dict()
        assert set(data) == {"token", "last_login_uid", "expires_at", "updated_at"}
        assert data["updated_at"] == "2025-01-01T00:00:00+00:00"
        assert data["expires_at"] == "2025-01-02T00:00:00+00:00"

    def test_from_dict_requires_token(self):
        with pytest.raises(ValueError, match="token"):
            Credential.from_dict({"expires_at": "2025-01-02T00:00:00Z"})


class TestParseTimestamp:
    def test_zulu_suffix(self):
        assert _parse_timestamp("2025-01-01T00:00:00Z") == datetime(2025, 1, 1, tzinfo=UTC)

    def test_nanosecond_fraction_and_offset(self):
        parsed = _parse_timestamp("2025-01-01T10:00:00.123456789+03:30")
        assert parsed.microsecond == 123456
        assert parsed.utcoffset() == timedelta(hours=3, minutes=30)

    def test_naive_assumed_utc(self):
        assert _parse_timestamp("2025-01-01T00:00:00").tzinfo is UTC

    def test_non_string_rejected(self):
        with pytest.raises(ValueError, match="ISO-8601"):
            _parse_timestamp(12345)


class TestMaskToken:
    def test_empty(self):
        assert mask_token("") == "<empty>"

    def test_short_fully_masked(self):
        assert mask_token("abc") == "***"

    def test_long_keeps_prefix_and_suffix(self):
        assert mask_token("abcdefghijklmnopqrstuvwxyz") == "abcdefgh...wxyz"


# ---------------------------------------------------------------------------
# In-memory reads
# ---------------------------------------------------------------------------


class TestStoreReads:
    def test_empty_store(self, store):
        assert store.get() == ("", False)
        assert store.get_with_identity() == ("", "", False)
        assert store.credential is None
        assert store.is_valid() is False
        assert store.is_expired() is True

    def test_save_makes_token_current(self, store):
        store.save("T1", "U1")
        assert store.get() == ("T1", True)
        assert store.get_with_identity() == ("T1", "U1", True)
        assert store.is_valid() is True

    def test_save_applies_ttl(self, store, clock):
        cred = store.save("T1", "U1")
        assert cred.issued_at == clock.now
        assert cred.expires_at == clock.now + timedelta(hours=24)

    def test_custom_ttl(self, token_path, clock):
        store = CredentialStore(token_path, ttl=timedelta(minutes=5), clock=clock)
        cred = store.save("T1", "U1")
        assert cred.expires_at - cred.issued_at == timedelta(minutes=5)

    def test_expiry_is_strict(self, store, clock):
        store.save("T1", "U1")
        clock.advance(hours=23, minutes=59, seconds=59)
        assert store.is_valid() is True
        clock.advance(seconds=1)
        assert store.is_valid() is False
        assert store.is_expired() is True
        # Still present, just expired.
        assert store.get() == ("T1", True)

    def test_save_empty_token_rejected(self, store):
        with pytest.raises(PersistenceError, match="refusing to save"):
            store.save("", "U1")
        assert store.get() == ("", False)


# ---------------------------------------------------------------------------
# Token file
# ---------------------------------------------------------------------------


class TestStoreFile:
    def test_load_missing_file(self, store):
        assert store.load() is None
        assert store.get() == ("", False)

    def test_save_writes_file(self, store, token_path):
        store.save("T1", "U1")
        data = json.loads(token_path.read_text())
        assert data["token"] == "T1"
        assert data["last_login_uid"] == "U1"
        assert "expires_at" in data
        assert "updated_at" in data

    def test_save_creates_parent_directory(self, store, token_path):
        assert not token_path.parent.exists()
        store.save("T1", "U1")
        assert token_path.parent.is_dir()

    @pytest.mark.skipif(os.name != "posix", reason="POSIX file modes only")
    def test_file_is_owner_only(self, store, token_path):
        store.save("T1", "U1")
        assert stat.S_IMODE(token_path.stat().st_mode) == 0o600

    def test_no_temp_files_left_behind(self, store, token_path):
        store.save("T1", "U1")
        store.save("T2", "U2")
        assert [p.name for p in token_path.parent.iterdir()] == ["token.json"]

    def test_round_trip_through_fresh_store(self, store, token_path, clock):
        saved = store.save("T1", "U1")
        other = CredentialStore(token_path, clock=clock)
        loaded = other.load()
        assert loaded == saved
        assert other.get_with_identity() == ("T1", "U1", True)
        assert other.is_valid() is True

    def test_load_expired_record(self, store, token_path, clock):
        store.save("OLD", "U0")
        clock.advance(hours=25)
        other = CredentialStore(token_path, clock=clock)
        assert other.load() is not None
        assert other.is_valid() is False

    def test_load_corrupt_file(self, store, token_path):
        token_path.parent.mkdir(parents=True)
        token_path.write_text("{not json")
        with pytest.raises(PersistenceError, match="failed to parse token data"):
            store.load()
        assert store.get() == ("", False)

    def test_load_non_object(self, store, token_path):
        token_path.parent.mkdir(parents=True)
        token_path.write_text("[1, 2, 3]")
        with pytest.raises(PersistenceError, match="JSON object"):
            store.load()

    def test_load_missing_expiry(self, store, token_path):
        token_path.parent.mkdir(parents=True)
        token_path.write_text(json.dumps({"token": "T1", "updated_at": "2025-01-01T00:00:00Z"}))
        with pytest.raises(PersistenceError):
            store.load()

    def test_load_record_with_go_timestamps(self, store, token_path):
        token_path.parent.mkdir(parents=True)
        token_path.write_text(
            json.dumps(
                {
                    "token": "T9",
                    "last_login_uid": "U9",
                    "expires_at": "2025-01-02T12:00:00.123456789+03:30",
                    "updated_at": "2025-01-01T12:00:00.123456789+03:30",
                }
            )
        )
        cred = store.load()
        assert cred is not None
        assert cred.token == "T9"
        assert store.is_valid() is True

    def test_clear_removes_file_and_memory(self, store, token_path):
        store.save("T1", "U1")
        store.clear()
        assert not token_path.exists()
        assert store.get() == ("", False)

    def test_clear_is_idempotent(self, store):
        store.clear()
        store.clear()
        assert store.get() == ("", False)

    def test_unwritable_directory(self, tmp_path, clock):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = CredentialStore(blocker / "token.json", clock=clock)
        with pytest.raises(PersistenceError, match="token directory"):
            store.save("T1", "U1")
        assert store.get() == ("", False)


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestStoreConcurrency:
    def test_readers_never_see_partial_file(self, store, token_path, clock):
        store.save("T0", "U0")
        errors: list[Exception] = []
        seen: set[str] = set()
        stop = threading.Event()

        def writer(n: int) -> None:
            for i in range(50):
                store.save(f"T{n}-{i}", f"U{n}")

        def reader() -> None:
            other = CredentialStore(token_path, clock=clock)
            while not stop.is_set():
                try:
                    cred = other.load()
                except PersistenceError as exc:
                    errors.append(exc)
                    return
                if cred is not None:
                    seen.add(cred.token)
                if not store.get()[1]:
                    errors.append(AssertionError("token missing during save"))
                    return

        readers = [threading.Thread(target=reader) for _ in range(3)]
        writers = [threading.Thread(target=writer, args=(n,)) for n in range(3)]
        for t in readers + writers:
            t.start()
        for t in writers:
            t.join()
        stop.set()
        for t in readers:
            t.join()

        assert errors == []
        assert seen
        assert store.get()[0].startswith("T")
