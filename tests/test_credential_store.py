import sqlite3
import time

import pytest

from tvremote.protocol import TransportMode
from tvremote.storage import CredentialStore, MemoryCredentialStore, SQLiteCredentialStore


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_path):  # type: ignore[no-untyped-def]
    if request.param == "sqlite":
        backend: CredentialStore = SQLiteCredentialStore(tmp_path / "tv-credentials.db")
    else:
        backend = MemoryCredentialStore()
    yield backend
    backend.close()


def test_upsert_and_get(store: CredentialStore) -> None:
    store.upsert("10.0.0.5", "key-a", TransportMode.INSECURE, "Living Room")

    record = store.get("10.0.0.5")

    assert record is not None
    assert record.secret == "key-a"
    assert record.transport_mode == TransportMode.INSECURE
    assert record.display_name == "Living Room"
    assert record.valid is True
    assert record.created_at == record.last_used_at
    assert store.get("10.0.0.9") is None


def test_upsert_keeps_created_at_and_revalidates(store: CredentialStore) -> None:
    store.upsert("10.0.0.5", "key-a", TransportMode.SECURE, "Den")
    first = store.get("10.0.0.5")
    store.invalidate("10.0.0.5")
    time.sleep(0.001)

    store.upsert("10.0.0.5", "key-b", TransportMode.INSECURE)
    second = store.get("10.0.0.5")

    assert first is not None and second is not None
    assert second.created_at == first.created_at
    assert second.last_used_at > first.last_used_at
    assert second.secret == "key-b"
    assert second.transport_mode == TransportMode.INSECURE
    assert second.display_name == "Den"
    assert second.valid is True


def test_invalidate_keeps_secret_but_hides_record(store: CredentialStore) -> None:
    store.upsert("10.0.0.5", "key-a", TransportMode.SECURE)

    store.invalidate("10.0.0.5")

    record = store.get("10.0.0.5")
    assert record is not None
    assert record.valid is False
    assert record.secret == "key-a"
    assert store.most_recent_valid() is None
    store.invalidate("10.0.0.99")


def test_most_recent_valid_follows_use_order(store: CredentialStore) -> None:
    store.upsert("10.0.0.5", "key-a", TransportMode.SECURE)
    store.upsert("10.0.0.6", "key-b", TransportMode.SECURE)
    store.upsert("10.0.0.7", "key-c", TransportMode.SECURE)
    store.invalidate("10.0.0.7")

    latest = store.most_recent_valid()
    assert latest is not None and latest.address == "10.0.0.6"

    store.touch("10.0.0.5")
    latest = store.most_recent_valid()
    assert latest is not None and latest.address == "10.0.0.5"
    assert [r.address for r in store.list_all()] == ["10.0.0.5", "10.0.0.7", "10.0.0.6"]


def test_delete(store: CredentialStore) -> None:
    store.upsert("10.0.0.5", "key-a", TransportMode.SECURE)

    assert store.delete("10.0.0.5") is True
    assert store.delete("10.0.0.5") is False
    assert store.get("10.0.0.5") is None
    assert store.list_all() == []


def test_public_dict_masks_secret(store: CredentialStore) -> None:
    store.upsert("10.0.0.5", "0123456789abcdef", TransportMode.SECURE)

    public = store.list_all()[0].to_public_dict()

    assert public["client_key"] == "01************ef"
    assert public["transport_mode"] == "secure"


def test_sqlite_store_survives_reopen(tmp_path) -> None:  # type: ignore[no-untyped-def]
    path = tmp_path / "nested" / "creds.db"
    first = SQLiteCredentialStore(path)
    first.upsert("10.0.0.5", "key-a", TransportMode.INSECURE)
    first.close()

    second = SQLiteCredentialStore(path)
    record = second.most_recent_valid()
    second.close()

    assert record is not None
    assert record.address == "10.0.0.5"
    assert record.transport_mode == TransportMode.INSECURE


def test_sqlite_schema_version_and_pragmas(tmp_path) -> None:  # type: ignore[no-untyped-def]
    path = tmp_path / "creds.db"
    store = SQLiteCredentialStore(path, busy_timeout_ms=1234)
    assert store.schema_version == 1
    store.close()

    conn = sqlite3.connect(str(path))
    try:
        assert conn.execute("PRAGMA user_version").fetchone()[0] == 1
        assert str(conn.execute("PRAGMA journal_mode").fetchone()[0]).lower() == "wal"
        columns = {row[1] for row in conn.execute("PRAGMA table_info(tv_credentials)")}
    finally:
        conn.close()
    assert {"address", "client_key", "secure", "is_valid", "last_used_at"} <= columns
