"""SQLite persistence for TV pairing credentials."""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

from loguru import logger

from tvremote.protocol.modes import TransportMode
from tvremote.storage.credentials import CredentialRecord, CredentialStore
from tvremote.utils.helpers import utc_now_iso

_SCHEMA_VERSION = 1


class SQLiteCredentialStore(CredentialStore):
    """Thread-safe credential persistence; one row per TV address."""

    def __init__(self, db_path: str | Path, *, busy_timeout_ms: int = 5000) -> None:
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        with self._lock:
            self._apply_pragmas(max(0, int(busy_timeout_ms)))
        self.init_schema()

    def _apply_pragmas(self, busy_timeout_ms: int) -> None:
        cur = self._conn.cursor()
        cur.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
        cur.execute("PRAGMA journal_mode = WAL")
        cur.execute("PRAGMA synchronous = NORMAL")
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def init_schema(self) -> None:
        with self._lock:
            cur = self._conn.cursor()
            current = self._get_user_version(cur)
            if current < 1:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS tv_credentials (
                      address TEXT PRIMARY KEY,
                      client_key TEXT NOT NULL,
                      secure INTEGER NOT NULL DEFAULT 1,
                      display_name TEXT,
                      created_at TEXT NOT NULL,
                      last_used_at TEXT NOT NULL,
                      use_seq INTEGER NOT NULL DEFAULT 0,
                      is_valid INTEGER NOT NULL DEFAULT 1
                    )
                    """
                )
                cur.execute(
                    "CREATE INDEX IF NOT EXISTS idx_tv_credentials_recent "
                    "ON tv_credentials(is_valid, use_seq)"
                )
                self._set_user_version(cur, 1)
            self._conn.commit()

    def get(self, address: str) -> CredentialRecord | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute("SELECT * FROM tv_credentials WHERE address = ?", (address,))
            row = cur.fetchone()
        return self._row_to_record(row) if row else None

    def upsert(
        self,
        address: str,
        secret: str,
        transport_mode: TransportMode,
        display_name: str | None = None,
    ) -> None:
        now = utc_now_iso()
        secure = 1 if TransportMode(transport_mode) == TransportMode.SECURE else 0
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                """
                INSERT INTO tv_credentials(
                  address, client_key, secure, display_name, created_at, last_used_at, use_seq, is_valid
                )
                VALUES (?, ?, ?, ?, ?, ?, (SELECT COALESCE(MAX(use_seq), 0) + 1 FROM tv_credentials), 1)
                ON CONFLICT(address) DO UPDATE SET
                  client_key = excluded.client_key,
                  secure = excluded.secure,
                  display_name = COALESCE(excluded.display_name, tv_credentials.display_name),
                  last_used_at = excluded.last_used_at,
                  use_seq = excluded.use_seq,
                  is_valid = 1
                """,
                (address, secret, secure, display_name, now, now),
            )
            self._conn.commit()
        logger.debug(f"Stored credentials for {address}")

    def invalidate(self, address: str) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute("UPDATE tv_credentials SET is_valid = 0 WHERE address = ?", (address,))
            self._conn.commit()
            changed = int(cur.rowcount)
        if changed:
            logger.info(f"Invalidated stored credentials for {address}")

    def delete(self, address: str) -> bool:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute("DELETE FROM tv_credentials WHERE address = ?", (address,))
            self._conn.commit()
            return int(cur.rowcount) > 0

    def most_recent_valid(self) -> CredentialRecord | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                """
                SELECT * FROM tv_credentials
                WHERE is_valid = 1
                ORDER BY use_seq DESC
                LIMIT 1
                """
            )
            row = cur.fetchone()
        return self._row_to_record(row) if row else None

    def list_all(self) -> list[CredentialRecord]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute("SELECT * FROM tv_credentials ORDER BY use_seq DESC")
            rows = cur.fetchall()
        return [self._row_to_record(row) for row in rows]

    def touch(self, address: str) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                """
                UPDATE tv_credentials
                SET last_used_at = ?,
                    use_seq = (SELECT COALESCE(MAX(use_seq), 0) + 1 FROM tv_credentials)
                WHERE address = ?
                """,
                (utc_now_iso(), address),
            )
            self._conn.commit()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> CredentialRecord:
        return CredentialRecord(
            address=str(row["address"]),
            secret=str(row["client_key"]),
            transport_mode=TransportMode.SECURE if int(row["secure"]) else TransportMode.INSECURE,
            display_name=row["display_name"],
            created_at=str(row["created_at"]),
            last_used_at=str(row["last_used_at"]),
            valid=bool(row["is_valid"]),
        )

    @staticmethod
    def _get_user_version(cur: sqlite3.Cursor) -> int:
        cur.execute("PRAGMA user_version")
        row = cur.fetchone()
        if not row:
            return 0
        return int(row[0])

    @staticmethod
    def _set_user_version(cur: sqlite3.Cursor, version: int) -> None:
        cur.execute(f"PRAGMA user_version = {max(0, int(version))}")

    @property
    def schema_version(self) -> int:
        return _SCHEMA_VERSION
