"""Credential store contract and an in-memory implementation."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any

from tvremote.protocol.modes import TransportMode
from tvremote.utils.helpers import utc_now_iso
from tvremote.utils.redaction import mask_value


@dataclass(slots=True)
class CredentialRecord:
    """Pairing secret and transport mode remembered for one TV."""

    address: str
    secret: str
    transport_mode: TransportMode = TransportMode.SECURE
    display_name: str | None = None
    created_at: str = ""
    last_used_at: str = ""
    valid: bool = True

    def to_public_dict(self) -> dict[str, Any]:
        """Record summary without the secret in cleartext."""
        return {
            "address": self.address,
            "transport_mode": self.transport_mode.value,
            "display_name": self.display_name,
            "created_at": self.created_at,
            "last_used_at": self.last_used_at,
            "valid": self.valid,
            "client_key": mask_value(self.secret),
        }


class CredentialStore(ABC):
    """Durable mapping from device address to pairing secret.

    `upsert` refreshes last-used and resets validity. `invalidate` keeps the
    secret but excludes it from silent re-authentication.
    """

    @abstractmethod
    def get(self, address: str) -> CredentialRecord | None:
        raise NotImplementedError

    @abstractmethod
    def upsert(
        self,
        address: str,
        secret: str,
        transport_mode: TransportMode,
        display_name: str | None = None,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def invalidate(self, address: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, address: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def most_recent_valid(self) -> CredentialRecord | None:
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> list[CredentialRecord]:
        raise NotImplementedError

    @abstractmethod
    def touch(self, address: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        return None


class MemoryCredentialStore(CredentialStore):
    """Process-local store with the same ordering rules as the SQLite one."""

    def __init__(self) -> None:
        self._records: dict[str, CredentialRecord] = {}
        self._use_seq: dict[str, int] = {}
        self._seq = 0
        self._lock = threading.Lock()

    def _bump(self, address: str) -> None:
        self._seq += 1
        self._use_seq[address] = self._seq

    def get(self, address: str) -> CredentialRecord | None:
        with self._lock:
            record = self._records.get(address)
            return replace(record) if record else None

    def upsert(
        self,
        address: str,
        secret: str,
        transport_mode: TransportMode,
        display_name: str | None = None,
    ) -> None:
        now = utc_now_iso()
        with self._lock:
            existing = self._records.get(address)
            self._records[address] = CredentialRecord(
                address=address,
                secret=secret,
                transport_mode=TransportMode(transport_mode),
                display_name=display_name if display_name is not None else (existing.display_name if existing else None),
                created_at=existing.created_at if existing else now,
                last_used_at=now,
                valid=True,
            )
            self._bump(address)

    def invalidate(self, address: str) -> None:
        with self._lock:
            record = self._records.get(address)
            if record is not None:
                record.valid = False

    def delete(self, address: str) -> bool:
        with self._lock:
            self._use_seq.pop(address, None)
            return self._records.pop(address, None) is not None

    def most_recent_valid(self) -> CredentialRecord | None:
        with self._lock:
            valid = [r for r in self._records.values() if r.valid]
            if not valid:
                return None
            best = max(valid, key=lambda r: self._use_seq.get(r.address, 0))
            return replace(best)

    def list_all(self) -> list[CredentialRecord]:
        with self._lock:
            ordered = sorted(
                self._records.values(),
                key=lambda r: self._use_seq.get(r.address, 0),
                reverse=True,
            )
            return [replace(r) for r in ordered]

    def touch(self, address: str) -> None:
        with self._lock:
            record = self._records.get(address)
            if record is None:
                return
            record.last_used_at = utc_now_iso()
            self._bump(address)
