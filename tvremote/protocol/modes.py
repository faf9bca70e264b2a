"""Transport security modes for reaching a device."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from tvremote.errors import InvalidTransportMode


class TransportMode(StrEnum):
    """WebSocket scheme/port pair used to reach one device."""

    SECURE = "secure"
    INSECURE = "insecure"

    @property
    def scheme(self) -> str:
        return "wss" if self is TransportMode.SECURE else "ws"

    @classmethod
    def parse(cls, value: Any) -> "TransportMode | None":
        """Accept enum, bool or string; `None`/`auto` mean auto-detect."""
        if value is None or isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.SECURE if value else cls.INSECURE
        text = str(value).strip().lower()
        if text in {"", "auto"}:
            return None
        if text in {"secure", "wss", "tls", "true", "1"}:
            return cls.SECURE
        if text in {"insecure", "ws", "plain", "false", "0"}:
            return cls.INSECURE
        raise InvalidTransportMode(f"unknown transport mode: {value!r}")


def device_url(address: str, mode: TransportMode, *, secure_port: int = 3001, insecure_port: int = 3000) -> str:
    port = secure_port if mode is TransportMode.SECURE else insecure_port
    return f"{mode.scheme}://{address}:{port}/"
