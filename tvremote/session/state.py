"""State records held by device sessions and the orchestrator."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from tvremote.protocol.modes import TransportMode

if TYPE_CHECKING:
    from tvremote.session.device_session import DeviceSession


def _now_ms() -> int:
    return int(time.time() * 1000)


class AuthState(StrEnum):
    """Authentication state of one device session."""

    DISCONNECTED = "disconnected"
    UNAUTHENTICATED = "unauthenticated"
    AWAITING_PIN = "awaiting_pin"
    AWAITING_PROMPT = "awaiting_prompt"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"
    CLOSED = "closed"


SubscriptionCallback = Callable[[dict[str, Any]], Any]


@dataclass(slots=True)
class InFlightRequest:
    """A request waiting for its correlated response frame."""

    msg_id: str
    uri: str
    future: asyncio.Future
    created_at_ms: int = field(default_factory=_now_ms)

    def resolve(self, result: dict[str, Any]) -> bool:
        if self.future.done():
            return False
        self.future.set_result(result)
        return True

    def fail(self, exc: BaseException) -> bool:
        if self.future.done():
            return False
        self.future.set_exception(exc)
        return True


@dataclass(slots=True)
class SubscriptionHandle:
    """Long-lived registration for push events on one URI."""

    msg_id: str
    uri: str
    callback: SubscriptionCallback
    created_at_ms: int = field(default_factory=_now_ms)
    events: int = 0


@dataclass(slots=True)
class PendingPairing:
    """A PIN pairing between "PIN displayed" and "PIN submitted"."""

    address: str
    session: "DeviceSession"
    transport_mode: TransportMode
    created_at_ms: int = field(default_factory=_now_ms)
