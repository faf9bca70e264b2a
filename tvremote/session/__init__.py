"""Device sessions and the orchestrator that owns the current one."""

from tvremote.session.device_session import DeviceSession
from tvremote.session.orchestrator import SessionOrchestrator
from tvremote.session.pointer import PointerInputChannel
from tvremote.session.state import AuthState, InFlightRequest, PendingPairing, SubscriptionHandle

__all__ = [
    "AuthState",
    "DeviceSession",
    "InFlightRequest",
    "PendingPairing",
    "PointerInputChannel",
    "SessionOrchestrator",
    "SubscriptionHandle",
]
