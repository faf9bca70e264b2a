"""Error taxonomy for device sessions and the orchestrator."""

from __future__ import annotations

from typing import Any


class TVRemoteError(Exception):
    """Base class; `code` is a stable machine-readable identifier."""

    code: str = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code.replace("_", " "))
        self.message = message or self.code.replace("_", " ")

    def to_result(self, **extra: Any) -> dict[str, Any]:
        result: dict[str, Any] = {"success": False, "code": self.code, "error": self.message}
        result.update(extra)
        return result


class ConnectTimeout(TVRemoteError):
    code = "connect_timeout"


class TransportError(TVRemoteError):
    """Socket-level failure (refused, TLS, closed before handshake, dropped)."""

    code = "transport_error"


class NotConnected(TransportError):
    code = "not_connected"


class PairingTimeout(TVRemoteError):
    code = "pairing_timeout"


class PairingFailed(TVRemoteError):
    """Fresh pairing was refused by the device."""

    code = "pairing_failed"


class InvalidPIN(PairingFailed):
    code = "invalid_pin"


class CredentialRejected(TVRemoteError):
    """The device no longer trusts a stored pairing secret."""

    code = "credential_rejected"


class RequestTimeout(TVRemoteError):
    code = "request_timeout"


class RequestFailed(TVRemoteError):
    """Transport-level error frame for a request."""

    code = "request_failed"


class CommandFailed(TVRemoteError):
    """Device reported `returnValue: false` for a request."""

    code = "command_failed"


class Cancelled(TVRemoteError):
    """Outstanding request was abandoned by a session-level disconnect."""

    code = "cancelled"


class NoStoredDevice(TVRemoteError):
    code = "no_stored_device"


class NoPendingPairing(TVRemoteError):
    code = "no_pending_pairing"


class InvalidTransportMode(TVRemoteError, ValueError):
    code = "invalid_transport_mode"
