"""Socket transports used by device sessions."""

from tvremote.transport.base import Connector, DeviceTransport
from tvremote.transport.mock import MockTV, MockTVTransport
from tvremote.transport.websocket import WebSocketTransport, insecure_ssl_context, open_websocket

__all__ = [
    "Connector",
    "DeviceTransport",
    "MockTV",
    "MockTVTransport",
    "WebSocketTransport",
    "insecure_ssl_context",
    "open_websocket",
]
