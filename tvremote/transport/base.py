"""Transport contract shared by the real WebSocket client and the simulator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable


class DeviceTransport(ABC):
    """One open text-frame socket to a device endpoint."""

    name: str = "base"

    @abstractmethod
    async def send(self, text: str) -> None:
        """Send one text frame; raises TransportError when the socket is gone."""

    @abstractmethod
    def recv_frames(self) -> AsyncIterator[str]:
        """Yield inbound text frames in arrival order until the socket closes."""

    @abstractmethod
    async def close(self) -> None:
        """Close the socket. Safe to call more than once."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once the socket can no longer carry frames."""


# connector(url, timeout_s=...) -> open transport; raises ConnectTimeout/TransportError
Connector = Callable[..., Awaitable[DeviceTransport]]
