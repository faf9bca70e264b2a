"""Secondary pointer/button socket opened on demand from the control session."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from tvremote.errors import CommandFailed, NotConnected, TransportError
from tvremote.protocol import POINTER_SOCKET_URI, button_frame
from tvremote.transport.base import Connector, DeviceTransport


RequestFn = Callable[[str], Awaitable[dict[str, Any]]]


class PointerInputChannel:
    """Lazily opened, cached button channel; closed with its session."""

    def __init__(
        self,
        *,
        request: RequestFn,
        connector: Connector,
        connect_timeout_s: float = 5.0,
    ) -> None:
        self._request = request
        self._connector = connector
        self.connect_timeout_s = connect_timeout_s
        self.socket_path: str | None = None
        self._transport: DeviceTransport | None = None
        self._lock = asyncio.Lock()
        self._generation = 0

    @property
    def is_open(self) -> bool:
        return self._transport is not None and not self._transport.closed

    async def ensure_open(self) -> str:
        async with self._lock:
            if self.is_open and self.socket_path:
                return self.socket_path
            self._transport = None
            generation = self._generation
            response = await self._request(POINTER_SOCKET_URI)
            path = str(response.get("socketPath") or "").strip()
            if not path:
                raise CommandFailed("No pointer socket path returned")
            transport = await self._connector(path, timeout_s=self.connect_timeout_s)
            if generation != self._generation:
                # channel was closed while the socket was opening
                await transport.close()
                raise NotConnected("Pointer channel closed while connecting")
            self._transport = transport
            self.socket_path = path
            logger.info("Pointer input socket connected")
            return path

    async def send_button(self, name: str) -> None:
        await self.ensure_open()
        transport = self._transport
        if transport is None or transport.closed:
            raise TransportError("Pointer socket not connected")
        try:
            await transport.send(button_frame(name))
        except TransportError:
            self._transport = None
            self.socket_path = None
            raise
        logger.debug(f"Button pressed: {str(name).upper()}")

    async def close(self) -> None:
        self._generation += 1
        transport = self._transport
        self._transport = None
        self.socket_path = None
        if transport is not None:
            await transport.close()
