"""WebSocket client transport for TV control and pointer sockets."""

from __future__ import annotations

import asyncio
import ssl
from collections.abc import AsyncIterator

from loguru import logger
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from tvremote.errors import ConnectTimeout, TransportError
from tvremote.transport.base import DeviceTransport


def insecure_ssl_context() -> ssl.SSLContext:
    """TLS context accepting the self-signed certificates TVs ship with."""
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


class WebSocketTransport(DeviceTransport):
    """Thin wrapper over a `websockets` client connection."""

    name = "websocket"

    def __init__(self, ws: ClientConnection, url: str) -> None:
        self._ws = ws
        self.url = url
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, text: str) -> None:
        if self._closed:
            raise TransportError(f"Socket to {self.url} is closed")
        try:
            await self._ws.send(text)
        except ConnectionClosed as e:
            self._closed = True
            raise TransportError(f"Socket to {self.url} closed: {e}") from e

    async def recv_frames(self) -> AsyncIterator[str]:
        try:
            async for message in self._ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                yield message
        except ConnectionClosed as e:
            logger.debug(f"Socket {self.url} closed: {e}")
        finally:
            self._closed = True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._ws.close()
        except Exception as e:
            logger.debug(f"Ignoring close error for {self.url}: {e}")


async def open_websocket(url: str, *, timeout_s: float = 10.0) -> WebSocketTransport:
    """Open a socket, failing with ConnectTimeout or TransportError."""
    ssl_ctx = insecure_ssl_context() if url.startswith("wss://") else None
    try:
        ws = await asyncio.wait_for(
            connect(
                url,
                ssl=ssl_ctx,
                open_timeout=None,
                ping_interval=None,
                max_size=None,
            ),
            timeout=timeout_s,
        )
    except asyncio.TimeoutError as e:
        raise ConnectTimeout(f"Connection timeout after {timeout_s:g} seconds: {url}") from e
    except (OSError, InvalidHandshake, InvalidURI) as e:
        raise TransportError(f"Failed to connect to {url}: {e}") from e
    return WebSocketTransport(ws, url)
