import json
import socket

import pytest
from websockets.asyncio.server import serve

from tvremote.errors import TransportError
from tvremote.protocol import TransportMode
from tvremote.session import AuthState, DeviceSession
from tvremote.transport import open_websocket


async def _tv_handler(ws) -> None:  # type: ignore[no-untyped-def]
    async for raw in ws:
        frame = json.loads(raw)
        if frame["type"] == "register":
            await ws.send(
                json.dumps({"type": "registered", "id": frame["id"], "payload": {"client-key": "issued-key"}})
            )
        elif frame["type"] == "request":
            await ws.send(
                json.dumps(
                    {
                        "type": "response",
                        "id": frame["id"],
                        "payload": {"returnValue": True, "uri": frame["uri"]},
                    }
                )
            )


def _unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


@pytest.mark.asyncio
async def test_session_over_real_websocket() -> None:
    async with serve(_tv_handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        session = DeviceSession(
            "127.0.0.1",
            transport_mode=TransportMode.INSECURE,
            insecure_port=port,
            connector=open_websocket,
        )
        assert session.url == f"ws://127.0.0.1:{port}/"

        await session.connect(timeout_s=2.0)
        assert await session.authenticate() == AuthState.AUTHENTICATED
        result = await session.request("ssap://audio/getVolume")
        await session.disconnect()

    assert session.client_key == "issued-key"
    assert result["uri"] == "ssap://audio/getVolume"


@pytest.mark.asyncio
async def test_refused_connection_is_transport_error() -> None:
    with pytest.raises(TransportError):
        await open_websocket(f"ws://127.0.0.1:{_unused_port()}/", timeout_s=2.0)


@pytest.mark.asyncio
async def test_closed_transport_rejects_sends() -> None:
    async with serve(_tv_handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        transport = await open_websocket(f"ws://127.0.0.1:{port}/", timeout_s=2.0)
        await transport.close()

        assert transport.closed
        with pytest.raises(TransportError):
            await transport.send("{}")
