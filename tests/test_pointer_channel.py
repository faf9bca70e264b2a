import asyncio

import pytest

from tvremote.errors import CommandFailed, NotConnected
from tvremote.protocol import POINTER_SOCKET_URI
from tvremote.session import DeviceSession
from tvremote.transport import MockTV
from tvremote.transport.mock import MockTVTransport


async def _session(tv: MockTV) -> DeviceSession:
    tv.valid_keys.add("k")
    session = DeviceSession(tv.address, client_key="k", connector=tv.connect)
    await session.connect()
    await session.authenticate(allow_pairing=False)
    return session


def _pointer_requests(tv: MockTV) -> int:
    return sum(1 for r in tv.requests if r.get("uri") == POINTER_SOCKET_URI)


@pytest.mark.asyncio
async def test_buttons_reuse_one_pointer_socket() -> None:
    tv = MockTV()
    session = await _session(tv)

    await session.send_button("up")
    await session.send_button("ENTER")

    assert tv.buttons == ["UP", "ENTER"]
    assert _pointer_requests(tv) == 1
    pointer = [t for t in tv.transports if t.is_pointer]
    assert len(pointer) == 1
    assert pointer[0].url.startswith("wss://10.0.0.5:3001/resources/")
    await session.disconnect()


@pytest.mark.asyncio
async def test_pointer_socket_closes_with_session() -> None:
    tv = MockTV()
    session = await _session(tv)
    await session.send_button("home")
    pointer = [t for t in tv.transports if t.is_pointer][0]

    await session.disconnect()

    assert pointer.closed
    assert not session.pointer.is_open


@pytest.mark.asyncio
async def test_dropped_pointer_socket_is_reopened() -> None:
    tv = MockTV()
    session = await _session(tv)
    await session.send_button("left")
    await [t for t in tv.transports if t.is_pointer][0].close()

    await session.send_button("right")

    assert tv.buttons == ["LEFT", "RIGHT"]
    assert _pointer_requests(tv) == 2
    await session.disconnect()


@pytest.mark.asyncio
async def test_missing_socket_path_is_a_command_failure() -> None:
    tv = MockTV(responses={POINTER_SOCKET_URI: {"returnValue": True}})
    session = await _session(tv)

    with pytest.raises(CommandFailed):
        await session.send_button("back")
    assert not session.pointer.is_open
    await session.disconnect()


@pytest.mark.asyncio
async def test_disconnect_while_pointer_opens_closes_the_new_socket() -> None:
    tv = MockTV()
    tv.valid_keys.add("k")
    opening = asyncio.Event()
    release = asyncio.Event()
    opened: list[MockTVTransport] = []

    async def slow_connector(url: str, *, timeout_s: float = 10.0) -> MockTVTransport:
        transport = await tv.connect(url, timeout_s=timeout_s)
        if transport.is_pointer:
            opened.append(transport)
            opening.set()
            await release.wait()
        return transport

    session = DeviceSession(tv.address, client_key="k", connector=slow_connector)
    await session.connect()
    await session.authenticate(allow_pairing=False)

    press = asyncio.create_task(session.send_button("up"))
    await opening.wait()
    await session.disconnect()
    release.set()

    with pytest.raises(NotConnected):
        await press
    assert opened[0].closed
    assert not session.pointer.is_open
    assert tv.buttons == []
