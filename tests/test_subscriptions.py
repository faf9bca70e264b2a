import asyncio
from typing import Any

import pytest

from tvremote.session import DeviceSession
from tvremote.transport import MockTV

VOLUME_URI = "ssap://audio/getVolume"


async def _wait_until(predicate, timeout: float = 1.0) -> None:  # type: ignore[no-untyped-def]
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


async def _session(tv: MockTV) -> DeviceSession:
    tv.valid_keys.add("k")
    session = DeviceSession(tv.address, client_key="k", connector=tv.connect)
    await session.connect()
    await session.authenticate(allow_pairing=False)
    return session


@pytest.mark.asyncio
async def test_callback_fires_once_per_event_until_unsubscribed() -> None:
    tv = MockTV()
    session = await _session(tv)
    events: list[dict[str, Any]] = []

    sub_id = session.subscribe(VOLUME_URI, events.append)
    await _wait_until(lambda: sub_id in tv.subscriptions)
    for level in (3, 4, 5):
        await tv.push_event(VOLUME_URI, {"volume": level})
    await _wait_until(lambda: len(events) == 3)

    assert [e["volume"] for e in events] == [3, 4, 5]
    assert session.subscriptions()[0]["events"] == 3

    assert session.unsubscribe(sub_id) is True
    await _wait_until(lambda: sub_id in tv.unsubscribed)
    # The device may keep pushing on the old id.
    await tv.push_raw({"type": "response", "id": sub_id, "payload": {"volume": 9}})
    await asyncio.sleep(0.05)

    assert len(events) == 3
    assert session.unsubscribe(sub_id) is False
    await session.disconnect()


@pytest.mark.asyncio
async def test_failing_callback_does_not_break_the_read_loop() -> None:
    tv = MockTV()
    session = await _session(tv)
    calls: list[int] = []

    def explode(payload: dict[str, Any]) -> None:
        calls.append(payload["volume"])
        raise RuntimeError("boom")

    sub_id = session.subscribe(VOLUME_URI, explode)
    await _wait_until(lambda: sub_id in tv.subscriptions)
    await tv.push_event(VOLUME_URI, {"volume": 1})
    await tv.push_event(VOLUME_URI, {"volume": 2})
    await _wait_until(lambda: len(calls) == 2)

    result = await session.request("ssap://audio/volumeUp")
    assert result["returnValue"] is True
    await session.disconnect()


@pytest.mark.asyncio
async def test_async_callbacks_are_awaited() -> None:
    tv = MockTV()
    session = await _session(tv)
    seen: list[str] = []

    async def on_app(payload: dict[str, Any]) -> None:
        await asyncio.sleep(0)
        seen.append(payload["appId"])

    uri = "ssap://com.webos.applicationManager/getForegroundAppInfo"
    sub_id = session.subscribe(uri, on_app)
    await _wait_until(lambda: sub_id in tv.subscriptions)
    await tv.push_event(uri, {"appId": "netflix"})
    await _wait_until(lambda: seen == ["netflix"])
    await session.disconnect()


@pytest.mark.asyncio
async def test_subscriptions_and_requests_share_the_id_space() -> None:
    tv = MockTV()
    session = await _session(tv)
    events: list[dict[str, Any]] = []

    sub_id = session.subscribe(VOLUME_URI, events.append)
    await _wait_until(lambda: sub_id in tv.subscriptions)
    result = await session.request(VOLUME_URI)

    assert result == {"returnValue": True}
    assert tv.requests[-1]["id"] != sub_id
    assert events == []
    await session.disconnect()


@pytest.mark.asyncio
async def test_disconnect_drops_subscriptions() -> None:
    tv = MockTV()
    session = await _session(tv)
    session.subscribe(VOLUME_URI, lambda payload: None)

    await session.disconnect()

    assert session.subscription_count == 0
