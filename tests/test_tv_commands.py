from typing import Any

import pytest

from tvremote.commands import COMMON_APPS, TVCommands, first_success
from tvremote.errors import CommandFailed, RequestFailed, RequestTimeout


class _FakeSession:
    def __init__(
        self,
        responses: dict[str, dict[str, Any]] | None = None,
        failures: dict[str, Exception] | None = None,
    ) -> None:
        self.responses = dict(responses or {})
        self.failures = dict(failures or {})
        self.calls: list[tuple[str, dict[str, Any] | None]] = []
        self.buttons: list[str] = []
        self.subscribed: list[str] = []

    async def request(self, uri: str, payload: dict[str, Any] | None = None, *, timeout_s: float | None = None):
        self.calls.append((uri, payload))
        if uri in self.failures:
            raise self.failures[uri]
        return dict(self.responses.get(uri, {"returnValue": True}))

    def subscribe(self, uri: str, callback) -> str:  # type: ignore[no-untyped-def]
        self.subscribed.append(uri)
        return f"sub-{len(self.subscribed)}"

    async def send_button(self, name: str) -> None:
        self.buttons.append(name)


@pytest.mark.asyncio
async def test_volume_commands_send_expected_payloads() -> None:
    session = _FakeSession()
    commands = TVCommands(session)  # type: ignore[arg-type]

    await commands.set_volume(15)
    await commands.mute(False)
    await commands.volume_up()

    assert session.calls == [
        ("ssap://audio/setVolume", {"volume": 15}),
        ("ssap://audio/setMute", {"mute": False}),
        ("ssap://audio/volumeUp", None),
    ]
    with pytest.raises(ValueError):
        await commands.set_volume(101)


@pytest.mark.asyncio
async def test_list_apps_returns_launch_points() -> None:
    session = _FakeSession(
        responses={
            "ssap://com.webos.applicationManager/listLaunchPoints": {
                "returnValue": True,
                "launchPoints": [{"id": "netflix", "title": "Netflix"}],
            }
        }
    )

    apps = await TVCommands(session).list_apps()  # type: ignore[arg-type]

    assert apps == [{"id": "netflix", "title": "Netflix"}]


@pytest.mark.asyncio
async def test_list_apps_falls_back_to_catalog_on_permission_error() -> None:
    session = _FakeSession(
        failures={
            "ssap://com.webos.applicationManager/listLaunchPoints": RequestFailed("401 insufficient permissions")
        }
    )

    apps = await TVCommands(session).list_apps()  # type: ignore[arg-type]

    assert len(apps) == len(COMMON_APPS)
    assert {"id": "youtube.leanback.v4", "title": "YouTube"} in apps


@pytest.mark.asyncio
async def test_list_apps_propagates_other_errors() -> None:
    session = _FakeSession(
        failures={"ssap://com.webos.applicationManager/listLaunchPoints": CommandFailed("service busy")}
    )

    with pytest.raises(CommandFailed):
        await TVCommands(session).list_apps()  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_list_running_apps_tries_endpoints_in_order() -> None:
    session = _FakeSession(
        responses={"ssap://com.webos.applicationManager/listApps": {"returnValue": True, "apps": [{"id": "plex"}]}},
        failures={"ssap://com.webos.service.applicationmanager/listRunningApps": RequestFailed("404 no such service")},
    )

    apps = await TVCommands(session).list_running_apps()  # type: ignore[arg-type]

    assert apps == [{"id": "plex"}]
    assert [uri for uri, _ in session.calls] == [
        "ssap://com.webos.service.applicationmanager/listRunningApps",
        "ssap://com.webos.applicationManager/listApps",
    ]


@pytest.mark.asyncio
async def test_list_running_apps_returns_empty_when_everything_fails() -> None:
    session = _FakeSession(
        failures={
            "ssap://com.webos.service.applicationmanager/listRunningApps": RequestFailed("404"),
            "ssap://com.webos.applicationManager/listApps": RequestTimeout("slow"),
        }
    )

    assert await TVCommands(session).list_running_apps() == []  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_search_content_falls_back_to_search_app() -> None:
    session = _FakeSession(failures={"ssap://com.webos.service.search/search": CommandFailed("unsupported")})

    await TVCommands(session).search_content("news")  # type: ignore[arg-type]

    assert session.calls[-1] == (
        "ssap://system.launcher/launch",
        {"id": "com.webos.app.search", "params": {"query": "news"}},
    )


@pytest.mark.asyncio
async def test_search_content_timeout_is_not_masked() -> None:
    session = _FakeSession(failures={"ssap://com.webos.service.search/search": RequestTimeout("slow")})

    with pytest.raises(RequestTimeout):
        await TVCommands(session).search_content("news")  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_search_apps_and_channels_filter_results() -> None:
    session = _FakeSession(
        responses={
            "ssap://com.webos.applicationManager/listLaunchPoints": {
                "launchPoints": [{"id": "netflix", "title": "Netflix"}, {"id": "hulu", "title": "Hulu"}]
            },
            "ssap://tv/getChannelList": {
                "channelList": [
                    {"channelName": "BBC One", "channelNumber": "1"},
                    {"channelName": "Arte", "channelNumber": "12"},
                ]
            },
        }
    )
    commands = TVCommands(session)  # type: ignore[arg-type]

    assert [a["id"] for a in await commands.search_apps("NET")] == ["netflix"]
    assert [c["channelName"] for c in await commands.search_channels("bbc")] == ["BBC One"]
    assert [c["channelName"] for c in await commands.search_channels("12")] == ["Arte"]


@pytest.mark.asyncio
async def test_remote_actions_map_to_buttons() -> None:
    session = _FakeSession()
    commands = TVCommands(session)  # type: ignore[arg-type]

    await commands.press("ok")
    await commands.press("Back")

    assert session.buttons == ["ENTER", "BACK"]
    with pytest.raises(ValueError):
        await commands.press("jump")


@pytest.mark.asyncio
async def test_launch_and_notify_payloads_skip_empty_fields() -> None:
    session = _FakeSession(
        responses={"ssap://com.webos.applicationManager/getForegroundAppInfo": {"appId": "netflix"}}
    )
    commands = TVCommands(session)  # type: ignore[arg-type]

    await commands.launch_app("netflix")
    await commands.notify("hello")
    current = await commands.get_current_app()

    assert session.calls[0] == ("ssap://system.launcher/launch", {"id": "netflix"})
    assert session.calls[1] == ("ssap://system.notifications/createToast", {"message": "hello"})
    assert current == "netflix"


def test_subscription_helpers_use_session_subscribe() -> None:
    session = _FakeSession()
    commands = TVCommands(session)  # type: ignore[arg-type]

    commands.subscribe_volume(lambda payload: None)
    commands.subscribe_current_channel(lambda payload: None)

    assert session.subscribed == ["ssap://audio/getVolume", "ssap://tv/getCurrentChannel"]


@pytest.mark.asyncio
async def test_first_success_requires_candidates() -> None:
    with pytest.raises(ValueError):
        await first_success([])
