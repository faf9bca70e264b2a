"""High-level TV command vocabulary built on one authenticated session."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any

from loguru import logger

from tvremote.errors import CommandFailed, RequestFailed, TVRemoteError

if TYPE_CHECKING:
    from tvremote.session.device_session import DeviceSession
    from tvremote.session.state import SubscriptionCallback

Candidate = Callable[[], Awaitable[Any]]
FallbackPredicate = Callable[[TVRemoteError], bool]

LAUNCHER_URI = "ssap://system.launcher/launch"
FOREGROUND_APP_URI = "ssap://com.webos.applicationManager/getForegroundAppInfo"
VOLUME_URI = "ssap://audio/getVolume"
CURRENT_CHANNEL_URI = "ssap://tv/getCurrentChannel"
SEARCH_APP_ID = "com.webos.app.search"

AUDIO_OUTPUTS = ("tv_speaker", "external_speaker", "soundbar", "bt_soundbar")

REMOTE_ACTIONS: dict[str, str] = {
    "up": "UP",
    "down": "DOWN",
    "left": "LEFT",
    "right": "RIGHT",
    "ok": "ENTER",
    "back": "BACK",
    "home": "HOME",
}

COMMON_APPS: tuple[dict[str, str], ...] = (
    {"id": "com.webos.app.livetv", "title": "Live TV"},
    {"id": "youtube.leanback.v4", "title": "YouTube"},
    {"id": "com.webos.app.hdmi1", "title": "HDMI 1"},
    {"id": "com.webos.app.hdmi2", "title": "HDMI 2"},
    {"id": "com.webos.app.hdmi3", "title": "HDMI 3"},
    {"id": "com.webos.app.hdmi4", "title": "HDMI 4"},
    {"id": "netflix", "title": "Netflix"},
    {"id": "amazon", "title": "Amazon Prime Video"},
    {"id": "com.webos.app.browser", "title": "Web Browser"},
    {"id": "spotify-beehive", "title": "Spotify"},
    {"id": "com.webos.app.photovideo", "title": "Photos & Videos"},
    {"id": "com.webos.app.music", "title": "Music"},
    {"id": "com.webos.app.discovery", "title": "LG Content Store"},
    {"id": "com.webos.app.screenshare", "title": "Screen Share"},
    {"id": "com.webos.app.smartshare", "title": "Smart Share"},
    {"id": "com.webos.app.notificationcenter", "title": "Notifications"},
    {"id": "com.webos.app.connectionwizard", "title": "Connection Wizard"},
    {"id": SEARCH_APP_ID, "title": "Search"},
    {"id": "Disney+", "title": "Disney Plus"},
    {"id": "hulu", "title": "Hulu"},
    {"id": "com.webos.app.appletvplus", "title": "Apple TV+"},
    {"id": "plex", "title": "Plex"},
)


def is_permission_error(exc: TVRemoteError) -> bool:
    text = exc.message.lower()
    return "401" in text or "insufficient" in text


def is_device_error(exc: TVRemoteError) -> bool:
    return isinstance(exc, (CommandFailed, RequestFailed))


def any_error(exc: TVRemoteError) -> bool:
    return True


async def first_success(
    candidates: Sequence[Candidate],
    *,
    fallback_when: FallbackPredicate = is_device_error,
    label: str = "command",
) -> Any:
    """Run candidates in order until one succeeds.

    A failure moves on to the next candidate only when `fallback_when`
    accepts it; otherwise it propagates. The last candidate's failure always
    propagates.
    """
    if not candidates:
        raise ValueError("at least one candidate is required")
    last = len(candidates) - 1
    for index, candidate in enumerate(candidates):
        try:
            return await candidate()
        except TVRemoteError as e:
            if index == last or not fallback_when(e):
                raise
            logger.warning(f"{label} candidate {index + 1} failed, trying next: {e}")
    raise AssertionError("unreachable")


class TVCommands:
    """Command wrappers over `DeviceSession.request/subscribe/send_button`."""

    def __init__(self, session: "DeviceSession") -> None:
        self.session = session

    async def _call(self, uri: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self.session.request(uri, payload)

    # Audio

    async def volume_up(self) -> dict[str, Any]:
        return await self._call("ssap://audio/volumeUp")

    async def volume_down(self) -> dict[str, Any]:
        return await self._call("ssap://audio/volumeDown")

    async def set_volume(self, volume: int) -> dict[str, Any]:
        level = int(volume)
        if level < 0 or level > 100:
            raise ValueError("volume must be between 0 and 100")
        return await self._call("ssap://audio/setVolume", {"volume": level})

    async def get_volume(self) -> dict[str, Any]:
        return await self._call(VOLUME_URI)

    async def mute(self, mute: bool = True) -> dict[str, Any]:
        return await self._call("ssap://audio/setMute", {"mute": bool(mute)})

    async def get_audio_output(self) -> dict[str, Any]:
        return await self._call("ssap://audio/getSoundOutput")

    async def set_audio_output(self, output: str) -> dict[str, Any]:
        return await self._call("ssap://audio/changeSoundOutput", {"output": output})

    # Media

    async def play(self) -> dict[str, Any]:
        return await self._call("ssap://media.controls/play")

    async def pause(self) -> dict[str, Any]:
        return await self._call("ssap://media.controls/pause")

    async def stop(self) -> dict[str, Any]:
        return await self._call("ssap://media.controls/stop")

    async def rewind(self) -> dict[str, Any]:
        return await self._call("ssap://media.controls/rewind")

    async def fast_forward(self) -> dict[str, Any]:
        return await self._call("ssap://media.controls/fastForward")

    # System

    async def power_off(self) -> dict[str, Any]:
        return await self._call("ssap://system/turnOff")

    async def screen_off(self) -> dict[str, Any]:
        return await self._call(
            "ssap://com.webos.service.tvpower/power/turnOffScreen", {"standbyMode": "active"}
        )

    async def screen_on(self) -> dict[str, Any]:
        return await self._call(
            "ssap://com.webos.service.tvpower/power/turnOnScreen", {"standbyMode": "active"}
        )

    async def get_system_info(self) -> dict[str, Any]:
        return await self._call("ssap://com.webos.service.update/getCurrentSWInformation")

    async def notify(
        self,
        message: str,
        icon_data: str | None = None,
        icon_extension: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": message}
        if icon_data:
            payload["iconData"] = icon_data
            payload["iconExtension"] = icon_extension or "png"
        return await self._call("ssap://system.notifications/createToast", payload)

    # Applications

    async def list_apps(self) -> list[dict[str, Any]]:
        """Installed launch points, or the common-app catalog when not permitted."""

        async def launch_points() -> list[dict[str, Any]]:
            result = await self._call("ssap://com.webos.applicationManager/listLaunchPoints")
            return list(result.get("launchPoints") or [])

        async def catalog() -> list[dict[str, Any]]:
            logger.warning("Insufficient permissions for listLaunchPoints, returning common apps")
            return self.common_apps()

        return await first_success(
            [launch_points, catalog],
            fallback_when=is_permission_error,
            label="list_apps",
        )

    async def list_running_apps(self) -> list[dict[str, Any]]:
        async def running() -> list[dict[str, Any]]:
            result = await self._call("ssap://com.webos.service.applicationmanager/listRunningApps")
            return list(result.get("running") or [])

        async def all_apps() -> list[dict[str, Any]]:
            result = await self._call("ssap://com.webos.applicationManager/listApps")
            return list(result.get("apps") or [])

        async def nothing() -> list[dict[str, Any]]:
            return []

        return await first_success(
            [running, all_apps, nothing],
            fallback_when=any_error,
            label="list_running_apps",
        )

    @staticmethod
    def common_apps() -> list[dict[str, Any]]:
        return [dict(app) for app in COMMON_APPS]

    async def launch_app(
        self,
        app_id: str,
        content_id: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": app_id}
        if content_id:
            payload["contentId"] = content_id
        if params:
            payload["params"] = params
        return await self._call(LAUNCHER_URI, payload)

    async def get_current_app(self) -> str:
        result = await self._call(FOREGROUND_APP_URI)
        return str(result.get("appId") or "")

    async def close_app(self, app_info: dict[str, Any]) -> dict[str, Any]:
        return await self._call("ssap://system.launcher/close", dict(app_info))

    # Channels

    async def channel_up(self) -> dict[str, Any]:
        return await self._call("ssap://tv/channelUp")

    async def channel_down(self) -> dict[str, Any]:
        return await self._call("ssap://tv/channelDown")

    async def set_channel(self, channel_id: str) -> dict[str, Any]:
        return await self._call("ssap://tv/openChannel", {"channelId": channel_id})

    async def get_current_channel(self) -> dict[str, Any]:
        return await self._call(CURRENT_CHANNEL_URI)

    async def get_channel_list(self) -> dict[str, Any]:
        return await self._call("ssap://tv/getChannelList")

    async def get_current_program(self) -> dict[str, Any]:
        return await self._call("ssap://tv/getChannelProgramInfo")

    # Inputs

    async def list_inputs(self) -> list[dict[str, Any]]:
        result = await self._call("ssap://tv/getExternalInputList")
        return list(result.get("devices") or [])

    async def set_input(self, input_id: str) -> dict[str, Any]:
        return await self._call("ssap://tv/switchInput", {"inputId": input_id})

    # Text input

    async def type_text(self, text: str) -> dict[str, Any]:
        return await self._call("ssap://com.webos.service.ime/insertText", {"text": text, "replace": 0})

    async def delete_characters(self, count: int) -> dict[str, Any]:
        return await self._call("ssap://com.webos.service.ime/deleteCharacters", {"count": int(count)})

    async def send_enter(self) -> dict[str, Any]:
        return await self._call("ssap://com.webos.service.ime/sendEnterKey")

    # Subscriptions

    def subscribe_volume(self, callback: "SubscriptionCallback") -> str:
        return self.session.subscribe(VOLUME_URI, callback)

    def subscribe_current_app(self, callback: "SubscriptionCallback") -> str:
        return self.session.subscribe(FOREGROUND_APP_URI, callback)

    def subscribe_current_channel(self, callback: "SubscriptionCallback") -> str:
        return self.session.subscribe(CURRENT_CHANNEL_URI, callback)

    # Search

    async def open_search(self, query: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": SEARCH_APP_ID}
        if query:
            payload["params"] = {"query": query}
        return await self._call(LAUNCHER_URI, payload)

    async def search_content(self, query: str) -> dict[str, Any]:
        async def device_search() -> dict[str, Any]:
            return await self._call("ssap://com.webos.service.search/search", {"query": query})

        async def search_app() -> dict[str, Any]:
            return await self.open_search(query)

        return await first_success(
            [device_search, search_app],
            fallback_when=is_device_error,
            label="search_content",
        )

    async def search_apps(self, query: str) -> list[dict[str, Any]]:
        needle = query.lower()
        return [
            app
            for app in await self.list_apps()
            if needle in str(app.get("title") or "").lower() or needle in str(app.get("id") or "").lower()
        ]

    async def search_channels(self, query: str) -> list[dict[str, Any]]:
        result = await self.get_channel_list()
        needle = query.lower()
        return [
            channel
            for channel in list(result.get("channelList") or [])
            if needle in str(channel.get("channelName") or "").lower()
            or query in str(channel.get("channelNumber") or "")
        ]

    # Remote navigation

    async def press(self, action: str) -> None:
        key = str(action or "").strip().lower()
        button = REMOTE_ACTIONS.get(key)
        if button is None:
            raise ValueError(f"Unknown remote action: {action}")
        await self.session.send_button(button)

    async def button(self, name: str) -> None:
        await self.session.send_button(name)
