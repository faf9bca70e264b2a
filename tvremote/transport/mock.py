"""In-memory TV simulator used for local simulation and tests."""

from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import AsyncIterator, Callable
from typing import Any
from urllib.parse import urlparse

from tvremote.errors import ConnectTimeout, TransportError
from tvremote.protocol.envelope import POINTER_SOCKET_URI, SET_PIN_URI
from tvremote.transport.base import DeviceTransport

_SENTINEL = object()

ResponseSpec = dict[str, Any] | Callable[[dict[str, Any]], dict[str, Any]]


class MockTVTransport(DeviceTransport):
    """Queue-backed socket whose far end is a `MockTV`."""

    name = "mock"

    def __init__(self, device: "MockTV", url: str) -> None:
        self.device = device
        self.url = url
        self.sent: list[str] = []
        self.authenticated = False
        self.register_id = ""
        self._closed = False
        self._inbound: asyncio.Queue[str | object] = asyncio.Queue()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_pointer(self) -> bool:
        return urlparse(self.url).path.startswith("/resources/")

    async def send(self, text: str) -> None:
        if self._closed:
            raise TransportError(f"Socket to {self.url} is closed")
        self.sent.append(text)
        await self.device.handle_frame(self, text)

    async def recv_frames(self) -> AsyncIterator[str]:
        while not self._closed:
            item = await self._inbound.get()
            if item is _SENTINEL:
                break
            yield item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._inbound.put(_SENTINEL)

    async def push(self, frame: dict[str, Any]) -> None:
        """Deliver one frame from the device to the client."""
        if self._closed:
            return
        await self._inbound.put(json.dumps(frame))

    def sent_frames(self) -> list[dict[str, Any]]:
        output: list[dict[str, Any]] = []
        for text in self.sent:
            try:
                output.append(json.loads(text))
            except json.JSONDecodeError:
                output.append({"raw": text})
        return output


class MockTV:
    """Scripted webOS device speaking the register/request/subscribe protocol.

    `pairing_mode` is "pin" or "prompt". Unknown client keys are rejected with
    an error frame when `reject_unknown_keys` is set, otherwise the device
    falls back to asking for pairing.
    """

    def __init__(
        self,
        address: str = "10.0.0.5",
        *,
        pin: str = "123456",
        pairing_mode: str = "pin",
        valid_keys: set[str] | None = None,
        reject_unknown_keys: bool = True,
        auto_accept_prompt: bool = True,
        secure_available: bool = True,
        insecure_available: bool = True,
        hang_on_connect: bool = False,
        responses: dict[str, ResponseSpec] | None = None,
    ) -> None:
        self.address = address
        self.pin = pin
        self.pairing_mode = pairing_mode
        self.valid_keys: set[str] = set(valid_keys or set())
        self.reject_unknown_keys = reject_unknown_keys
        self.auto_accept_prompt = auto_accept_prompt
        self.secure_available = secure_available
        self.insecure_available = insecure_available
        self.hang_on_connect = hang_on_connect
        self.responses: dict[str, ResponseSpec] = dict(responses or {})
        self.deferred_uris: set[str] = set()
        self.silent_uris: set[str] = set()
        self.connect_attempts: list[str] = []
        self.transports: list[MockTVTransport] = []
        self.requests: list[dict[str, Any]] = []
        self.subscriptions: dict[str, tuple[MockTVTransport, str]] = {}
        self.unsubscribed: list[str] = []
        self.buttons: list[str] = []
        self.issued_keys: list[str] = []
        self._deferred: list[tuple[MockTVTransport, dict[str, Any]]] = []
        self._awaiting_pin: dict[int, MockTVTransport] = {}

    async def connect(self, url: str, *, timeout_s: float = 10.0) -> MockTVTransport:
        """Connector compatible with `open_websocket`."""
        self.connect_attempts.append(url)
        parsed = urlparse(url)
        if self.hang_on_connect:
            await asyncio.sleep(timeout_s)
            raise ConnectTimeout(f"Connection timeout after {timeout_s:g} seconds: {url}")
        available = self.secure_available if parsed.scheme == "wss" else self.insecure_available
        if not available or parsed.hostname != self.address:
            raise TransportError(f"Failed to connect to {url}: connection refused")
        transport = MockTVTransport(self, url)
        self.transports.append(transport)
        return transport

    @property
    def control_transports(self) -> list[MockTVTransport]:
        return [t for t in self.transports if not t.is_pointer]

    async def handle_frame(self, transport: MockTVTransport, text: str) -> None:
        if transport.is_pointer:
            for line in text.splitlines():
                if line.startswith("name:"):
                    self.buttons.append(line[len("name:"):])
            return
        frame = json.loads(text)
        msg_type = frame.get("type")
        if msg_type == "register":
            await self._on_register(transport, frame)
        elif msg_type == "request":
            await self._on_request(transport, frame)
        elif msg_type == "subscribe":
            self.subscriptions[str(frame.get("id"))] = (transport, str(frame.get("uri")))
        elif msg_type == "unsubscribe":
            self.subscriptions.pop(str(frame.get("id")), None)
            self.unsubscribed.append(str(frame.get("id")))

    async def _on_register(self, transport: MockTVTransport, frame: dict[str, Any]) -> None:
        msg_id = str(frame.get("id"))
        transport.register_id = msg_id
        payload = frame.get("payload") or {}
        key = payload.get("client-key")
        if key and key in self.valid_keys:
            await self._registered(transport, key)
            return
        if key and self.reject_unknown_keys:
            await transport.push({"type": "error", "id": msg_id, "error": "401 insufficient permissions"})
            return
        if self.pairing_mode == "prompt":
            await transport.push(
                {"type": "response", "id": msg_id, "payload": {"pairingType": "PROMPT", "returnValue": True}}
            )
            if self.auto_accept_prompt:
                await self.accept_prompt(transport)
            return
        self._awaiting_pin[id(transport)] = transport
        await transport.push(
            {"type": "response", "id": msg_id, "payload": {"pairingType": "PIN", "returnValue": True}}
        )

    async def accept_prompt(self, transport: MockTVTransport | None = None) -> None:
        target = transport or self.control_transports[-1]
        await self._registered(target, self._issue_key())

    async def _registered(self, transport: MockTVTransport, key: str) -> None:
        transport.authenticated = True
        await transport.push({"type": "registered", "id": transport.register_id, "payload": {"client-key": key}})

    def _issue_key(self) -> str:
        key = uuid.uuid4().hex
        self.valid_keys.add(key)
        self.issued_keys.append(key)
        return key

    async def _on_request(self, transport: MockTVTransport, frame: dict[str, Any]) -> None:
        self.requests.append(frame)
        msg_id = str(frame.get("id"))
        uri = str(frame.get("uri") or "")
        payload = frame.get("payload") or {}
        if uri == SET_PIN_URI:
            await self._on_set_pin(transport, msg_id, payload)
            return
        if not transport.authenticated:
            await transport.push({"type": "error", "id": msg_id, "error": "401 insufficient permissions"})
            return
        if uri in self.silent_uris:
            return
        if uri == POINTER_SOCKET_URI and uri not in self.responses:
            scheme = "wss" if transport.url.startswith("wss://") else "ws"
            port = urlparse(transport.url).port
            response = {
                "returnValue": True,
                "socketPath": f"{scheme}://{self.address}:{port}/resources/{uuid.uuid4().hex}/netinput.pointer.sock",
            }
        else:
            response = self._response_for(uri, payload)
        reply = {"type": "response", "id": msg_id, "payload": response}
        if uri in self.deferred_uris:
            self._deferred.append((transport, reply))
            return
        await transport.push(reply)

    def _response_for(self, uri: str, payload: dict[str, Any]) -> dict[str, Any]:
        spec = self.responses.get(uri)
        if spec is None:
            return {"returnValue": True}
        if callable(spec):
            return dict(spec(payload))
        return dict(spec)

    async def _on_set_pin(self, transport: MockTVTransport, msg_id: str, payload: dict[str, Any]) -> None:
        if id(transport) not in self._awaiting_pin:
            await transport.push({"type": "error", "id": msg_id, "error": "500 no pairing in progress"})
            return
        if str(payload.get("pin")) != self.pin:
            await transport.push(
                {"type": "response", "id": msg_id, "payload": {"returnValue": False, "errorText": "Invalid PIN"}}
            )
            return
        self._awaiting_pin.pop(id(transport), None)
        await transport.push({"type": "response", "id": msg_id, "payload": {"returnValue": True}})
        await self._registered(transport, self._issue_key())

    async def release_deferred(self, *, reverse: bool = False) -> None:
        """Send held responses, optionally newest first."""
        items = list(reversed(self._deferred)) if reverse else list(self._deferred)
        self._deferred.clear()
        for transport, reply in items:
            await transport.push(reply)

    async def push_event(self, uri: str, payload: dict[str, Any]) -> int:
        """Push one event to every active subscription on `uri`."""
        sent = 0
        for sub_id, (transport, sub_uri) in list(self.subscriptions.items()):
            if sub_uri != uri or transport.closed:
                continue
            await transport.push({"type": "response", "id": sub_id, "payload": dict(payload)})
            sent += 1
        return sent

    async def push_raw(self, frame: dict[str, Any], transport: MockTVTransport | None = None) -> None:
        target = transport or self.control_transports[-1]
        await target.push(frame)

    async def revoke_key(self, key: str, *, notify: bool = True) -> None:
        """Forget a key; with `notify`, reject it on live sessions that used it."""
        self.valid_keys.discard(key)
        if not notify:
            return
        for transport in self.control_transports:
            if transport.closed or not transport.authenticated:
                continue
            transport.authenticated = False
            await transport.push(
                {"type": "error", "id": transport.register_id, "error": "401 client key revoked"}
            )

    async def drop_connections(self) -> None:
        """Close every socket from the device side."""
        for transport in self.transports:
            await transport.close()
