"""One control socket to one TV: pairing, request correlation and push events."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import json
from collections.abc import Callable
from typing import Any

from loguru import logger

from tvremote.errors import (
    Cancelled,
    CommandFailed,
    CredentialRejected,
    InvalidPIN,
    NotConnected,
    PairingFailed,
    PairingTimeout,
    RequestFailed,
    RequestTimeout,
    TransportError,
    TVRemoteError,
)
from tvremote.protocol import (
    SET_PIN_URI,
    MessageType,
    TransportMode,
    TVMessage,
    build_registration_payload,
    device_url,
    make_register,
    make_request,
    make_subscribe,
    make_unsubscribe,
)
from tvremote.session.pointer import PointerInputChannel
from tvremote.session.state import (
    AuthState,
    InFlightRequest,
    SubscriptionCallback,
    SubscriptionHandle,
)
from tvremote.transport.base import Connector, DeviceTransport
from tvremote.transport.websocket import open_websocket
from tvremote.utils.redaction import mask_value, redact_sensitive_map

ClosedHook = Callable[["DeviceSession", str], None]
RejectedHook = Callable[["DeviceSession"], None]


def _consume(future: asyncio.Future | None, exc: BaseException) -> None:
    """Fail a waiter and mark the exception retrieved when nobody awaits it."""
    if future is None or future.done():
        return
    future.set_exception(exc)
    future.exception()


class DeviceSession:
    """Owns the control socket for one device.

    Request and subscription ids share one id space. Inbound frames are
    dispatched by a single reader task, so each in-flight entry is resolved at
    most once: the entry is popped from the map before its future is touched.
    """

    def __init__(
        self,
        address: str,
        *,
        transport_mode: TransportMode = TransportMode.SECURE,
        client_key: str | None = None,
        secure_port: int = 3001,
        insecure_port: int = 3000,
        connector: Connector | None = None,
        request_timeout_s: float = 10.0,
        pairing_timeout_s: float = 60.0,
        reauth_timeout_s: float = 10.0,
        pointer_connect_timeout_s: float = 5.0,
        on_closed: ClosedHook | None = None,
        on_credential_rejected: RejectedHook | None = None,
    ) -> None:
        self.address = address
        self.transport_mode = transport_mode
        self.client_key = client_key or None
        self.url = device_url(
            address,
            transport_mode,
            secure_port=secure_port,
            insecure_port=insecure_port,
        )
        self._connector = connector or open_websocket
        self.request_timeout_s = max(0.01, float(request_timeout_s))
        self.pairing_timeout_s = max(0.01, float(pairing_timeout_s))
        self.reauth_timeout_s = max(0.01, float(reauth_timeout_s))
        self.state = AuthState.DISCONNECTED
        self.close_reason = ""
        self.used_stored_key = False
        self._on_closed = on_closed
        self._on_credential_rejected = on_credential_rejected
        self._transport: DeviceTransport | None = None
        self._reader_task: asyncio.Task | None = None
        self._pending: dict[str, InFlightRequest] = {}
        self._subscriptions: dict[str, SubscriptionHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self._register_id: str | None = None
        self._auth_step: asyncio.Future | None = None
        self._auth_done: asyncio.Future | None = None
        self._pin_submitted = False
        self._allow_pairing = True
        self._pairing_timer: asyncio.TimerHandle | None = None
        self._closed_notified = False
        self.pointer = PointerInputChannel(
            request=self.request,
            connector=self._connector,
            connect_timeout_s=pointer_connect_timeout_s,
        )

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @property
    def connected(self) -> bool:
        return self._transport is not None and not self._transport.closed

    @property
    def authenticated(self) -> bool:
        return self.connected and self.state == AuthState.AUTHENTICATED

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def connect(self, timeout_s: float = 10.0) -> None:
        """Open the control socket; state becomes UNAUTHENTICATED."""
        if self.connected:
            return
        self._transport = await self._connector(self.url, timeout_s=timeout_s)
        self.state = AuthState.UNAUTHENTICATED
        self.close_reason = ""
        self._closed_notified = False
        self._reader_task = asyncio.create_task(self._read_loop(self._transport))
        logger.info(f"Connected to TV at {self.url}")

    async def disconnect(self, reason: str = "disconnect") -> None:
        """Close both sockets and cancel everything outstanding."""
        if self._transport is None and self.state in {AuthState.DISCONNECTED, AuthState.CLOSED}:
            return
        logger.info(f"Disconnecting from {self.address} ({reason})")
        self.state = AuthState.CLOSED
        self.close_reason = reason
        self._cancel_pairing_timer()
        transport = self._transport
        self._transport = None
        with contextlib.suppress(Exception):
            await self.pointer.close()
        if transport is not None:
            await transport.close()
        reader = self._reader_task
        self._reader_task = None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        self._fail_all(Cancelled(f"Session to {self.address} closed ({reason})"))
        self._subscriptions.clear()
        for task in list(self._tasks):
            if task is not asyncio.current_task():
                task.cancel()
        self._tasks.clear()
        self._notify_closed(reason)

    async def _read_loop(self, transport: DeviceTransport) -> None:
        try:
            async for raw in transport.recv_frames():
                self._dispatch_raw(raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Control socket to {self.address} failed: {e}")
        if self._transport is transport:
            await self._on_connection_lost()

    async def _on_connection_lost(self) -> None:
        logger.warning(f"Connection to TV {self.address} lost")
        self._transport = None
        self._reader_task = None
        self.state = AuthState.CLOSED
        self.close_reason = "connection_lost"
        self._cancel_pairing_timer()
        with contextlib.suppress(Exception):
            await self.pointer.close()
        self._fail_all(TransportError(f"Connection to {self.address} closed"))
        self._subscriptions.clear()
        self._notify_closed("connection_lost")

    def _notify_closed(self, reason: str) -> None:
        if self._closed_notified:
            return
        self._closed_notified = True
        if self._on_closed is None:
            return
        try:
            self._on_closed(self, reason)
        except Exception as e:
            logger.error(f"on_closed hook failed for {self.address}: {e}")

    def _fail_all(self, exc: TVRemoteError) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for entry in pending:
            entry.fail(type(exc)(exc.message))
        _consume(self._auth_step, type(exc)(exc.message))
        _consume(self._auth_done, type(exc)(exc.message))

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def authenticate(self, *, allow_pairing: bool = True) -> AuthState:
        """Send the register frame and wait for the first decisive reply.

        Returns AUTHENTICATED, or AWAITING_PIN when the device displays a PIN
        that must be passed to `submit_pin`. A prompt on the device is waited
        for within the pairing window. With `allow_pairing=False` any pairing
        request from the device means the stored key is no longer trusted.
        """
        self._require_connected()
        if self.state == AuthState.AUTHENTICATED:
            return self.state
        loop = asyncio.get_running_loop()
        self._auth_step = loop.create_future()
        self._auth_done = loop.create_future()
        self._pin_submitted = False
        self._allow_pairing = allow_pairing
        self.used_stored_key = bool(self.client_key)
        message = make_register(build_registration_payload(self.client_key))
        self._register_id = message.id
        self.state = AuthState.UNAUTHENTICATED
        if self.used_stored_key:
            logger.info(f"Authenticating with stored client-key {mask_value(self.client_key)}")
        await self._send(message)

        timeout_s = self.reauth_timeout_s if self.used_stored_key and not allow_pairing else self.pairing_timeout_s
        try:
            return await asyncio.wait_for(asyncio.shield(self._auth_step), timeout=timeout_s)
        except asyncio.TimeoutError:
            self.state = AuthState.FAILED
            _consume(self._auth_done, PairingTimeout("Registration timeout"))
            if self.used_stored_key and not allow_pairing:
                raise PairingTimeout("Authentication timeout") from None
            raise PairingTimeout("Registration timeout") from None

    async def submit_pin(self, pin: str) -> str:
        """Verify the PIN shown on the TV; returns the issued client-key."""
        if self.close_reason == "pairing_timeout":
            raise PairingTimeout("PIN entry window expired")
        self._require_connected()
        if self.state != AuthState.AWAITING_PIN or self._auth_done is None:
            raise PairingFailed("No pending registration. Authenticate first.")
        self._cancel_pairing_timer()
        self._pin_submitted = True
        logger.info(f"Submitting PIN to {self.address}")
        try:
            await self.request(SET_PIN_URI, {"pin": str(pin).strip()})
        except (CommandFailed, RequestFailed) as e:
            self.state = AuthState.FAILED
            _consume(self._auth_done, InvalidPIN(e.message))
            raise InvalidPIN(e.message or "Invalid PIN") from e
        except RequestTimeout as e:
            self.state = AuthState.FAILED
            _consume(self._auth_done, PairingTimeout("PIN entry timeout"))
            raise PairingTimeout("PIN entry timeout") from e
        try:
            await asyncio.wait_for(asyncio.shield(self._auth_done), timeout=self.request_timeout_s)
        except asyncio.TimeoutError:
            self.state = AuthState.FAILED
            _consume(self._auth_done, PairingTimeout("PIN entry timeout"))
            raise PairingTimeout("PIN entry timeout") from None
        if not self.client_key:
            raise PairingFailed("Pairing failed")
        return self.client_key

    def _on_registration_frame(self, msg: TVMessage) -> None:
        if msg.is_error:
            self._on_registration_error(msg.error_text or "Registration failed")
            return
        if msg.type == MessageType.REGISTERED:
            key = str(msg.payload.get("client-key") or self.client_key or "")
            if not key:
                self._on_registration_error("Device registered without a client-key")
                return
            self.client_key = key
            self.state = AuthState.AUTHENTICATED
            self._cancel_pairing_timer()
            logger.info(f"Authenticated with TV {self.address} (client-key {mask_value(key)})")
            for fut in (self._auth_step, self._auth_done):
                if fut is not None and not fut.done():
                    fut.set_result(AuthState.AUTHENTICATED)
            return
        if msg.type != MessageType.RESPONSE:
            return
        if msg.command_failed:
            self._on_registration_error(msg.error_text or "Registration refused")
            return
        pairing_type = str(msg.payload.get("pairingType") or "").upper()
        if pairing_type not in {"PIN", "PROMPT"}:
            return
        if self.used_stored_key and not self._allow_pairing:
            self._on_registration_error(f"Device requested {pairing_type} pairing for a stored client-key")
            return
        if self.used_stored_key:
            # device ignored the stored key; this is a fresh pairing now
            logger.info(f"TV {self.address} ignored the stored client-key, pairing again")
            self.used_stored_key = False
            self.client_key = None
        if pairing_type == "PIN":
            self.state = AuthState.AWAITING_PIN
            self._start_pairing_timer()
            logger.info(f"PIN displayed on TV {self.address}")
            if self._auth_step is not None and not self._auth_step.done():
                self._auth_step.set_result(AuthState.AWAITING_PIN)
        else:
            self.state = AuthState.AWAITING_PROMPT
            logger.info(f"Please accept the pairing request on TV {self.address}")

    def _on_registration_error(self, text: str) -> None:
        if self.state == AuthState.AUTHENTICATED:
            self._on_rejected_mid_session(text)
            return
        self.state = AuthState.FAILED
        self._cancel_pairing_timer()
        if self.used_stored_key:
            exc: TVRemoteError = CredentialRejected(text)
        elif self._pin_submitted:
            exc = InvalidPIN(text)
        else:
            exc = PairingFailed(text)
        logger.warning(f"Registration with {self.address} failed: {text}")
        _consume(self._auth_step, exc)
        _consume(self._auth_done, type(exc)(text))

    def _on_rejected_mid_session(self, text: str) -> None:
        logger.warning(f"TV {self.address} rejected the client-key mid-session: {text}")
        self.state = AuthState.FAILED
        pending = list(self._pending.values())
        self._pending.clear()
        for entry in pending:
            entry.fail(CredentialRejected(text))
        if self._on_credential_rejected is not None:
            try:
                self._on_credential_rejected(self)
            except Exception as e:
                logger.error(f"on_credential_rejected hook failed for {self.address}: {e}")
        self._spawn(self.disconnect("credential_rejected"))

    def _start_pairing_timer(self) -> None:
        self._cancel_pairing_timer()
        loop = asyncio.get_running_loop()
        self._pairing_timer = loop.call_later(self.pairing_timeout_s, self._expire_pairing)

    def _cancel_pairing_timer(self) -> None:
        if self._pairing_timer is not None:
            self._pairing_timer.cancel()
            self._pairing_timer = None

    def _expire_pairing(self) -> None:
        self._pairing_timer = None
        if self.state != AuthState.AWAITING_PIN or self._pin_submitted:
            return
        logger.warning(f"PIN entry window for {self.address} expired")
        self.state = AuthState.FAILED
        _consume(self._auth_done, PairingTimeout("PIN entry window expired"))
        self._spawn(self.disconnect("pairing_timeout"))

    # ------------------------------------------------------------------
    # Requests and subscriptions
    # ------------------------------------------------------------------

    async def request(
        self,
        uri: str,
        payload: dict[str, Any] | None = None,
        *,
        timeout_s: float | None = None,
    ) -> dict[str, Any]:
        """Send a correlated request and wait for its response payload."""
        self._require_connected()
        message = make_request(uri, payload)
        future = asyncio.get_running_loop().create_future()
        self._pending[message.id] = InFlightRequest(msg_id=message.id, uri=uri, future=future)
        timeout = self.request_timeout_s if timeout_s is None else max(0.01, float(timeout_s))
        try:
            await self._send(message)
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise RequestTimeout(f"Request timeout: {uri}") from None
        finally:
            self._pending.pop(message.id, None)

    def subscribe(self, uri: str, callback: SubscriptionCallback) -> str:
        """Register a push handler and return its id without waiting for an ack."""
        self._require_connected()
        message = make_subscribe(uri)
        self._subscriptions[message.id] = SubscriptionHandle(msg_id=message.id, uri=uri, callback=callback)
        self._spawn(self._send_quietly(message, "subscribe"))
        logger.debug(f"Subscribed {uri} id={message.id}")
        return message.id

    def unsubscribe(self, subscription_id: str, uri: str | None = None) -> bool:
        """Drop a subscription; the device notification is best-effort."""
        handle = self._subscriptions.pop(subscription_id, None)
        if handle is None:
            return False
        if self.connected:
            self._spawn(self._send_quietly(make_unsubscribe(uri or handle.uri, msg_id=subscription_id), "unsubscribe"))
        return True

    def subscriptions(self) -> list[dict[str, Any]]:
        return [
            {"id": h.msg_id, "uri": h.uri, "events": h.events, "created_at_ms": h.created_at_ms}
            for h in self._subscriptions.values()
        ]

    async def send_button(self, name: str) -> None:
        """Press a remote button over the pointer input socket."""
        self._require_connected()
        await self.pointer.send_button(name)

    # ------------------------------------------------------------------
    # Frame dispatch
    # ------------------------------------------------------------------

    def _dispatch_raw(self, raw: str) -> None:
        try:
            msg = TVMessage.from_json(raw)
        except (ValueError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to parse frame from {self.address}: {e}")
            return
        logger.debug(f"TV message: {json.dumps(redact_sensitive_map(msg.to_dict()), ensure_ascii=False)}")
        self.dispatch(msg)

    def dispatch(self, msg: TVMessage) -> None:
        """Route one frame: registration, then request, then subscription."""
        if msg.id and msg.id == self._register_id:
            self._on_registration_frame(msg)
            return

        entry = self._pending.pop(msg.id, None) if msg.id else None
        if entry is not None:
            if msg.is_error:
                entry.fail(RequestFailed(msg.error_text or "Request failed"))
            elif msg.command_failed:
                entry.fail(CommandFailed(msg.error_text or "Command failed"))
            else:
                entry.resolve(msg.payload)
            return

        handle = self._subscriptions.get(msg.id) if msg.id else None
        if handle is not None:
            handle.events += 1
            self._invoke_callback(handle, msg.payload)
            return

        logger.warning(f"Unhandled message from {self.address}: type={msg.type} id={msg.id}")

    def _invoke_callback(self, handle: SubscriptionHandle, payload: dict[str, Any]) -> None:
        try:
            result = handle.callback(payload)
        except Exception as e:
            logger.error(f"Subscription callback for {handle.uri} failed: {e}")
            return
        if inspect.isawaitable(result):
            self._spawn(self._await_callback(handle.uri, result))

    async def _await_callback(self, uri: str, awaitable: Any) -> None:
        try:
            await awaitable
        except Exception as e:
            logger.error(f"Subscription callback for {uri} failed: {e}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_connected(self) -> None:
        if not self.connected:
            raise NotConnected(f"Not connected to {self.address}")

    async def _send(self, message: TVMessage) -> None:
        transport = self._transport
        if transport is None or transport.closed:
            raise NotConnected(f"Not connected to {self.address}")
        logger.debug(f"Sending to TV: {json.dumps(redact_sensitive_map(message.to_dict()), ensure_ascii=False)}")
        await transport.send(message.to_json())

    async def _send_quietly(self, message: TVMessage, what: str) -> None:
        try:
            await self._send(message)
        except TVRemoteError as e:
            logger.warning(f"Failed to send {what} for {message.uri}: {e}")

    def _spawn(self, coro: Any) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def to_status(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "url": self.url,
            "transport_mode": self.transport_mode.value,
            "state": self.state.value,
            "connected": self.connected,
            "authenticated": self.authenticated,
            "pending_requests": len(self._pending),
            "subscriptions": len(self._subscriptions),
            "pointer_open": self.pointer.is_open,
            "close_reason": self.close_reason,
        }
