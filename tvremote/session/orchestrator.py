"""Process-wide owner of the single current TV session."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from loguru import logger

from tvremote.commands.tv_commands import TVCommands
from tvremote.config.schema import TVConfig
from tvremote.errors import (
    CredentialRejected,
    NoPendingPairing,
    NoStoredDevice,
    NotConnected,
    TVRemoteError,
)
from tvremote.protocol.modes import TransportMode
from tvremote.session.device_session import DeviceSession
from tvremote.session.state import AuthState, PendingPairing
from tvremote.storage.credentials import CredentialRecord, CredentialStore
from tvremote.transport.base import Connector
from tvremote.transport.websocket import open_websocket

SessionFactory = Callable[..., DeviceSession]
CommandAction = Callable[[TVCommands], Awaitable[Any]]

_AUTO_MODES = (TransportMode.SECURE, TransportMode.INSECURE)


class SessionOrchestrator:
    """Serializes connect/pair/disconnect/reconnect around one current session.

    Every public coroutine returns a result dict; session errors are
    converted with `TVRemoteError.to_result()` instead of propagating.
    """

    def __init__(
        self,
        store: CredentialStore,
        *,
        config: TVConfig | None = None,
        connector: Connector | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self.store = store
        self.config = config or TVConfig()
        self._connector = connector or open_websocket
        self._session_factory = session_factory or DeviceSession
        self._lock = asyncio.Lock()
        self._current: DeviceSession | None = None
        self._pending: dict[str, PendingPairing] = {}

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    @property
    def current(self) -> DeviceSession | None:
        return self._current if self._is_live() else None

    @property
    def commands(self) -> TVCommands:
        if not self._is_live():
            raise NotConnected("Not connected to a TV")
        return TVCommands(self._current)

    def pending_addresses(self) -> list[str]:
        return list(self._pending)

    def _is_live(self) -> bool:
        return self._current is not None and self._current.authenticated

    def _new_session(self, address: str, mode: TransportMode, client_key: str | None) -> DeviceSession:
        cfg = self.config
        return self._session_factory(
            address,
            transport_mode=mode,
            client_key=client_key,
            secure_port=cfg.secure_port,
            insecure_port=cfg.insecure_port,
            connector=self._connector,
            request_timeout_s=cfg.request_timeout_seconds,
            pairing_timeout_s=cfg.pairing_timeout_seconds,
            reauth_timeout_s=cfg.reauth_timeout_seconds,
            pointer_connect_timeout_s=cfg.pointer_connect_timeout_seconds,
            on_closed=self._on_session_closed,
            on_credential_rejected=self._on_credential_rejected,
        )

    def _on_session_closed(self, session: DeviceSession, reason: str) -> None:
        if self._current is session:
            self._current = None
            logger.info(f"Current session to {session.address} ended ({reason})")
        pending = self._pending.get(session.address)
        if pending is not None and pending.session is session and reason != "pairing_timeout":
            self._pending.pop(session.address, None)

    def _on_credential_rejected(self, session: DeviceSession) -> None:
        logger.warning(f"Stored client-key for {session.address} was revoked by the TV")
        self.store.invalidate(session.address)
        if self._current is session:
            self._current = None

    async def _teardown(self, reason: str) -> None:
        session = self._current
        self._current = None
        if session is not None:
            await session.disconnect(reason)

    async def _drop_pending(self, address: str) -> None:
        pending = self._pending.pop(address, None)
        if pending is not None:
            logger.info(f"Discarding pending pairing for {address}")
            await pending.session.disconnect("pairing_discarded")

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    async def _open_session(
        self,
        address: str,
        modes: Sequence[TransportMode],
        client_key: str | None,
        *,
        allow_pairing: bool,
    ) -> tuple[DeviceSession, AuthState]:
        """Connect over the first reachable mode, then authenticate."""
        last_error: TVRemoteError | None = None
        for mode in modes:
            session = self._new_session(address, mode, client_key)
            try:
                await session.connect(timeout_s=self.config.connect_timeout_seconds)
            except TVRemoteError as e:
                logger.warning(f"{mode.scheme}:// connection to {address} failed: {e}")
                last_error = e
                continue
            try:
                state = await session.authenticate(allow_pairing=allow_pairing)
            except TVRemoteError:
                await session.disconnect("auth_failed")
                raise
            return session, state
        if last_error is None:
            raise NotConnected(f"No transport mode to try for {address}")
        if len(modes) > 1:
            raise type(last_error)(
                f"Failed to connect to {address} over {' or '.join(m.scheme for m in modes)}: {last_error.message}"
            ) from last_error
        raise last_error

    def _persist(self, session: DeviceSession, record: CredentialRecord | None) -> None:
        key = session.client_key
        if not key:
            return
        if record is not None and record.valid and record.secret == key and record.transport_mode == session.transport_mode:
            self.store.touch(session.address)
            return
        self.store.upsert(
            session.address,
            key,
            session.transport_mode,
            record.display_name if record is not None else None,
        )

    async def _install(self, session: DeviceSession) -> None:
        if self._current is not session:
            await self._teardown("replaced")
        self._current = session
        logger.info(f"Connected to TV {session.address} ({session.transport_mode.value})")

    async def _silent_reauth(self, address: str | None = None) -> DeviceSession:
        record = self.store.get(address) if address else self.store.most_recent_valid()
        if record is None or not record.valid:
            target = address or "any TV"
            raise NoStoredDevice(f"No valid stored credentials for {target}. Pair the TV first.")
        await self._teardown("reconnect")
        logger.info(f"Reconnecting to {record.address} with stored credentials")
        try:
            session, _ = await self._open_session(
                record.address,
                [record.transport_mode],
                record.secret,
                allow_pairing=False,
            )
        except CredentialRejected:
            self.store.invalidate(record.address)
            raise
        self._persist(session, record)
        await self._install(session)
        return session

    def _connected_result(self, session: DeviceSession, **extra: Any) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": True,
            "address": session.address,
            "transport_mode": session.transport_mode.value,
            "state": session.state.value,
        }
        result.update(extra)
        return result

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def ensure_connection(self) -> dict[str, Any]:
        """Reuse the live session or silently re-authenticate the last TV."""
        async with self._lock:
            if self._is_live():
                return self._connected_result(self._current, reused=True)
            try:
                session = await self._silent_reauth()
            except TVRemoteError as e:
                return e.to_result()
            return self._connected_result(session, reused=False)

    async def connect(
        self,
        address: str,
        transport_mode: TransportMode | str | None = None,
        *,
        force: bool = False,
    ) -> dict[str, Any]:
        """Connect to `address`, pairing when the TV asks for it.

        A PIN request leaves a pending pairing and returns
        `{"success": True, "requires_pin": True}`; finish it with
        `complete_pairing`.
        """
        async with self._lock:
            try:
                return await self._connect_locked(address, transport_mode, force=force)
            except TVRemoteError as e:
                return e.to_result(address=address)

    async def _connect_locked(
        self,
        address: str,
        transport_mode: TransportMode | str | None,
        *,
        force: bool,
    ) -> dict[str, Any]:
        explicit = TransportMode.parse(transport_mode)
        if explicit is None:
            explicit = TransportMode.parse(self.config.transport_mode)
        current = self._current
        if current is not None and current.address == address and self._is_live() and not force:
            return self._connected_result(current, already_connected=True)

        await self._teardown("connect")
        await self._drop_pending(address)

        record = self.store.get(address)
        client_key = record.secret if record is not None and record.valid else None
        if explicit is not None:
            modes: list[TransportMode] = [explicit]
        elif record is not None:
            modes = [record.transport_mode] + [m for m in _AUTO_MODES if m != record.transport_mode]
        else:
            modes = list(_AUTO_MODES)

        logger.info(f"Connecting to TV {address} (modes: {', '.join(m.value for m in modes)})")
        try:
            session, state = await self._open_session(address, modes, client_key, allow_pairing=True)
        except CredentialRejected as e:
            logger.warning(f"Stored client-key for {address} rejected ({e}); starting fresh pairing")
            self.store.invalidate(address)
            record = None
            session, state = await self._open_session(address, modes, None, allow_pairing=True)

        if state == AuthState.AWAITING_PIN:
            self._pending[address] = PendingPairing(
                address=address,
                session=session,
                transport_mode=session.transport_mode,
            )
            return self._connected_result(
                session,
                requires_pin=True,
                message="Enter the PIN shown on the TV",
            )

        self._persist(session, record)
        await self._install(session)
        return self._connected_result(session, paired=not session.used_stored_key)

    async def complete_pairing(self, address: str, pin: str) -> dict[str, Any]:
        """Submit the PIN for a pending pairing and persist the issued key."""
        async with self._lock:
            pending = self._pending.get(address)
            if pending is None:
                return NoPendingPairing(f"No pending pairing for {address}. Connect first.").to_result(
                    address=address
                )
            session = pending.session
            try:
                key = await session.submit_pin(pin)
            except TVRemoteError as e:
                self._pending.pop(address, None)
                await session.disconnect("pairing_failed")
                return e.to_result(address=address)
            self._pending.pop(address, None)
            self.store.upsert(address, key, session.transport_mode)
            await self._install(session)
            return self._connected_result(session, paired=True)

    async def disconnect(self) -> dict[str, Any]:
        """Tear down the current session and every pending pairing."""
        async with self._lock:
            address = self._current.address if self._current is not None else None
            await self._teardown("disconnect")
            pending = list(self._pending.values())
            self._pending.clear()
            for entry in pending:
                await entry.session.disconnect("disconnect")
            return {"success": True, "address": address, "discarded_pairings": len(pending)}

    async def reconnect(self, address: str | None = None) -> dict[str, Any]:
        async with self._lock:
            current = self._current
            if self._is_live() and (address is None or current.address == address):
                return self._connected_result(current, reused=True)
            try:
                session = await self._silent_reauth(address)
            except TVRemoteError as e:
                return e.to_result(address=address) if address else e.to_result()
            return self._connected_result(session, reused=False)

    async def status(self, *, auto_reconnect: bool = True) -> dict[str, Any]:
        async with self._lock:
            reconnect_error: str | None = None
            if auto_reconnect and not self._is_live() and not self._pending:
                try:
                    await self._silent_reauth()
                except TVRemoteError as e:
                    reconnect_error = e.code
            current = self._current if self._is_live() else None
            result: dict[str, Any] = {
                "success": True,
                "connected": current is not None and current.connected,
                "authenticated": current is not None,
                "address": current.address if current is not None else None,
                "transport_mode": current.transport_mode.value if current is not None else None,
                "stored_devices": len(self.store.list_all()),
                "pending_pairings": [
                    {"address": p.address, "state": p.session.state.value} for p in self._pending.values()
                ],
            }
            if current is not None:
                result["session"] = current.to_status()
            if reconnect_error:
                result["reconnect_error"] = reconnect_error
            return result

    def list_credentials(self) -> list[dict[str, Any]]:
        current = self._current.address if self._is_live() else None
        output = []
        for record in self.store.list_all():
            item = record.to_public_dict()
            item["current"] = record.address == current
            output.append(item)
        return output

    async def forget(self, address: str) -> dict[str, Any]:
        async with self._lock:
            if self._current is not None and self._current.address == address:
                await self._teardown("forget")
            await self._drop_pending(address)
            if not self.store.delete(address):
                return NoStoredDevice(f"No stored credentials for {address}").to_result(address=address)
            logger.info(f"Forgot stored credentials for {address}")
            return {"success": True, "address": address}

    async def execute(self, action: CommandAction) -> dict[str, Any]:
        """Run a command against the current TV, reconnecting silently first."""
        async with self._lock:
            if not self._is_live():
                try:
                    await self._silent_reauth()
                except TVRemoteError as e:
                    return e.to_result()
            commands = TVCommands(self._current)
        try:
            result = await action(commands)
        except TVRemoteError as e:
            return e.to_result()
        return {"success": True, "result": result}
