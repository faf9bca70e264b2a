"""JSON frame envelope exchanged with the TV over the control socket."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


def new_message_id() -> str:
    """Fresh correlation id; ids share one space for requests and subscriptions."""
    return str(uuid.uuid4())


class MessageType(StrEnum):
    """Frame types used on the control socket."""

    REGISTER = "register"
    REQUEST = "request"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    RESPONSE = "response"
    REGISTERED = "registered"
    ERROR = "error"


@dataclass(slots=True)
class TVMessage:
    """One frame on the control socket."""

    type: str
    id: str = ""
    uri: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TVMessage":
        msg_type = str(data.get("type", "")).strip()
        if not msg_type:
            raise ValueError("type is required")
        payload = data.get("payload", {})
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            payload = {"value": payload}
        uri = data.get("uri")
        error = data.get("error")
        return cls(
            type=msg_type,
            id=str(data.get("id") or ""),
            uri=str(uri) if uri is not None else None,
            payload=payload,
            error=str(error) if error is not None else None,
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> "TVMessage":
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("frame must be a JSON object")
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "id": self.id}
        if self.uri is not None:
            data["uri"] = self.uri
        if self.payload or self.type in {MessageType.REQUEST, MessageType.REGISTER}:
            data["payload"] = self.payload
        if self.error is not None:
            data["error"] = self.error
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @property
    def is_error(self) -> bool:
        return self.type == MessageType.ERROR

    @property
    def command_failed(self) -> bool:
        """Application-level failure flag carried inside a response payload."""
        return self.payload.get("returnValue") is False

    @property
    def error_text(self) -> str:
        if self.error:
            return self.error
        return str(self.payload.get("errorText") or self.payload.get("errorMessage") or "")


def make_request(uri: str, payload: dict[str, Any] | None = None, *, msg_id: str | None = None) -> TVMessage:
    return TVMessage(
        type=MessageType.REQUEST,
        id=msg_id or new_message_id(),
        uri=uri,
        payload=dict(payload or {}),
    )


def make_subscribe(uri: str, *, msg_id: str | None = None) -> TVMessage:
    return TVMessage(type=MessageType.SUBSCRIBE, id=msg_id or new_message_id(), uri=uri)


def make_unsubscribe(uri: str, *, msg_id: str) -> TVMessage:
    return TVMessage(type=MessageType.UNSUBSCRIBE, id=msg_id, uri=uri)


def make_register(payload: dict[str, Any], *, msg_id: str | None = None) -> TVMessage:
    return TVMessage(type=MessageType.REGISTER, id=msg_id or new_message_id(), payload=payload)


def button_frame(name: str) -> str:
    """Text frame understood by the pointer input socket."""
    return f"type:button\nname:{str(name).strip().upper()}\n\n"


SET_PIN_URI = "ssap://pairing/setPin"
POINTER_SOCKET_URI = "ssap://com.webos.service.networkinput/getPointerInputSocket"
