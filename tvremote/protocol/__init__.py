"""Wire protocol frames for the webOS remote-control socket."""

from tvremote.protocol.envelope import (
    POINTER_SOCKET_URI,
    SET_PIN_URI,
    MessageType,
    TVMessage,
    button_frame,
    make_register,
    make_request,
    make_subscribe,
    make_unsubscribe,
    new_message_id,
)
from tvremote.protocol.manifest import REGISTRATION_PAYLOAD, build_registration_payload
from tvremote.protocol.modes import TransportMode, device_url

__all__ = [
    "POINTER_SOCKET_URI",
    "SET_PIN_URI",
    "MessageType",
    "TVMessage",
    "button_frame",
    "make_register",
    "make_request",
    "make_subscribe",
    "make_unsubscribe",
    "new_message_id",
    "REGISTRATION_PAYLOAD",
    "build_registration_payload",
    "TransportMode",
    "device_url",
]
