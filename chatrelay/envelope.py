# chatrelay/envelope.py
# The wire-level message unit of the relay.
# An envelope is a command tag plus an ordered list of string fields. On the wire each
# envelope travels as one WebSocket frame holding a JSON object:
#     {"type": "MESSAGE", "payload": ["1 - ana", "2 - bob", "hello", "100"]}
# Field arity is checked both when an envelope is built and when a frame is decoded, so
# handlers can unpack fields without guarding against short lists.

import json                         # For serializing envelopes to and from frames.
from dataclasses import dataclass   # Envelope is a frozen dataclass.
from enum import Enum               # CommandKind is a closed set of tags.
from typing import Optional, Tuple, Union

from chatrelay.errors import ArityError, EnvelopeDecodeError, UnknownCommandError


class CommandKind(str, Enum):
    """Every command tag the relay understands. Values are the wire tags."""

    CONNECT_REQUEST = "CONNECT_REQUEST"
    CONNECTION_ACCEPTED = "CONNECTION_ACCEPTED"
    NEW_USER_ONLINE = "NEW_USER_ONLINE"
    USER_OFFLINE = "USER_OFFLINE"
    MESSAGE = "MESSAGE"
    MESSAGE_NOT_DELIVERED = "MESSAGE_NOT_DELIVERED"
    ADD_CONTACT = "ADD_CONTACT"
    CONTACT_ADDED = "CONTACT_ADDED"
    REQUEST_ONLINE_USERS = "REQUEST_ONLINE_USERS"
    ONLINE_USERS = "ONLINE_USERS"
    CHANGE_STATUS = "CHANGE_STATUS"
    STATUS_CHANGED = "STATUS_CHANGED"
    PING = "PING"
    PONG = "PONG"
    DISCONNECT_REQUEST = "DISCONNECT_REQUEST"
    SERVER_SHUTTING_DOWN = "SERVER_SHUTTING_DOWN"


# --- Field Arity ---
# (minimum, maximum) number of fields per kind. None as maximum means "any number".
ARITY = {
    CommandKind.CONNECT_REQUEST: (1, 1),          # [nickname]
    CommandKind.CONNECTION_ACCEPTED: (1, None),   # [identity, other_identity...]
    CommandKind.NEW_USER_ONLINE: (1, 1),          # [identity]
    CommandKind.USER_OFFLINE: (1, 1),             # [identity]
    CommandKind.MESSAGE: (3, 4),                  # [sender, recipient, body, timestamp?]
    CommandKind.MESSAGE_NOT_DELIVERED: (2, 2),    # [recipient, body]
    CommandKind.ADD_CONTACT: (2, 2),              # [user, contact]
    CommandKind.CONTACT_ADDED: (2, 2),            # [contact, "true" | "false"]
    CommandKind.REQUEST_ONLINE_USERS: (0, 0),
    CommandKind.ONLINE_USERS: (0, None),          # [identity...]
    CommandKind.CHANGE_STATUS: (1, 1),            # [new_status]
    CommandKind.STATUS_CHANGED: (2, 2),           # [identity, new_status]
    CommandKind.PING: (0, 0),
    CommandKind.PONG: (0, 0),
    CommandKind.DISCONNECT_REQUEST: (0, 0),
    CommandKind.SERVER_SHUTTING_DOWN: (0, 0),
}

# Kinds a client is allowed to send. Anything else arriving from a client is ignored.
CLIENT_COMMANDS = frozenset({
    CommandKind.CONNECT_REQUEST,
    CommandKind.MESSAGE,
    CommandKind.ADD_CONTACT,
    CommandKind.REQUEST_ONLINE_USERS,
    CommandKind.CHANGE_STATUS,
    CommandKind.PING,
    CommandKind.DISCONNECT_REQUEST,
})


def arity_accepts(kind: CommandKind, count: int) -> bool:
    """Return True if `kind` may carry exactly `count` fields."""
    minimum, maximum = ARITY[kind]
    return count >= minimum and (maximum is None or count <= maximum)


@dataclass(frozen=True)
class Envelope:
    """One routed unit of protocol data. Immutable once built."""

    kind: CommandKind
    fields: Tuple[str, ...] = ()

    def __post_init__(self):
        # Normalize lists to tuples so the envelope is hashable and truly immutable.
        fields = tuple(self.fields)
        if not all(isinstance(f, str) for f in fields):
            raise EnvelopeDecodeError(f"{self.kind.value} fields must all be strings")
        if not arity_accepts(self.kind, len(fields)):
            raise ArityError(self.kind, len(fields))
        object.__setattr__(self, "fields", fields)

    @classmethod
    def of(cls, kind: CommandKind, *fields: str) -> "Envelope":
        """Shorthand: Envelope.of(CommandKind.USER_OFFLINE, "2 - bob")."""
        return cls(kind, fields)

    def field(self, index: int, default: Optional[str] = None) -> Optional[str]:
        """Return the field at `index`, or `default` for an optional trailing field."""
        return self.fields[index] if index < len(self.fields) else default


# --- Wire Codec ---

def encode_envelope(envelope: Envelope) -> str:
    """Serialize an envelope into the JSON text sent as one WebSocket frame."""
    return json.dumps({"type": envelope.kind.value, "payload": list(envelope.fields)}, ensure_ascii=False)


def decode_envelope(raw: Union[str, bytes]) -> Envelope:
    """
    Parse one received frame into an Envelope.

    Raises:
        UnknownCommandError: the frame is well-formed but its "type" is not a CommandKind.
        ArityError: the command carries the wrong number of fields.
        EnvelopeDecodeError: anything else (invalid UTF-8/JSON, wrong shape, non-string fields).
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError:
            raise EnvelopeDecodeError("Binary frame is not valid UTF-8") from None

    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        raise EnvelopeDecodeError("Frame is not valid JSON", raw) from None

    # Basic structure validation: a JSON object with a string 'type' and a list 'payload'.
    if not isinstance(data, dict):
        raise EnvelopeDecodeError("Frame is not a JSON object", raw)
    tag = data.get("type")
    payload = data.get("payload", [])
    if not isinstance(tag, str):
        raise EnvelopeDecodeError("Missing or non-string 'type'", raw)
    if not isinstance(payload, list) or not all(isinstance(f, str) for f in payload):
        raise EnvelopeDecodeError("'payload' must be a list of strings", raw)

    try:
        kind = CommandKind(tag)
    except ValueError:
        raise UnknownCommandError(tag, raw) from None

    if not arity_accepts(kind, len(payload)):
        raise ArityError(kind, len(payload), raw)
    return Envelope(kind, tuple(payload))
