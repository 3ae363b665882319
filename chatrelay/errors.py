"""
chatrelay error types.

Decode failures are raised by chatrelay.envelope and handled by the session read
loop; protocol violations end a connection during the handshake.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for every error raised by the relay core."""


class EnvelopeError(RelayError):
    """An envelope could not be built or decoded."""


class EnvelopeDecodeError(EnvelopeError):
    """A frame is not a well-formed envelope (bad JSON, wrong shape, non-string fields)."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class UnknownCommandError(EnvelopeDecodeError):
    """A frame is well-formed but carries a command tag the relay does not know."""

    def __init__(self, tag: str, raw: Optional[str] = None):
        super().__init__(f"Unrecognized command: {tag!r}", raw)
        self.tag = tag


class ArityError(EnvelopeDecodeError):
    """A command carries the wrong number of fields."""

    def __init__(self, kind, count: int, raw: Optional[str] = None):
        super().__init__(f"{kind.value} does not accept {count} field(s)", raw)
        self.kind = kind
        self.count = count


class ProtocolViolation(RelayError):
    """The client broke the handshake (first frame missing, malformed or not CONNECT_REQUEST)."""


class IdentityAlreadyAssigned(RelayError):
    """A session's identity can only be set once per connection."""
