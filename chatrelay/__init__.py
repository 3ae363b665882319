"""chatrelay: a WebSocket message relay with identity registration, offline mailboxes and presence."""

from chatrelay.contacts import ContactBook
from chatrelay.envelope import CommandKind, Envelope, decode_envelope, encode_envelope
from chatrelay.errors import (
    ArityError,
    EnvelopeDecodeError,
    EnvelopeError,
    IdentityAlreadyAssigned,
    ProtocolViolation,
    RelayError,
    UnknownCommandError,
)
from chatrelay.identity import IdentityCounter, format_identity
from chatrelay.logsink import LogSinkHandler, attach_log_sink, detach_log_sink
from chatrelay.mailbox import OfflineMailbox, PendingMessage
from chatrelay.registry import ClientRegistry
from chatrelay.router import RelayStatistics, Router
from chatrelay.server import RelayServer, start_server
from chatrelay.session import ConnectionSession, PresenceState, SessionState

__version__ = "0.1.0"

__all__ = [
    "ArityError",
    "ClientRegistry",
    "CommandKind",
    "ConnectionSession",
    "ContactBook",
    "Envelope",
    "EnvelopeDecodeError",
    "EnvelopeError",
    "IdentityAlreadyAssigned",
    "IdentityCounter",
    "LogSinkHandler",
    "OfflineMailbox",
    "PendingMessage",
    "PresenceState",
    "ProtocolViolation",
    "RelayError",
    "RelayServer",
    "RelayStatistics",
    "Router",
    "SessionState",
    "UnknownCommandError",
    "__version__",
    "attach_log_sink",
    "decode_envelope",
    "detach_log_sink",
    "encode_envelope",
    "format_identity",
    "start_server",
]
