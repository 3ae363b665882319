# chatrelay/session.py
# Server-side state and control loop for one live connection.
# A ConnectionSession owns its transport (a websockets connection, or anything exposing
# async recv()/send()/close()), performs the registration handshake, then reads envelopes
# one at a time and dispatches them to the Router. It never touches another session:
# every cross-session effect (delivery, presence broadcast, teardown) goes through the Router.

import asyncio      # Per-session send lock.
import logging      # For logging connection lifecycle, protocol errors and (in DEBUG) traffic.
import threading    # Guards state transitions, which the Router may trigger from another task.
import time         # Default clock for activity tracking and message timestamps.
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from chatrelay import config
from chatrelay.envelope import CLIENT_COMMANDS, CommandKind, Envelope, decode_envelope, encode_envelope
from chatrelay.errors import EnvelopeDecodeError, IdentityAlreadyAssigned, ProtocolViolation, UnknownCommandError

if TYPE_CHECKING:
    from chatrelay.router import Router


class SessionState(Enum):
    CONNECTING = "connecting"                  # Transport accepted, nothing read yet.
    AWAITING_HANDSHAKE = "awaiting_handshake"  # Waiting for CONNECT_REQUEST.
    REGISTERED = "registered"                  # Identity assigned, read loop running.
    TERMINATED = "terminated"                  # Torn down. Terminal.


class PresenceState(str, Enum):
    """Well-known presence values. Clients may also set any custom status string."""

    ONLINE = "online"
    BUSY = "busy"
    OFFLINE = "offline"

    @classmethod
    def is_well_known(cls, status: str) -> bool:
        return status in cls._value2member_map_


class ConnectionSession:
    """
    One client's connection: identity, presence, activity tracking and the read loop.

    Attributes:
        identity (str | None): Assigned by the Router on handshake, immutable afterwards.
        status (str): Presence status, "online" until the client changes it.
        last_activity (float): Epoch seconds of the last inbound frame.
        listening (bool): Keeps the read loop running. Cleared by DISCONNECT_REQUEST or a failed send.
    """

    def __init__(self, transport, router: "Router", clock: Callable[[], float] = time.time):
        self.transport = transport
        self.router = router
        self._clock = clock

        self.identity: Optional[str] = None
        self.status: str = PresenceState.ONLINE.value
        self.last_activity: float = clock()
        self.listening = False

        self._state = SessionState.CONNECTING
        self._state_lock = threading.Lock()   # Held only while reading/changing _state.
        self._send_lock = asyncio.Lock()      # Serializes outbound frames on this transport.

        # Dispatch table for the read loop. Kinds missing here are logged and ignored.
        self._handlers = {
            CommandKind.CONNECT_REQUEST: self._on_connect_request,
            CommandKind.MESSAGE: self._on_message,
            CommandKind.ADD_CONTACT: self._on_add_contact,
            CommandKind.REQUEST_ONLINE_USERS: self._on_request_online_users,
            CommandKind.CHANGE_STATUS: self._on_change_status,
            CommandKind.PING: self._on_ping,
            CommandKind.DISCONNECT_REQUEST: self._on_disconnect_request,
        }

    # --- Introspection ---

    @property
    def state(self) -> SessionState:
        with self._state_lock:
            return self._state

    @property
    def remote_address(self):
        return getattr(self.transport, "remote_address", None)

    @property
    def label(self) -> str:
        """Human-readable name for log lines."""
        return self.identity if self.identity is not None else f"unregistered client {self.remote_address}"

    @property
    def is_connected(self) -> bool:
        return self.listening and self.state is SessionState.REGISTERED

    def is_active(self, threshold: Optional[float] = None) -> bool:
        """True if the last inbound frame arrived within `threshold` seconds (default from config)."""
        if threshold is None:
            threshold = config.INACTIVITY_THRESHOLD_SECONDS
        return self._clock() - self.last_activity < threshold

    def touch(self) -> None:
        self.last_activity = self._clock()

    def current_timestamp(self) -> str:
        """Current time in epoch milliseconds, the default timestamp of a MESSAGE."""
        return str(int(self._clock() * 1000))

    # --- State Transitions ---

    def accept(self, identity: str) -> None:
        """Finalize the identity after a successful handshake and enter REGISTERED."""
        with self._state_lock:
            if self.identity is not None:
                raise IdentityAlreadyAssigned(f"Session already registered as '{self.identity}'")
            if self._state is SessionState.TERMINATED:
                raise ProtocolViolation("Cannot register a terminated session")
            self.identity = identity
            self._state = SessionState.REGISTERED
            self.listening = True

    def terminate(self) -> bool:
        """
        Move to TERMINATED.

        Returns:
            bool: True only for the first call. Teardown work (registry removal, offline
            broadcast) is done by whoever gets True, so it runs exactly once.
        """
        with self._state_lock:
            if self._state is SessionState.TERMINATED:
                return False
            self._state = SessionState.TERMINATED
            self.listening = False
            return True

    # --- Outbound ---

    async def send(self, envelope: Envelope) -> bool:
        """
        Write one envelope to this session's transport.

        Writes are serialized per session, since the Router may call send() from many
        other sessions' read loops at once. A failed write clears `listening` so the read
        loop ends; registry removal is left to the session's own teardown.

        Returns:
            bool: True if the frame was written.
        """
        return await self.send_all([envelope])

    async def send_all(self, envelopes: Iterable[Envelope]) -> bool:
        """
        Write several envelopes back to back, holding the send lock for the whole batch.

        No other sender's frame can land between them. Stops at the first failed write.

        Returns:
            bool: True if every frame was written.
        """
        if self.state is SessionState.TERMINATED:
            return False
        async with self._send_lock:
            for envelope in envelopes:
                if not await self._write(envelope):
                    self.listening = False
                    return False
        return True

    async def _write(self, envelope: Envelope) -> bool:
        # Caller holds _send_lock.
        message = encode_envelope(envelope)
        try:
            if config.DEBUG:
                logging.info(f"Sending to {self.label}: {message}")
            await self.transport.send(message)
            return True
        except ConnectionClosed:
            # Expected when the client vanished between lookup and write.
            logging.warning(f"Failed to send {envelope.kind.value} to {self.label} because connection is closed.")
        except OSError as e:
            logging.warning(f"I/O error sending {envelope.kind.value} to {self.label}: {e}")
        except Exception:
            logging.exception(f"Unexpected error sending {envelope.kind.value} to {self.label}")
        return False

    async def close(self) -> None:
        """Close the transport. Safe to call more than once."""
        try:
            await self.transport.close()
        except OSError as e:
            logging.info(f"Error while closing transport for {self.label}: {e}")

    # --- Connection Lifecycle ---

    async def run(self) -> None:
        """
        Drive the whole connection: handshake, registration, read loop, teardown.

        Every exit path ends in Router.disconnect(), which tears the session down exactly once.
        """
        try:
            nickname = await self._handshake()
            await self.router.register_and_welcome(self, nickname)
            await self._listen()
        except ProtocolViolation as e:
            logging.warning(f"Protocol violation from {self.remote_address}: {e}. Closing connection.")
        except ConnectionClosedOK:
            logging.info(f"Client {self.label} disconnected gracefully.")
        except ConnectionClosed as e:
            logging.info(f"Client {self.label} disconnected with error: {e}")
        except OSError as e:
            logging.info(f"I/O error on connection of {self.label}: {e}")
        except Exception:
            logging.exception(f"An unexpected error occurred handling {self.label}")
        finally:
            await self.router.disconnect(self)

    async def _handshake(self) -> str:
        """Read the first frame and return the nickname it carries."""
        with self._state_lock:
            if self._state is SessionState.CONNECTING:
                self._state = SessionState.AWAITING_HANDSHAKE

        raw = await self.transport.recv()
        self.touch()
        try:
            envelope = decode_envelope(raw)
        except EnvelopeDecodeError as e:
            raise ProtocolViolation(f"first frame is not a valid envelope ({e})") from e

        if envelope.kind is not CommandKind.CONNECT_REQUEST:
            raise ProtocolViolation(f"expected CONNECT_REQUEST, got {envelope.kind.value}")
        nickname = envelope.fields[0]
        if not nickname.strip():
            raise ProtocolViolation("CONNECT_REQUEST carries an empty nickname")
        return nickname

    async def _listen(self) -> None:
        """Read and dispatch envelopes, in arrival order, until the session stops listening."""
        while self.is_connected:
            raw = await self.transport.recv()
            self.touch()

            try:
                envelope = decode_envelope(raw)
            except UnknownCommandError as e:
                logging.warning(f"Unrecognized command {e.tag!r} from {self.label}. Ignoring.")
                continue
            except EnvelopeDecodeError as e:
                logging.warning(f"Invalid envelope from {self.label}: {e}. Ignoring.")
                continue

            if config.DEBUG:
                logging.info(f"Received from {self.label}: {envelope.kind.value} {list(envelope.fields)}")
            await self._dispatch(envelope)

    async def _dispatch(self, envelope: Envelope) -> None:
        handler = self._handlers.get(envelope.kind) if envelope.kind in CLIENT_COMMANDS else None
        if handler is None:
            logging.warning(f"Unrecognized command {envelope.kind.value} from {self.label}. Ignoring.")
            return
        await handler(envelope)

    # --- Command Handlers ---

    async def _on_connect_request(self, envelope: Envelope) -> None:
        logging.warning(f"Client {self.label} sent CONNECT_REQUEST again. Ignoring.")

    async def _on_message(self, envelope: Envelope) -> None:
        sender, recipient, body = envelope.fields[:3]
        timestamp = envelope.field(3) or self.current_timestamp()
        if sender != self.identity:
            # No authentication: the sender field is relayed as given, but worth noting.
            logging.warning(f"Client {self.label} sent a MESSAGE claiming sender '{sender}'.")

        delivered = await self.router.deliver(sender, recipient, body, timestamp)
        if not delivered:
            await self.send(Envelope.of(CommandKind.MESSAGE_NOT_DELIVERED, recipient, body))

    async def _on_add_contact(self, envelope: Envelope) -> None:
        user, contact = envelope.fields
        online = self.router.add_contact(user, contact)
        await self.send(Envelope.of(CommandKind.CONTACT_ADDED, contact, "true" if online else "false"))

    async def _on_request_online_users(self, envelope: Envelope) -> None:
        await self.send(Envelope.of(CommandKind.ONLINE_USERS, *self.router.online_users()))

    async def _on_change_status(self, envelope: Envelope) -> None:
        await self.router.change_status(self, envelope.fields[0])

    async def _on_ping(self, envelope: Envelope) -> None:
        await self.send(Envelope.of(CommandKind.PONG))

    async def _on_disconnect_request(self, envelope: Envelope) -> None:
        logging.info(f"Client {self.label} requested disconnection.")
        self.listening = False
