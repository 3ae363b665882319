# chatrelay/router.py
# The relay coordinator.
# Responsibilities include:
# - Spawning a ConnectionSession for each accepted transport.
# - Assigning identities and welcoming newly registered sessions.
# - Routing messages to live sessions, or into the offline mailbox.
# - Broadcasting presence changes (new user, status change, user offline).
# - Tearing sessions down exactly once, and shutting the whole relay down.
# The Router is the only component that touches the registry, the mailbox and the
# contact book. Sessions reach each other exclusively through it.

import logging          # For logging registrations, routing and teardown.
import threading        # Guards the last-seen map.
import time             # Default clock for last-seen stamps.
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional

from chatrelay import config
from chatrelay.contacts import ContactBook
from chatrelay.envelope import CommandKind, Envelope
from chatrelay.errors import ProtocolViolation
from chatrelay.identity import IdentityCounter, format_identity
from chatrelay.mailbox import OfflineMailbox
from chatrelay.registry import ClientRegistry
from chatrelay.session import ConnectionSession, PresenceState


@dataclass
class RelayStatistics:
    """Point-in-time summary of the relay, for an operator console."""

    connected_users: List[str] = field(default_factory=list)
    pending_recipients: int = 0
    pending_messages: int = 0
    identities_assigned: int = 0

    def render(self) -> str:
        lines = [
            "=== SERVER STATISTICS ===",
            f"Connected users: {len(self.connected_users)}",
            f"Recipients with offline messages: {self.pending_recipients}",
            f"Offline messages stored: {self.pending_messages}",
            f"Identities assigned: {self.identities_assigned}",
            "",
            "Connected:",
        ]
        lines.extend(f"- {identity}" for identity in self.connected_users)
        return "\n".join(lines) + "\n"


class Router:
    """
    Single source of truth for cross-session effects.

    Args:
        counter: Identity counter. Injected so tests can start from a known value.
        registry, mailbox, contacts: Shared structures; fresh ones are created if omitted.
        clock: Time source for last-seen stamps and session activity.
    """

    def __init__(
        self,
        counter: Optional[IdentityCounter] = None,
        registry: Optional[ClientRegistry] = None,
        mailbox: Optional[OfflineMailbox] = None,
        contacts: Optional[ContactBook] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.counter = counter if counter is not None else IdentityCounter()
        self.registry = registry if registry is not None else ClientRegistry()
        self.mailbox = mailbox if mailbox is not None else OfflineMailbox()
        self.contacts = contacts if contacts is not None else ContactBook()
        self._clock = clock
        self._last_seen: Dict[str, float] = {}
        self._last_seen_lock = threading.Lock()

    # --- Connection Entry Point ---

    async def handle_connection(self, transport) -> ConnectionSession:
        """Create a session for an accepted transport and run it until it terminates."""
        session = ConnectionSession(transport, self, clock=self._clock)
        logging.info(f"New connection from {session.remote_address}")
        await session.run()
        return session

    # --- Registration ---

    async def register_and_welcome(self, session: ConnectionSession, nickname: str) -> str:
        """
        Complete a handshake.

        Order matters: the session is in the registry before anybody is told about it. The
        mailbox is drained before the first await, and the welcome plus the backlog go out
        under one hold of the session's send lock, so a live MESSAGE routed to the new
        session meanwhile queues behind the queued ones.

        Returns:
            str: The identity assigned to the session.
        """
        identity = format_identity(self.counter.next(), nickname)
        session.accept(identity)
        if not self.registry.add(session):
            raise ProtocolViolation(f"identity '{identity}' is already registered")
        # No await between add() and drain(): nothing can be stored for this identity in between.
        pending = self.mailbox.drain(identity)
        logging.info(f"Identifier '{identity}' registered successfully for {session.remote_address}")

        # Welcome: assigned identity followed by everybody else online right now.
        others = [other for other in self.registry.snapshot_identities() if other != identity]
        welcome = [Envelope.of(CommandKind.CONNECTION_ACCEPTED, identity, *others)]
        # Offline backlog, oldest first.
        welcome.extend(
            Envelope.of(CommandKind.MESSAGE, message.sender, identity, message.body, message.timestamp)
            for message in pending
        )
        await session.send_all(welcome)
        if pending:
            logging.info(f"Delivered {len(pending)} offline message(s) to {identity}")

        await self.registry.broadcast(Envelope.of(CommandKind.NEW_USER_ONLINE, identity), exclude=session)
        return identity

    # --- Routing ---

    async def deliver(self, sender: str, recipient: str, body: str, timestamp: str) -> bool:
        """
        Route one message.

        Returns:
            bool: True if `recipient` has a live session (the MESSAGE was handed to it);
            False if it was queued in the offline mailbox instead.
        """
        target = self.registry.find(recipient)
        if target is None:
            self.mailbox.store(recipient, sender, body, timestamp)
            logging.info(f"Recipient '{recipient}' is offline. Stored message from '{sender}'.")
            return False

        if config.DEBUG:
            logging.info(f"Relaying message from '{sender}' to '{recipient}': {body}")
        await target.send(Envelope.of(CommandKind.MESSAGE, sender, recipient, body, timestamp))
        return True

    # --- Contacts & Presence ---

    def add_contact(self, user: str, contact: str) -> bool:
        """Record `contact` in `user`'s contact list. Returns whether `contact` is online now."""
        if self.contacts.add(user, contact):
            logging.info(f"Contact '{contact}' added for '{user}'")
        return self.is_online(contact)

    def contacts_of(self, user: str) -> FrozenSet[str]:
        return self.contacts.contacts_of(user)

    def online_users(self) -> List[str]:
        return self.registry.snapshot_identities()

    def is_online(self, identity: str) -> bool:
        return identity in self.registry

    def last_seen(self, identity: str) -> Optional[float]:
        """Epoch seconds at which `identity` last went offline, or None if it never did."""
        with self._last_seen_lock:
            return self._last_seen.get(identity)

    async def change_status(self, session: ConnectionSession, new_status: str) -> None:
        session.status = new_status
        if PresenceState.is_well_known(new_status):
            logging.info(f"User '{session.identity}' changed status to: {new_status}")
        else:
            logging.info(f"User '{session.identity}' set a custom status: {new_status}")
        await self.registry.broadcast(
            Envelope.of(CommandKind.STATUS_CHANGED, session.identity, new_status), exclude=session
        )

    # --- Teardown ---

    async def disconnect(self, session: ConnectionSession) -> None:
        """
        Tear a session down: deregister, announce USER_OFFLINE, close the transport.

        Safe to call from any exit path; only the call that wins session.terminate() acts.
        """
        await self._teardown(session, announce=True)

    async def _teardown(self, session: ConnectionSession, announce: bool) -> None:
        if not session.terminate():
            return

        identity = session.identity
        if identity is not None and self.registry.remove(session):
            with self._last_seen_lock:
                self._last_seen[identity] = self._clock()
            logging.info(f"Unregistered client {session.remote_address} with ID '{identity}'")
            if announce:
                await self.registry.broadcast(Envelope.of(CommandKind.USER_OFFLINE, identity), exclude=session)
        else:
            # Never made it into the registry (bad handshake, or rejected during registration).
            logging.info(f"Client {session.remote_address} disconnected but had no registered ID.")

        await session.close()

    async def shutdown(self) -> None:
        """Tell every client the server is going away, then tear every session down."""
        sessions = self.registry.snapshot_sessions()
        logging.info(f"Shutting down relay, disconnecting {len(sessions)} client(s)")
        await self.registry.broadcast(Envelope.of(CommandKind.SERVER_SHUTTING_DOWN))
        for session in sessions:
            # Everybody is leaving, so no USER_OFFLINE fan-out.
            await self._teardown(session, announce=False)

    # --- Statistics ---

    def statistics(self) -> RelayStatistics:
        return RelayStatistics(
            connected_users=self.registry.snapshot_identities(),
            pending_recipients=len(self.mailbox.recipients()),
            pending_messages=self.mailbox.pending_count(),
            identities_assigned=self.counter.issued,
        )
