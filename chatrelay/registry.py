# chatrelay/registry.py
# The shared directory of live sessions, keyed by identity.
# Replaces a bare global dict: the mapping is private and every call site goes through the
# methods below, all of which take the same lock. The lock is held only for the dict
# operation itself, never while a frame is being written to a socket.

import asyncio    # Broadcast sends run concurrently with asyncio.gather.
import logging    # For logging broadcast fan-out in DEBUG mode.
import threading  # Structure lock; also protects callers running outside the event loop.
from typing import TYPE_CHECKING, Dict, List, Optional

from chatrelay import config
from chatrelay.envelope import Envelope

if TYPE_CHECKING:
    from chatrelay.session import ConnectionSession


class ClientRegistry:
    """Identity -> ConnectionSession mapping shared by every connection."""

    def __init__(self):
        self._lock = threading.Lock()
        # Insertion-ordered, so snapshots list users in registration order.
        self._sessions: Dict[str, "ConnectionSession"] = {}

    def add(self, session: "ConnectionSession") -> bool:
        """
        Register a session under its (already finalized) identity.

        Returns:
            bool: False, leaving the registry unchanged, if the session has no identity yet
            or the identity is already taken.
        """
        identity = session.identity
        if identity is None:
            return False
        with self._lock:
            if identity in self._sessions:
                return False
            self._sessions[identity] = session
            return True

    def remove(self, session: "ConnectionSession") -> bool:
        """Remove `session`. No-op (returns False) if it is absent or another session owns the identity."""
        identity = session.identity
        if identity is None:
            return False
        with self._lock:
            if self._sessions.get(identity) is not session:
                return False
            del self._sessions[identity]
            return True

    def find(self, identity: str) -> Optional["ConnectionSession"]:
        with self._lock:
            return self._sessions.get(identity)

    def snapshot_identities(self) -> List[str]:
        """All registered identities at this instant, in registration order."""
        with self._lock:
            return list(self._sessions)

    def snapshot_sessions(self) -> List["ConnectionSession"]:
        with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._sessions

    async def broadcast(self, envelope: Envelope, exclude: Optional["ConnectionSession"] = None) -> int:
        """
        Send `envelope` to every registered session except `exclude`.

        A point-in-time snapshot is taken under the lock, then the sends run concurrently
        without it. A session leaving mid-broadcast may or may not receive the envelope.

        Returns:
            int: number of sessions the envelope was written to successfully.
        """
        targets = [s for s in self.snapshot_sessions() if s is not exclude]
        if config.DEBUG:
            logging.info(f"Broadcasting {envelope.kind.value} to {len(targets)} session(s)")
        if not targets:
            return 0
        results = await asyncio.gather(*(target.send(envelope) for target in targets))
        return sum(1 for delivered in results if delivered)
