# chatrelay/mailbox.py
# Store-and-forward for recipients that are not connected.
# Messages are queued per recipient identity in arrival order and handed back in one piece
# when the recipient registers. A recipient key only exists while it has pending mail.

import threading
from typing import Dict, List, NamedTuple, Optional


class PendingMessage(NamedTuple):
    sender: str
    body: str
    timestamp: str


class OfflineMailbox:
    """
    Per-recipient ordered queues of undelivered messages.

    A single lock guards the whole structure. `store` and `drain` for the same recipient
    are serialized by it, so a concurrent store lands entirely before or entirely after a
    drain: it is never lost and never delivered twice.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._queues: Dict[str, List[PendingMessage]] = {}

    def store(self, recipient: str, sender: str, body: str, timestamp: str) -> None:
        """Append a message to `recipient`'s queue, creating the queue if needed."""
        with self._lock:
            self._queues.setdefault(recipient, []).append(PendingMessage(sender, body, timestamp))

    def drain(self, recipient: str) -> List[PendingMessage]:
        """Remove and return every pending message for `recipient`, oldest first."""
        with self._lock:
            return self._queues.pop(recipient, [])

    def pending_count(self, recipient: Optional[str] = None) -> int:
        """Number of queued messages for one recipient, or across all recipients."""
        with self._lock:
            if recipient is not None:
                return len(self._queues.get(recipient, ()))
            return sum(len(queue) for queue in self._queues.values())

    def recipients(self) -> List[str]:
        """Identities that currently have pending mail."""
        with self._lock:
            return list(self._queues)
