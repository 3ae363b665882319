# chatrelay/contacts.py
# Per-user contact lists. Membership tracking only: contacts are never removed.

import threading
from typing import Dict, FrozenSet, Set


class ContactBook:
    """Thread-safe mapping of user identity -> set of contact identities."""

    def __init__(self):
        self._lock = threading.Lock()
        self._contacts: Dict[str, Set[str]] = {}

    def add(self, user: str, contact: str) -> bool:
        """Add `contact` to `user`'s list. Returns False if it was already there."""
        with self._lock:
            contacts = self._contacts.setdefault(user, set())
            if contact in contacts:
                return False
            contacts.add(contact)
            return True

    def contacts_of(self, user: str) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._contacts.get(user, ()))
