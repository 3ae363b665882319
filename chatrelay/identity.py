# chatrelay/identity.py
# Identity assignment: every successful handshake gets "<n> - <nickname>", where n comes
# from a process-wide, strictly increasing counter starting at 1. The counter is an object
# owned by the Router rather than a module global, so tests can create or reset their own.

import threading


def format_identity(number: int, nickname: str) -> str:
    """Build the identity string handed to a client, e.g. format_identity(1, "ana") -> "1 - ana"."""
    return f"{number} - {nickname}"


class IdentityCounter:
    """Thread-safe monotonic counter used to make identities unique across duplicate nicknames."""

    def __init__(self, start: int = 1):
        self._lock = threading.Lock()
        self._start = start
        self._next = start

    def next(self) -> int:
        """Return the next number. Never returns the same value twice until reset()."""
        with self._lock:
            value = self._next
            self._next += 1
            return value

    @property
    def issued(self) -> int:
        """How many numbers have been handed out since construction or the last reset."""
        with self._lock:
            return self._next - self._start

    def reset(self) -> None:
        with self._lock:
            self._next = self._start
