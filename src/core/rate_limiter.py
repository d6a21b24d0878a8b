"""In-memory per-identity state tables for command handling.

Both tables are plain dicts mutated only from the event loop, so no locking
is needed. Entries are evicted lazily on access and by ``sweep()``, which the
scheduler calls periodically.
"""

import math
import time
from typing import Callable, Generic, Optional, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class CommandCooldown:
    """
    Single-slot cooldown per identity key (e.g. "chat_id:user_id").

    The first call for a key is allowed and starts its cooldown window;
    later calls inside the window are refused with the remaining wait time.
    """

    def __init__(
        self,
        cooldown_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._last_used: dict[str, float] = {}

    def try_acquire(self, key: str) -> tuple[bool, int]:
        """
        Check and record a command use for ``key``.

        Returns:
            Tuple of (allowed, remaining_seconds). remaining_seconds is 0
            when allowed, otherwise the whole seconds left (rounded up).
        """
        now = self._clock()
        last = self._last_used.get(key)

        if last is not None:
            elapsed = now - last
            if elapsed < self.cooldown_seconds:
                remaining = self.cooldown_seconds - elapsed
                return False, max(1, math.ceil(remaining))

        self._last_used[key] = now
        return True, 0

    def sweep(self) -> int:
        """
        Remove entries whose cooldown has expired.

        Returns:
            Number of keys removed
        """
        cutoff = self._clock() - self.cooldown_seconds
        expired = [k for k, ts in self._last_used.items() if ts <= cutoff]
        for k in expired:
            del self._last_used[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._last_used)


class ExpiringIntentTable(Generic[K, V]):
    """
    Last-writer-wins map whose entries expire after a fixed timeout.

    Used to remember which group an admin is updating the API key for while
    they switch to a private chat.
    """

    def __init__(
        self,
        timeout_seconds: float = 30 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._entries: dict[K, tuple[V, float]] = {}

    def set(self, key: K, value: V) -> None:
        self._entries[key] = (value, self._clock())

    def get(self, key: K) -> Optional[V]:
        """Return the live value for key, dropping it if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, created_at = entry
        if self._clock() - created_at > self.timeout_seconds:
            del self._entries[key]
            return None
        return value

    def pop(self, key: K) -> Optional[V]:
        """Return the live value for key and remove it."""
        value = self.get(key)
        self._entries.pop(key, None)
        return value

    def sweep(self) -> int:
        """
        Remove all expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [
            k for k, (_, created_at) in self._entries.items()
            if now - created_at > self.timeout_seconds
        ]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
