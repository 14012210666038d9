"""Short-lived de-duplication of agent stage events.

Entries are keyed by a natural idempotency key and expire after a TTL;
expired entries are dropped lazily on each lookup.
"""

import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class TTLCache:
    """In-memory seen-set with per-key expiry."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, float] = {}

    def _purge(self, now: float) -> None:
        expired = [k for k, t in self._entries.items() if now - t > self._ttl]
        for k in expired:
            del self._entries[k]

    def try_mark(self, key: Optional[str]) -> bool:
        """Atomic check-and-mark.

        First call for a key wins and returns True; repeats within the TTL
        return False. A missing key can't be deduped and always wins.
        """
        if not key:
            return True
        now = self._clock()
        self._purge(now)
        if key in self._entries:
            logger.debug(f"Duplicate key suppressed: {key}")
            return False
        self._entries[key] = now
        return True

    def __len__(self) -> int:
        return len(self._entries)
