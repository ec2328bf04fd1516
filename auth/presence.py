"""
auth/presence.py -- Debounced "last seen / online" heartbeat.

Presence is display-only telemetry. Writing it on every authenticated request
would couple auth latency to a DB write, so PresenceTracker records at most
one write per user per interval and swallows sink failures with a warning.

The debounce map is per-process. With several workers a user may be written
once per worker per interval, which is fine for advisory data.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone

logger = logging.getLogger("scoutportal.auth.presence")

# sink(user_id, online, last_seen_iso)
PresenceSink = Callable[[str, bool, str], None]


class PresenceTracker:
    """Rate-limited writer of the presence flag.

    Usage:
        tracker = PresenceTracker(store.touch_presence, interval_seconds=60)
        tracker.heartbeat(user.id)     # writes
        tracker.heartbeat(user.id)     # skipped, inside the interval
        tracker.mark_offline(user.id)  # always writes
    """

    def __init__(
        self,
        sink: PresenceSink,
        interval_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sink = sink
        self._interval = interval_seconds
        self._clock = clock
        self._last_write: dict[str, float] = {}
        self._next_prune = 0.0
        self._lock = threading.Lock()

    def heartbeat(self, user_id: str) -> bool:
        """Mark the user online if the last write is older than the interval.

        Returns True when a write was attempted.
        """
        now = self._clock()
        with self._lock:
            if now >= self._next_prune:
                self._prune(now)
            last = self._last_write.get(user_id)
            if last is not None and now - last < self._interval:
                return False
            self._last_write[user_id] = now
        self._write(user_id, True, now)
        return True

    def mark_offline(self, user_id: str) -> None:
        """Mark the user offline immediately and reset their debounce window."""
        now = self._clock()
        with self._lock:
            self._last_write.pop(user_id, None)
        self._write(user_id, False, now)

    def tracked_users(self) -> int:
        """Number of users currently inside their debounce window (or not yet pruned)."""
        with self._lock:
            return len(self._last_write)

    def _prune(self, now: float) -> None:
        # Caller holds the lock. Entries past the interval no longer suppress a write.
        stale = [uid for uid, last in self._last_write.items() if now - last >= self._interval]
        for uid in stale:
            del self._last_write[uid]
        self._next_prune = now + self._interval

    def _write(self, user_id: str, online: bool, now: float) -> None:
        last_seen = datetime.fromtimestamp(now, tz=timezone.utc).isoformat()
        try:
            self._sink(user_id, online, last_seen)
        except Exception:
            logger.warning("Presence update failed for user %s", user_id, exc_info=True)
