# chat_relay/services/dedup_window.py

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from typing import Callable

from chat_relay.core.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]

DEFAULT_WINDOW_SECONDS = 60.0


# ============================================================================
# DEDUPLICATION WINDOW
# ============================================================================

class DedupWindow:
    """
    Remembers accepted message ids for a trailing time window.

    Entries live in an OrderedDict keyed by id with their expiry deadline as
    value. The window length is fixed and the clock is monotonic, so insertion
    order is also deadline order: expiring means popping from the front until
    the first live entry. That keeps both ``accept`` and ``sweep`` O(1)
    amortised and memory bounded by the number of ids seen in one window.

    Expiry happens lazily on every ``accept`` and in ``run_sweeper``, a
    background task for quiet periods. Both run on the event loop thread,
    so they never interleave with each other.

    Args:
        window_seconds: how long an accepted id counts as a duplicate
        clock: returns seconds; injected so tests can move time by hand
    """

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Clock = time.monotonic,
    ) -> None:
        self.window_seconds = window_seconds
        self.clock = clock
        self._deadlines: "OrderedDict[str, float]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._deadlines)

    def __contains__(self, message_id: str) -> bool:
        deadline = self._deadlines.get(message_id)
        return deadline is not None and deadline > self.clock()

    def accept(self, message_id: str) -> bool:
        """
        Record ``message_id`` if it is new.

        Returns:
            True the first time the id is seen (or after its entry expired),
            False while an earlier acceptance is still inside the window.
        """
        now = self.clock()
        self._expire(now)
        if message_id in self._deadlines:
            return False
        self._deadlines[message_id] = now + self.window_seconds
        return True

    def sweep(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        return self._expire(self.clock())

    def _expire(self, now: float) -> int:
        removed = 0
        while self._deadlines:
            message_id, deadline = next(iter(self._deadlines.items()))
            if deadline > now:
                break
            del self._deadlines[message_id]
            removed += 1
        return removed

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Background loop purging expired ids; cancel the task to stop it."""
        logger.info("✓ Dedup sweeper started (every %.1fs, window %.1fs)", interval_seconds, self.window_seconds)
        try:
            while True:
                await asyncio.sleep(interval_seconds)
                removed = self.sweep()
                if removed:
                    logger.debug("Dedup sweep removed %d expired ids (%d live)", removed, len(self))
        except asyncio.CancelledError:
            logger.info("✗ Dedup sweeper stopped")
            raise
