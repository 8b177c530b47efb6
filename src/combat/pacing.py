"""
Presentation pacing for Grid Skirmish.

Pauses between turns exist only so a viewer can follow the fight. They are
expressed as explicit continuations queued on a PacingScheduler, keyed by
the turn occurrence they belong to, so a reset can cancel them all and a
stale one can never touch fresh state. Nothing runs concurrently: the owner
drives the queue with run_due() or run_until_idle().
"""

from dataclasses import dataclass, field
from heapq import heappop, heappush
from typing import Callable, Hashable, Optional
import itertools
import logging
import time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnToken:
    """
    Identifies one turn occurrence.

    generation changes on every reset; round, index and combatant_id pin the
    slot in the turn order.
    """
    generation: int
    round: int
    index: int
    combatant_id: str

    def __str__(self) -> str:
        return f"g{self.generation}:r{self.round}:i{self.index}:{self.combatant_id}"


@dataclass(order=True)
class ScheduledContinuation:
    """A callback waiting for its due time."""
    due_at: float
    sequence: int
    key: Hashable = field(compare=False)
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)


class PacingScheduler:
    """
    Single-threaded queue of delayed continuations.

    Args:
        clock: Returns the current time in seconds (default: time.monotonic)
        sleep: Blocks for a number of seconds (default: time.sleep)
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._clock = clock
        self._sleep = sleep
        self._queue: list[ScheduledContinuation] = []
        self._by_key: dict[Hashable, ScheduledContinuation] = {}
        self._counter = itertools.count()

    def schedule(self, key: Hashable, delay: float, callback: Callable[[], None]) -> Optional[ScheduledContinuation]:
        """
        Queue callback to run after delay seconds.

        A delay of zero or less runs the callback immediately and returns
        None. Scheduling a key that is already pending replaces it.
        """
        if delay <= 0:
            callback()
            return None

        self.cancel(key)
        item = ScheduledContinuation(
            due_at=self._clock() + delay,
            sequence=next(self._counter),
            key=key,
            callback=callback,
        )
        heappush(self._queue, item)
        self._by_key[key] = item
        logger.debug(f"Scheduled {key} in {delay:.2f}s")
        return item

    def cancel(self, key: Hashable) -> bool:
        """Cancel the pending continuation for key. Returns True if one was pending."""
        item = self._by_key.pop(key, None)
        if item is None:
            return False
        item.cancelled = True
        return True

    def cancel_all(self) -> int:
        """Cancel every pending continuation. Returns how many were cancelled."""
        count = len(self._by_key)
        for item in self._by_key.values():
            item.cancelled = True
        self._by_key.clear()
        self._queue.clear()
        if count:
            logger.debug(f"Cancelled {count} pending continuations")
        return count

    def is_pending(self, key: Hashable) -> bool:
        return key in self._by_key

    @property
    def pending_count(self) -> int:
        return len(self._by_key)

    def next_due(self) -> Optional[float]:
        """Due time of the earliest live continuation, if any."""
        while self._queue and self._queue[0].cancelled:
            heappop(self._queue)
        return self._queue[0].due_at if self._queue else None

    def run_due(self) -> int:
        """
        Run every continuation whose due time has passed, earliest first.

        Continuations scheduled by a callback run in the same call only if
        they are already due.

        Returns:
            Number of callbacks run
        """
        ran = 0
        while True:
            due = self.next_due()
            if due is None or due > self._clock():
                return ran
            item = heappop(self._queue)
            self._by_key.pop(item.key, None)
            item.callback()
            ran += 1

    def run_until_idle(self, max_callbacks: Optional[int] = None) -> int:
        """
        Sleep until each continuation is due and run it, until the queue is empty.

        Args:
            max_callbacks: Stop after this many callbacks (None = no limit)

        Returns:
            Number of callbacks run
        """
        ran = 0
        while max_callbacks is None or ran < max_callbacks:
            due = self.next_due()
            if due is None:
                break
            wait = due - self._clock()
            if wait > 0:
                self._sleep(wait)
            ran += self.run_due()
        return ran
