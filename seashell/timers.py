"""
Coordinator timers

One-shot and repeating timers that fire on the coordinator thread. The
coordinator never sleeps on anything but the event queue, so a timer
is just a deadline the main loop checks after each wakeup.
"""

import heapq
import itertools
import logging
import time
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Timer:
    """Handle for a scheduled callback"""

    def __init__(
        self,
        deadline: float,
        callback: Callable[[], None],
        interval: Optional[float] = None,
    ):
        self.deadline = deadline
        self.callback = callback
        self.interval = interval
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class Scheduler:
    """
    Deadline heap driven by the coordinator loop

    Callbacks run synchronously inside run_due(); a callback may schedule
    or cancel other timers.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._heap: List[Tuple[float, int, Timer]] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> Timer:
        """Run callback once, delay seconds from now"""
        timer = Timer(self.clock() + max(0.0, delay), callback)
        self._push(timer)
        return timer

    def call_every(self, interval: float, callback: Callable[[], None]) -> Timer:
        """Run callback every interval seconds until cancelled"""
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        timer = Timer(self.clock() + interval, callback, interval=interval)
        self._push(timer)
        return timer

    def _push(self, timer: Timer) -> None:
        heapq.heappush(self._heap, (timer.deadline, next(self._seq), timer))

    def next_timeout(self) -> Optional[float]:
        """Seconds until the earliest live timer, or None when idle"""
        self._drop_cancelled()
        if not self._heap:
            return None
        return max(0.0, self._heap[0][0] - self.clock())

    def run_due(self) -> int:
        """
        Fire every timer whose deadline has passed

        Returns:
            Number of callbacks run
        """
        fired = 0
        now = self.clock()
        while self._heap and self._heap[0][0] <= now:
            _, _, timer = heapq.heappop(self._heap)
            if timer.cancelled:
                continue
            if timer.interval is not None:
                timer.deadline = now + timer.interval
                self._push(timer)
            else:
                timer.cancelled = True
            fired += 1
            try:
                timer.callback()
            except Exception:
                logger.exception("Timer callback failed")
        return fired

    def cancel_all(self) -> None:
        for _, _, timer in self._heap:
            timer.cancel()
        self._heap.clear()

    @property
    def pending(self) -> int:
        self._drop_cancelled()
        return sum(1 for _, _, timer in self._heap if not timer.cancelled)

    def _drop_cancelled(self) -> None:
        while self._heap and self._heap[0][2].cancelled:
            heapq.heappop(self._heap)
