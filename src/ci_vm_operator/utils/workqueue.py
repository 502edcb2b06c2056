"""A thread-safe, deduplicating, rate-limited work queue.

Items move through three states:

* dirty: waiting to be processed (at most once in the queue)
* processing: handed to a worker by ``get`` and not yet ``done``
* waiting: scheduled by ``add_after`` for a later time

An item added while it is being processed is only marked dirty; ``done``
puts it back in the queue. A single item is therefore never processed by two
workers at once.
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from collections import deque
from typing import Callable, Hashable

from ..metrics import MetricsSink, NullMetrics
from .rate_limit import RateLimiter, default_controller_rate_limiter


class RateLimitingQueue:
    """Work queue with delayed and rate-limited adds."""

    def __init__(
        self,
        rate_limiter: RateLimiter | None = None,
        name: str = "",
        metrics: MetricsSink | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.rate_limiter = rate_limiter if rate_limiter is not None else default_controller_rate_limiter()
        self.metrics = metrics if metrics is not None else NullMetrics()
        self._clock = clock
        self._cond = threading.Condition()
        self._queue: deque[Hashable] = deque()
        self._dirty: set[Hashable] = set()
        self._processing: set[Hashable] = set()
        self._waiting: list[tuple[float, int, Hashable]] = []
        self._waiting_ready_at: dict[Hashable, float] = {}
        self._sequence = itertools.count()
        self._shutting_down = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def add(self, item: Hashable) -> None:
        """Mark ``item`` as needing processing."""
        with self._cond:
            self._add_locked(item)

    def _add_locked(self, item: Hashable) -> None:
        if self._shutting_down or item in self._dirty:
            return
        self._dirty.add(item)
        self.metrics.queue_added(self.name)
        if item in self._processing:
            return
        self._queue.append(item)
        self.metrics.queue_depth(self.name, len(self._queue))
        self._cond.notify()

    def add_after(self, item: Hashable, delay: float) -> None:
        """Add ``item`` once ``delay`` seconds have passed."""
        with self._cond:
            if self._shutting_down:
                return
            if delay <= 0:
                self._add_locked(item)
                return
            ready_at = self._clock() + delay
            current = self._waiting_ready_at.get(item)
            # keep the earliest scheduled time for an item
            if current is not None and current <= ready_at:
                return
            self._waiting_ready_at[item] = ready_at
            heapq.heappush(self._waiting, (ready_at, next(self._sequence), item))
            self._cond.notify_all()

    def add_rate_limited(self, item: Hashable) -> None:
        """Add ``item`` after the delay chosen by the rate limiter."""
        self.metrics.queue_retried(self.name)
        self.add_after(item, self.rate_limiter.when(item))

    def forget(self, item: Hashable) -> None:
        """Reset the rate limiter's failure tracking for ``item``."""
        self.rate_limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return self.rate_limiter.num_requeues(item)

    def _promote_ready_locked(self) -> float | None:
        """Move due items from waiting to the queue.

        Returns the seconds until the next waiting item is due, or None.
        """
        now = self._clock()
        while self._waiting:
            ready_at, _, item = self._waiting[0]
            if ready_at > now:
                return ready_at - now
            heapq.heappop(self._waiting)
            # stale entry superseded by an earlier schedule
            if self._waiting_ready_at.get(item) != ready_at:
                continue
            del self._waiting_ready_at[item]
            self._add_locked(item)
        return None

    def get(self) -> tuple[Hashable | None, bool]:
        """Block until an item is available.

        Returns:
            ``(item, False)``, or ``(None, True)`` once the queue is shut down
            and empty
        """
        with self._cond:
            while True:
                next_due = None if self._shutting_down else self._promote_ready_locked()
                if self._queue:
                    break
                if self._shutting_down:
                    return None, True
                self._cond.wait(next_due)

            item = self._queue.popleft()
            self._processing.add(item)
            self._dirty.discard(item)
            self.metrics.queue_depth(self.name, len(self._queue))
            return item, False

    def done(self, item: Hashable) -> None:
        """Mark ``item`` as processed, requeueing it if it was re-added meanwhile."""
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty:
                self._queue.append(item)
                self.metrics.queue_depth(self.name, len(self._queue))
                self._cond.notify()

    def shut_down(self) -> None:
        """Stop accepting items. Workers drain what is already queued."""
        with self._cond:
            self._shutting_down = True
            self._waiting.clear()
            self._waiting_ready_at.clear()
            self._cond.notify_all()

    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down
