"""Worker pool that drains the reconcile queue."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Hashable

from .constants import CONTROLLER_NAME, MAX_RETRIES
from .metrics import MetricsSink, NullMetrics
from .models import Notification, notification_key
from .utils.errors import sanitize_exception
from .utils.workqueue import RateLimitingQueue

logger = logging.getLogger(__name__)


class Controller:
    """Feeds resource keys from watch notifications to a pool of workers.

    Each key is reconciled by at most one worker at a time. Failed keys are
    requeued with backoff until they have been requeued ``max_retries``
    times, after which they are dropped until the next notification.
    """

    def __init__(
        self,
        reconcile: Callable[[str], None],
        queue: RateLimitingQueue | None = None,
        metrics: MetricsSink | None = None,
        max_retries: int = MAX_RETRIES,
    ) -> None:
        self.reconcile = reconcile
        self.metrics = metrics if metrics is not None else NullMetrics()
        self.queue = queue if queue is not None else RateLimitingQueue(name=CONTROLLER_NAME, metrics=self.metrics)
        self.max_retries = max_retries
        self.synced = threading.Event()

    def handle(self, notification: Notification) -> None:
        """Enqueue the resource a notification refers to."""
        try:
            key = notification_key(notification)
        except (AttributeError, ValueError) as e:
            logger.error(f"Dropping notification {type(notification).__name__}: {e}")
            return
        self.queue.add(key)

    def mark_synced(self) -> None:
        """Signal that the initial listing has been enqueued."""
        self.synced.set()

    def has_synced(self) -> bool:
        return self.synced.is_set()

    def run(self, workers: int, stop_event: threading.Event) -> None:
        """Run ``workers`` worker threads until ``stop_event`` is set.

        Workers start only once the initial listing is synced. On stop the
        queue is shut down and this call returns after every worker has
        finished its current item and exited.
        """
        logger.info(f"Starting {CONTROLLER_NAME} controller")

        logger.info("Waiting for informer caches to sync")
        while not self.synced.wait(timeout=1.0):
            if stop_event.is_set():
                self.queue.shut_down()
                logger.info("Stopped before caches synced")
                return

        logger.info(f"Starting {workers} workers")
        threads = [
            threading.Thread(target=self.run_worker, name=f"{CONTROLLER_NAME}-worker-{i}", daemon=True)
            for i in range(workers)
        ]
        for thread in threads:
            thread.start()

        stop_event.wait()
        logger.info("Shutting down workers")
        self.queue.shut_down()
        for thread in threads:
            thread.join()
        logger.info("Workers finished")

    def run_worker(self) -> None:
        while self.process_next_work_item():
            pass

    def process_next_work_item(self) -> bool:
        """Reconcile one key from the queue.

        Returns:
            False once the queue has shut down
        """
        key, shutdown = self.queue.get()
        if shutdown:
            return False

        try:
            self.reconcile(key)
        except Exception as e:
            self.handle_err(e, key)
        else:
            self.queue.forget(key)
        finally:
            self.queue.done(key)
        return True

    def handle_err(self, error: Exception, key: Hashable) -> None:
        """Requeue ``key`` with backoff, or drop it once retries are exhausted."""
        requeues = self.queue.num_requeues(key)
        if requeues < self.max_retries:
            logger.info(f"Error syncing virtual machine {key} (requeue {requeues + 1}): {sanitize_exception(error)}")
            self.queue.add_rate_limited(key)
            return

        self.queue.forget(key)
        self.metrics.queue_dropped(self.queue.name)
        logger.error(
            f"Dropping virtual machine {key} out of the queue after {requeues} requeues: {sanitize_exception(error)}"
        )
