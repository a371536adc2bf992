"""
Spread work, identified by a key, across a bounded set of worker threads.
"""

import queue
import threading
from typing import Any, Callable, Iterable, List, Optional, Tuple

from .logger import StructuredLogger
from .output import LockGuard, NULL_GUARD, OutputGuard

# Author: Vamsi


UnitOfWork = Callable[[Any, OutputGuard], None]


class WorkDistributor:
    """Worker pool draining a shared queue of keys."""

    def __init__(self, logger: Optional[StructuredLogger] = None, thread_name_prefix: str = "meshrun-worker"):
        """
        Initialize the distributor.

        :param logger: Structured logger
        :param thread_name_prefix: Prefix for worker thread names
        """
        self.logger = logger or StructuredLogger.quiet()
        self.thread_name_prefix = thread_name_prefix

    def distribute(self, keys: Iterable[Any], worker_count: int, unit_of_work: UnitOfWork) -> None:
        """
        Call unit_of_work(key, guard) once per key from up to worker_count threads.

        Blocks until every worker has finished. A failing unit of work does not
        stop the others: workers keep draining the queue, and once all of them
        have joined the first failure is raised.

        :param keys: Keys to process; duplicates are processed once per occurrence
        :param worker_count: Maximum number of concurrent workers
        :param unit_of_work: Callable receiving a key and the shared output guard
        :raises ValueError: If worker_count is not positive
        """
        if worker_count < 1:
            raise ValueError(f"worker_count must be positive, got {worker_count}")

        work_queue: "queue.Queue[Any]" = queue.Queue()
        for key in keys:
            work_queue.put(key)

        total = work_queue.qsize()
        if total == 0:
            return

        thread_count = min(worker_count, total)
        guard = LockGuard() if thread_count > 1 else NULL_GUARD

        failures: List[Tuple[Any, BaseException]] = []
        failures_lock = threading.Lock()

        def worker():
            while True:
                try:
                    key = work_queue.get_nowait()
                except queue.Empty:
                    return
                try:
                    unit_of_work(key, guard)
                except Exception as e:
                    with failures_lock:
                        failures.append((key, e))
                    self.logger.error("Unit of work failed", key=str(key), error=str(e),
                                      error_type=type(e).__name__)

        self.logger.debug("Distributing work", keys=total, workers=thread_count)
        threads = [
            threading.Thread(target=worker, name=f"{self.thread_name_prefix}-{i}", daemon=True)
            for i in range(1, thread_count + 1)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        if failures:
            key, error = failures[0]
            self.logger.warning("Work finished with failures", failed=len(failures), total=total,
                                first_failed_key=str(key))
            raise error


def distribute(keys: Iterable[Any], worker_count: int, unit_of_work: UnitOfWork,
               logger: Optional[StructuredLogger] = None) -> None:
    """Shortcut for WorkDistributor(logger).distribute(...)."""
    WorkDistributor(logger).distribute(keys, worker_count, unit_of_work)
