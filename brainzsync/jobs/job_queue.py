"""
JobQueue runs scheduled jobs in due-time order on the calling thread.
"""
from __future__ import annotations

import heapq
import itertools
import logging
import time
from typing import Callable, Iterable, List, Optional, Tuple

from .dispatcher import Dispatcher
from .job_model import JobOutcome, JobStatus, ScheduledJob
from .job_store import JobStore

logger = logging.getLogger(__name__)


class JobQueue:
    """
    Delay-honouring runner for ScheduledJobs.

    Due times are offsets on a monotonic clock. Jobs due at the same time run
    in insertion order. Chained jobs returned by a dispatch are queued
    relative to the moment that dispatch finished.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        job_store: Optional[JobStore] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._dispatcher = dispatcher
        self._store = job_store
        self._clock = clock
        self._sleep = sleep
        self._heap: List[Tuple[float, int, ScheduledJob]] = []
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._heap)

    def push(self, scheduled: ScheduledJob) -> None:
        due = self._clock() + max(scheduled.delay, 0)
        heapq.heappush(self._heap, (due, next(self._counter), scheduled))
        logger.debug(f"Queued {scheduled.job.describe()} in {scheduled.delay}s")

    def extend(self, jobs: Iterable[ScheduledJob]) -> None:
        for scheduled in jobs:
            self.push(scheduled)

    def run(self) -> List[JobOutcome]:
        """
        Dispatch until the queue is empty.

        Returns:
            Outcomes in dispatch order
        """
        outcomes: List[JobOutcome] = []
        while self._heap:
            due, _, scheduled = heapq.heappop(self._heap)
            wait = due - self._clock()
            if wait > 0:
                self._sleep(wait)

            outcome = self._dispatcher.dispatch(scheduled.job)
            outcomes.append(outcome)

            if outcome.status == JobStatus.FAILED:
                logger.error(f"{scheduled.job.describe()} failed:\n{outcome.error_message()}")
            elif outcome.errors:
                logger.warning(f"{scheduled.job.describe()} finished with errors:\n{outcome.error_message()}")

            self.extend(outcome.chained)

        if self._store is not None and outcomes:
            self._store.append(outcomes)
        return outcomes
