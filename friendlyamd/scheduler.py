"""
Job scheduler
=============
Runs a lazily produced stream of zero-argument callables with a fixed cap on
how many execute at once.

Up to `jobs` worker threads share one iterator; a new one is started only
for a task that has already been pulled, so a short source never spawns more
threads than it has tasks.  A worker pulls the next task only
after its previous one has settled, so the source is consumed on demand (a
generator over a huge directory tree is never materialised) and at most
`jobs` tasks are ever running.  Tasks start in source order; they finish in
whatever order the I/O allows.

An exception raised by a task is logged and counted; it never stops the
other workers or the tasks still to come.  If the system refuses to start another
thread the pool keeps the workers it has and finishes the stream with them.
"""

import logging
import threading

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class JobSummary:
    """Counters for one run_jobs() call."""

    def __init__(self):
        self.started = 0
        self.succeeded = 0
        self.failed = 0
        self.errors = []  # (task index, exception)

    def __repr__(self):
        return f"JobSummary(started={self.started}, succeeded={self.succeeded}, failed={self.failed})"


def run_jobs(tasks, jobs):
    """Run every task from the iterable tasks with at most jobs in flight.

    Returns a JobSummary once the iterable is exhausted and every started
    task has settled.  If the iterable itself raises, no further tasks are
    pulled and the error is re-raised after the running ones finish.
    """
    if isinstance(jobs, bool) or not isinstance(jobs, int) or jobs <= 0:
        raise ConfigurationError(f"the number of jobs must be a positive integer, got {jobs!r}")

    source = iter(tasks)
    lock = threading.Lock()
    summary = JobSummary()
    source_error = []
    handed_back = []  # pulled, but its worker could not be started

    def next_task():
        with lock:
            if handed_back:
                return handed_back.pop()
            if source_error:
                return None
            try:
                task = next(source)
            except StopIteration:
                return None
            except Exception as exc:
                source_error.append(exc)
                return None
            index = summary.started
            summary.started += 1
            return index, task

    def worker(item):
        while item is not None:
            index, task = item
            try:
                task()
            except Exception as exc:
                logger.error("task %d failed: %s", index, exc)
                with lock:
                    summary.failed += 1
                    summary.errors.append((index, exc))
            else:
                with lock:
                    summary.succeeded += 1
            item = next_task()

    # One worker per pulled task until the cap is reached; a short source never
    # spawns more threads than it has tasks.
    workers = []
    try:
        while len(workers) < jobs:
            item = next_task()
            if item is None:
                break
            t = threading.Thread(target=worker, args=(item,), name=f"job-{len(workers) + 1}",
                                 daemon=True)
            try:
                t.start()
            except RuntimeError as exc:
                logger.warning("could not start worker %d (%s), continuing with %d",
                               len(workers) + 1, exc, len(workers))
                with lock:
                    handed_back.append(item)
                break
            workers.append(t)
    finally:
        for t in workers:
            t.join()

    # Anything handed back after the pool wound down runs here.
    worker(next_task())

    if source_error:
        raise source_error[0]
    return summary
