"""Bounded worker pool for independent sync jobs.

Jobs never depend on each other, so they are all submitted up front and
collected as they finish. A job that raises is logged with its relative
path and counted as failed; its artifact or index entry is left untouched
and the next run picks it up again. There is no retry inside a run.
"""

import concurrent.futures
import logging
import time
from typing import Callable, List, Optional

from msync.config.models import default_thread_count
from msync.domain.events import JobCompleted, JobFailed, ProgressUpdated
from msync.domain.models import Job, JobStatus, RunSummary
from msync.infrastructure.event_bus import EventBus

JobHandler = Callable[[Job], JobStatus]


class JobRunner:
    def __init__(
        self,
        event_bus: EventBus,
        max_workers: Optional[int] = None,
        progress_every: int = 10,
        debug: bool = False,
    ):
        self.event_bus = event_bus
        self.max_workers = max(max_workers or default_thread_count(), 1)
        self.progress_every = max(progress_every, 1)
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    def run(self, jobs: List[Job], handler: JobHandler) -> RunSummary:
        """Runs every job through handler and returns succeeded/failed/skipped counts.

        Completion order is unspecified. Results are collected on the calling
        thread, so events and counters are never touched by two threads at once.
        """
        summary = RunSummary(to_process=len(jobs))
        if not jobs:
            return summary

        total = len(jobs)
        done = 0
        start_time = time.monotonic()

        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="msync"
        )
        try:
            futures = {executor.submit(handler, job): job for job in jobs}
            for future in concurrent.futures.as_completed(futures):
                job = futures[future]
                try:
                    status = future.result()
                except Exception as e:
                    job.status = JobStatus.FAILED
                    job.error_message = str(e)
                    summary.failed += 1
                    self.logger.error(f"{job.kind.value} failed: {job.rel_path}: {e}")
                    self.event_bus.publish(JobFailed(job=job, error_message=job.error_message))
                else:
                    job.status = status
                    if status == JobStatus.SKIPPED:
                        summary.skipped += 1
                    else:
                        summary.succeeded += 1
                    self.event_bus.publish(JobCompleted(job=job))

                done += 1
                if done % self.progress_every == 0 or done == total:
                    self.event_bus.publish(ProgressUpdated(done=done, total=total, last_rel_path=job.rel_path))
        except KeyboardInterrupt:
            self.logger.info("Interrupted - cancelling pending jobs, waiting for running ones")
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        finally:
            executor.shutdown(wait=True)

        if self.debug:
            elapsed = time.monotonic() - start_time
            self.logger.debug(
                f"RUNNER_END: jobs={total} ok={summary.succeeded} skipped={summary.skipped} "
                f"failed={summary.failed} workers={self.max_workers} elapsed={elapsed:.2f}s"
            )
        return summary
