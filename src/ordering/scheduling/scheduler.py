"""Scheduling of the two timed order transitions.

Job ids are derived from the job kind and the order id, so scheduling the same
transition for the same order twice leaves a single pending job, and the job
can be found again to cancel it without storing its id anywhere.
"""

from datetime import timedelta

import structlog

from ordering.scheduling import get_job_queue
from ordering.scheduling.port import JobQueue

logger = structlog.get_logger(__name__)

AUTO_CANCEL = "auto-cancel"
AUTO_CONFIRM = "auto-confirm"


def job_id_for(kind: str, order_id) -> str:
    return f"{kind}-{order_id}"


class DelayedJobScheduler:
    def __init__(self, queue: JobQueue | None = None) -> None:
        self._queue = queue

    @property
    def queue(self) -> JobQueue:
        return self._queue or get_job_queue()

    def _schedule(self, kind, order_id, delay: timedelta, now=None) -> bool:
        job_id = job_id_for(kind, order_id)
        created = self.queue.enqueue(job_id, kind, {"order_id": str(order_id)}, delay, now=now)
        logger.info(
            "Job scheduled" if created else "Job already scheduled",
            job_id=job_id,
            order_id=str(order_id),
            delay_seconds=delay.total_seconds(),
        )
        return created

    def _cancel(self, kind, order_id) -> bool:
        job_id = job_id_for(kind, order_id)
        removed = self.queue.remove(job_id)
        logger.info("Job removed" if removed else "No pending job to remove", job_id=job_id, order_id=str(order_id))
        return removed

    def schedule_auto_cancel(self, order_id, delay: timedelta, now=None) -> bool:
        return self._schedule(AUTO_CANCEL, order_id, delay, now=now)

    def cancel_auto_cancel(self, order_id) -> bool:
        return self._cancel(AUTO_CANCEL, order_id)

    def schedule_auto_confirm(self, order_id, delay: timedelta, now=None) -> bool:
        return self._schedule(AUTO_CONFIRM, order_id, delay, now=now)

    def cancel_auto_confirm(self, order_id) -> bool:
        return self._cancel(AUTO_CONFIRM, order_id)
