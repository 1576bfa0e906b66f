"""Job worker: drains due delayed jobs into order transitions.

Each due job is claimed, dispatched by kind to the fulfillment service and then
acknowledged. Applied and skipped transitions both count as done: a skipped
job means the order already moved on. Any exception hands the job back to the
queue, which retries it with backoff; a job that runs out of attempts is parked
as dead and reported at error level, and the worker carries on with the rest.
When the queue cannot take the job back, its claim lease brings it back later.
"""

import threading
from datetime import UTC, datetime

import structlog

from ordering.fulfillment import FulfillmentService
from ordering.scheduling import get_job_queue
from ordering.scheduling.port import JobQueue, JobStatus
from ordering.scheduling.scheduler import AUTO_CANCEL, AUTO_CONFIRM
from ordering.utils.logging import bind_context, clear_context

logger = structlog.get_logger(__name__)


class UnknownJobKind(Exception):
    pass


class JobWorker:
    def __init__(
        self,
        domain,
        queue: JobQueue | None = None,
        fulfillment: FulfillmentService | None = None,
        batch_size: int = 50,
        name: str = "worker-1",
    ) -> None:
        self.domain = domain
        self._queue = queue
        self._fulfillment = fulfillment
        self.batch_size = batch_size
        self.name = name

    @property
    def queue(self) -> JobQueue:
        return self._queue or get_job_queue()

    @property
    def fulfillment(self) -> FulfillmentService:
        if self._fulfillment is None:
            self._fulfillment = FulfillmentService()
        return self._fulfillment

    def _dispatch(self, job, now):
        order_id = job.payload["order_id"]
        if job.kind == AUTO_CANCEL:
            return self.fulfillment.auto_cancel(order_id)
        if job.kind == AUTO_CONFIRM:
            return self.fulfillment.auto_confirm(order_id, as_of=now)
        raise UnknownJobKind(f"No handler for job kind {job.kind}")

    def process(self, job, now=None) -> str:
        """Run one claimed job. Returns ``done``, ``retrying`` or ``dead``."""
        now = now or datetime.now(UTC)
        bind_context(worker=self.name, job_id=job.id, job_kind=job.kind, attempt=job.attempts + 1)
        try:
            logger.info("Job started", order_id=job.payload.get("order_id"))
            with self.domain.domain_context():
                result = self._dispatch(job, now)
            self.queue.ack(job.id)
            logger.info(
                "Job finished",
                order_id=result.order_id,
                outcome=result.outcome,
                from_status=result.from_status,
                to_status=result.to_status,
            )
            return "done"
        except Exception as exc:  # noqa: BLE001
            try:
                failed = self.queue.fail(job.id, str(exc), retry_in=getattr(exc, "retry_in", None), now=now)
            except Exception as queue_exc:  # noqa: BLE001
                logger.error(
                    "Could not hand job back, it returns when its lease expires",
                    order_id=job.payload.get("order_id"),
                    error=str(exc),
                    queue_error=str(queue_exc),
                )
                return "retrying"
            if failed.status == JobStatus.DEAD.value:
                logger.error(
                    "Job exhausted its retries",
                    order_id=job.payload.get("order_id"),
                    attempts=failed.attempts,
                    error=str(exc),
                    exc_info=True,
                )
                return "dead"
            logger.warning(
                "Job failed, will retry",
                order_id=job.payload.get("order_id"),
                attempts=failed.attempts,
                next_run_at=failed.run_at.isoformat(),
                error=str(exc),
            )
            return "retrying"
        finally:
            clear_context()

    def run_once(self, now=None) -> dict:
        """Process every job due at ``now``; returns a count per outcome."""
        now = now or datetime.now(UTC)
        counts = {"done": 0, "retrying": 0, "dead": 0}
        for job in self.queue.claim_due(now=now, limit=self.batch_size):
            counts[self.process(job, now=now)] += 1
        if any(counts.values()):
            logger.info("Worker pass complete", worker=self.name, **counts)
        return counts

    def run_forever(self, poll_interval: float = 1.0, stop_event: threading.Event | None = None) -> None:
        stop_event = stop_event or threading.Event()
        logger.info("Worker started", worker=self.name, poll_interval=poll_interval)
        while not stop_event.is_set():
            try:
                self.run_once()
            except Exception as exc:  # noqa: BLE001
                # Queue unreachable; keep polling until it comes back
                logger.error("Worker pass failed", worker=self.name, error=str(exc), exc_info=True)
            stop_event.wait(poll_interval)
        logger.info("Worker stopped", worker=self.name)
