"""Delayed job queue port (abstract interface).

A job is identified by a caller-chosen id. Enqueueing an id that is already
pending is a no-op, so scheduling the same order's same job twice leaves one
timer. Jobs can be removed until a worker claims them; after that the state
machine's guards decide what a late job may still do.

Delivery is at-least-once: a claimed job is either acknowledged or failed back
to the queue, which re-schedules it with exponential backoff until
``max_attempts`` is reached and then parks it as dead. A claim holds a lease;
when a worker dies before acknowledging or failing the job, the lease runs out
and the next claim hands the job out again as a failed attempt.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum


class JobStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    DEAD = "dead"


@dataclass
class Job:
    id: str
    kind: str
    payload: dict
    run_at: datetime
    attempts: int = 0
    status: str = JobStatus.PENDING.value
    last_error: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["run_at"] = self.run_at.isoformat()
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        return cls(
            id=data["id"],
            kind=data["kind"],
            payload=data["payload"],
            run_at=datetime.fromisoformat(data["run_at"]),
            attempts=data.get("attempts", 0),
            status=data.get("status", JobStatus.PENDING.value),
            last_error=data.get("last_error"),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_seconds: float = 1.0
    lease_seconds: float = 300.0

    @property
    def lease(self) -> timedelta:
        return timedelta(seconds=self.lease_seconds)

    def delay_for(self, attempts: int) -> timedelta:
        """Backoff before the next try, given how many attempts have failed."""
        return timedelta(seconds=self.backoff_seconds * (2 ** max(attempts - 1, 0)))


class JobQueue(ABC):
    """Abstract delayed job queue interface."""

    def __init__(self, retry_policy: RetryPolicy | None = None) -> None:
        self.retry_policy = retry_policy or RetryPolicy()

    @abstractmethod
    def enqueue(self, job_id: str, kind: str, payload: dict, delay: timedelta, now: datetime | None = None) -> bool:
        """Schedule a job. Returns False when ``job_id`` is already queued."""
        ...

    @abstractmethod
    def remove(self, job_id: str) -> bool:
        """Drop a pending job. Returns False if it is unknown or already claimed."""
        ...

    @abstractmethod
    def get(self, job_id: str) -> Job | None: ...

    @abstractmethod
    def claim_due(self, now: datetime | None = None, limit: int = 100) -> list[Job]:
        """Claim up to ``limit`` jobs whose run time has passed, oldest first."""
        ...

    @abstractmethod
    def ack(self, job_id: str) -> None:
        """Mark a claimed job as done and forget it."""
        ...

    @abstractmethod
    def fail(self, job_id: str, error: str, retry_in: float | None = None, now: datetime | None = None) -> Job:
        """Hand a claimed job back after a failed attempt.

        The job is re-scheduled after ``retry_in`` seconds, or after the retry
        policy's backoff when no hint is given, until it runs out of attempts;
        then it is parked with status ``dead``.
        """
        ...

    @abstractmethod
    def dead_jobs(self) -> list[Job]: ...

    def _next_state(self, job: Job, error: str, retry_in: float | None, now: datetime) -> Job:
        job.attempts += 1
        job.last_error = error
        if job.attempts >= self.retry_policy.max_attempts:
            job.status = JobStatus.DEAD.value
        else:
            delay = timedelta(seconds=retry_in) if retry_in is not None else self.retry_policy.delay_for(job.attempts)
            job.status = JobStatus.PENDING.value
            job.run_at = now + delay
        return job
