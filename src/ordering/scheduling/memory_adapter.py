"""In-process delayed job queue for development and testing.

Keeps jobs in a dict guarded by a lock. Jobs do not survive a restart; use
RedisJobQueue wherever API processes and workers run separately.
"""

import threading
from datetime import UTC, datetime, timedelta

from ordering.scheduling.port import Job, JobQueue, JobStatus, RetryPolicy


class InMemoryJobQueue(JobQueue):
    def __init__(self, retry_policy: RetryPolicy | None = None) -> None:
        super().__init__(retry_policy)
        self._jobs: dict[str, Job] = {}
        self._leases: dict[str, datetime] = {}
        self._lock = threading.Lock()
        self.calls: list[dict] = []

    def enqueue(self, job_id, kind, payload, delay: timedelta, now=None) -> bool:
        now = now or datetime.now(UTC)
        with self._lock:
            self.calls.append({"method": "enqueue", "job_id": job_id, "delay": delay})
            if job_id in self._jobs:
                return False
            self._jobs[job_id] = Job(id=job_id, kind=kind, payload=dict(payload), run_at=now + delay, created_at=now)
            return True

    def remove(self, job_id) -> bool:
        with self._lock:
            self.calls.append({"method": "remove", "job_id": job_id})
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.PENDING.value:
                return False
            del self._jobs[job_id]
            return True

    def get(self, job_id) -> Job | None:
        with self._lock:
            return self._jobs.get(job_id)

    def pending(self) -> list[Job]:
        with self._lock:
            return sorted(
                (job for job in self._jobs.values() if job.status == JobStatus.PENDING.value),
                key=lambda job: job.run_at,
            )

    def _recover_expired(self, now: datetime) -> None:
        for job_id, lease_until in list(self._leases.items()):
            if lease_until <= now:
                del self._leases[job_id]
                self._next_state(self._jobs[job_id], "Lease expired before the job was acknowledged", 0, now)

    def claim_due(self, now=None, limit=100) -> list[Job]:
        now = now or datetime.now(UTC)
        with self._lock:
            self._recover_expired(now)
            due = sorted(
                (job for job in self._jobs.values() if job.status == JobStatus.PENDING.value and job.run_at <= now),
                key=lambda job: job.run_at,
            )[:limit]
            for job in due:
                job.status = JobStatus.RUNNING.value
                self._leases[job.id] = now + self.retry_policy.lease
            return due

    def ack(self, job_id) -> None:
        with self._lock:
            self._leases.pop(job_id, None)
            self._jobs.pop(job_id, None)

    def fail(self, job_id, error, retry_in=None, now=None) -> Job:
        now = now or datetime.now(UTC)
        with self._lock:
            self._leases.pop(job_id, None)
            return self._next_state(self._jobs[job_id], error, retry_in, now)

    def dead_jobs(self) -> list[Job]:
        with self._lock:
            return [job for job in self._jobs.values() if job.status == JobStatus.DEAD.value]
