"""Redis-backed delayed job queue.

Layout under ``prefix``:

- ``<prefix>:jobs`` hash: job id -> JSON job record (every known job)
- ``<prefix>:due`` sorted set: pending job ids scored by run time (epoch seconds)
- ``<prefix>:running`` sorted set: claimed job ids scored by lease deadline
- ``<prefix>:dead`` set: ids of jobs that ran out of attempts

Every step that touches more than one key runs as a Lua script, so a crash
between two commands cannot leave a record that is neither due, running nor
dead. Claiming moves ids from the due set to the running set in one script;
each due job goes to exactly one worker even with several worker processes
polling. A claimed job that is neither acknowledged nor failed before its lease
runs out is handed back to the due set on the next claim and counts as a
failed attempt.
"""

import json
from datetime import UTC, datetime

import redis
import structlog

from ordering.scheduling.port import Job, JobQueue, JobStatus, RetryPolicy

logger = structlog.get_logger(__name__)

# KEYS: jobs, due. ARGV: id, record, run_at score
ENQUEUE_SCRIPT = """
if redis.call('HSETNX', KEYS[1], ARGV[1], ARGV[2]) == 0 then
    return 0
end
redis.call('ZADD', KEYS[2], ARGV[3], ARGV[1])
return 1
"""

# KEYS: jobs, due. ARGV: id
REMOVE_SCRIPT = """
if redis.call('ZREM', KEYS[2], ARGV[1]) == 0 then
    return 0
end
redis.call('HDEL', KEYS[1], ARGV[1])
return 1
"""

# KEYS: due, running. ARGV: now score, lease deadline score, limit
CLAIM_SCRIPT = """
local ids = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, tonumber(ARGV[3]))
for _, id in ipairs(ids) do
    redis.call('ZREM', KEYS[1], id)
    redis.call('ZADD', KEYS[2], ARGV[2], id)
end
return ids
"""

# KEYS: jobs, running, due, dead. ARGV: id, record, run_at score or "dead"
RELEASE_SCRIPT = """
if redis.call('ZREM', KEYS[2], ARGV[1]) == 0 then
    return 0
end
redis.call('HSET', KEYS[1], ARGV[1], ARGV[2])
if ARGV[3] == 'dead' then
    redis.call('SADD', KEYS[4], ARGV[1])
else
    redis.call('ZADD', KEYS[3], ARGV[3], ARGV[1])
end
return 1
"""

# KEYS: jobs, running. ARGV: id
ACK_SCRIPT = """
redis.call('ZREM', KEYS[2], ARGV[1])
redis.call('HDEL', KEYS[1], ARGV[1])
return 1
"""


class RedisJobQueue(JobQueue):
    def __init__(
        self,
        client: redis.Redis,
        prefix: str = "freshcart:jobs",
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(retry_policy)
        self.client = client
        self.jobs_key = f"{prefix}:jobs"
        self.due_key = f"{prefix}:due"
        self.running_key = f"{prefix}:running"
        self.dead_key = f"{prefix}:dead"

        self._enqueue = client.register_script(ENQUEUE_SCRIPT)
        self._remove = client.register_script(REMOVE_SCRIPT)
        self._claim = client.register_script(CLAIM_SCRIPT)
        self._release = client.register_script(RELEASE_SCRIPT)
        self._ack = client.register_script(ACK_SCRIPT)

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisJobQueue":
        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    @property
    def keys(self) -> list[str]:
        return [self.jobs_key, self.due_key, self.running_key, self.dead_key]

    def enqueue(self, job_id, kind, payload, delay, now=None) -> bool:
        now = now or datetime.now(UTC)
        job = Job(id=job_id, kind=kind, payload=dict(payload), run_at=now + delay, created_at=now)
        added = self._enqueue(
            keys=[self.jobs_key, self.due_key],
            args=[job_id, json.dumps(job.to_dict()), job.run_at.timestamp()],
        )
        return bool(added)

    def remove(self, job_id) -> bool:
        return bool(self._remove(keys=[self.jobs_key, self.due_key], args=[job_id]))

    def get(self, job_id) -> Job | None:
        raw = self.client.hget(self.jobs_key, job_id)
        return Job.from_dict(json.loads(raw)) if raw else None

    def _release_job(self, job: Job) -> bool:
        """Move a running job back to the due set, or park it as dead."""
        target = "dead" if job.status == JobStatus.DEAD.value else job.run_at.timestamp()
        released = self._release(
            keys=[self.jobs_key, self.running_key, self.due_key, self.dead_key],
            args=[job.id, json.dumps(job.to_dict()), target],
        )
        return bool(released)

    def _recover_expired(self, now: datetime) -> None:
        for job_id in self.client.zrangebyscore(self.running_key, "-inf", now.timestamp()):
            job = self.get(job_id)
            if job is None:
                self.client.zrem(self.running_key, job_id)
                continue
            job = self._next_state(job, "Lease expired before the job was acknowledged", 0, now)
            if self._release_job(job):
                logger.warning("Recovered job with expired lease", job_id=job_id, attempts=job.attempts, status=job.status)

    def claim_due(self, now=None, limit=100) -> list[Job]:
        now = now or datetime.now(UTC)
        self._recover_expired(now)

        lease_until = now + self.retry_policy.lease
        job_ids = self._claim(
            keys=[self.due_key, self.running_key],
            args=[now.timestamp(), lease_until.timestamp(), limit],
        )

        claimed = []
        for job_id in job_ids:
            job = self.get(job_id)
            if job is None:
                logger.warning("Due job has no record, dropping", job_id=job_id)
                self.client.zrem(self.running_key, job_id)
                continue
            job.status = JobStatus.RUNNING.value
            self.client.hset(self.jobs_key, job_id, json.dumps(job.to_dict()))
            claimed.append(job)
        return claimed

    def ack(self, job_id) -> None:
        self._ack(keys=[self.jobs_key, self.running_key], args=[job_id])

    def fail(self, job_id, error, retry_in=None, now=None) -> Job:
        now = now or datetime.now(UTC)
        job = self._next_state(self.get(job_id), error, retry_in, now)
        if not self._release_job(job):
            # Lease already expired and another worker took the job back
            logger.warning("Failed job was no longer leased", job_id=job_id)
            return self.get(job_id) or job
        return job

    def dead_jobs(self) -> list[Job]:
        jobs = (self.get(job_id) for job_id in self.client.smembers(self.dead_key))
        return [job for job in jobs if job is not None]
