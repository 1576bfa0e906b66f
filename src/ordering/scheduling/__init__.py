"""Delayed job queue factory.

Provides get_job_queue() / set_job_queue() to swap implementations:
- InMemoryJobQueue for development and testing (default)
- RedisJobQueue when JOB_QUEUE_ADAPTER=redis
"""

from ordering.config import get_settings
from ordering.scheduling.memory_adapter import InMemoryJobQueue
from ordering.scheduling.port import JobQueue, RetryPolicy

_current_queue: JobQueue | None = None


def _build_queue() -> JobQueue:
    settings = get_settings()
    policy = RetryPolicy(
        max_attempts=settings.job_max_attempts,
        backoff_seconds=settings.job_backoff_seconds,
        lease_seconds=settings.job_lease_seconds,
    )
    if settings.job_queue_adapter == "redis":
        from ordering.scheduling.redis_adapter import RedisJobQueue

        return RedisJobQueue.from_url(settings.redis_url, retry_policy=policy)
    return InMemoryJobQueue(retry_policy=policy)


def get_job_queue() -> JobQueue:
    """Return the current job queue, building it from settings on first use."""
    global _current_queue
    if _current_queue is None:
        _current_queue = _build_queue()
    return _current_queue


def set_job_queue(queue: JobQueue) -> None:
    """Override the active job queue (useful for tests)."""
    global _current_queue
    _current_queue = queue


def reset_job_queue() -> None:
    """Reset to the queue configured by settings."""
    global _current_queue
    _current_queue = None
