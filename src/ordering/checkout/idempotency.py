"""Idempotency registry for checkout requests.

A client retrying a checkout (double submit, network retry) sends the same
idempotency key. The first request to present a key does the work; concurrent
duplicates wait for its outcome; late duplicates within ``ttl_seconds`` get
the cached result back. A failed attempt releases the key so the client can
try again, and waiters see the same failure.

Entries are kept in an ``IdempotencyStore``. ``RepositoryIdempotencyStore``
persists them as ``IdempotencyEntry`` rows keyed by the idempotency key, so a
completed result survives restarts and is visible to every API process.
Duplicates within one process share a ``concurrent.futures.Future``; a
duplicate whose key is pending in another process polls the store instead.
"""

import json
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, String, Text
from protean.utils.globals import current_domain

from ordering.config import get_settings
from ordering.domain import ordering
from ordering.errors import RequestInProgress
from ordering.order.order import as_utc

logger = structlog.get_logger(__name__)


class IdempotencyStatus(Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


@ordering.aggregate
class IdempotencyEntry:
    key = String(identifier=True, max_length=255)
    status = String(choices=IdempotencyStatus, default=IdempotencyStatus.PENDING.value)
    result = Text()  # JSON
    created_at = DateTime()
    expires_at = DateTime(required=True)


@dataclass
class StoredEntry:
    key: str
    status: str
    expires_at: datetime
    result: dict | None = None

    @property
    def completed(self) -> bool:
        return self.status == IdempotencyStatus.COMPLETED.value

    def expired(self, now: datetime) -> bool:
        return as_utc(self.expires_at) <= now


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------
class IdempotencyStore(ABC):
    @abstractmethod
    def load(self, key: str) -> StoredEntry | None: ...

    @abstractmethod
    def create_pending(self, key: str, expires_at: datetime) -> bool:
        """Insert a pending entry. Returns False if the key already exists."""
        ...

    @abstractmethod
    def mark_completed(self, key: str, result: dict, expires_at: datetime) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...


class InMemoryIdempotencyStore(IdempotencyStore):
    """Process-local store, for tests and single-process development."""

    def __init__(self) -> None:
        self._entries: dict[str, StoredEntry] = {}
        self._lock = threading.Lock()

    def load(self, key):
        with self._lock:
            return self._entries.get(key)

    def create_pending(self, key, expires_at):
        with self._lock:
            if key in self._entries:
                return False
            self._entries[key] = StoredEntry(key=key, status=IdempotencyStatus.PENDING.value, expires_at=expires_at)
            return True

    def mark_completed(self, key, result, expires_at):
        with self._lock:
            self._entries[key] = StoredEntry(
                key=key,
                status=IdempotencyStatus.COMPLETED.value,
                expires_at=expires_at,
                result=result,
            )

    def delete(self, key):
        with self._lock:
            self._entries.pop(key, None)


class RepositoryIdempotencyStore(IdempotencyStore):
    """Durable store on the ordering domain's persistence provider."""

    @property
    def repo(self):
        return current_domain.repository_for(IdempotencyEntry)

    def _get(self, key) -> IdempotencyEntry | None:
        try:
            return self.repo.get(key)
        except ObjectNotFoundError:
            return None

    def load(self, key):
        entry = self._get(key)
        if entry is None:
            return None
        return StoredEntry(
            key=entry.key,
            status=entry.status,
            expires_at=entry.expires_at,
            result=json.loads(entry.result) if entry.result else None,
        )

    def create_pending(self, key, expires_at):
        if self._get(key) is not None:
            return False
        self.repo.add(
            IdempotencyEntry(
                key=key,
                status=IdempotencyStatus.PENDING.value,
                created_at=datetime.now(UTC),
                expires_at=expires_at,
            )
        )
        return True

    def mark_completed(self, key, result, expires_at):
        entry = self._get(key) or IdempotencyEntry(key=key, created_at=datetime.now(UTC), expires_at=expires_at)
        entry.status = IdempotencyStatus.COMPLETED.value
        entry.result = json.dumps(result)
        entry.expires_at = expires_at
        self.repo.add(entry)

    def delete(self, key):
        entry = self._get(key)
        if entry is not None:
            self.repo._dao.delete(entry)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
@dataclass
class Acquisition:
    """Outcome of ``acquire_or_await``.

    ``is_new`` means the caller owns the key and must finish with complete()
    or release(). Otherwise ``wait()`` yields the owner's result, or raises the
    owner's exception. Without a ``timeout`` it waits at most the registry's
    pending timeout and then raises ``RequestInProgress``.
    """

    key: str
    is_new: bool
    future: Future | None = None
    registry: "IdempotencyRegistry | None" = None

    def wait(self, timeout: float | None = None) -> dict:
        if timeout is None and self.registry is not None:
            timeout = self.registry.pending_timeout.total_seconds()
        if self.future is None:
            return self.registry.poll(self.key, timeout)
        try:
            return self.future.result(timeout)
        except FutureTimeout as exc:
            raise RequestInProgress(f"Request {self.key} is still in progress") from exc


class IdempotencyRegistry:
    def __init__(
        self,
        store: IdempotencyStore | None = None,
        ttl_seconds: float | None = None,
        pending_timeout_seconds: float = 30.0,
        poll_interval: float = 0.05,
    ) -> None:
        self.store = store or RepositoryIdempotencyStore()
        self.ttl = timedelta(seconds=ttl_seconds if ttl_seconds is not None else get_settings().idempotency_ttl_seconds)
        self.pending_timeout = timedelta(seconds=pending_timeout_seconds)
        self.poll_interval = poll_interval
        self._inflight: dict[str, Future] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    def acquire_or_await(self, key: str) -> Acquisition:
        with self._lock:
            shared = self._inflight.get(key)
            if shared is not None:
                logger.info("Idempotency key in flight, awaiting owner", idempotency_key=key)
                return Acquisition(key=key, is_new=False, future=shared, registry=self)

            now = self._now()
            entry = self.store.load(key)
            if entry is not None and entry.expired(now):
                logger.info("Idempotency entry expired, starting over", idempotency_key=key, status=entry.status)
                self.store.delete(key)
                entry = None

            if entry is not None and entry.completed:
                logger.info("Idempotency key replayed from cache", idempotency_key=key)
                cached = Future()
                cached.set_result(entry.result)
                return Acquisition(key=key, is_new=False, future=cached, registry=self)

            if entry is not None or not self.store.create_pending(key, now + self.pending_timeout):
                logger.info("Idempotency key pending in another process", idempotency_key=key)
                return Acquisition(key=key, is_new=False, registry=self)

            owned = Future()
            self._inflight[key] = owned
            return Acquisition(key=key, is_new=True, future=owned, registry=self)

    def complete(self, key: str, result: dict) -> None:
        """Record the owner's result and hand it to every waiter.

        Waiters in this process get the result even when persisting it fails.
        The failure is logged and the entry stays pending in the store until
        its pending timeout runs out.
        """
        with self._lock:
            owned = self._inflight.pop(key, None)
            try:
                self.store.mark_completed(key, result, self._now() + self.ttl)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Failed to persist idempotency result",
                    idempotency_key=key,
                    error=str(exc),
                    exc_info=True,
                )
            finally:
                if owned is not None:
                    owned.set_result(result)

    def release(self, key: str, error: BaseException | None = None) -> None:
        with self._lock:
            owned = self._inflight.pop(key, None)
            try:
                self.store.delete(key)
            finally:
                if owned is not None:
                    owned.set_exception(error or RequestInProgress(f"Request {key} failed, retry it"))

    def poll(self, key: str, timeout: float | None = None) -> dict:
        """Wait for a key owned by another process to settle."""
        budget = timeout if timeout is not None else self.pending_timeout.total_seconds()
        deadline = time.monotonic() + budget
        while True:
            entry = self.store.load(key)
            if entry is not None and entry.completed:
                return entry.result
            if entry is None or entry.expired(self._now()):
                raise RequestInProgress(f"Request {key} did not complete, retry it")
            if time.monotonic() >= deadline:
                raise RequestInProgress(f"Request {key} is still in progress")
            time.sleep(self.poll_interval)
