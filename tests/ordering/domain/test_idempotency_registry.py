"""Tests for the checkout idempotency registry."""

import threading

import pytest
from ordering.checkout.idempotency import IdempotencyRegistry, InMemoryIdempotencyStore
from ordering.errors import RequestInProgress
from structlog.testing import capture_logs


@pytest.fixture()
def registry():
    return IdempotencyRegistry(store=InMemoryIdempotencyStore(), ttl_seconds=60, poll_interval=0.01)


class UnwritableStore(InMemoryIdempotencyStore):
    def mark_completed(self, key, result, expires_at):
        raise ConnectionError("database unavailable")


class TestIdempotencyRegistry:
    def test_first_request_owns_the_key(self, registry):
        assert registry.acquire_or_await("key-1").is_new

    def test_concurrent_duplicate_gets_owners_result(self, registry):
        owner = registry.acquire_or_await("key-1")
        duplicate = registry.acquire_or_await("key-1")
        assert owner.is_new
        assert not duplicate.is_new

        registry.complete("key-1", {"id": "ord-1"})
        assert duplicate.wait(timeout=1) == {"id": "ord-1"}

    def test_late_duplicate_replays_cached_result(self, registry):
        registry.acquire_or_await("key-1")
        registry.complete("key-1", {"id": "ord-1"})

        replay = registry.acquire_or_await("key-1")
        assert not replay.is_new
        assert replay.wait(timeout=1) == {"id": "ord-1"}

    def test_expired_result_is_not_replayed(self):
        registry = IdempotencyRegistry(store=InMemoryIdempotencyStore(), ttl_seconds=0)
        registry.acquire_or_await("key-1")
        registry.complete("key-1", {"id": "ord-1"})
        assert registry.acquire_or_await("key-1").is_new

    def test_release_propagates_the_failure_to_waiters(self, registry):
        registry.acquire_or_await("key-1")
        duplicate = registry.acquire_or_await("key-1")

        registry.release("key-1", ValueError("out of stock"))
        with pytest.raises(ValueError, match="out of stock"):
            duplicate.wait(timeout=1)

    def test_released_key_can_be_retried(self, registry):
        registry.acquire_or_await("key-1")
        registry.release("key-1", ValueError("boom"))
        assert registry.acquire_or_await("key-1").is_new

    def test_distinct_keys_do_not_interfere(self, registry):
        assert registry.acquire_or_await("key-1").is_new
        assert registry.acquire_or_await("key-2").is_new

    def test_racing_threads_elect_one_owner(self, registry):
        owners = []
        results = []
        barrier = threading.Barrier(8)

        def request():
            barrier.wait()
            acquisition = registry.acquire_or_await("key-1")
            if acquisition.is_new:
                owners.append(acquisition)
                registry.complete("key-1", {"id": "ord-1"})
                results.append({"id": "ord-1"})
            else:
                results.append(acquisition.wait(timeout=5))

        threads = [threading.Thread(target=request) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(owners) == 1
        assert results == [{"id": "ord-1"}] * 8


class TestCrossProcessPending:
    def test_pending_in_store_is_polled(self):
        store = InMemoryIdempotencyStore()
        other_process = IdempotencyRegistry(store=store, ttl_seconds=60)
        this_process = IdempotencyRegistry(store=store, ttl_seconds=60, poll_interval=0.01)

        other_process.acquire_or_await("key-1")
        waiting = this_process.acquire_or_await("key-1")
        assert not waiting.is_new
        assert waiting.future is None

        other_process.complete("key-1", {"id": "ord-1"})
        assert waiting.wait(timeout=1) == {"id": "ord-1"}

    def test_poll_gives_up_when_owner_fails(self):
        store = InMemoryIdempotencyStore()
        other_process = IdempotencyRegistry(store=store, ttl_seconds=60)
        this_process = IdempotencyRegistry(store=store, ttl_seconds=60, poll_interval=0.01)

        other_process.acquire_or_await("key-1")
        waiting = this_process.acquire_or_await("key-1")
        other_process.release("key-1", ValueError("boom"))

        with pytest.raises(RequestInProgress):
            waiting.wait(timeout=1)

    def test_poll_times_out_while_still_pending(self):
        store = InMemoryIdempotencyStore()
        IdempotencyRegistry(store=store, ttl_seconds=60).acquire_or_await("key-1")
        waiting = IdempotencyRegistry(store=store, ttl_seconds=60, poll_interval=0.01).acquire_or_await("key-1")

        with pytest.raises(RequestInProgress):
            waiting.wait(timeout=0.05)


class TestOwnerCompletion:
    def test_waiters_get_result_when_persisting_fails(self):
        registry = IdempotencyRegistry(store=UnwritableStore(), ttl_seconds=60)
        registry.acquire_or_await("key-1")
        duplicate = registry.acquire_or_await("key-1")

        with capture_logs() as logs:
            registry.complete("key-1", {"id": "ord-1"})

        assert duplicate.future.done()
        assert duplicate.wait(timeout=1) == {"id": "ord-1"}
        failure = next(log for log in logs if log["event"] == "Failed to persist idempotency result")
        assert failure["log_level"] == "error"
        assert failure["idempotency_key"] == "key-1"

    def test_duplicate_wait_is_bounded_by_default(self):
        registry = IdempotencyRegistry(store=InMemoryIdempotencyStore(), ttl_seconds=60, pending_timeout_seconds=0.05)
        registry.acquire_or_await("key-1")
        duplicate = registry.acquire_or_await("key-1")

        with pytest.raises(RequestInProgress):
            duplicate.wait()
