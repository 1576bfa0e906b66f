"""Tests for the in-process keyed lock table."""

import threading
import time

from ordering.utils.locks import KeyedLocks, order_key, stock_key


class TestKeyedLocks:
    def test_key_helpers(self):
        assert stock_key("store-1", 7) == "stock:store-1:7"
        assert order_key("ord-1") == "order:ord-1"

    def test_stripes_are_sorted_and_distinct(self):
        locks = KeyedLocks(stripes=8)
        keys = [f"stock:s:{index}" for index in range(40)]
        stripes = locks.stripes_for(keys)
        assert stripes == sorted(set(stripes))
        assert len(stripes) <= 8

    def test_same_key_is_mutually_exclusive(self):
        locks = KeyedLocks()
        inside = []
        overlaps = []

        def worker():
            with locks.hold(["stock:store-1:7"]):
                if inside:
                    overlaps.append(True)
                inside.append(True)
                time.sleep(0.01)
                inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert overlaps == []

    def test_overlapping_key_sets_in_opposite_order_do_not_deadlock(self):
        locks = KeyedLocks()
        done = []

        def worker(keys):
            for _ in range(50):
                with locks.hold(keys):
                    pass
            done.append(True)

        a = threading.Thread(target=worker, args=(["stock:s:1", "stock:s:2"],))
        b = threading.Thread(target=worker, args=(["stock:s:2", "stock:s:1"],))
        a.start()
        b.start()
        a.join(timeout=5)
        b.join(timeout=5)
        assert len(done) == 2

    def test_reentrant_within_a_thread(self):
        locks = KeyedLocks()
        with locks.hold(["order:1"]):
            with locks.hold(["order:1", "stock:s:1"]):
                pass
