"""
Tests for the reader/writer lock.
"""

import threading
import time

import pytest

from dedupscan.core.locking import ReadWriteLock


class TestReadWriteLock:
    """Tests for ReadWriteLock."""

    def test_readers_share_the_lock(self):
        """Two readers can hold the lock at the same time."""
        lock = ReadWriteLock()
        both_inside = threading.Barrier(2, timeout=5)
        errors = []

        def reader():
            with lock.read_locked():
                try:
                    both_inside.wait()
                except threading.BrokenBarrierError as e:
                    errors.append(e)

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert errors == []

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events = []
        lock.acquire_write()

        def reader():
            with lock.read_locked():
                events.append("read")

        t = threading.Thread(target=reader)
        t.start()
        time.sleep(0.1)
        events.append("write-done")
        lock.release_write()
        t.join(timeout=5)

        assert events == ["write-done", "read"]

    def test_writer_waits_for_readers(self):
        lock = ReadWriteLock()
        events = []
        lock.acquire_read()

        def writer():
            with lock.write_locked():
                events.append("write")

        t = threading.Thread(target=writer)
        t.start()
        time.sleep(0.1)
        events.append("read-done")
        lock.release_read()
        t.join(timeout=5)

        assert events == ["read-done", "write"]

    def test_concurrent_writers_are_serialized(self):
        lock = ReadWriteLock()
        counter = {"value": 0}

        def increment():
            for _ in range(1000):
                with lock.write_locked():
                    current = counter["value"]
                    counter["value"] = current + 1

        threads = [threading.Thread(target=increment) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert counter["value"] == 4000

    def test_release_without_acquire(self):
        lock = ReadWriteLock()

        with pytest.raises(RuntimeError):
            lock.release_read()
        with pytest.raises(RuntimeError):
            lock.release_write()

    def test_lock_released_on_exception(self):
        lock = ReadWriteLock()

        with pytest.raises(KeyError):
            with lock.write_locked():
                raise KeyError("boom")

        # would block forever if the write lock leaked
        with lock.read_locked():
            pass
