"""Tests for the readers-writer lock."""

from __future__ import annotations

import threading
import time

from modcache.cache import ReadWriteLock


class TestReadWriteLock:
    def test_readers_share_the_lock(self) -> None:
        lock = ReadWriteLock()
        inside = threading.Barrier(3, timeout=5)

        def _reader() -> None:
            with lock.read():
                inside.wait()

        threads = [threading.Thread(target=_reader) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
        assert not any(t.is_alive() for t in threads)

    def test_writer_excludes_readers(self) -> None:
        lock = ReadWriteLock()
        events: list[str] = []
        writer_in = threading.Event()

        def _writer() -> None:
            with lock.write():
                writer_in.set()
                time.sleep(0.05)
                events.append("write-done")

        def _reader() -> None:
            writer_in.wait(timeout=5)
            with lock.read():
                events.append("read")

        w = threading.Thread(target=_writer)
        r = threading.Thread(target=_reader)
        w.start()
        r.start()
        w.join(timeout=5)
        r.join(timeout=5)
        assert events == ["write-done", "read"]

    def test_waiting_writer_blocks_new_readers(self) -> None:
        lock = ReadWriteLock()
        events: list[str] = []
        first_reader_in = threading.Event()
        release_first = threading.Event()

        def _first_reader() -> None:
            with lock.read():
                first_reader_in.set()
                release_first.wait(timeout=5)
            events.append("reader-1-out")

        def _writer() -> None:
            with lock.write():
                events.append("write")

        def _late_reader() -> None:
            with lock.read():
                events.append("reader-2")

        r1 = threading.Thread(target=_first_reader)
        r1.start()
        first_reader_in.wait(timeout=5)
        w = threading.Thread(target=_writer)
        w.start()
        time.sleep(0.05)
        r2 = threading.Thread(target=_late_reader)
        r2.start()
        time.sleep(0.05)
        release_first.set()
        for t in (r1, w, r2):
            t.join(timeout=5)
        assert events.index("write") < events.index("reader-2")
