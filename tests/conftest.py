"""Shared helpers for termbridge tests."""

from __future__ import annotations

import queue
import threading
import time
from typing import Callable

import pytest


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class ScriptedReader:
    """Reader whose chunks are fed one at a time from the test.

    ``feed(b"...")`` makes the next read return those bytes,
    ``feed_eof()`` returns ``b""`` and ``feed_error(exc)`` raises.
    ``read`` blocks until something has been fed.
    """

    def __init__(self) -> None:
        self._items: queue.Queue[bytes | BaseException] = queue.Queue()
        self.reads = 0
        self._lock = threading.Lock()

    def feed(self, data: bytes) -> None:
        self._items.put(data)

    def feed_eof(self) -> None:
        self._items.put(b"")

    def feed_error(self, exc: BaseException) -> None:
        self._items.put(exc)

    def read(self, size: int = -1) -> bytes:
        with self._lock:
            self.reads += 1
        item = self._items.get(timeout=10)
        if isinstance(item, BaseException):
            raise item
        return item


class FakeTerminal:
    """Records resize calls instead of touching a real pty."""

    def __init__(self, error: Exception | None = None) -> None:
        self.sizes: list[tuple[int, int]] = []
        self._error = error

    def resize(self, rows: int, cols: int) -> None:
        if self._error is not None:
            raise self._error
        self.sizes.append((rows, cols))


@pytest.fixture
def scripted_reader() -> ScriptedReader:
    return ScriptedReader()
