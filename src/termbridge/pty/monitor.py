"""Output monitor: drains the child's output on a background thread."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Protocol

from termbridge.pty.sink import LifecycleSink
from termbridge.pty.state import SessionState

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024


class Reader(Protocol):
    def read(self, size: int = ..., /) -> bytes | None: ...


def decode_output(data: bytes) -> str:
    """Lossy UTF-8 decode. Malformed sequences become U+FFFD."""
    return data.decode("utf-8", errors="replace")


class OutputMonitor:
    """Reads the terminal's output stream until it ends.

    While the session is buffering, raw bytes go to ``SessionState``;
    decoding waits until someone drains them, so multibyte sequences
    split across reads survive. Once streaming, each chunk is decoded
    and handed to ``sink.on_data``.

    End-of-stream and read errors both mean the child has gone away:
    ``sink.on_exit`` fires exactly once and the thread stops reading.
    """

    def __init__(
        self,
        reader: Reader,
        sink: LifecycleSink,
        state: SessionState,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        exit_code: Callable[[], int | None] | None = None,
        name: str = "pty-monitor",
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._reader = reader
        self._sink = sink
        self._state = state
        self._chunk_size = chunk_size
        self._exit_code = exit_code
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the monitor to finish. Returns True if it has."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        try:
            while True:
                try:
                    data = self._reader.read(self._chunk_size)
                except (OSError, ValueError) as e:
                    # EIO on Linux once the subordinate side has closed
                    logger.debug("PTY read ended: %s", e)
                    break

                if not data:
                    break

                if self._state.offer(data):
                    self._deliver(decode_output(data))
        finally:
            self._finish()

    def _deliver(self, text: str) -> None:
        try:
            self._sink.on_data(text)
        except Exception:
            logger.exception("Error in on_data callback")

    def _finish(self) -> None:
        self._state.mark_exited()
        exit_code = None
        if self._exit_code is not None:
            try:
                exit_code = self._exit_code()
            except Exception:
                logger.exception("Could not read child exit code")
        logger.info("PTY output stream closed (code=%s)", exit_code)
        try:
            self._sink.on_exit(exit_code)
        except Exception:
            logger.exception("Error in on_exit callback")


def monitor_output(
    reader: Reader,
    sink: LifecycleSink,
    state: SessionState,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    exit_code: Callable[[], int | None] | None = None,
) -> OutputMonitor:
    """Create and start an ``OutputMonitor``."""
    monitor = OutputMonitor(reader, sink, state, chunk_size=chunk_size, exit_code=exit_code)
    monitor.start()
    return monitor
