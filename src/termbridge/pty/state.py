"""Shared session state guarded by a single lock."""

from __future__ import annotations

import enum
import logging
import threading

logger = logging.getLogger(__name__)


class BridgeStatus(enum.Enum):
    """Lifecycle states for the output bridge."""

    BUFFERING = "buffering"  # Output accumulates until initialize()
    STREAMING = "streaming"  # Output goes straight to the sink
    EXITED = "exited"  # Output stream ended, monitor is gone


class SessionState:
    """Pending output buffer and streaming flag.

    Both fields live behind one ``threading.Lock`` so the monitor thread
    and ``drain()`` never see a half-finished transition: every chunk is
    either appended before the drain or routed to the sink after it.

    ``max_pending_bytes`` caps the buffer. ``None`` (the default) leaves
    it unbounded, which means a session that is never initialized grows
    without limit. With a cap the oldest bytes are dropped.
    """

    def __init__(self, max_pending_bytes: int | None = None) -> None:
        self._lock = threading.Lock()
        self._buffer = bytearray()
        self._streaming = False
        self._exited = False
        self._dropped = 0
        self._overflowing = False
        self._max_pending_bytes = max_pending_bytes

    def offer(self, chunk: bytes) -> bool:
        """Route a chunk read from the child.

        Appends to the pending buffer while buffering and returns False.
        Returns True when the caller should deliver the chunk live.
        """
        with self._lock:
            if self._exited:
                return False
            if self._streaming:
                return True
            self._buffer.extend(chunk)
            overflow = self._trim()
            # Warn once per overflow episode, not on every chunk
            first_overflow = overflow > 0 and not self._overflowing
            self._overflowing = overflow > 0
        if first_overflow:
            logger.warning(
                "Pending output exceeded %d bytes, dropping oldest bytes",
                self._max_pending_bytes,
            )
        return False

    def _trim(self) -> int:
        limit = self._max_pending_bytes
        if limit is None or len(self._buffer) <= limit:
            return 0
        overflow = len(self._buffer) - limit
        del self._buffer[:overflow]
        self._dropped += overflow
        return overflow

    def drain(self) -> bytes:
        """Take everything buffered so far and switch to streaming.

        The switch is one-way. Later calls return ``b""``.
        """
        with self._lock:
            data = bytes(self._buffer)
            self._buffer.clear()
            self._streaming = True
        return data

    def mark_exited(self) -> None:
        with self._lock:
            self._exited = True

    @property
    def streaming(self) -> bool:
        with self._lock:
            return self._streaming

    @property
    def status(self) -> BridgeStatus:
        with self._lock:
            if self._exited:
                return BridgeStatus.EXITED
            if self._streaming:
                return BridgeStatus.STREAMING
            return BridgeStatus.BUFFERING

    @property
    def pending_bytes(self) -> int:
        """Current size of the pending buffer."""
        with self._lock:
            return len(self._buffer)

    @property
    def dropped_bytes(self) -> int:
        """Total bytes discarded because of ``max_pending_bytes``."""
        with self._lock:
            return self._dropped

    def peek(self) -> bytes:
        """Copy of the pending buffer without draining it."""
        with self._lock:
            return bytes(self._buffer)
