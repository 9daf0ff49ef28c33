"""Tests for termbridge.pty.session.PTYSession (command surface)."""

from __future__ import annotations

import io
import threading
import time

import pytest

from conftest import FakeTerminal, ScriptedReader, wait_until
from termbridge.pty.session import PTYSession
from termbridge.pty.sink import RecordingSink
from termbridge.pty.state import BridgeStatus, SessionState


class RecordingWriter:
    """Writer that records payloads and notices overlapping writes."""

    def __init__(self, delay: float = 0.0) -> None:
        self.payloads: list[bytes] = []
        self.overlaps = 0
        self._active = 0
        self._delay = delay
        self._guard = threading.Lock()

    def write(self, data: bytes) -> int:
        with self._guard:
            self._active += 1
            if self._active > 1:
                self.overlaps += 1
        # Emulate a slow pipe so unsynchronized writers would overlap
        time.sleep(self._delay * len(data))
        with self._guard:
            self.payloads.append(data)
            self._active -= 1
        return len(data)


# ---------------------------------------------------------------------------
# initialize
# ---------------------------------------------------------------------------


class TestInitialize:
    def test_returns_buffered_text(self) -> None:
        session = PTYSession()
        session.state.offer(b"AB")
        session.state.offer(b"C")
        assert session.initialize() == "ABC"
        assert session.status == BridgeStatus.STREAMING

    def test_second_call_is_empty(self) -> None:
        session = PTYSession()
        session.state.offer(b"once")
        assert session.initialize() == "once"
        assert session.initialize() == ""
        assert session.status == BridgeStatus.STREAMING

    def test_decodes_buffer_lossily(self) -> None:
        session = PTYSession()
        session.state.offer(b"\xe2\x82")  # first two bytes of a euro sign
        assert session.initialize() == "�"

    def test_live_delivery_after_initialize(self, scripted_reader: ScriptedReader) -> None:
        session = PTYSession()
        sink = RecordingSink()
        session.start_monitor(scripted_reader, sink)

        scripted_reader.feed(b"boot\r\n")
        assert wait_until(lambda: session.pending_bytes == 6)
        assert session.initialize() == "boot\r\n"

        scripted_reader.feed(b"> ")
        assert wait_until(lambda: sink.data == ["> "])
        assert session.pending_bytes == 0

        scripted_reader.feed_eof()
        assert session.wait_for_exit(timeout=5)
        assert session.alive is False
        assert sink.exit_count == 1

    def test_never_initialized_keeps_buffering(self) -> None:
        """Without initialize() output is held forever and nothing is delivered."""
        session = PTYSession()
        sink = RecordingSink()
        session.start_monitor(io.BytesIO(b"z" * 100_000), sink, chunk_size=1024)
        assert session.wait_for_exit(timeout=5)
        assert session.pending_bytes == 100_000
        assert sink.data == []

    def test_capped_buffer_keeps_newest(self) -> None:
        session = PTYSession(state=SessionState(max_pending_bytes=3))
        session.state.offer(b"abcdef")
        assert session.initialize() == "def"


# ---------------------------------------------------------------------------
# write
# ---------------------------------------------------------------------------


class TestWrite:
    def test_write_without_writer_is_noop(self) -> None:
        session = PTYSession()
        assert session.write("ls\n") is False

    def test_write_text_is_utf8(self) -> None:
        writer = io.BytesIO()
        session = PTYSession(writer=writer)
        assert session.write("héllo") is True
        assert writer.getvalue() == "héllo".encode()

    def test_write_bytes(self) -> None:
        writer = io.BytesIO()
        session = PTYSession(writer=writer)
        session.write(b"\x03")
        assert writer.getvalue() == b"\x03"

    def test_write_failure_is_swallowed(self) -> None:
        writer = io.BytesIO()
        writer.close()
        session = PTYSession(writer=writer)
        assert session.write("x") is False

    def test_write_os_error_is_swallowed(self) -> None:
        class BrokenPipe:
            def write(self, data: bytes) -> int:
                raise BrokenPipeError(32, "Broken pipe")

        session = PTYSession(writer=BrokenPipe())
        assert session.write("x") is False

    def test_missing_writer_is_logged(self, caplog) -> None:
        session = PTYSession()
        with caplog.at_level("WARNING", logger="termbridge.pty.session"):
            session.write("lost")
        assert "no writer" in caplog.text

    def test_concurrent_writes_do_not_interleave(self) -> None:
        writer = RecordingWriter(delay=0.001)
        session = PTYSession(writer=writer)
        payloads = [b"a" * 20, b"b" * 20]
        barrier = threading.Barrier(len(payloads))

        def _send(data: bytes) -> None:
            barrier.wait()
            session.write(data)

        threads = [threading.Thread(target=_send, args=(p,)) for p in payloads]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert sorted(writer.payloads) == sorted(payloads)
        assert writer.overlaps == 0


# ---------------------------------------------------------------------------
# resize
# ---------------------------------------------------------------------------


class TestResize:
    def test_resize_without_terminal_is_noop(self) -> None:
        session = PTYSession()
        assert session.resize(40, 120) is False

    def test_resize_forwards_to_terminal(self) -> None:
        terminal = FakeTerminal()
        session = PTYSession(terminal=terminal)
        assert session.resize(40, 120) is True
        assert terminal.sizes == [(40, 120)]

    def test_resize_failure_is_swallowed(self) -> None:
        session = PTYSession(terminal=FakeTerminal(error=OSError(9, "Bad file descriptor")))
        assert session.resize(40, 120) is False

    def test_resize_out_of_range_is_swallowed(self) -> None:
        session = PTYSession(terminal=FakeTerminal(error=ValueError("too big")))
        assert session.resize(70_000, 1) is False


# ---------------------------------------------------------------------------
# Lifecycle helpers
# ---------------------------------------------------------------------------


class TestSessionLifecycle:
    def test_monitor_can_only_start_once(self) -> None:
        session = PTYSession()
        session.start_monitor(io.BytesIO(b""), RecordingSink())
        with pytest.raises(RuntimeError):
            session.start_monitor(io.BytesIO(b""), RecordingSink())

    def test_wait_for_exit_without_monitor(self) -> None:
        assert PTYSession().wait_for_exit(timeout=0) is True

    def test_fake_handles_have_no_pid(self) -> None:
        session = PTYSession(terminal=FakeTerminal())
        assert session.pid is None
        assert session.exit_code is None

    def test_ids_are_unique(self) -> None:
        assert PTYSession().id != PTYSession().id
