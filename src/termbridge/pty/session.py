"""PTY session: the bridge between a pty child and a UI.

A session owns three independently locked things:

* the terminal handle (resize), behind ``_terminal_lock``
* the input writer, behind ``_writer_lock``
* the pending buffer and streaming flag, inside ``SessionState``

The output monitor thread and the command surface (``initialize``,
``write``, ``resize``) only meet through those locks, so commands may be
called from any thread at any time.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import TYPE_CHECKING, Protocol

from termbridge.pty.monitor import DEFAULT_CHUNK_SIZE, OutputMonitor, Reader, decode_output
from termbridge.pty.sink import LifecycleSink
from termbridge.pty.state import BridgeStatus, SessionState
from termbridge.pty.terminal import PTYSpawnError, PtyTerminal

if TYPE_CHECKING:
    from termbridge.config import BridgeConfig

logger = logging.getLogger(__name__)


class TerminalHandle(Protocol):
    def resize(self, rows: int, cols: int) -> None: ...


class Writer(Protocol):
    def write(self, data: bytes, /) -> int | None: ...


class PTYSession:
    """A running child on a pty plus its buffering state.

    ``initialize()`` must be called once before output is delivered live.
    Until then everything the child prints is kept in the pending buffer,
    which is unbounded unless ``max_pending_bytes`` was configured.
    """

    def __init__(
        self,
        terminal: TerminalHandle | None = None,
        writer: Writer | None = None,
        state: SessionState | None = None,
    ) -> None:
        self.id = uuid.uuid4().hex[:8]
        self._terminal = terminal
        self._terminal_lock = threading.Lock()
        self._writer = writer
        self._writer_lock = threading.Lock()
        self.state = state or SessionState()
        self._monitor: OutputMonitor | None = None

    def start_monitor(
        self,
        reader: Reader,
        sink: LifecycleSink,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> OutputMonitor:
        """Start draining ``reader`` into this session's state and ``sink``."""
        if self._monitor is not None:
            raise RuntimeError(f"PTY session {self.id} already has a monitor")
        exit_code = None
        if isinstance(self._terminal, PtyTerminal):
            exit_code = self._terminal.wait_exit_code
        self._monitor = OutputMonitor(
            reader,
            sink,
            self.state,
            chunk_size=chunk_size,
            exit_code=exit_code,
            name=f"pty-monitor-{self.id}",
        )
        self._monitor.start()
        return self._monitor

    # ------------------------------------------------------------------
    # Command surface
    # ------------------------------------------------------------------

    def initialize(self) -> str:
        """Switch to live streaming and return everything buffered so far.

        The buffered bytes are decoded in one lossy pass. A second call
        returns an empty string and leaves streaming on.
        """
        data = self.state.drain()
        logger.debug("PTY session %s initialized, %d bytes drained", self.id, len(data))
        return decode_output(data)

    def write(self, data: str | bytes) -> bool:
        """Send input to the child.

        Best effort: with no writer, or if the write fails, nothing is
        raised. Returns True if the bytes were written.
        """
        payload = data.encode("utf-8") if isinstance(data, str) else data
        with self._writer_lock:
            if self._writer is None:
                logger.warning("PTY session %s has no writer, dropped %d bytes", self.id, len(payload))
                return False
            try:
                self._writer.write(payload)
            except (OSError, ValueError) as e:
                logger.warning("PTY session %s write failed: %s", self.id, e)
                return False
        return True

    def resize(self, rows: int, cols: int) -> bool:
        """Resize the terminal to ``rows`` x ``cols`` cells.

        Best effort, like ``write``. Returns True if the resize went through.
        """
        with self._terminal_lock:
            if self._terminal is None:
                logger.warning("PTY session %s has no terminal, resize ignored", self.id)
                return False
            try:
                self._terminal.resize(rows, cols)
            except (OSError, ValueError) as e:
                logger.warning("PTY session %s resize to %dx%d failed: %s", self.id, rows, cols, e)
                return False
        return True

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def status(self) -> BridgeStatus:
        return self.state.status

    @property
    def alive(self) -> bool:
        return self.state.status != BridgeStatus.EXITED

    @property
    def pending_bytes(self) -> int:
        return self.state.pending_bytes

    @property
    def pid(self) -> int | None:
        if isinstance(self._terminal, PtyTerminal):
            return self._terminal.pid
        return None

    @property
    def exit_code(self) -> int | None:
        if isinstance(self._terminal, PtyTerminal):
            return self._terminal.poll()
        return None

    def wait_for_exit(self, timeout: float | None = None) -> bool:
        """Wait for the monitor to see end-of-stream. True once it has."""
        if self._monitor is None:
            return True
        return self._monitor.join(timeout)

    def kill(self) -> None:
        """Kill the child and release the handles."""
        with self._writer_lock:
            if self._writer is not None:
                try:
                    self._writer.close()  # type: ignore[attr-defined]
                except (AttributeError, OSError):
                    pass
        with self._terminal_lock:
            if isinstance(self._terminal, PtyTerminal):
                self._terminal.kill()


def create_session(config: BridgeConfig, sink: LifecycleSink) -> PTYSession:
    """Open the pty, spawn the configured child and start monitoring it.

    Raises:
        PTYSpawnError: on any failure. Callers should abort startup.
    """
    command = config.child.resolve_command()
    terminal = PtyTerminal.open(
        command,
        rows=config.terminal.rows,
        cols=config.terminal.cols,
        cwd=config.child.cwd,
        env=config.child.env,
        term=config.terminal.term,
    )

    try:
        reader = terminal.clone_reader()
        writer = terminal.take_writer()
    except PTYSpawnError:
        terminal.kill()
        raise

    session = PTYSession(
        terminal=terminal,
        writer=writer,
        state=SessionState(max_pending_bytes=config.monitor.max_pending_bytes),
    )
    session.start_monitor(reader, sink, chunk_size=config.monitor.read_chunk_size)

    logger.info(
        "PTY session %s started: pid=%d size=%dx%d",
        session.id,
        terminal.pid,
        config.terminal.rows,
        config.terminal.cols,
    )
    return session
