"""Pseudo-terminal provider: opens the pty pair and spawns the child."""

from __future__ import annotations

import fcntl
import logging
import os
import pty
import signal
import struct
import subprocess
import termios
from typing import BinaryIO

logger = logging.getLogger(__name__)

_UINT16_MAX = 0xFFFF


class PTYSpawnError(RuntimeError):
    """The pseudo-terminal or its child could not be set up.

    Fatal: a host cannot run without its session.
    """


def _pack_winsize(rows: int, cols: int) -> bytes:
    if not (0 <= rows <= _UINT16_MAX and 0 <= cols <= _UINT16_MAX):
        raise ValueError(f"terminal size out of range: {rows}x{cols}")
    # Pixel dimensions are always zero
    return struct.pack("HHHH", rows, cols, 0, 0)


class PtyTerminal:
    """Controlling side of a pty with a child attached to the other side.

    The master fd is owned here. Reader and writer are separate
    unbuffered file objects on duplicated descriptors so the monitor
    thread and writers never share a Python file object.
    """

    def __init__(self, master_fd: int, proc: subprocess.Popen) -> None:
        self._master_fd = master_fd
        self._proc = proc
        self._writer_taken = False
        self._closed = False

    @classmethod
    def open(
        cls,
        command: list[str],
        rows: int = 24,
        cols: int = 80,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        term: str = "xterm-256color",
    ) -> PtyTerminal:
        """Open a pty of the given size and spawn ``command`` on it.

        Raises:
            PTYSpawnError: if the pty cannot be allocated or the child
                cannot be started.
        """
        if not command:
            raise PTYSpawnError("No command to spawn")

        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise PTYSpawnError(f"Failed to allocate pty: {e}") from e

        child_env = {**os.environ, **(env or {})}
        child_env["TERM"] = term
        child_env["COLUMNS"] = str(cols)
        child_env["LINES"] = str(rows)

        try:
            fcntl.ioctl(slave_fd, termios.TIOCSWINSZ, _pack_winsize(rows, cols))
            proc = subprocess.Popen(
                command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,  # Child gets the pty as controlling tty
                env=child_env,
                cwd=cwd,
            )
        except (OSError, ValueError) as e:
            os.close(master_fd)
            raise PTYSpawnError(f"Failed to spawn {command[0]!r}: {e}") from e
        finally:
            # Parent always closes the subordinate side
            os.close(slave_fd)

        logger.info("Spawned pid=%d on pty: %s", proc.pid, " ".join(command))
        return cls(master_fd, proc)

    def clone_reader(self) -> BinaryIO:
        """A new unbuffered reader on the master side."""
        try:
            return os.fdopen(os.dup(self._master_fd), "rb", buffering=0)
        except OSError as e:
            raise PTYSpawnError(f"Failed to clone pty reader: {e}") from e

    def take_writer(self) -> BinaryIO:
        """The writer for the master side. Can only be taken once."""
        if self._writer_taken:
            raise PTYSpawnError("pty writer already taken")
        try:
            writer = os.fdopen(os.dup(self._master_fd), "wb", buffering=0)
        except OSError as e:
            raise PTYSpawnError(f"Failed to take pty writer: {e}") from e
        self._writer_taken = True
        return writer

    def resize(self, rows: int, cols: int) -> None:
        """Set the cell size. The kernel signals SIGWINCH to the child."""
        if self._closed:
            raise ValueError("pty is closed")
        fcntl.ioctl(self._master_fd, termios.TIOCSWINSZ, _pack_winsize(rows, cols))

    def get_size(self) -> tuple[int, int]:
        """Current (rows, cols) as seen by the kernel."""
        packed = fcntl.ioctl(self._master_fd, termios.TIOCGWINSZ, b"\0" * 8)
        rows, cols, _, _ = struct.unpack("HHHH", packed)
        return rows, cols

    @property
    def pid(self) -> int:
        return self._proc.pid

    def poll(self) -> int | None:
        return self._proc.poll()

    def wait_exit_code(self, timeout: float = 2.0) -> int | None:
        """Reap the child, waiting up to ``timeout`` seconds."""
        try:
            return self._proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def kill(self) -> None:
        """Kill the child's whole process group and close the master fd."""
        if self._proc.poll() is None:
            try:
                os.killpg(os.getpgid(self._proc.pid), signal.SIGKILL)
                logger.info("Killed pty child pid=%d", self._proc.pid)
            except ProcessLookupError:
                logger.debug("Process group already gone: %d", self._proc.pid)
            self.wait_exit_code()
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            os.close(self._master_fd)
        except OSError:
            pass
