"""Lifecycle sinks: where the output monitor delivers data and exit."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from termbridge.session.wire import Wire

logger = logging.getLogger(__name__)


class LifecycleSink(ABC):
    """Receives decoded output and the exit signal from the monitor thread.

    Both methods are called on the monitor thread. They must not block it
    for long: hand the work off to another thread or event loop.
    """

    @abstractmethod
    def on_data(self, text: str) -> None:
        """Deliver a chunk of decoded output to the live consumer."""

    @abstractmethod
    def on_exit(self, exit_code: int | None = None) -> None:
        """The child's output stream has ended. Called exactly once."""


class WireSink(LifecycleSink):
    """Production sink: forwards output as wire events and ends the host.

    ``terminate`` is called after the EXIT event has been sent. Hosts pass
    a callable that shuts the whole application down, since the child's
    exit is the end of the session.
    """

    def __init__(
        self,
        wire: Wire,
        terminate: Callable[[int | None], None] | None = None,
    ) -> None:
        self._wire = wire
        self._terminate = terminate

    def on_data(self, text: str) -> None:
        self._wire.send_data(text)

    def on_exit(self, exit_code: int | None = None) -> None:
        self._wire.send_exit(exit_code)
        if self._terminate is not None:
            logger.info("Child exited (code=%s), terminating host", exit_code)
            self._terminate(exit_code)


class RecordingSink(LifecycleSink):
    """Sink that records every call, for assertions in tests."""

    def __init__(self) -> None:
        self.data: list[str] = []
        self.exit_calls: list[int | None] = []
        self.exited = threading.Event()
        self._lock = threading.Lock()

    def on_data(self, text: str) -> None:
        with self._lock:
            self.data.append(text)

    def on_exit(self, exit_code: int | None = None) -> None:
        with self._lock:
            self.exit_calls.append(exit_code)
        self.exited.set()

    @property
    def exit_count(self) -> int:
        with self._lock:
            return len(self.exit_calls)

    @property
    def text(self) -> str:
        """All delivered chunks joined together."""
        with self._lock:
            return "".join(self.data)
