"""Wire protocol: decouples the PTY bridge from the UI.

Events flow from the output monitor to the UI. The UI subscribes to the
wire and renders events. The same session code feeds the interactive
attach host, the JSON-lines serve host and tests.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    DATA = "data"
    EXIT = "exit"
    ERROR = "error"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


class Wire:
    """Message bus: session -> UI subscribers.

    Single-producer, multi-consumer broadcast. The producer is usually the
    monitor thread, so once a loop is attached with ``attach_loop()`` every
    send is handed to that loop via ``call_soon_threadsafe``.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed: bool = False
        self._loop: asyncio.AbstractEventLoop | None = None

    def attach_loop(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Attach the asyncio loop that owns the subscriber queues.

        Must be called from the asyncio thread (or pass an explicit loop).
        """
        self._loop = loop or asyncio.get_running_loop()

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        Safe to call from any thread once a loop is attached.
        """
        if self._closed:
            return
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._broadcast, event)
        else:
            self._broadcast(event)

    def _broadcast(self, event: WireEvent | None) -> None:
        for q in list(self._subscribers):
            q.put_nowait(event)

    def send_data(self, text: str) -> None:
        self.send(WireEvent(type=EventType.DATA, data={"text": text}))

    def send_exit(self, exit_code: int | None) -> None:
        """Notify subscribers that the child process has exited."""
        self.send(WireEvent(type=EventType.EXIT, data={"exit_code": exit_code}))

    def send_error(self, error: str) -> None:
        self.send(WireEvent(type=EventType.ERROR, data={"error": error}))

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        if self._closed:
            return
        self._closed = True
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._broadcast, None)
        else:
            self._broadcast(None)
