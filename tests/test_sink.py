"""Tests for termbridge.pty.sink (WireSink, RecordingSink)."""

from __future__ import annotations

import pytest

from termbridge.pty.sink import LifecycleSink, RecordingSink, WireSink
from termbridge.session.wire import EventType, Wire


class TestLifecycleSink:
    def test_is_abstract(self) -> None:
        with pytest.raises(TypeError):
            LifecycleSink()  # type: ignore[abstract]


class TestWireSink:
    def test_on_data_emits_data_event(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        WireSink(wire).on_data("prompt> ")
        event = q.get_nowait()
        assert event is not None
        assert event.type == EventType.DATA
        assert event.data == {"text": "prompt> "}

    def test_on_exit_emits_exit_then_terminates(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        calls: list[int | None] = []

        def _terminate(code: int | None) -> None:
            # The exit event is already on the wire when the host goes down
            assert not q.empty()
            calls.append(code)

        WireSink(wire, terminate=_terminate).on_exit(0)
        event = q.get_nowait()
        assert event is not None
        assert event.type == EventType.EXIT
        assert calls == [0]

    def test_on_exit_without_terminate(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        WireSink(wire).on_exit(None)
        event = q.get_nowait()
        assert event is not None
        assert event.data["exit_code"] is None


class TestRecordingSink:
    def test_records_data(self) -> None:
        sink = RecordingSink()
        sink.on_data("a")
        sink.on_data("b")
        assert sink.data == ["a", "b"]
        assert sink.text == "ab"

    def test_records_exit(self) -> None:
        sink = RecordingSink()
        assert not sink.exited.is_set()
        sink.on_exit(2)
        assert sink.exited.is_set()
        assert sink.exit_calls == [2]
        assert sink.exit_count == 1
