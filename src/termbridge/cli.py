"""CLI entry point for termbridge."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import sys
import termios
import threading
import tty
from typing import Any

import typer
from pydantic import ValidationError

from termbridge.commands import CommandDispatcher, UnknownCommandError
from termbridge.config import BridgeConfig
from termbridge.pty.session import PTYSession, create_session
from termbridge.pty.sink import WireSink
from termbridge.pty.terminal import PTYSpawnError
from termbridge.session.wire import EventType, Wire

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="termbridge",
    help="Run a program on a pseudo-terminal and bridge it to a UI.",
    no_args_is_help=True,
)


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_config(config_file: str | None, command: list[str] | None) -> BridgeConfig:
    # ValidationError and JSONDecodeError are both ValueErrors
    try:
        config = BridgeConfig.load(config_file)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: invalid configuration: {e}", err=True)
        raise typer.Exit(1)
    if command:
        config.child.command = list(command)
    return config


def _get_terminal_size() -> tuple[int, int]:
    """Local terminal size as (rows, cols), or 24x80 when not a tty."""
    try:
        size = os.get_terminal_size(sys.stdout.fileno())
        return size.lines, size.columns
    except OSError:
        return 24, 80


def _host_exit_code(code: int | None) -> int:
    """Map the child's exit code onto ours. Signals become 128 + signum."""
    if code is None:
        return 0
    if code < 0:
        return 128 - code
    return code


def _start(config: BridgeConfig, wire: Wire) -> PTYSession:
    # The child exiting ends the host: closing the wire stops the consumer
    sink = WireSink(wire, terminate=lambda _code: wire.close())
    try:
        return create_session(config, sink)
    except PTYSpawnError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# attach: interactive host on the local terminal
# ---------------------------------------------------------------------------


@app.command()
def attach(
    command: list[str] | None = typer.Argument(
        None, help="Command to run (default: from env/config, else the built-in console)."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Run the child on a pty attached to this terminal."""
    # Only warnings reach stderr, anything chattier corrupts the raw display
    setup_logging(verbose, quiet=not verbose)

    config = _load_config(config_file, command)
    if sys.stdout.isatty():
        rows, cols = _get_terminal_size()
        config.terminal.rows = rows
        config.terminal.cols = cols

    exit_code = asyncio.run(_run_attach(config))
    raise typer.Exit(_host_exit_code(exit_code))


async def _run_attach(config: BridgeConfig) -> int | None:
    loop = asyncio.get_running_loop()
    wire = Wire()
    wire.attach_loop(loop)
    queue = wire.subscribe()

    session = _start(config, wire)

    stdin_fd = sys.stdin.fileno()
    is_tty = os.isatty(stdin_fd)
    old_settings = termios.tcgetattr(stdin_fd) if is_tty else None
    out = sys.stdout.buffer

    def _on_stdin_readable() -> None:
        try:
            data = os.read(stdin_fd, 4096)
        except OSError:
            data = b""
        if data:
            session.write(data)
        else:
            loop.remove_reader(stdin_fd)

    def _on_sigwinch() -> None:
        session.resize(*_get_terminal_size())

    exit_code: int | None = None
    try:
        if is_tty:
            tty.setraw(stdin_fd)
        out.write(session.initialize().encode("utf-8"))
        out.flush()

        loop.add_reader(stdin_fd, _on_stdin_readable)
        loop.add_signal_handler(signal.SIGWINCH, _on_sigwinch)

        while True:
            event = await queue.get()
            if event is None:
                break
            if event.type == EventType.DATA:
                out.write(event.data.get("text", "").encode("utf-8"))
                out.flush()
            elif event.type == EventType.EXIT:
                exit_code = event.data.get("exit_code")
    finally:
        loop.remove_reader(stdin_fd)
        loop.remove_signal_handler(signal.SIGWINCH)
        if old_settings is not None:
            termios.tcsetattr(stdin_fd, termios.TCSAFLUSH, old_settings)
        wire.unsubscribe(queue)

    return exit_code


# ---------------------------------------------------------------------------
# serve - JSON-lines host for an external UI process
# ---------------------------------------------------------------------------


class _JsonLinesOutput:
    """Serializes event lines written from several threads to stdout.

    ``lock`` is reentrant so a caller can hold it across a drain and the
    reply that carries the drained text.
    """

    def __init__(self, stream: Any = None) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self.lock = threading.RLock()

    def emit(self, event: str, **data: Any) -> None:
        line = json.dumps({"event": event, **data})
        with self.lock:
            self._stream.write(line + "\n")
            self._stream.flush()


def handle_command_line(
    line: str,
    dispatcher: CommandDispatcher,
    output: _JsonLinesOutput,
    wire: Wire,
) -> None:
    """Parse and run one ``{"cmd": ..., "args": {...}}`` line.

    Bad requests are reported as ERROR events on the wire.
    """
    line = line.strip()
    if not line:
        return
    try:
        request = json.loads(line)
        name = request["cmd"]
        arguments = request.get("args") or {}
        if name == "init_pty":
            # Data lines wait on the same lock, so the drained text is
            # written before anything the child prints after the drain
            with output.lock:
                text = dispatcher.dispatch(name, arguments)
                output.emit("init", text=text)
        else:
            dispatcher.dispatch(name, arguments)
    except UnknownCommandError as e:
        wire.send_error(f"unknown command: {e.args[0]}")
    except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
        wire.send_error(f"malformed request: {e}")
    except ValidationError as e:
        wire.send_error(str(e))


def _read_commands(
    session: PTYSession,
    dispatcher: CommandDispatcher,
    output: _JsonLinesOutput,
    wire: Wire,
) -> None:
    # Raw fd reads: a daemon thread parked inside sys.stdin's buffer would
    # hold its lock during interpreter shutdown
    stdin_fd = sys.stdin.fileno()
    pending = b""
    while True:
        try:
            chunk = os.read(stdin_fd, 4096)
        except OSError:
            chunk = b""
        if not chunk:
            break
        pending += chunk
        *lines, pending = pending.split(b"\n")
        for line in lines:
            handle_command_line(line.decode("utf-8", errors="replace"), dispatcher, output, wire)
    if pending:
        handle_command_line(pending.decode("utf-8", errors="replace"), dispatcher, output, wire)
    # The UI went away; take the child down so the session can end
    logger.info("Command input closed, killing child")
    session.kill()


@app.command()
def serve(
    command: list[str] | None = typer.Argument(
        None, help="Command to run (default: from env/config, else the built-in console)."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Bridge the child over JSON lines on stdin/stdout."""
    setup_logging(verbose)
    config = _load_config(config_file, command)
    exit_code = asyncio.run(_run_serve(config))
    raise typer.Exit(_host_exit_code(exit_code))


async def _run_serve(config: BridgeConfig) -> int | None:
    loop = asyncio.get_running_loop()
    wire = Wire()
    wire.attach_loop(loop)
    queue = wire.subscribe()

    session = _start(config, wire)
    dispatcher = CommandDispatcher(session)
    output = _JsonLinesOutput()

    reader = threading.Thread(
        target=_read_commands,
        args=(session, dispatcher, output, wire),
        name="command-reader",
        daemon=True,
    )
    reader.start()

    exit_code: int | None = None
    while True:
        event = await queue.get()
        if event is None:
            break
        if event.type == EventType.DATA:
            output.emit("data", text=event.data.get("text", ""))
        elif event.type == EventType.EXIT:
            exit_code = event.data.get("exit_code")
            output.emit("exit", exit_code=exit_code)
        elif event.type == EventType.ERROR:
            output.emit("error", error=event.data.get("error", ""))

    wire.unsubscribe(queue)
    return exit_code


# ---------------------------------------------------------------------------
# repl: child side of self-invocation
# ---------------------------------------------------------------------------


@app.command()
def repl() -> None:
    """Run the built-in console (used as the default child)."""
    from termbridge.repl import run

    run()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
