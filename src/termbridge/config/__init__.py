"""Configuration - Pydantic models for termbridge settings."""

from __future__ import annotations

import json
import os
import shlex
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

UINT16_MAX = 0xFFFF


class TerminalConfig(BaseModel):
    """Initial pseudo-terminal geometry."""

    rows: int = Field(default=24, ge=1, le=UINT16_MAX)
    cols: int = Field(default=80, ge=1, le=UINT16_MAX)
    term: str = Field(default="xterm-256color", description="TERM for the child")


class MonitorConfig(BaseModel):
    """Output monitor settings."""

    read_chunk_size: int = Field(default=1024, gt=0)
    max_pending_bytes: int | None = Field(
        default=None,
        gt=0,
        description=(
            "Cap on output buffered before initialize(). None keeps the buffer "
            "unbounded; with a cap the oldest bytes are dropped."
        ),
    )


class ChildConfig(BaseModel):
    """Which executable runs inside the pty.

    Resolution order:
        1. ``command`` if set
        2. ``sibling_binary`` if it exists next to the running interpreter
        3. self-invocation: ``python -m termbridge <repl_flag>``
    """

    command: list[str] = Field(default_factory=list)
    sibling_binary: str | None = Field(default=None)
    repl_flag: str = Field(default="repl")
    cwd: str | None = Field(default=None)
    env: dict[str, str] = Field(default_factory=dict)

    def resolve_command(self) -> list[str]:
        if self.command:
            return list(self.command)
        if self.sibling_binary:
            candidate = Path(sys.executable).parent / self.sibling_binary
            if candidate.is_file() and os.access(candidate, os.X_OK):
                return [str(candidate), self.repl_flag]
        return [sys.executable, "-m", "termbridge", self.repl_flag]


class BridgeConfig(BaseModel):
    """Top-level termbridge configuration."""

    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    child: ChildConfig = Field(default_factory=ChildConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> BridgeConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            TERMBRIDGE_ROWS               - Initial terminal rows
            TERMBRIDGE_COLS               - Initial terminal columns
            TERMBRIDGE_COMMAND            - Child command line (shell-quoted)
            TERMBRIDGE_READ_CHUNK_SIZE    - Bytes per read from the pty
            TERMBRIDGE_MAX_PENDING_BYTES  - Cap on output buffered before init
        """
        load_dotenv(override=True)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        terminal = config_data.get("terminal") or {}
        env_rows = os.environ.get("TERMBRIDGE_ROWS")
        if env_rows:
            terminal["rows"] = int(env_rows)
        env_cols = os.environ.get("TERMBRIDGE_COLS")
        if env_cols:
            terminal["cols"] = int(env_cols)
        if terminal:
            config_data["terminal"] = terminal

        monitor = config_data.get("monitor") or {}
        env_chunk = os.environ.get("TERMBRIDGE_READ_CHUNK_SIZE")
        if env_chunk:
            monitor["read_chunk_size"] = int(env_chunk)
        env_max_pending = os.environ.get("TERMBRIDGE_MAX_PENDING_BYTES")
        if env_max_pending:
            monitor["max_pending_bytes"] = int(env_max_pending)
        if monitor:
            config_data["monitor"] = monitor

        child = config_data.get("child") or {}
        env_command = os.environ.get("TERMBRIDGE_COMMAND")
        if env_command:
            child["command"] = shlex.split(env_command)
        if child:
            config_data["child"] = child

        return cls.model_validate(config_data)
