"""PTY session bridge.

A child process runs on a pseudo-terminal. A background thread drains its
output, holding it until the UI calls ``initialize()`` and streaming it
to a lifecycle sink afterwards.
"""

from termbridge.pty.monitor import OutputMonitor, decode_output, monitor_output
from termbridge.pty.session import PTYSession, create_session
from termbridge.pty.sink import LifecycleSink, RecordingSink, WireSink
from termbridge.pty.state import BridgeStatus, SessionState
from termbridge.pty.terminal import PTYSpawnError, PtyTerminal

__all__ = [
    "BridgeStatus",
    "LifecycleSink",
    "OutputMonitor",
    "PTYSession",
    "PTYSpawnError",
    "PtyTerminal",
    "RecordingSink",
    "SessionState",
    "WireSink",
    "create_session",
    "decode_output",
    "monitor_output",
]
