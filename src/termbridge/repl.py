"""Plain interactive console run as the child in self-invocation mode."""

from __future__ import annotations

import code
import math

from termbridge import __version__

BANNER = f"termbridge {__version__} console. Ctrl-D to exit."


def run() -> None:
    """Run the console until EOF. Blocks."""
    namespace = {name: getattr(math, name) for name in dir(math) if not name.startswith("_")}
    console = code.InteractiveConsole(locals=namespace)
    console.interact(banner=BANNER, exitmsg="")
