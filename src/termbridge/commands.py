"""Named commands the UI layer can invoke on a session.

Each command declares its arguments as a Pydantic model, so a transport
(JSON lines, IPC, HTTP) only has to hand over a name and a dict.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, ClassVar

from pydantic import BaseModel, Field

from termbridge.config import UINT16_MAX
from termbridge.pty.session import PTYSession

logger = logging.getLogger(__name__)


class UnknownCommandError(KeyError):
    """No command is registered under the requested name."""


class InitPtyParams(BaseModel):
    pass


class WriteToPtyParams(BaseModel):
    data: str


class ResizePtyParams(BaseModel):
    rows: int = Field(ge=0, le=UINT16_MAX)
    cols: int = Field(ge=0, le=UINT16_MAX)


class CommandDispatcher:
    """Maps command names onto the session's command surface.

    Usage:
        dispatcher = CommandDispatcher(session)
        text = dispatcher.dispatch("init_pty")
        dispatcher.dispatch("resize_pty", {"rows": 40, "cols": 120})
    """

    COMMANDS: ClassVar[dict[str, type[BaseModel]]] = {
        "init_pty": InitPtyParams,
        "write_to_pty": WriteToPtyParams,
        "resize_pty": ResizePtyParams,
    }

    def __init__(self, session: PTYSession) -> None:
        self._session = session
        self._handlers: dict[str, Callable[[Any], Any]] = {
            "init_pty": self._init_pty,
            "write_to_pty": self._write_to_pty,
            "resize_pty": self._resize_pty,
        }

    def names(self) -> list[str]:
        return list(self.COMMANDS)

    def dispatch(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Validate ``arguments`` and run the named command.

        Raises:
            UnknownCommandError: if ``name`` is not a known command.
            pydantic.ValidationError: if the arguments do not validate.
        """
        model = self.COMMANDS.get(name)
        if model is None:
            raise UnknownCommandError(name)
        params = model.model_validate(arguments or {})
        logger.debug("Dispatching %s", name)
        return self._handlers[name](params)

    def _init_pty(self, params: InitPtyParams) -> str:
        return self._session.initialize()

    def _write_to_pty(self, params: WriteToPtyParams) -> None:
        self._session.write(params.data)

    def _resize_pty(self, params: ResizePtyParams) -> None:
        self._session.resize(params.rows, params.cols)
