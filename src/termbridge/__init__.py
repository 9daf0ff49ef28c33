"""termbridge: a pseudo-terminal session bridge."""

__version__ = "0.1.0"
