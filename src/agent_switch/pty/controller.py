"""Pseudo-terminal controller contract.

A controller owns one child process attached to a pseudo-terminal. The
handoff controller only talks to this protocol, so tests can drive it with
scripted output instead of a real process.
"""

import signal
from typing import Protocol, runtime_checkable


DEFAULT_ROWS = 24
DEFAULT_COLS = 80


@runtime_checkable
class PTYController(Protocol):
    def start(self) -> None:
        """Spawn the child. Must be called before any other operation."""
        ...

    def inject_command(self, command: str) -> None:
        """Type ``command`` followed by Enter, as if the user typed it."""
        ...

    def inject_raw(self, data: bytes) -> None:
        """Write raw bytes to the terminal without adding Enter."""
        ...

    def read_output(self) -> str:
        """Return whatever output is available, or "" after a short wait.

        Raises:
            PTYClosedError: The child's output is exhausted
        """
        ...

    def wait(self) -> int:
        """Block until the child exits and return its exit code."""
        ...

    def signal(self, sig: signal.Signals) -> None: ...

    def close(self) -> None:
        """Terminate the child if still running and release the terminal."""
        ...
