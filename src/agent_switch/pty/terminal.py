"""Host terminal helpers for interactive sessions."""

import os
import shutil
import sys
import termios
import tty
from collections.abc import Iterator
from contextlib import contextmanager

from agent_switch.pty.controller import DEFAULT_COLS, DEFAULT_ROWS


def terminal_size() -> tuple[int, int]:
    """Rows and columns of the host terminal."""
    size = shutil.get_terminal_size((DEFAULT_COLS, DEFAULT_ROWS))
    return size.lines, size.columns


def stdin_is_tty() -> bool:
    try:
        return os.isatty(sys.stdin.fileno())
    except (OSError, ValueError):
        return False


@contextmanager
def raw_terminal(fd: int | None = None) -> Iterator[int | None]:
    """Put the host terminal in raw mode, restoring it on exit.

    Yields the stdin descriptor, or None when stdin is not a terminal (in
    which case nothing is changed).
    """
    if fd is None:
        if not stdin_is_tty():
            yield None
            return
        fd = sys.stdin.fileno()

    old_settings = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        yield fd
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)
