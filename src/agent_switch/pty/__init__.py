"""Pseudo-terminal control for wrapped CLI sessions."""

from agent_switch.pty.controller import PTYController
from agent_switch.pty.process import PtyProcessController
from agent_switch.pty.terminal import raw_terminal, terminal_size


__all__ = ["PTYController", "PtyProcessController", "raw_terminal", "terminal_size"]
