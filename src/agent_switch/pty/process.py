"""POSIX pseudo-terminal controller built on ``pty.fork``."""

import codecs
import contextlib
import errno
import fcntl
import os
import pty
import select
import signal
import struct
import termios
import threading
import time
from collections.abc import Mapping, Sequence

from structlog import get_logger

from agent_switch.exceptions import PTYClosedError, PTYError, PTYNotStartedError
from agent_switch.pty.controller import DEFAULT_COLS, DEFAULT_ROWS


logger = get_logger(__name__)

READ_CHUNK = 4096
READ_TIMEOUT = 0.01
TERMINATE_GRACE = 3.0


def _exit_code(status: int) -> int:
    """Shell-style exit code: signal deaths become 128 + signal number."""
    code = os.waitstatus_to_exitcode(status)
    return 128 - code if code < 0 else code


class PtyProcessController:
    """Runs one command in a pseudo-terminal and exposes its I/O."""

    def __init__(
        self,
        argv: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
        rows: int = DEFAULT_ROWS,
        cols: int = DEFAULT_COLS,
        read_timeout: float = READ_TIMEOUT,
    ) -> None:
        if not argv:
            raise PTYError("command cannot be empty")
        self.argv = list(argv)
        self.env = dict(env) if env is not None else None
        self.cwd = cwd
        self.rows = rows
        self.cols = cols
        self.read_timeout = read_timeout

        self.pid: int | None = None
        self._fd: int | None = None
        self._exit_code: int | None = None
        self._eof = False
        self._closed = False
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._lock = threading.Lock()

    @property
    def fd(self) -> int:
        """File descriptor of the pseudo-terminal master (-1 before start)."""
        return self._fd if self._fd is not None else -1

    def start(self) -> None:
        with self._lock:
            if self._closed:
                raise PTYClosedError()
            if self.pid is not None:
                raise PTYError("controller already started")

            env = {**os.environ, **self.env} if self.env is not None else None
            pid, fd = pty.fork()
            if pid == 0:
                # Child: never return into the parent's code
                try:
                    if self.cwd:
                        os.chdir(self.cwd)
                    if env is None:
                        os.execvp(self.argv[0], self.argv)
                    else:
                        os.execvpe(self.argv[0], self.argv, env)
                except OSError as e:
                    os.write(2, f"agent-switch: {self.argv[0]}: {e.strerror}\n".encode())
                finally:
                    os._exit(127)

            self.pid = pid
            self._fd = fd

        self.resize(self.rows, self.cols)
        logger.debug("pty_started", pid=pid, command=self.argv[0])

    def _require_started(self) -> int:
        if self._closed:
            raise PTYClosedError()
        if self._fd is None:
            raise PTYNotStartedError()
        return self._fd

    def resize(self, rows: int, cols: int) -> None:
        fd = self._require_started()
        self.rows, self.cols = rows, cols
        try:
            fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))
        except OSError as e:
            logger.debug("pty_resize_failed", error=str(e))

    def inject_command(self, command: str) -> None:
        self.inject_raw(command.encode() + b"\r")

    def inject_raw(self, data: bytes) -> None:
        fd = self._require_started()
        view = memoryview(data)
        try:
            while view:
                written = os.write(fd, view)
                view = view[written:]
        except OSError as e:
            raise PTYError(f"write to terminal failed: {e}") from e

    def read_output(self) -> str:
        fd = self._require_started()
        if self._eof:
            raise PTYClosedError("PTY output exhausted")

        try:
            ready, _, _ = select.select([fd], [], [], self.read_timeout)
        except (OSError, ValueError) as e:
            raise PTYClosedError(f"PTY select failed: {e}") from e
        if not ready:
            return ""

        try:
            data = os.read(fd, READ_CHUNK)
        except OSError as e:
            # Linux reports EIO once the child side is closed
            if e.errno != errno.EIO:
                raise PTYError(f"read from terminal failed: {e}") from e
            data = b""

        if not data:
            self._eof = True
            tail = self._decoder.decode(b"", final=True)
            if tail:
                return tail
            raise PTYClosedError("PTY output exhausted")
        return self._decoder.decode(data)

    def wait(self) -> int:
        if self.pid is None:
            raise PTYNotStartedError()
        if self._exit_code is not None:
            return self._exit_code

        # Block until the child has exited without reaping it; the reap
        # happens in poll() under the lock.
        with contextlib.suppress(ChildProcessError):
            os.waitid(os.P_PID, self.pid, os.WEXITED | os.WNOWAIT)
        exit_code = self.poll()
        if exit_code is None:
            raise PTYError(f"child {self.pid} was reaped elsewhere")
        logger.debug("pty_child_exited", pid=self.pid, exit_code=exit_code)
        return exit_code

    def poll(self) -> int | None:
        """Exit code if the child has exited, else None."""
        if self.pid is None:
            raise PTYNotStartedError()
        with self._lock:
            if self._exit_code is not None:
                return self._exit_code
            try:
                pid, status = os.waitpid(self.pid, os.WNOHANG)
            except ChildProcessError:
                return None
            if pid == 0:
                return None
            self._exit_code = _exit_code(status)
            return self._exit_code

    def signal(self, sig: signal.Signals) -> None:
        if self.pid is None:
            raise PTYNotStartedError()
        if self._exit_code is not None:
            return
        try:
            os.kill(self.pid, sig)
        except ProcessLookupError:
            pass

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True

        if self.pid is not None and self.poll() is None:
            self.signal(signal.SIGTERM)
            deadline = time.monotonic() + TERMINATE_GRACE
            while self.poll() is None and time.monotonic() < deadline:
                time.sleep(0.05)
            if self.poll() is None:
                self.signal(signal.SIGKILL)
                with contextlib.suppress(PTYError):
                    self.wait()

        if self._fd is not None:
            try:
                os.close(self._fd)
            except OSError:
                pass
            self._fd = None
        logger.debug("pty_closed", pid=self.pid, exit_code=self._exit_code)
