"""Automatic profile handoff for a wrapped CLI session.

The controller runs a provider CLI inside a pseudo-terminal. It watches the
output for rate-limit messages, and on a hit it swaps the live auth files
for a backup profile and drives the CLI's login command. When anything goes
wrong it puts the previous credentials back and keeps the session running.
The child's exit code is never affected by a handoff.
"""

import asyncio
import contextlib
import inspect
import os
import signal
import sys
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from structlog import get_logger

from agent_switch.config.handoff import HandoffSettings
from agent_switch.core.async_utils import run_in_executor
from agent_switch.db.models import ActivityType
from agent_switch.exceptions import (
    AgentSwitchError,
    HandoffError,
    LoginFailedError,
    LoginTimeoutError,
    PTYClosedError,
    PTYError,
)
from agent_switch.handoff.login import LoginHandler
from agent_switch.handoff.state import IN_PROGRESS_STATES, HandoffState
from agent_switch.notify import Alert, AlertLevel, LogNotifier, Notifier
from agent_switch.pty.controller import PTYController
from agent_switch.ratelimit.detector import LineBuffer, RateLimitDetector
from agent_switch.rotation.pool import DEFAULT_COOLDOWN, AuthPool
from agent_switch.rotation.models import SelectionResult
from agent_switch.rotation.selector import SIMPLE_COOLDOWN_SCORE, RotationSelector
from agent_switch.vault.models import AuthFileSet
from agent_switch.vault.vault import Vault, is_system_profile


logger = get_logger(__name__)

COOLDOWN_NOTE = "auto-detected via handoff controller"
MANUAL_ACTION = (
    "Run 'agent-switch ls {tool}' to see available profiles, "
    "then 'agent-switch activate {tool} <profile>'"
)
# Rolling window of output inspected for login markers
LOGIN_OUTPUT_WINDOW = 64 * 1024
FORWARDED_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


@dataclass(frozen=True)
class LoginResult:
    success: bool
    message: str = ""


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _stdout_sink(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def _other_than(selection: SelectionResult, previous: str) -> str:
    """The selected profile, or the best non-cooling alternative to ``previous``."""
    if selection.selected != previous:
        return selection.selected
    for candidate in selection.alternatives:
        if candidate.name != previous and candidate.score > SIMPLE_COOLDOWN_SCORE:
            return candidate.name
    return ""


class HandoffController:
    """State machine that keeps a CLI session alive across rate limits.

    Args:
        file_set: Auth files of the wrapped tool
        vault: Profile store used for snapshots and swaps
        selector: Picks the backup profile
        detector: Rate-limit detector for the tool's output
        login_handler: Drives the tool's login command
        current_profile: Profile whose credentials are live, "" if unknown
        pool: In-process cooldown tracker
        cooldown_store: Persistent cooldown store (``set_cooldown``)
        activity_store: Persistent activity log (``log_event``)
        notifier: Receives user-facing alerts
        settings: Timeouts, retry bound and trigger mode
        cooldown: How long the rate-limited profile is skipped
        max_auto_backups: Retention for rollback snapshots (0 keeps all)
        output: Sink for the child's output, stdout by default
        stdin_fd: Forward keystrokes from this descriptor to the child
        forward_signals: Relay SIGINT/SIGTERM/SIGHUP to the child
    """

    def __init__(
        self,
        file_set: AuthFileSet,
        *,
        vault: Vault,
        selector: RotationSelector,
        detector: RateLimitDetector,
        login_handler: LoginHandler,
        current_profile: str = "",
        pool: AuthPool | None = None,
        cooldown_store: Any = None,
        activity_store: Any = None,
        notifier: Notifier | None = None,
        settings: HandoffSettings | None = None,
        cooldown: timedelta = DEFAULT_COOLDOWN,
        max_auto_backups: int = 0,
        output: Callable[[str], None] | None = None,
        stdin_fd: int | None = None,
        forward_signals: bool = False,
    ) -> None:
        self.file_set = file_set
        self.tool = file_set.tool
        self.vault = vault
        self.selector = selector
        self.detector = detector
        self.login_handler = login_handler
        self.pool = pool if pool is not None else AuthPool()
        self.cooldown_store = cooldown_store
        self.activity_store = activity_store
        self.notifier = notifier if notifier is not None else LogNotifier()
        self.settings = settings or HandoffSettings()
        self.cooldown = cooldown
        self.max_auto_backups = max_auto_backups
        self.output = output or _stdout_sink
        self.stdin_fd = stdin_fd
        self.forward_signals = forward_signals

        self._lock = threading.Lock()
        initial = (
            HandoffState.RUNNING
            if self.settings.auto_trigger
            else HandoffState.MANUAL_MODE
        )
        self._state = initial
        self.state_history: list[HandoffState] = [initial]
        self._current_profile = current_profile
        self._handoff_count = 0
        self._consecutive_failures = 0
        self._dispatched = False

        self._line_buffer = LineBuffer(detector)
        self._login_output = ""
        self._login_results: asyncio.Queue[LoginResult] = asyncio.Queue(maxsize=1)
        self._handoff_task: asyncio.Task[None] | None = None
        self._pty: PTYController | None = None
        self._stopping = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> HandoffState:
        with self._lock:
            return self._state

    @property
    def current_profile(self) -> str:
        with self._lock:
            return self._current_profile

    @property
    def handoff_count(self) -> int:
        with self._lock:
            return self._handoff_count

    @property
    def dispatched(self) -> bool:
        with self._lock:
            return self._dispatched

    @property
    def in_progress(self) -> bool:
        """Whether a handoff task is doing work."""
        return self.state in IN_PROGRESS_STATES

    def _set_state(self, state: HandoffState) -> None:
        with self._lock:
            previous = self._state
            self._state = state
            self.state_history.append(state)
        logger.debug(
            "handoff_state_changed",
            tool=self.tool,
            previous=str(previous),
            state=str(state),
        )

    def _reset_detection(self) -> None:
        """Clear the detector and the dispatch latch together."""
        self.detector.reset()
        self._line_buffer = LineBuffer(self.detector)
        with self._lock:
            self._dispatched = False

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def run(self, pty: PTYController) -> int:
        """Run the wrapped CLI until it exits.

        Returns:
            The child's own exit code

        Raises:
            PTYError: The child could not be started
        """
        loop = asyncio.get_running_loop()
        self._pty = pty
        self._stopping = False
        pty.start()
        logger.info(
            "session_started",
            tool=self.tool,
            profile=self.current_profile or None,
            state=str(self.state),
        )

        self._install_forwarders(loop, pty)
        monitor = asyncio.create_task(self._monitor(pty))
        try:
            try:
                exit_code = await loop.run_in_executor(None, pty.wait)
            finally:
                self._stopping = True
                self._remove_forwarders(loop)
            await monitor
            await self._finish_handoff()
        finally:
            if not monitor.done():
                monitor.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await monitor
            await self._cancel_handoff()
            with contextlib.suppress(PTYError, OSError):
                pty.close()

        logger.info(
            "session_ended",
            tool=self.tool,
            exit_code=exit_code,
            handoffs=self.handoff_count,
            profile=self.current_profile or None,
        )
        return exit_code

    async def _finish_handoff(self) -> None:
        """Give an in-flight handoff a grace period, then cancel it."""
        task = self._handoff_task
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(
                asyncio.shield(task), timeout=self.settings.exit_grace_seconds
            )
        except TimeoutError:
            logger.warning("handoff_cancelled_on_exit", tool=self.tool)
            await self._cancel_handoff()

    async def _cancel_handoff(self) -> None:
        """Cancel a pending handoff and wait for its rollback."""
        task = self._handoff_task
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _install_forwarders(
        self, loop: asyncio.AbstractEventLoop, pty: PTYController
    ) -> None:
        if self.stdin_fd is not None:
            loop.add_reader(self.stdin_fd, self._forward_stdin, pty)
        if self.forward_signals:
            for sig in FORWARDED_SIGNALS:
                loop.add_signal_handler(sig, self._forward_signal, pty, sig)

    def _remove_forwarders(self, loop: asyncio.AbstractEventLoop) -> None:
        if self.stdin_fd is not None:
            loop.remove_reader(self.stdin_fd)
        if self.forward_signals:
            for sig in FORWARDED_SIGNALS:
                loop.remove_signal_handler(sig)

    def _forward_stdin(self, pty: PTYController) -> None:
        assert self.stdin_fd is not None
        try:
            data = os.read(self.stdin_fd, 1024)
        except OSError:
            data = b""
        if not data:
            asyncio.get_running_loop().remove_reader(self.stdin_fd)
            return
        with contextlib.suppress(PTYError, OSError):
            pty.inject_raw(data)

    def _forward_signal(self, pty: PTYController, sig: signal.Signals) -> None:
        logger.debug("signal_forwarded", signal=sig.name)
        with contextlib.suppress(PTYError, OSError):
            pty.signal(sig)

    # ------------------------------------------------------------------
    # Output routing
    # ------------------------------------------------------------------

    async def _monitor(self, pty: PTYController) -> None:
        """Poll the child's output until it is exhausted."""
        while True:
            try:
                chunk = await run_in_executor(pty.read_output)
            except PTYClosedError:
                break
            if not chunk:
                if self._stopping:
                    break
                await asyncio.sleep(self.settings.poll_interval_seconds)
                continue
            self._route(chunk)
            self.output(chunk)
        self._line_buffer.flush()

    def _route(self, chunk: str) -> None:
        state = self.state
        if state == HandoffState.RUNNING:
            if self.dispatched:
                return
            self._line_buffer.write(chunk)
            if self.detector.detected:
                self._dispatch()
        elif state == HandoffState.LOGGING_IN:
            self._check_login(chunk)

    def _dispatch(self) -> None:
        with self._lock:
            if self._dispatched or self._state != HandoffState.RUNNING:
                return
            self._dispatched = True
        self._set_state(HandoffState.RATE_LIMITED)
        logger.info(
            "rate_limit_handoff_dispatched",
            tool=self.tool,
            profile=self.current_profile or None,
            reason=self.detector.reason,
        )
        self._handoff_task = asyncio.get_running_loop().create_task(
            self._handle_rate_limit()
        )

    def _check_login(self, chunk: str) -> None:
        self._login_output = (self._login_output + chunk)[-LOGIN_OUTPUT_WINDOW:]
        failed, line = self.login_handler.is_login_failed(self._login_output)
        if failed:
            result = LoginResult(False, line)
        elif self.login_handler.is_login_complete(self._login_output):
            result = LoginResult(True)
        else:
            return
        try:
            self._login_results.put_nowait(result)
        except asyncio.QueueFull:
            pass

    def _drain_login_results(self) -> None:
        self._login_output = ""
        while not self._login_results.empty():
            self._login_results.get_nowait()

    # ------------------------------------------------------------------
    # Handoff sequence
    # ------------------------------------------------------------------

    async def _handle_rate_limit(self) -> None:
        previous = self.current_profile
        label = previous or "current profile"
        self._notify(
            AlertLevel.INFO,
            "Switching profiles",
            f"Rate limit on {label}, selecting backup...",
        )

        # Rollback point
        try:
            rollback_profile = await self._snapshot(previous)
        except AgentSwitchError as e:
            await self._fail(f"failed to backup current profile: {e}")
            return
        if not rollback_profile:
            await self._fail("failed to backup current profile: no auth files found")
            return

        try:
            await self._swap(previous)
        except asyncio.CancelledError:
            await self._fail("cancelled during login", rollback_profile, previous)
            raise
        except AgentSwitchError as e:
            await self._fail(str(e), rollback_profile, previous)
            return

        with self._lock:
            self._consecutive_failures = 0
        self._notify(
            AlertLevel.INFO,
            "Profile switched",
            f"Switched to {self.current_profile}. Continue working.",
        )
        self._reset_detection()
        self._set_state(HandoffState.RUNNING)

    async def _snapshot(self, previous: str) -> str:
        if previous and not is_system_profile(previous):
            await run_in_executor(self.vault.backup, self.file_set, previous)
            return previous
        name = await run_in_executor(self.vault.backup_current, self.file_set)
        if name and self.max_auto_backups > 0:
            try:
                await run_in_executor(
                    self.vault.rotate_auto_backups, self.tool, self.max_auto_backups
                )
            except AgentSwitchError as e:
                logger.warning("auto_backup_rotation_failed", tool=self.tool, error=str(e))
        return name

    async def _swap(self, previous: str) -> None:
        """Select, cool down, restore and log in.

        Raises:
            AgentSwitchError: Any step failed
        """
        self._set_state(HandoffState.SELECTING_BACKUP)
        profiles = await run_in_executor(self.vault.list, self.tool)
        try:
            selection = await self.selector.select(self.tool, profiles, previous)
        except AgentSwitchError as e:
            raise HandoffError(f"no backup available: {e}") from e
        next_profile = _other_than(selection, previous)
        if not next_profile:
            raise HandoffError("no other profiles available")

        label = previous or "current profile"
        self._notify(
            AlertLevel.INFO,
            "Switching profiles",
            f"Rate limit on {label}, switching to {next_profile}...",
        )

        if previous:
            await self._mark_cooldown(previous)

        self._set_state(HandoffState.SWAPPING_AUTH)
        try:
            await run_in_executor(self.vault.restore, self.file_set, next_profile)
        except AgentSwitchError as e:
            raise HandoffError(f"auth swap failed: {e}") from e

        self._drain_login_results()
        self._set_state(HandoffState.LOGGING_IN)
        self.login_handler.trigger_login(self._require_pty())

        timeout = self.settings.login_timeout
        try:
            result = await asyncio.wait_for(self._login_results.get(), timeout=timeout)
        except TimeoutError as e:
            raise LoginTimeoutError(timeout) from e
        if not result.success:
            raise LoginFailedError(f"login failed: {result.message}")

        self._set_state(HandoffState.LOGIN_COMPLETE)
        with self._lock:
            self._current_profile = next_profile
            self._handoff_count += 1
        logger.info(
            "handoff_complete",
            tool=self.tool,
            previous=previous or None,
            profile=next_profile,
        )
        await self._log_activity(
            ActivityType.ACTIVATE,
            next_profile,
            f"auto handoff from {previous}" if previous else "auto handoff",
        )

    def _require_pty(self) -> PTYController:
        if self._pty is None:
            raise HandoffError("no session is running")
        return self._pty

    async def _mark_cooldown(self, profile: str) -> None:
        self.pool.set_cooldown(self.tool, profile, self.cooldown, notes=COOLDOWN_NOTE)
        await self._log_activity(ActivityType.RATE_LIMIT, profile, self.detector.reason)
        if self.cooldown_store is None:
            return
        try:
            await _resolve(
                self.cooldown_store.set_cooldown(
                    self.tool,
                    profile,
                    datetime.now(UTC),
                    self.cooldown,
                    COOLDOWN_NOTE,
                )
            )
        except Exception as e:
            logger.warning(
                "cooldown_store_failed", tool=self.tool, profile=profile, error=str(e)
            )

    async def _log_activity(
        self, event_type: ActivityType, profile: str, details: str | None
    ) -> None:
        if self.activity_store is None:
            return
        try:
            await _resolve(
                self.activity_store.log_event(event_type, self.tool, profile, details)
            )
        except Exception as e:
            logger.warning(
                "activity_log_failed",
                tool=self.tool,
                event_type=str(event_type),
                error=str(e),
            )

    # ------------------------------------------------------------------
    # Failure
    # ------------------------------------------------------------------

    async def _fail(
        self, reason: str, rollback_profile: str = "", previous: str = ""
    ) -> None:
        self._set_state(HandoffState.HANDOFF_FAILED)
        logger.warning("handoff_failed", tool=self.tool, reason=reason)
        self._notify(
            AlertLevel.WARNING,
            "Auto-handoff failed",
            reason,
            MANUAL_ACTION.format(tool=self.tool),
        )
        target = previous or rollback_profile
        await self._log_activity(ActivityType.HANDOFF_FAILED, target, reason)

        if rollback_profile:
            await self._rollback(rollback_profile, previous)

        with self._lock:
            self._consecutive_failures += 1
            exhausted = self._consecutive_failures > self.settings.max_retries

        self._reset_detection()
        if exhausted:
            self._enter_manual_mode()
        else:
            self._set_state(HandoffState.RUNNING)

    async def _rollback(self, rollback_profile: str, previous: str) -> None:
        try:
            await asyncio.shield(
                run_in_executor(self.vault.restore, self.file_set, rollback_profile)
            )
            logger.info("handoff_rolled_back", tool=self.tool, profile=rollback_profile)
        except AgentSwitchError as e:
            logger.error(
                "handoff_rollback_failed",
                tool=self.tool,
                profile=rollback_profile,
                error=str(e),
            )
        with self._lock:
            self._current_profile = previous

    def _enter_manual_mode(self) -> None:
        self._set_state(HandoffState.MANUAL_MODE)
        logger.warning(
            "handoff_manual_mode",
            tool=self.tool,
            failures=self._consecutive_failures,
        )
        if self.settings.fallback_to_manual:
            self._notify(
                AlertLevel.WARNING,
                "Automatic switching disabled",
                "Too many failed handoffs in this session.",
                MANUAL_ACTION.format(tool=self.tool),
            )

    def _notify(
        self, level: AlertLevel, title: str, message: str, action: str = ""
    ) -> None:
        try:
            self.notifier.notify(Alert(level, title, message, action))
        except Exception as e:
            logger.warning("notification_failed", title=title, error=str(e))
