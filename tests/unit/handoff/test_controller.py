"""Tests for the handoff controller state machine.

The wrapped CLI is a scripted fake PTY. Tests feed it output, wait for the
controller to react and then let the child exit.
"""

import asyncio
import threading
import time
from collections import deque
from collections.abc import Callable

import pytest

from agent_switch.config.handoff import HandoffSettings
from agent_switch.core.async_utils import wait_for_condition
from agent_switch.db.models import ActivityType
from agent_switch.exceptions import PTYClosedError
from agent_switch.handoff.controller import HandoffController
from agent_switch.handoff.login import get_login_handler
from agent_switch.handoff.state import HandoffState
from agent_switch.notify import Alert, AlertLevel
from agent_switch.ratelimit.detector import RateLimitDetector
from agent_switch.rotation.models import (
    Algorithm,
    ProfileScore,
    Reason,
    SelectionResult,
)
from agent_switch.rotation.pool import AuthPool
from agent_switch.rotation.selector import RotationSelector


RATE_LIMIT_LINE = "Error: rate limit exceeded, please retry later\n"
LOGIN_OK = "Successfully logged in\n"


class FakePTY:
    """Scripted stand-in for a child process on a pseudo-terminal."""

    def __init__(self, on_command: Callable[["FakePTY", str], None] | None = None):
        self.on_command = on_command
        self.commands: list[str] = []
        self.started = False
        self.closed = False
        self.exit_code = 0
        self._chunks: deque[str] = deque()
        self._lock = threading.Lock()
        self._exited = threading.Event()

    def feed(self, chunk: str) -> None:
        with self._lock:
            self._chunks.append(chunk)

    def exit(self, code: int = 0) -> None:
        self.exit_code = code
        self._exited.set()

    def start(self) -> None:
        self.started = True

    def inject_command(self, command: str) -> None:
        self.commands.append(command)
        if self.on_command is not None:
            self.on_command(self, command)

    def inject_raw(self, data: bytes) -> None:
        pass

    def read_output(self) -> str:
        with self._lock:
            if self._chunks:
                return self._chunks.popleft()
            if self._exited.is_set():
                raise PTYClosedError()
        time.sleep(0.005)
        return ""

    def wait(self) -> int:
        self._exited.wait()
        return self.exit_code

    def signal(self, sig) -> None:
        pass

    def close(self) -> None:
        self.closed = True


class RecordingNotifier:
    def __init__(self) -> None:
        self.alerts: list[Alert] = []

    def notify(self, alert: Alert) -> None:
        self.alerts.append(alert)

    @property
    def titles(self) -> list[str]:
        return [a.title for a in self.alerts]


class RecordingActivity:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, str | None]] = []

    async def log_event(self, event_type, tool, profile, details=None) -> None:
        self.events.append((str(event_type), profile, details))


def login_succeeds(pty: FakePTY, command: str) -> None:
    pty.feed("Opening browser...\n")
    pty.feed(LOGIN_OK)


@pytest.fixture
def profiles(vault, file_set, write_login):
    """Vault with two user profiles; "work" is live."""
    write_login(file_set, "personal")
    vault.backup(file_set, "personal")
    write_login(file_set, "work")
    vault.backup(file_set, "work")
    return vault


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def activity() -> RecordingActivity:
    return RecordingActivity()


@pytest.fixture
def make_controller(profiles, file_set, notifier, activity):
    def _make(**settings) -> tuple[HandoffController, list[str]]:
        output: list[str] = []
        settings.setdefault("min_login_timeout_seconds", 5.0)
        settings.setdefault("debounce_delay_seconds", 0.0)
        controller = HandoffController(
            file_set,
            vault=profiles,
            selector=RotationSelector(Algorithm.ROUND_ROBIN),
            detector=RateLimitDetector("claude"),
            login_handler=get_login_handler("claude"),
            current_profile="work",
            pool=AuthPool(),
            activity_store=activity,
            notifier=notifier,
            settings=HandoffSettings(**settings),
            output=output.append,
        )
        return controller, output

    return _make


async def run_until(
    controller: HandoffController,
    pty: FakePTY,
    condition: Callable[[], bool],
    exit_code: int = 0,
) -> int:
    """Run the controller until ``condition`` holds, then let the child exit."""
    session = asyncio.create_task(controller.run(pty))
    reached = await wait_for_condition(condition, timeout=5.0, interval=0.01)
    pty.exit(exit_code)
    code = await asyncio.wait_for(session, timeout=10.0)
    assert reached, f"condition not reached; history={controller.state_history}"
    return code


@pytest.mark.unit
@pytest.mark.asyncio
async def test_successful_handoff(
    make_controller, file_set, profiles, read_login, notifier, activity
) -> None:
    """Test a full rate-limit handoff.

    Verifies:
    - The state sequence runs from RUNNING back to RUNNING
    - The backup's credentials are live afterwards
    - The limited profile is cooled down and the events are logged
    - Output is forwarded unchanged
    """
    controller, output = make_controller()
    pty = FakePTY(on_command=login_succeeds)
    pty.feed("thinking...\n")
    pty.feed(RATE_LIMIT_LINE)

    code = await run_until(
        controller,
        pty,
        lambda: controller.handoff_count == 1
        and controller.state == HandoffState.RUNNING,
        exit_code=3,
    )

    assert code == 3
    assert controller.state_history == [
        HandoffState.RUNNING,
        HandoffState.RATE_LIMITED,
        HandoffState.SELECTING_BACKUP,
        HandoffState.SWAPPING_AUTH,
        HandoffState.LOGGING_IN,
        HandoffState.LOGIN_COMPLETE,
        HandoffState.RUNNING,
    ]
    assert controller.current_profile == "personal"
    assert not controller.dispatched
    assert pty.commands == ["/login"]
    assert pty.started and pty.closed

    assert "personal" in file_set.files[0].path.read_text()
    assert controller.pool.in_cooldown("claude", "work")
    assert (str(ActivityType.RATE_LIMIT), "work", "rate limit") in activity.events
    assert any(
        e[0] == str(ActivityType.ACTIVATE) and e[1] == "personal"
        for e in activity.events
    )
    assert notifier.titles == [
        "Switching profiles",
        "Switching profiles",
        "Profile switched",
    ]
    assert "".join(output).startswith("thinking...\n" + RATE_LIMIT_LINE)
    assert LOGIN_OK in "".join(output)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_login_timeout_rolls_back(
    make_controller, file_set, read_login, notifier, activity
) -> None:
    """Test that a login that never completes restores the original files."""
    before = read_login(file_set)
    controller, _ = make_controller(min_login_timeout_seconds=0.2)
    pty = FakePTY()
    pty.feed(RATE_LIMIT_LINE)

    await run_until(
        controller,
        pty,
        lambda: HandoffState.HANDOFF_FAILED in controller.state_history
        and controller.state == HandoffState.RUNNING,
    )

    assert read_login(file_set) == before
    assert controller.current_profile == "work"
    assert controller.handoff_count == 0
    assert controller.state_history[-2:] == [
        HandoffState.HANDOFF_FAILED,
        HandoffState.RUNNING,
    ]
    failure = notifier.alerts[-1]
    assert failure.title == "Auto-handoff failed"
    assert "timed out" in failure.message
    assert "agent-switch activate claude" in failure.action
    assert any(e[0] == str(ActivityType.HANDOFF_FAILED) for e in activity.events)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_login_failure_rolls_back(
    make_controller, file_set, read_login, notifier
) -> None:
    def login_fails(pty: FakePTY, command: str) -> None:
        pty.feed("Authentication failed: invalid code\n")

    before = read_login(file_set)
    controller, _ = make_controller()
    pty = FakePTY(on_command=login_fails)
    pty.feed(RATE_LIMIT_LINE)

    await run_until(
        controller,
        pty,
        lambda: HandoffState.HANDOFF_FAILED in controller.state_history
        and controller.state == HandoffState.RUNNING,
    )

    assert read_login(file_set) == before
    assert controller.current_profile == "work"
    assert "Authentication failed: invalid code" in notifier.alerts[-1].message


@pytest.mark.unit
@pytest.mark.asyncio
async def test_repeated_failures_enter_manual_mode(
    make_controller, notifier
) -> None:
    """Test the retry bound.

    Verifies:
    - The first failure returns to RUNNING and detection is re-armed
    - The second consecutive failure enters MANUAL_MODE
    - Rate limits are ignored in MANUAL_MODE
    """
    controller, _ = make_controller(min_login_timeout_seconds=0.1, max_retries=1)
    pty = FakePTY()
    pty.feed(RATE_LIMIT_LINE)

    session = asyncio.create_task(controller.run(pty))
    assert await wait_for_condition(
        lambda: controller.state_history.count(HandoffState.HANDOFF_FAILED) == 1
        and controller.state == HandoffState.RUNNING,
        timeout=5.0,
        interval=0.01,
    )
    pty.feed(RATE_LIMIT_LINE)
    assert await wait_for_condition(
        lambda: controller.state == HandoffState.MANUAL_MODE,
        timeout=5.0,
        interval=0.01,
    )

    pty.feed(RATE_LIMIT_LINE)
    await asyncio.sleep(0.1)
    pty.exit()
    await asyncio.wait_for(session, timeout=10.0)

    assert controller.state == HandoffState.MANUAL_MODE
    assert controller.state_history.count(HandoffState.RATE_LIMITED) == 2
    assert pty.commands == ["/login", "/login"]
    assert notifier.titles[-1] == "Automatic switching disabled"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_no_other_profile_fails_without_swap(
    vault, file_set, write_login, read_login, notifier
) -> None:
    write_login(file_set, "work")
    vault.backup(file_set, "work")
    before = read_login(file_set)
    controller = HandoffController(
        file_set,
        vault=vault,
        selector=RotationSelector(Algorithm.SMART),
        detector=RateLimitDetector("claude"),
        login_handler=get_login_handler("claude"),
        current_profile="work",
        notifier=notifier,
        settings=HandoffSettings(max_retries=0, fallback_to_manual=False),
        output=lambda text: None,
    )
    pty = FakePTY()
    pty.feed(RATE_LIMIT_LINE)

    await run_until(
        controller, pty, lambda: controller.state == HandoffState.MANUAL_MODE
    )

    assert read_login(file_set) == before
    assert pty.commands == []
    assert notifier.alerts[-1].message == "no other profiles available"
    assert "Automatic switching disabled" not in notifier.titles


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unknown_current_profile_snapshots_live_files(
    vault, file_set, write_login, read_login, notifier
) -> None:
    """Test the rollback point when the live login matches no profile."""
    write_login(file_set, "a")
    vault.backup(file_set, "a")
    write_login(file_set, "b")
    vault.backup(file_set, "b")
    write_login(file_set, "unsaved")
    before = read_login(file_set)
    controller = HandoffController(
        file_set,
        vault=vault,
        selector=RotationSelector(Algorithm.ROUND_ROBIN),
        detector=RateLimitDetector("claude"),
        login_handler=get_login_handler("claude"),
        notifier=notifier,
        settings=HandoffSettings(
            min_login_timeout_seconds=0.1, debounce_delay_seconds=0
        ),
        output=lambda text: None,
    )
    pty = FakePTY()
    pty.feed(RATE_LIMIT_LINE)

    await run_until(
        controller,
        pty,
        lambda: HandoffState.HANDOFF_FAILED in controller.state_history
        and controller.state == HandoffState.RUNNING,
    )

    assert read_login(file_set) == before
    assert controller.current_profile == ""
    assert any(name.startswith("_backup_") for name in vault.list("claude"))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_manual_mode_when_auto_trigger_disabled(make_controller) -> None:
    controller, output = make_controller(auto_trigger=False)
    pty = FakePTY()
    pty.feed(RATE_LIMIT_LINE)

    await run_until(controller, pty, lambda: RATE_LIMIT_LINE in "".join(output))

    assert controller.state_history == [HandoffState.MANUAL_MODE]
    assert pty.commands == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_exit_during_handoff_rolls_back(
    make_controller, file_set, read_login
) -> None:
    """Test the child exiting while the login is pending.

    Verifies:
    - The exit code is returned unchanged
    - The handoff is cancelled after the grace period and rolled back
    """

    def exit_on_login(pty: FakePTY, command: str) -> None:
        pty.exit(7)

    before = read_login(file_set)
    controller, _ = make_controller(
        min_login_timeout_seconds=30.0, exit_grace_seconds=0.1
    )
    pty = FakePTY(on_command=exit_on_login)
    pty.feed(RATE_LIMIT_LINE)

    code = await asyncio.wait_for(controller.run(pty), timeout=10.0)

    assert code == 7
    assert read_login(file_set) == before
    assert controller.current_profile == "work"
    assert HandoffState.HANDOFF_FAILED in controller.state_history


class StickySelector:
    """Always recommends the current profile, like smart scoring can."""

    async def select(self, tool, profiles, current_profile=""):
        return SelectionResult(
            selected=current_profile,
            alternatives=[
                ProfileScore(current_profile, 120, [Reason("Healthy status", True)]),
                ProfileScore("cooling", -1000, [Reason("In cooldown (5m remaining)", False)]),
                ProfileScore("personal", 40, [Reason("Never used before", True)]),
            ],
            algorithm=Algorithm.SMART,
        )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_selection_of_current_falls_back_to_alternative(
    profiles, file_set, notifier
) -> None:
    controller = HandoffController(
        file_set,
        vault=profiles,
        selector=StickySelector(),
        detector=RateLimitDetector("claude"),
        login_handler=get_login_handler("claude"),
        current_profile="work",
        notifier=notifier,
        settings=HandoffSettings(min_login_timeout_seconds=5),
        output=lambda text: None,
    )
    pty = FakePTY(on_command=login_succeeds)
    pty.feed(RATE_LIMIT_LINE)

    await run_until(controller, pty, lambda: controller.handoff_count == 1)

    assert controller.current_profile == "personal"
    assert "personal" in file_set.files[0].path.read_text()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancelling_session_during_login_rolls_back(
    make_controller, file_set, read_login
) -> None:
    """Test cancelling the session task while a login is pending.

    Verifies:
    - The pending handoff is cancelled along with the session
    - The limited profile's files are live again when run() returns
    - The PTY is closed
    """
    before = read_login(file_set)
    controller, _ = make_controller(min_login_timeout_seconds=30.0)
    pty = FakePTY()
    pty.feed(RATE_LIMIT_LINE)

    session = asyncio.create_task(controller.run(pty))
    reached = await wait_for_condition(
        lambda: controller.state == HandoffState.LOGGING_IN, timeout=5.0, interval=0.01
    )
    session.cancel()
    try:
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(session, timeout=5.0)
    finally:
        pty.exit()

    assert reached
    assert controller.state != HandoffState.LOGGING_IN
    assert not controller.in_progress
    assert HandoffState.HANDOFF_FAILED in controller.state_history
    assert read_login(file_set) == before
    assert controller.current_profile == "work"
    assert controller.handoff_count == 0
    assert pty.closed


@pytest.mark.unit
@pytest.mark.asyncio
async def test_snapshot_failure_fails_without_swap(
    make_controller, file_set, profiles, notifier
) -> None:
    """Test a handoff whose rollback snapshot cannot be taken.

    Verifies:
    - The handoff fails before selecting a backup
    - A warning with the manual action is emitted
    - Nothing is restored and the session returns to RUNNING
    """
    controller, _ = make_controller()
    required = file_set.files[0].path
    required.unlink()
    pty = FakePTY(on_command=login_succeeds)
    pty.feed(RATE_LIMIT_LINE)

    await run_until(
        controller,
        pty,
        lambda: HandoffState.HANDOFF_FAILED in controller.state_history
        and controller.state == HandoffState.RUNNING,
    )

    assert controller.state_history == [
        HandoffState.RUNNING,
        HandoffState.RATE_LIMITED,
        HandoffState.HANDOFF_FAILED,
        HandoffState.RUNNING,
    ]
    failure = notifier.alerts[-1]
    assert failure.level == AlertLevel.WARNING
    assert failure.title == "Auto-handoff failed"
    assert "failed to backup current profile" in failure.message
    assert "agent-switch activate claude" in failure.action
    assert not required.exists()
    assert pty.commands == []
    assert controller.current_profile == "work"
    assert not controller.pool.in_cooldown("claude", "work")
