"""Integration tests that run real child processes on a pseudo-terminal."""

import asyncio
import signal
import threading
import time

import pytest

from agent_switch.config.handoff import HandoffSettings
from agent_switch.db import close_db, init_db
from agent_switch.db.repositories import ActivityRepository, CooldownRepository
from agent_switch.exceptions import PTYClosedError, PTYError, PTYNotStartedError
from agent_switch.handoff.controller import HandoffController
from agent_switch.handoff.login import get_login_handler
from agent_switch.handoff.state import HandoffState
from agent_switch.ratelimit.detector import RateLimitDetector
from agent_switch.rotation.models import Algorithm
from agent_switch.rotation.selector import RotationSelector
from agent_switch.pty.process import PtyProcessController


pytestmark = pytest.mark.integration


def read_all(controller: PtyProcessController, timeout: float = 5.0) -> str:
    """Collect output until the terminal reports EOF."""
    chunks: list[str] = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            chunks.append(controller.read_output())
        except PTYClosedError:
            break
    return "".join(chunks)


def test_output_and_exit_code() -> None:
    proc = PtyProcessController(["sh", "-c", "echo hello; exit 3"])
    proc.start()
    try:
        output = read_all(proc)
        assert proc.wait() == 3
    finally:
        proc.close()

    assert "hello" in output


def test_injected_command_reaches_child() -> None:
    proc = PtyProcessController(["sh", "-c", 'read line; echo "got:$line"'])
    proc.start()
    try:
        proc.inject_command("/login")
        output = read_all(proc)
        assert proc.wait() == 0
    finally:
        proc.close()

    assert "got:/login" in output


def test_signal_exit_code() -> None:
    proc = PtyProcessController(["sh", "-c", "sleep 10"])
    proc.start()
    try:
        proc.signal(signal.SIGTERM)
        assert proc.wait() == 128 + signal.SIGTERM
    finally:
        proc.close()


def test_wait_and_close_race_keeps_exit_code() -> None:
    """Test reaping the child from two threads at once.

    Verifies:
    - wait() blocked in one thread returns the real exit code when close()
      in another thread polls and reaps the child first
    """
    proc = PtyProcessController(["sh", "-c", "sleep 0.3; exit 5"])
    proc.start()
    results: list[int] = []
    waiter = threading.Thread(target=lambda: results.append(proc.wait()))
    waiter.start()
    try:
        while proc.poll() is None:
            time.sleep(0.001)
        proc.close()
    finally:
        waiter.join(timeout=5.0)

    assert not waiter.is_alive()
    assert results == [5]
    assert proc.poll() == 5


def test_missing_command_exits_127() -> None:
    proc = PtyProcessController(["agent-switch-no-such-binary"])
    proc.start()
    try:
        output = read_all(proc)
        assert proc.wait() == 127
    finally:
        proc.close()

    assert "agent-switch-no-such-binary" in output


def test_lifecycle_errors() -> None:
    with pytest.raises(PTYError):
        PtyProcessController([])

    proc = PtyProcessController(["true"])
    with pytest.raises(PTYNotStartedError):
        proc.read_output()

    proc.start()
    proc.close()
    proc.close()
    with pytest.raises(PTYClosedError):
        proc.inject_command("x")


@pytest.mark.asyncio
async def test_handoff_end_to_end(vault, file_set, write_login, tmp_path) -> None:
    """Test a full handoff against a shell script posing as the CLI.

    Verifies:
    - The login command is typed into the child's terminal
    - The child's exit code comes back unchanged
    - The cooldown and activity records land in the database
    """
    write_login(file_set, "personal")
    vault.backup(file_set, "personal")
    write_login(file_set, "work")
    vault.backup(file_set, "work")

    script = (
        'echo "Error: rate limit exceeded"; '
        "read line; "
        'echo "Successfully logged in"; '
        "sleep 0.2; exit 4"
    )
    output: list[str] = []

    await init_db(tmp_path / "session.db")
    try:
        cooldowns = CooldownRepository()
        activity = ActivityRepository()
        controller = HandoffController(
            file_set,
            vault=vault,
            selector=RotationSelector(Algorithm.SMART, cooldown_store=cooldowns),
            detector=RateLimitDetector("claude"),
            login_handler=get_login_handler("claude"),
            current_profile="work",
            cooldown_store=cooldowns,
            activity_store=activity,
            settings=HandoffSettings(min_login_timeout_seconds=5),
            output=output.append,
        )

        code = await asyncio.wait_for(
            controller.run(PtyProcessController(["sh", "-c", script])),
            timeout=15,
        )

        assert code == 4
        assert controller.state == HandoffState.RUNNING
        assert controller.current_profile == "personal"
        assert "/login" in "".join(output)
        assert "personal" in file_set.files[0].path.read_text()
        assert await cooldowns.active_cooldown("claude", "work") is not None
        assert await activity.last_activation("claude", "personal") is not None
    finally:
        await close_db()
