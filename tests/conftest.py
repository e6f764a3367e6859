"""Shared fixtures: an isolated vault and a fake tool login on disk."""

from pathlib import Path

import pytest

from agent_switch.vault.models import AuthFileSet, AuthFileSpec
from agent_switch.vault.vault import Vault


@pytest.fixture
def live_dir(tmp_path: Path) -> Path:
    """Directory standing in for the user's home."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def file_set(live_dir: Path) -> AuthFileSet:
    """A claude-like tool with one required and one optional auth file."""
    return AuthFileSet(
        tool="claude",
        files=(
            AuthFileSpec(
                tool="claude",
                path=live_dir / ".claude.json",
                description="session state",
                required=True,
            ),
            AuthFileSpec(
                tool="claude",
                path=live_dir / ".config" / "claude-code" / "auth.json",
                description="credentials",
                required=False,
            ),
        ),
    )


@pytest.fixture
def vault(tmp_path: Path) -> Vault:
    return Vault(tmp_path / "vault")


def _write_login(
    file_set: AuthFileSet, account: str, *, optional: bool = True
) -> None:
    """Simulate the tool writing its auth files after a login."""
    for spec in file_set.files:
        if not spec.required and not optional:
            continue
        spec.path.parent.mkdir(parents=True, exist_ok=True)
        spec.path.write_text(f'{{"account": "{account}", "file": "{spec.basename}"}}')


def _read_login(file_set: AuthFileSet) -> dict[str, str]:
    return {
        spec.basename: spec.path.read_text()
        for spec in file_set.files
        if spec.path.exists()
    }


@pytest.fixture
def write_login():
    return _write_login


@pytest.fixture
def read_login():
    return _read_login
