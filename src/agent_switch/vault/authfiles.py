"""Where each supported CLI keeps its login state.

The registry is closed: only the tools listed in ``KNOWN_TOOLS`` can be
vaulted. Paths are resolved at call time so ``$CODEX_HOME``, ``$GEMINI_HOME``
and ``$XDG_CONFIG_HOME`` overrides take effect without a restart.
"""

import os
from collections.abc import Callable
from pathlib import Path

from agent_switch.exceptions import UnknownToolError
from agent_switch.vault.models import AuthFileSet, AuthFileSpec


def _env_dir(var: str, default: Path) -> Path:
    value = os.environ.get(var, "").strip()
    return Path(value).expanduser() if value else default


def _home() -> Path:
    return Path.home()


def codex_auth_files() -> AuthFileSet:
    codex_home = _env_dir("CODEX_HOME", _home() / ".codex")
    return AuthFileSet(
        tool="codex",
        files=(
            AuthFileSpec(
                tool="codex",
                path=codex_home / "auth.json",
                description="Codex CLI OAuth token",
                required=True,
            ),
        ),
    )


def claude_auth_files() -> AuthFileSet:
    config_home = _env_dir("XDG_CONFIG_HOME", _home() / ".config")
    return AuthFileSet(
        tool="claude",
        files=(
            AuthFileSpec(
                tool="claude",
                path=_home() / ".claude.json",
                description="Claude Code session state and OAuth account",
                required=True,
            ),
            AuthFileSpec(
                tool="claude",
                path=config_home / "claude-code" / "auth.json",
                description="Claude Code credentials",
                required=False,
            ),
        ),
    )


def gemini_auth_files() -> AuthFileSet:
    gemini_home = _env_dir("GEMINI_HOME", _home() / ".gemini")
    return AuthFileSet(
        tool="gemini",
        files=(
            AuthFileSpec(
                tool="gemini",
                path=gemini_home / "settings.json",
                description="Gemini CLI settings with selected auth type",
                required=True,
            ),
            AuthFileSpec(
                tool="gemini",
                path=gemini_home / "oauth_credentials.json",
                description="Gemini CLI OAuth credentials",
                required=False,
            ),
        ),
    )


_REGISTRY: dict[str, Callable[[], AuthFileSet]] = {
    "claude": claude_auth_files,
    "codex": codex_auth_files,
    "gemini": gemini_auth_files,
}

KNOWN_TOOLS: tuple[str, ...] = tuple(sorted(_REGISTRY))


def get_auth_file_set(tool: str) -> AuthFileSet:
    """Return the auth file set for ``tool``.

    Raises:
        UnknownToolError: If the tool is not one of ``KNOWN_TOOLS``
    """
    try:
        factory = _REGISTRY[tool]
    except KeyError as e:
        raise UnknownToolError(tool) from e
    return factory()
