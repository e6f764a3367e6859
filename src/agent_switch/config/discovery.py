import os
from pathlib import Path

from agent_switch.core.system import get_app_config_dir


CONFIG_ENV_VAR = "AGENT_SWITCH_CONFIG"


def find_toml_config_file() -> Path | None:
    """Find the TOML configuration file for agent-switch.

    Searches in the following order:
    1. the file named by $AGENT_SWITCH_CONFIG
    2. .agent_switch.toml / agent_switch.toml in current directory
    3. the same names in the git repository root (if in a git repo)
    4. config.toml in the user config directory (platform-specific)
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser())

    candidates.extend(
        [
            Path(".agent_switch.toml").resolve(),
            Path("agent_switch.toml").resolve(),
        ]
    )

    git_root = find_git_root()
    if git_root:
        candidates.extend(
            [
                git_root / ".agent_switch.toml",
                git_root / "agent_switch.toml",
            ]
        )

    candidates.append(get_app_config_dir() / "config.toml")

    for candidate in candidates:
        if candidate.exists() and candidate.is_file():
            return candidate

    return None


def find_git_root(path: Path | None = None) -> Path | None:
    """Find the root directory of a git repository."""
    import subprocess  # nosec B404 - safe usage for git commands only

    if path is None:
        path = Path.cwd()

    try:
        # nosec B603, B607 - safe: hardcoded git command, no user input
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            cwd=path,
            capture_output=True,
            text=True,
            check=True,
        )
        return Path(result.stdout.strip())
    except (subprocess.CalledProcessError, FileNotFoundError, NotADirectoryError):
        return None
