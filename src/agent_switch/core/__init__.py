"""Core helpers shared across agent-switch."""

from agent_switch.core.async_utils import (
    run_in_executor,
    wait_for_condition,
)
from agent_switch.core.logging import setup_logging
from agent_switch.core.system import get_xdg_config_home, get_xdg_data_home


__all__ = [
    "get_xdg_config_home",
    "get_xdg_data_home",
    "run_in_executor",
    "setup_logging",
    "wait_for_condition",
]
